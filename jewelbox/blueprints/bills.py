"""Bills blueprint: issue, read, print, export and delete bills."""
from flask import Blueprint, request, jsonify, current_app, g, send_file, Response

from jewelbox.blueprints.metrics import record_ledger_mutation
from jewelbox.database import get_session
from jewelbox.decorators.admin_security import admin_required
from jewelbox.services import bill_service
from jewelbox.services.report_service import (
    business_info_from_config, export_bills_csv, generate_bill_pdf
)

bills_bp = Blueprint('bills', __name__, url_prefix='/api/bills')


@bills_bp.route('', methods=['POST'])
@admin_required
def create_bill():
    """
    Issue a bill and record the sale on the customer's ledger.

    Send an Idempotency-Key header to make double-submits safe.
    """
    data = request.get_json(silent=True) or {}
    idempotency_key = request.headers.get('Idempotency-Key', '').strip()[:64] or None

    bill = bill_service.create_bill(
        get_session(),
        data,
        admin_id=g.admin_user.id,
        prefix=current_app.config['BILL_NUMBER_PREFIX'],
        idempotency_key=idempotency_key,
    )
    record_ledger_mutation('sale')
    return jsonify({'status': 'success', 'bill': bill.to_dict()}), 201


@bills_bp.route('/export', methods=['GET'])
@admin_required
def export_bills():
    """CSV of bills for ?period=monthly|quarterly, or a custom ?from=&to= range."""
    csv_data, window = export_bills_csv(
        get_session(),
        period=request.args.get('period'),
        date_from=request.args.get('from'),
        date_to=request.args.get('to'),
    )
    return Response(
        csv_data,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename=Bills-{window.slug}.csv'}
    )


@bills_bp.route('/<int:bill_id>', methods=['GET'])
@admin_required
def get_bill(bill_id):
    bill = bill_service.get_bill(get_session(), bill_id)
    return jsonify({'status': 'success', 'bill': bill.to_dict()})


@bills_bp.route('/<int:bill_id>/pdf', methods=['GET'])
@admin_required
def bill_pdf(bill_id):
    bill = bill_service.get_bill(get_session(), bill_id)
    pdf_buffer = generate_bill_pdf(bill, business_info_from_config(current_app.config))
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f'Bill-{bill.bill_number}.pdf'
    )


@bills_bp.route('/<int:bill_id>', methods=['DELETE'])
@admin_required
def delete_bill(bill_id):
    """Reverse the bill's ledger effect and delete it permanently."""
    result = bill_service.delete_bill(get_session(), bill_id)
    if result['reversal'] is not None:
        record_ledger_mutation('reversal')
    return jsonify({
        'status': 'success',
        'message': f"Bill {result['bill_number']} deleted",
        'result': result,
    })
