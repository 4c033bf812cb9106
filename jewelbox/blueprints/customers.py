"""
Customers blueprint: profiles, debt ledger operations and debt reports.

Ledger mutations accept an optional Idempotency-Key header; a retried
request with the same key returns the entry recorded the first time.
"""
from datetime import datetime

from flask import Blueprint, request, jsonify, current_app, send_file, Response

from jewelbox.blueprints.metrics import record_ledger_mutation
from jewelbox.database import get_session
from jewelbox.decorators.admin_security import admin_required
from jewelbox.services import customer_service, ledger_service
from jewelbox.services.report_service import (
    business_info_from_config, generate_debt_statement_pdf, export_debts_csv
)
from jewelbox.utils.formatters import slugify

customers_bp = Blueprint('customers', __name__, url_prefix='/api/customers')


def _idempotency_key():
    key = request.headers.get('Idempotency-Key', '').strip()
    return key[:64] or None


@customers_bp.route('', methods=['POST'])
@admin_required
def create_customer():
    data = request.get_json(silent=True) or {}
    customer = customer_service.create_customer(get_session(), data)
    if customer.payment_history:
        record_ledger_mutation('adjustment')
    return jsonify({'status': 'success', 'customer': customer.to_dict()}), 201


@customers_bp.route('/<int:customer_id>', methods=['GET'])
@admin_required
def get_customer(customer_id):
    """Customer with full payment history."""
    customer = customer_service.get_customer(get_session(), customer_id)
    return jsonify({'status': 'success', 'customer': customer.to_dict(include_history=True)})


@customers_bp.route('/<int:customer_id>', methods=['PUT'])
@admin_required
def update_customer(customer_id):
    data = request.get_json(silent=True) or {}
    customer = customer_service.update_customer(get_session(), customer_id, data)
    return jsonify({'status': 'success', 'customer': customer.to_dict()})


@customers_bp.route('/<int:customer_id>', methods=['DELETE'])
@admin_required
def delete_customer(customer_id):
    unlinked = customer_service.delete_customer(get_session(), customer_id)
    return jsonify({
        'status': 'success',
        'message': 'Customer deactivated',
        'unlinked_bills': unlinked,
    })


@customers_bp.route('/<int:customer_id>/pay-debt', methods=['POST'])
@admin_required
def pay_debt(customer_id):
    """Record a payment against the customer's outstanding debt."""
    data = request.get_json(silent=True) or {}
    db_session = get_session()
    entry = ledger_service.record_payment(
        db_session,
        customer_id,
        data.get('amount'),
        note=data.get('note', ''),
        idempotency_key=_idempotency_key(),
    )
    record_ledger_mutation('payment')
    customer = customer_service.get_customer(db_session, customer_id)
    return jsonify({
        'status': 'success',
        'message': entry.note,
        'entry': entry.to_dict(),
        'customer': customer.to_dict(),
    })


@customers_bp.route('/<int:customer_id>/adjust-debt', methods=['POST'])
@admin_required
def adjust_debt(customer_id):
    """Set the customer's debt to an absolute amount."""
    data = request.get_json(silent=True) or {}
    db_session = get_session()
    entry = ledger_service.adjust_debt(
        db_session,
        customer_id,
        data.get('new_debt', data.get('amount')),
        note=data.get('note', ''),
        idempotency_key=_idempotency_key(),
    )
    record_ledger_mutation('adjustment')
    customer = customer_service.get_customer(db_session, customer_id)
    return jsonify({
        'status': 'success',
        'message': entry.note,
        'entry': entry.to_dict(),
        'customer': customer.to_dict(),
    })


@customers_bp.route('/<int:customer_id>/ledger', methods=['GET'])
@admin_required
def ledger(customer_id):
    """Payment history plus a consistency check of the cached balance."""
    customer = customer_service.get_customer(get_session(), customer_id)
    problems = ledger_service.verify_ledger(customer)
    return jsonify({
        'status': 'success',
        'customer_id': customer.id,
        'total_debt': float(customer.total_debt or 0),
        'derived_debt': float(ledger_service.derive_debt_from_history(customer)),
        'consistent': not problems,
        'problems': problems,
        'entries': [entry.to_dict() for entry in customer.payment_history],
    })


@customers_bp.route('/<int:customer_id>/debt-pdf', methods=['GET'])
@admin_required
def debt_pdf(customer_id):
    customer = customer_service.get_customer(get_session(), customer_id)
    pdf_buffer = generate_debt_statement_pdf(customer, business_info_from_config(current_app.config))
    filename = f"debt-statement-{slugify(customer.name) or customer.id}-{datetime.now().strftime('%Y%m%d')}.pdf"
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=filename
    )


@customers_bp.route('/export-debts', methods=['GET'])
@admin_required
def export_debts():
    """CSV of all active customers, highest debt first."""
    csv_data = export_debts_csv(get_session())
    filename = f"customer-debts-{datetime.now().strftime('%Y%m%d')}.csv"
    return Response(
        csv_data,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )
