"""Products blueprint. Prices are always computed server-side from the composition."""
from flask import Blueprint, request, jsonify, current_app

from jewelbox.database import get_session
from jewelbox.decorators.admin_security import admin_required
from jewelbox.services import product_service

products_bp = Blueprint('products', __name__, url_prefix='/api/products')


@products_bp.route('', methods=['POST'])
@admin_required
def create_product():
    """Create a product; any client-sent price fields are ignored."""
    data = request.get_json(silent=True) or {}
    product = product_service.create_product(
        get_session(),
        data,
        code_prefix=current_app.config['BILL_NUMBER_PREFIX'],
        default_gst=current_app.config['DEFAULT_GST_PERCENTAGE'],
    )
    return jsonify({'status': 'success', 'product': product.to_dict()}), 201


@products_bp.route('/<int:product_id>', methods=['GET'])
def get_product(product_id):
    product = product_service.get_product(get_session(), product_id)
    return jsonify({'status': 'success', 'product': product.to_dict()})


@products_bp.route('/<int:product_id>', methods=['PUT'])
@admin_required
def update_product(product_id):
    data = request.get_json(silent=True) or {}
    product = product_service.update_product(
        get_session(),
        product_id,
        data,
        default_gst=current_app.config['DEFAULT_GST_PERCENTAGE'],
    )
    return jsonify({'status': 'success', 'product': product.to_dict()})


@products_bp.route('/<int:product_id>', methods=['DELETE'])
@admin_required
def delete_product(product_id):
    product_service.delete_product(get_session(), product_id)
    return jsonify({'status': 'success', 'message': 'Product deleted'})
