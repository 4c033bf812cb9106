"""Catalog blueprint: metals, gemstones and their variants."""
from flask import Blueprint, request, jsonify

from jewelbox.database import get_session
from jewelbox.decorators.admin_security import admin_required
from jewelbox.services import catalog_service

catalog_bp = Blueprint('catalog', __name__, url_prefix='/api')

# URL segment -> entity type
COLLECTIONS = {'metals': 'metal', 'gemstones': 'gemstone'}


def _entity_type(collection: str) -> str:
    return COLLECTIONS[collection]


def _register(collection: str) -> None:
    """Register list/create/get/update/delete routes for one collection."""
    entity_type = _entity_type(collection)

    def list_view():
        active_only = request.args.get('active') in ('1', 'true', 'yes')
        entities = catalog_service.list_entities(get_session(), entity_type, active_only=active_only)
        return jsonify({'status': 'success', collection: [e.to_dict() for e in entities]})

    @admin_required
    def create_view():
        data = request.get_json(silent=True) or {}
        entity = catalog_service.create_entity(get_session(), entity_type, data)
        return jsonify({'status': 'success', entity_type: entity.to_dict()}), 201

    def get_view(entity_id):
        entity = catalog_service.get_entity(get_session(), entity_type, entity_id)
        return jsonify({'status': 'success', entity_type: entity.to_dict()})

    @admin_required
    def update_view(entity_id):
        data = request.get_json(silent=True) or {}
        entity = catalog_service.update_entity(get_session(), entity_type, entity_id, data)
        return jsonify({'status': 'success', entity_type: entity.to_dict()})

    @admin_required
    def delete_view(entity_id):
        catalog_service.delete_entity(get_session(), entity_type, entity_id)
        return jsonify({'status': 'success', 'message': f'{entity_type.capitalize()} deleted'})

    catalog_bp.add_url_rule(f'/{collection}', f'list_{collection}', list_view, methods=['GET'])
    catalog_bp.add_url_rule(f'/{collection}', f'create_{entity_type}', create_view, methods=['POST'])
    catalog_bp.add_url_rule(f'/{collection}/<int:entity_id>', f'get_{entity_type}', get_view, methods=['GET'])
    catalog_bp.add_url_rule(f'/{collection}/<int:entity_id>', f'update_{entity_type}', update_view, methods=['PUT'])
    catalog_bp.add_url_rule(f'/{collection}/<int:entity_id>', f'delete_{entity_type}', delete_view, methods=['DELETE'])


for _collection in COLLECTIONS:
    _register(_collection)
