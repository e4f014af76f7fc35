"""Packaging blueprint: hierarchy CRUD, conversions, stock and picking."""
from flask import Blueprint, jsonify

from wms.database import get_session
from wms.exceptions import ValidationViolation, ViolationKind
from wms.services import packaging_service, conversion_service, stock_service, picking_service
from wms.utils.http import get_actor_id, get_json_body

packaging_bp = Blueprint('packaging', __name__, url_prefix='/api/packaging')


@packaging_bp.route('', methods=['POST'])
def create_packaging():
    """Create a packaging type."""
    db_session = get_session()
    packaging = packaging_service.create_packaging(get_json_body(), db_session, user_id=get_actor_id())
    return jsonify({'status': 'success', 'packaging': packaging_service.packaging_to_dict(packaging)}), 201


@packaging_bp.route('/<int:packaging_id>', methods=['GET'])
def get_packaging(packaging_id):
    db_session = get_session()
    packaging = packaging_service.get_packaging(packaging_id, db_session)
    return jsonify({'status': 'success', 'packaging': packaging_service.packaging_to_dict(packaging)})


@packaging_bp.route('/<int:packaging_id>', methods=['PUT', 'PATCH'])
def update_packaging(packaging_id):
    """Update a packaging type (only the fields sent change)."""
    db_session = get_session()
    packaging = packaging_service.update_packaging(packaging_id, get_json_body(), db_session)
    return jsonify({'status': 'success', 'packaging': packaging_service.packaging_to_dict(packaging)})


@packaging_bp.route('/<int:packaging_id>', methods=['DELETE'])
def delete_packaging(packaging_id):
    db_session = get_session()
    packaging_service.delete_packaging(packaging_id, db_session)
    return jsonify({'status': 'success', 'message': 'Embalaje eliminado'})


@packaging_bp.route('/barcode/<barcode>', methods=['GET'])
def get_by_barcode(barcode):
    db_session = get_session()
    packaging = packaging_service.get_packaging_by_barcode(barcode, db_session)
    return jsonify({'status': 'success', 'packaging': packaging_service.packaging_to_dict(packaging)})


@packaging_bp.route('/product/<int:product_id>', methods=['GET'])
def list_product_packagings(product_id):
    db_session = get_session()
    packagings = packaging_service.get_packagings_by_product(product_id, db_session)
    return jsonify({
        'status': 'success',
        'packagings': [packaging_service.packaging_to_dict(p) for p in packagings],
    })


@packaging_bp.route('/product/<int:product_id>/base', methods=['GET'])
def get_base_packaging(product_id):
    db_session = get_session()
    packaging = packaging_service.get_base_packaging(product_id, db_session)
    return jsonify({'status': 'success', 'packaging': packaging_service.packaging_to_dict(packaging)})


@packaging_bp.route('/product/<int:product_id>/hierarchy', methods=['GET'])
def get_hierarchy(product_id):
    db_session = get_session()
    hierarchy = packaging_service.get_packaging_hierarchy(product_id, db_session)
    return jsonify({'status': 'success', 'product_id': product_id, 'hierarchy': hierarchy})


@packaging_bp.route('/convert', methods=['POST'])
def convert():
    """Convert a quantity between two packaging types of the same product."""
    data = get_json_body()
    for field in ('quantity', 'from_packaging_id', 'to_packaging_id'):
        if data.get(field) is None:
            raise ValidationViolation(
                ViolationKind.MISSING_FIELD,
                f'El campo "{field}" es requerido',
                payload={'field': field}
            )

    db_session = get_session()
    result = conversion_service.convert(
        data['quantity'], data['from_packaging_id'], data['to_packaging_id'], db_session
    )
    return jsonify({'status': 'success', 'conversion': result.to_dict()})


@packaging_bp.route('/product/<int:product_id>/stock', methods=['GET'])
def get_stock(product_id):
    """Consolidated stock plus the per-packaging breakdown."""
    db_session = get_session()
    return jsonify({
        'status': 'success',
        'consolidated': stock_service.get_consolidated(product_id, db_session),
        'breakdown': stock_service.get_breakdown(product_id, db_session),
    })


@packaging_bp.route('/product/<int:product_id>/picking', methods=['POST'])
def optimize_picking(product_id):
    data = get_json_body()
    db_session = get_session()
    plan = picking_service.optimize_picking(product_id, data.get('requested_base_units'), db_session)
    return jsonify({'status': 'success', 'picking': plan})
