"""Compositions blueprint: calculation, lifecycle and reports."""
import time

from flask import Blueprint, jsonify, request, send_file, current_app

from wms.database import get_session
from wms.services import composition_calculator, composition_service, report_service
from wms.blueprints.metrics import observe_calculation, observe_transition
from wms.utils.http import get_actor_id, get_json_body, parse_int

compositions_bp = Blueprint('compositions', __name__, url_prefix='/api/compositions')


@compositions_bp.route('/calculate', methods=['POST'])
def calculate():
    """Calculate a composition without saving it."""
    data = get_json_body()
    db_session = get_session()

    started_at = time.time()
    result = composition_calculator.calculate_composition(
        data.get('products') or [], db_session,
        pallet_id=data.get('pallet_id'),
        constraints=data.get('constraints')
    )
    observe_calculation(result, started_at)
    return jsonify({'status': 'success', 'result': result})


@compositions_bp.route('/validate', methods=['POST'])
def validate():
    data = get_json_body()
    db_session = get_session()
    validation = composition_calculator.validate_constraints(
        data.get('products') or [], db_session,
        pallet_id=data.get('pallet_id'),
        constraints=data.get('constraints')
    )
    return jsonify({'status': 'success', 'validation': validation})


@compositions_bp.route('', methods=['POST'])
def create_composition():
    """Calculate and save a draft composition."""
    data = get_json_body()
    actor_id = get_actor_id(required=True)
    db_session = get_session()

    started_at = time.time()
    result = composition_calculator.calculate_composition(
        data.get('products') or [], db_session,
        pallet_id=data.get('pallet_id'),
        constraints=data.get('constraints')
    )
    observe_calculation(result, started_at)

    composition = composition_service.save_composition(data, db_session, actor_id, result=result)
    observe_transition(composition.status.value)
    return jsonify({'status': 'success', 'composition': composition_service.composition_to_dict(composition)}), 201


@compositions_bp.route('', methods=['GET'])
def list_compositions():
    """List compositions (filters: status, created_by; paginated)."""
    db_session = get_session()
    page = parse_int(request.args.get('page')) or 1
    per_page = parse_int(request.args.get('per_page')) or current_app.config.get('COMPOSITION_PAGE_SIZE', 20)

    listing = composition_service.list_compositions(
        db_session,
        page=page,
        per_page=per_page,
        status=request.args.get('status') or None,
        created_by=parse_int(request.args.get('created_by'))
    )
    listing['compositions'] = [
        composition_service.composition_to_dict(c, include_items=False) for c in listing['compositions']
    ]
    return jsonify(dict(listing, status='success'))


@compositions_bp.route('/<int:composition_id>', methods=['GET'])
def get_composition(composition_id):
    db_session = get_session()
    composition = composition_service.get_composition(composition_id, db_session)
    return jsonify({'status': 'success', 'composition': composition_service.composition_to_dict(composition)})


@compositions_bp.route('/<int:composition_id>/status', methods=['PATCH', 'POST'])
def update_status(composition_id):
    data = get_json_body()
    db_session = get_session()
    composition = composition_service.update_status(
        composition_id, data.get('status'), get_actor_id(), db_session
    )
    observe_transition(composition.status.value)
    return jsonify({'status': 'success', 'composition': composition_service.composition_to_dict(composition)})


@compositions_bp.route('/<int:composition_id>/assemble', methods=['POST'])
def assemble(composition_id):
    data = get_json_body()
    db_session = get_session()
    composition = composition_service.assemble(
        composition_id, data.get('target_location'), get_actor_id(), db_session
    )
    observe_transition(composition.status.value)
    return jsonify({'status': 'success', 'composition': composition_service.composition_to_dict(composition)})


@compositions_bp.route('/<int:composition_id>/disassemble', methods=['POST'])
def disassemble(composition_id):
    data = get_json_body()
    db_session = get_session()
    composition = composition_service.disassemble(
        composition_id, data.get('targets'), get_actor_id(), db_session
    )
    observe_transition(composition.status.value)
    return jsonify({'status': 'success', 'composition': composition_service.composition_to_dict(composition)})


@compositions_bp.route('/<int:composition_id>', methods=['DELETE'])
def delete_composition(composition_id):
    db_session = get_session()
    composition_service.delete_composition(composition_id, db_session)
    return jsonify({'status': 'success', 'message': 'Composición eliminada'})


@compositions_bp.route('/<int:composition_id>/reports', methods=['POST'])
def generate_report(composition_id):
    """Generate and store a report from the saved snapshot."""
    data = get_json_body()
    db_session = get_session()
    report = report_service.generate_report(
        composition_id, db_session, get_actor_id(),
        include_metrics=data.get('include_metrics', True),
        include_recommendations=data.get('include_recommendations', True)
    )
    return jsonify({'status': 'success', 'report': report_service.report_to_dict(report)}), 201


@compositions_bp.route('/reports/<int:report_id>/pdf', methods=['GET'])
def download_report_pdf(report_id):
    db_session = get_session()
    report = report_service.get_report(report_id, db_session)
    pdf = report_service.render_report_pdf(report)
    return send_file(
        pdf,
        mimetype='application/pdf',
        as_attachment=True,
        download_name=f'reporte_composicion_{report.composition_id}_{report.id}.pdf'
    )
