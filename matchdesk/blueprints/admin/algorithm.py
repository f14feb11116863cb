# matchdesk/blueprints/admin/algorithm.py
from flask import jsonify, request
from flask_login import login_required

from ...errors import ValidationError
from ...security import current_actor, roles_required
from ...services import config_service
from ...services.algorithm_settings import DEFAULT_SETTINGS
from . import admin_bp


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object body.")
    return data


@admin_bp.get('/algorithm')
@login_required
@roles_required('admin')
def algorithm_list():
    rows = config_service.list_configurations()
    active = next((r for r in rows if r.is_active), None)
    return jsonify({
        "configurations": [r.to_dict() for r in rows],
        "active_id": active.id if active else None,
        "defaults": DEFAULT_SETTINGS.to_dict(),
    })


@admin_bp.post('/algorithm')
@login_required
@roles_required('admin')
def algorithm_create():
    row = config_service.create_configuration(current_actor(), _json_body())
    return jsonify(row.to_dict()), 201


@admin_bp.put('/algorithm/<int:config_id>')
@login_required
@roles_required('admin')
def algorithm_update(config_id):
    row = config_service.update_configuration(current_actor(), config_id, _json_body())
    return jsonify(row.to_dict())


@admin_bp.post('/algorithm/<int:config_id>/publish')
@login_required
@roles_required('admin')
def algorithm_publish(config_id):
    row = config_service.publish_configuration(current_actor(), config_id)
    return jsonify(row.to_dict())
