# matchdesk/blueprints/admin/tasks.py
from flask import jsonify
from flask_login import login_required

from ...errors import ValidationError
from ...security import current_actor, roles_required
from ...services import assignment_service
from .forms import ReassignForm
from . import admin_bp


def _task_row(t) -> dict:
    return {
        "id": t.id,
        "title": t.title,
        "client_id": t.client_id,
        "category": t.category,
        "urgency": t.urgency,
        "complexity": t.complexity,
        "status": t.status,
        "escalation_level": t.escalation_level,
        "deadline_at": t.deadline_at.isoformat() if t.deadline_at else None,
        "updated_at": t.updated_at.isoformat() if t.updated_at else None,
    }


@admin_bp.post('/tasks/<int:task_id>/assign')
@login_required
@roles_required('admin')
def task_start_assignment(task_id):
    result = assignment_service.start_assignment(task_id, current_actor())
    return jsonify(result.to_dict())


@admin_bp.post('/tasks/<int:task_id>/reassign')
@login_required
@roles_required('admin')
def task_reassign(task_id):
    form = ReassignForm()
    if not form.validate():
        msg = "; ".join(e for errs in form.errors.values() for e in errs)
        raise ValidationError(msg or "Invalid freelancer.")
    result = assignment_service.reassign_task(task_id, form.freelancer_id.data, current_actor())
    return jsonify(result.to_dict())


@admin_bp.get('/tasks/unassignable')
@login_required
@roles_required('admin')
def tasks_unassignable():
    tasks = assignment_service.list_unassignable_tasks()
    return jsonify({"tasks": [_task_row(t) for t in tasks]})


@admin_bp.get('/tasks/<int:task_id>/offers')
@login_required
@roles_required('admin')
def task_offers(task_id):
    offers = assignment_service.offer_history(task_id)
    return jsonify({"task_id": task_id, "offers": [o.to_dict() for o in offers]})


@admin_bp.post('/offers/sweep')
@login_required
@roles_required('admin')
def offers_sweep():
    processed = assignment_service.sweep_expired_offers()
    return jsonify({"processed": processed})
