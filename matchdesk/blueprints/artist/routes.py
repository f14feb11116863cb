# matchdesk/blueprints/artist/routes.py
from flask import jsonify
from flask_login import login_required

from ...errors import ValidationError
from ...security import Role, current_actor, roles_required
from ...services import assignment_service
from .forms import DeclineForm
from . import artist_bp


def _form_errors(form) -> str:
    return "; ".join(f"{name}: {', '.join(errs)}" for name, errs in form.errors.items())


@artist_bp.get("/offers")
@login_required
@roles_required(Role.FREELANCER, Role.ADMIN)
def my_offers():
    offers = assignment_service.open_offers_for(current_actor())
    return jsonify({"offers": [o.to_dict() for o in offers]})


@artist_bp.post("/tasks/<int:task_id>/accept")
@login_required
@roles_required(Role.FREELANCER, Role.ADMIN)
def accept(task_id):
    result = assignment_service.accept_offer(task_id, current_actor())
    return jsonify(result.to_dict())


@artist_bp.post("/tasks/<int:task_id>/decline")
@login_required
@roles_required(Role.FREELANCER, Role.ADMIN)
def decline(task_id):
    form = DeclineForm()
    if not form.validate():
        raise ValidationError(_form_errors(form))
    result = assignment_service.decline_offer(
        task_id,
        current_actor(),
        reason=form.reason.data or None,
        note=form.note.data or None,
    )
    return jsonify(result.to_dict())
