# matchdesk/blueprints/artist/forms.py
from flask_wtf import FlaskForm
from wtforms import StringField, TextAreaField
from wtforms.validators import AnyOf, Length, Optional as Opt

from ...models.offer import DeclineReason

# EXPIRED is written by the sweep only
DECLINE_REASONS = [r.value for r in DeclineReason if r is not DeclineReason.EXPIRED]


class DeclineForm(FlaskForm):
    """Body of POST /artist/tasks/<id>/decline (form or JSON)."""

    class Meta:
        # JSON endpoint; CSRFProtect already checks the X-CSRFToken header
        csrf = False

    reason = StringField(
        "Reason",
        validators=[Opt(), AnyOf(DECLINE_REASONS, message="Unknown decline reason.")],
    )
    note = TextAreaField("Note", validators=[Opt(), Length(max=2000)])
