# matchdesk/blueprints/admin/forms.py
from flask_wtf import FlaskForm
from wtforms import IntegerField
from wtforms.validators import DataRequired, NumberRange


class ReassignForm(FlaskForm):
    class Meta:
        csrf = False

    freelancer_id = IntegerField(
        "Freelancer",
        validators=[DataRequired(message="freelancer_id is required."), NumberRange(min=1)],
    )
