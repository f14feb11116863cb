# matchdesk/models/activity.py
from datetime import datetime
from ..extensions import db


class TaskActivity(db.Model):
    __tablename__ = "task_activity"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey('task.id'), nullable=False, index=True)
    actor_id = db.Column(db.Integer, db.ForeignKey('user.id'))   # None for system
    actor_type = db.Column(db.String(20), nullable=False)         # freelancer|admin|system
    action = db.Column(db.String(40), nullable=False, index=True)
    previous_status = db.Column(db.String(30))
    new_status = db.Column(db.String(30))
    # "metadata" is reserved on declarative models
    meta = db.Column("metadata", db.JSON)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
