# matchdesk/models/task.py
from datetime import datetime
from enum import Enum
from ..extensions import db


class TaskStatus(str, Enum):
    PENDING = "pending"
    OFFERED = "offered"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    IN_REVIEW = "in_review"
    REVISION_REQUESTED = "revision_requested"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    UNASSIGNABLE = "unassignable"


class Complexity(str, Enum):
    SIMPLE = "SIMPLE"
    INTERMEDIATE = "INTERMEDIATE"
    ADVANCED = "ADVANCED"
    EXPERT = "EXPERT"


class Urgency(str, Enum):
    CRITICAL = "CRITICAL"
    URGENT = "URGENT"
    STANDARD = "STANDARD"
    FLEXIBLE = "FLEXIBLE"


# Escalation ladder
LEVEL_BEST_FIT = 1
LEVEL_RELAXED = 2
LEVEL_BROADCAST = 3
LEVEL_ADMIN = 4


class Task(db.Model):
    __tablename__ = 'task'

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    freelancer_id = db.Column(db.Integer, db.ForeignKey('user.id'), index=True)

    title = db.Column(db.String(200), nullable=False, index=True)
    category = db.Column(db.String(50), index=True)   # category slug
    description = db.Column(db.Text)

    complexity = db.Column(db.String(20))   # filled by intake_service when missing
    urgency = db.Column(db.String(20))
    required_skills = db.Column(db.JSON, default=list)
    nice_to_have_skills = db.Column(db.JSON, default=list)
    estimated_hours = db.Column(db.Float)
    deadline_at = db.Column(db.DateTime, index=True)

    status = db.Column(db.String(30), default=TaskStatus.PENDING.value, nullable=False, index=True)

    # Offer in flight: both set iff status == offered
    offered_to = db.Column(db.Integer, db.ForeignKey('user.id'), index=True)
    offer_expires_at = db.Column(db.DateTime)

    escalation_level = db.Column(db.Integer, default=LEVEL_BEST_FIT, nullable=False)
    # Set only while a level-3 broadcast window is open
    broadcast_expires_at = db.Column(db.DateTime, index=True)

    assigned_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    client = db.relationship('User', foreign_keys=[client_id])
    freelancer = db.relationship('User', foreign_keys=[freelancer_id])

    offers = db.relationship(
        'TaskOffer',
        back_populates='task',
        lazy='selectin',
        order_by='TaskOffer.id',
        cascade='save-update, merge',
        passive_deletes='all',
    )

    __table_args__ = (
        db.CheckConstraint(
            "(status = 'offered' AND offered_to IS NOT NULL AND offer_expires_at IS NOT NULL)"
            " OR (status != 'offered' AND offered_to IS NULL AND offer_expires_at IS NULL)",
            name="ck_task_offer_fields",
        ),
        db.CheckConstraint(
            "escalation_level BETWEEN 1 AND 4",
            name="ck_task_escalation_level",
        ),
        db.Index("ix_task_offer_expiry", "offer_expires_at"),
    )

    @property
    def is_broadcasting(self) -> bool:
        return (
            self.status == TaskStatus.PENDING.value
            and self.escalation_level == LEVEL_BROADCAST
            and self.broadcast_expires_at is not None
        )

    def offer_expired(self, now: datetime) -> bool:
        return self.offer_expires_at is not None and self.offer_expires_at < now

    def broadcast_closed(self, now: datetime) -> bool:
        return self.broadcast_expires_at is not None and self.broadcast_expires_at < now

    def clear_offer(self):
        self.offered_to = None
        self.offer_expires_at = None

    def __repr__(self):
        return f"<Task {self.id} {self.status} L{self.escalation_level}>"
