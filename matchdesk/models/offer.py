# matchdesk/models/offer.py
from datetime import datetime
from enum import Enum
from ..extensions import db


class OfferResponse(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"


class DeclineReason(str, Enum):
    TOO_BUSY = "TOO_BUSY"
    SKILL_MISMATCH = "SKILL_MISMATCH"
    DEADLINE_TOO_TIGHT = "DEADLINE_TOO_TIGHT"
    LOW_CREDITS = "LOW_CREDITS"
    PERSONAL_CONFLICT = "PERSONAL_CONFLICT"
    OTHER = "OTHER"
    EXPIRED = "EXPIRED"   # set by the sweep, never by an artist


class TaskOffer(db.Model):
    """One proposal of a task to one artist. Rows are never deleted."""
    __tablename__ = "task_offer"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey('task.id'), nullable=False, index=True)
    artist_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)

    match_score = db.Column(db.Float)
    escalation_level = db.Column(db.Integer, default=1, nullable=False)
    score_breakdown = db.Column(db.JSON)

    offered_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)

    response = db.Column(db.String(20), default=OfferResponse.PENDING.value, nullable=False, index=True)
    decline_reason = db.Column(db.String(30))
    decline_note = db.Column(db.Text)
    responded_at = db.Column(db.DateTime)

    task = db.relationship('Task', back_populates='offers')
    artist = db.relationship('User', foreign_keys=[artist_id])

    __table_args__ = (
        # at most one pending offer per (task, artist)
        db.Index(
            "uq_task_offer_pending",
            "task_id", "artist_id",
            unique=True,
            sqlite_where=db.text("response = 'pending'"),
            postgresql_where=db.text("response = 'pending'"),
        ),
    )

    @property
    def is_pending(self) -> bool:
        return self.response == OfferResponse.PENDING.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "artist_id": self.artist_id,
            "match_score": self.match_score,
            "escalation_level": self.escalation_level,
            "score_breakdown": self.score_breakdown,
            "offered_at": self.offered_at.isoformat() if self.offered_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "response": self.response,
            "decline_reason": self.decline_reason,
            "decline_note": self.decline_note,
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
        }
