# matchdesk/models/user.py
from datetime import datetime
from flask_login import UserMixin
from ..extensions import db


# ------- Core Models -------

class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)

    # client|admin|freelancer
    role = db.Column(db.String(20), nullable=False, default="client", index=True)

    # active|suspended|pending
    status = db.Column(db.String(20), default="active", index=True)
    deleted_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    freelancer_profile = db.relationship(
        "FreelancerProfile",
        backref="user",
        uselist=False,
        cascade="all, delete-orphan",
    )

    # --- Convenience flags ---
    @property
    def is_active_account(self) -> bool:
        return self.status == "active" and self.deleted_at is None

    @property
    def is_suspended(self) -> bool:
        return self.status == "suspended"

    # Used to decide if a freelancer can be offered work at all
    def can_accept_assignments(self) -> bool:
        if self.role != "freelancer":
            return False
        if not self.is_active_account:
            return False
        fp = self.freelancer_profile
        return bool(fp and fp.approval_status == "approved")


class FreelancerProfile(db.Model):
    __tablename__ = "freelancer_profile"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), unique=True, index=True)

    # Matching inputs (JSON lists of strings)
    skills = db.Column(db.JSON, default=list)
    specializations = db.Column(db.JSON, default=list)
    preferred_categories = db.Column(db.JSON, default=list)

    timezone = db.Column(db.String(64))                  # IANA name, e.g. "Africa/Nairobi"
    experience_level = db.Column(db.String(10), default="JUNIOR")  # JUNIOR|MID|SENIOR|EXPERT

    # Vetting/approval from admins: pending|approved|rejected
    approval_status = db.Column(db.String(20), default="pending", index=True)
    availability = db.Column(db.Boolean, default=True, nullable=False)
    accepts_urgent_tasks = db.Column(db.Boolean, default=True, nullable=False)
    vacation_mode = db.Column(db.Boolean, default=False, nullable=False)
    vacation_until = db.Column(db.DateTime)

    # Quality metrics (refreshed by metrics_service)
    rating_avg = db.Column(db.Float)                     # 0..5
    completed_tasks = db.Column(db.Integer, default=0)
    acceptance_rate = db.Column(db.Float)                # 0..100
    on_time_rate = db.Column(db.Float)                   # 0..100
    avg_response_time_minutes = db.Column(db.Integer)

    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ClientArtistAffinity(db.Model):
    __tablename__ = "client_artist_affinity"

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    artist_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    is_favorite = db.Column(db.Boolean, default=False, nullable=False)
    tasks_completed = db.Column(db.Integer, default=0, nullable=False)
    last_worked_at = db.Column(db.DateTime)

    __table_args__ = (
        db.UniqueConstraint("client_id", "artist_id", name="uq_affinity_client_artist"),
    )
