# matchdesk/models/algorithm.py
from datetime import datetime
from ..extensions import db


class AlgorithmConfig(db.Model):
    """A stored scoring/escalation policy version.

    Settings groups are kept as JSON; services.algorithm_settings turns them
    into a validated value object before anything reads them.
    """
    __tablename__ = "algorithm_config"

    id = db.Column(db.Integer, primary_key=True)
    version = db.Column(db.Integer, nullable=False, unique=True)
    is_active = db.Column(db.Boolean, default=False, nullable=False)
    name = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text)

    weights = db.Column(db.JSON, nullable=False)
    acceptance_windows = db.Column(db.JSON, nullable=False)
    escalation_settings = db.Column(db.JSON, nullable=False)
    timezone_settings = db.Column(db.JSON, nullable=False)
    experience_matrix = db.Column(db.JSON, nullable=False)
    workload_settings = db.Column(db.JSON, nullable=False)
    exclusion_rules = db.Column(db.JSON, nullable=False)
    bonus_modifiers = db.Column(db.JSON, nullable=False)

    created_by = db.Column(db.Integer, db.ForeignKey('user.id'))
    updated_by = db.Column(db.Integer, db.ForeignKey('user.id'))
    published_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        # exactly one active row is enforced by publish; the index makes two impossible
        db.Index(
            "uq_algorithm_config_active",
            "is_active",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active"),
        ),
    )

    SETTINGS_COLUMNS = (
        "weights",
        "acceptance_windows",
        "escalation_settings",
        "timezone_settings",
        "experience_matrix",
        "workload_settings",
        "exclusion_rules",
        "bonus_modifiers",
    )

    def settings_dict(self) -> dict:
        return {col: getattr(self, col) for col in self.SETTINGS_COLUMNS}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "version": self.version,
            "is_active": self.is_active,
            "name": self.name,
            "description": self.description,
            **self.settings_dict(),
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
