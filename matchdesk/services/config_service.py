# matchdesk/services/config_service.py
"""Versioned algorithm configurations.

Exactly one row is active at a time. Active rows are frozen: an edit means
creating a new draft and publishing it.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update

from ..errors import InvalidState, NotFound, ValidationError
from ..extensions import db
from ..models.algorithm import AlgorithmConfig
from ..security import Actor, Role, require_actor
from .algorithm_settings import DEFAULT_SETTINGS, AlgorithmSettings
from .unit_of_work import unit_of_work

log = logging.getLogger(__name__)


def _settings_of(row: AlgorithmConfig) -> AlgorithmSettings:
    return AlgorithmSettings.from_dict(row.settings_dict(), base=DEFAULT_SETTINGS)


def get_active_settings(session=None) -> AlgorithmSettings:
    """Settings of the active row, or the built-in defaults."""
    session = session or db.session
    row = session.execute(
        select(AlgorithmConfig).where(AlgorithmConfig.is_active.is_(True))
    ).scalar_one_or_none()
    if row is None:
        return DEFAULT_SETTINGS
    try:
        return _settings_of(row)
    except ValidationError as e:
        # rows are validated on write; this only trips on hand-edited data
        log.error("active algorithm config v%s is invalid (%s); using defaults", row.version, e.message)
        return DEFAULT_SETTINGS


def list_configurations() -> list[AlgorithmConfig]:
    return db.session.execute(
        select(AlgorithmConfig).order_by(AlgorithmConfig.version.desc())
    ).scalars().all()


def get_configuration(config_id: int) -> AlgorithmConfig:
    row = db.session.get(AlgorithmConfig, config_id)
    if row is None:
        raise NotFound("Configuration")
    return row


def _split_params(params) -> tuple[dict, dict]:
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise ValidationError("Payload must be a JSON object.")
    meta = {k: params[k] for k in ("name", "description") if k in params}
    for key, value in meta.items():
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{key} must be a string.")
    settings = {k: v for k, v in params.items() if k in AlgorithmConfig.SETTINGS_COLUMNS}
    unknown = sorted(set(params) - set(meta) - set(settings))
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}.")
    return meta, settings


def _write_settings(row: AlgorithmConfig, settings: AlgorithmSettings):
    for key, value in settings.to_dict().items():
        setattr(row, key, value)


def create_configuration(actor: Optional[Actor], params) -> AlgorithmConfig:
    """New inactive draft. Missing groups come from the active settings."""
    actor = require_actor(actor, Role.ADMIN)
    meta, raw = _split_params(params)

    with unit_of_work() as uow:
        settings = AlgorithmSettings.from_dict(raw, base=get_active_settings(uow.session))
        latest = uow.session.execute(select(func.max(AlgorithmConfig.version))).scalar()
        version = (latest or 0) + 1
        row = AlgorithmConfig(
            version=version,
            is_active=False,
            name=(meta.get("name") or "").strip() or f"Configuration v{version}",
            description=meta.get("description"),
            created_by=actor.id,
            updated_by=actor.id,
        )
        _write_settings(row, settings)
        uow.session.add(row)

    log.info("algorithm config v%s created by user=%s", row.version, actor.id)
    return row


def update_configuration(actor: Optional[Actor], config_id: int, params) -> AlgorithmConfig:
    actor = require_actor(actor, Role.ADMIN)

    with unit_of_work() as uow:
        row = uow.session.execute(
            select(AlgorithmConfig)
            .where(AlgorithmConfig.id == config_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise NotFound("Configuration")
        # before looking at the payload: an active row is never edited in place
        if row.is_active:
            raise InvalidState("Cannot edit the active configuration. Create a new version instead.")

        meta, raw = _split_params(params)
        settings = AlgorithmSettings.from_dict(raw, base=_settings_of(row))
        _write_settings(row, settings)
        if "name" in meta and (meta["name"] or "").strip():
            row.name = meta["name"].strip()
        if "description" in meta:
            row.description = meta["description"]
        row.updated_by = actor.id

    log.info("algorithm config v%s updated by user=%s", row.version, actor.id)
    return row


def publish_configuration(actor: Optional[Actor], config_id: int) -> AlgorithmConfig:
    """Deactivate every other row, then activate this one, in one transaction."""
    actor = require_actor(actor, Role.ADMIN)

    with unit_of_work() as uow:
        row = uow.session.execute(
            select(AlgorithmConfig)
            .where(AlgorithmConfig.id == config_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is None:
            raise NotFound("Configuration")
        if row.is_active:
            raise InvalidState("Configuration is already active.")

        uow.session.execute(
            update(AlgorithmConfig)
            .where(AlgorithmConfig.id != row.id, AlgorithmConfig.is_active.is_(True))
            .values(is_active=False)
            .execution_options(synchronize_session="fetch")
        )
        # deactivation must reach the db before the partial unique index sees a second active row
        uow.session.flush()
        row.is_active = True
        row.published_at = datetime.utcnow()
        row.updated_by = actor.id

    log.info("algorithm config v%s published by user=%s", row.version, actor.id)
    return row
