# matchdesk/services/notification_service.py
"""Outbound notifications for assignment transitions.

Called only after the transition committed (see unit_of_work.Outbox).
Every function returns True/False and never raises.
"""
import logging

from flask import current_app
from sqlalchemy import select

from ..extensions import db
from ..models.user import User
from .email_service import send_email

log = logging.getLogger(__name__)

SUBJECTS = {
    "offered": "New task offer: {title}",
    "broadcast": "Open task, first to accept gets it: {title}",
    "assigned": "Your task has been assigned: {title}",
    "escalated": "Task #{id} needs manual assignment",
    "reassigned": "Task reassigned to you: {title}",
    "unassigned": "Task #{id} was reassigned",
}


def task_summary(task, **extra) -> dict:
    """Plain snapshot of a task, safe to use after the session commits."""
    summary = {
        "id": task.id,
        "title": task.title,
        "category": task.category,
        "urgency": task.urgency,
        "complexity": task.complexity,
        "status": task.status,
        "escalation_level": task.escalation_level,
        "deadline_at": task.deadline_at.isoformat() if task.deadline_at else None,
        "offer_expires_at": task.offer_expires_at.isoformat() if task.offer_expires_at else None,
        "broadcast_expires_at": task.broadcast_expires_at.isoformat() if task.broadcast_expires_at else None,
    }
    summary.update(extra)
    return summary


def _task_link(summary: dict) -> str:
    base = (current_app.config.get("EXTERNAL_BASE_URL") or "").rstrip("/")
    return f"{base}/tasks/{summary['id']}"


def _body(summary: dict, kind: str) -> str:
    lines = [
        f"Task #{summary['id']}: {summary.get('title') or ''}",
        f"Urgency: {summary.get('urgency') or '-'}",
    ]
    if summary.get("deadline_at"):
        lines.append(f"Deadline: {summary['deadline_at']}")
    if kind == "offered" and summary.get("offer_expires_at"):
        lines.append(f"Respond before: {summary['offer_expires_at']} UTC")
    if kind == "broadcast" and summary.get("broadcast_expires_at"):
        lines.append(f"Open until: {summary['broadcast_expires_at']} UTC")
    if summary.get("reason"):
        lines.append(f"Reason: {summary['reason']}")
    lines.append("")
    lines.append(_task_link(summary))
    return "\n".join(lines)


def _email_of(user_id) -> str | None:
    user = db.session.get(User, user_id)
    if user is None or user.deleted_at is not None:
        return None
    return user.email


def notify_artist(artist_id: int, summary: dict, kind: str) -> bool:
    try:
        email = _email_of(artist_id)
        if not email:
            log.warning("notify_artist: no email for artist=%s", artist_id)
            return False
        subject = SUBJECTS.get(kind, "Task update: {title}").format(**summary)
        return send_email(to=email, subject=subject, body=_body(summary, kind))
    except Exception:
        log.exception("notify_artist failed artist=%s task=%s kind=%s", artist_id, summary.get("id"), kind)
        return False


def notify_client(client_id: int, summary: dict, kind: str) -> bool:
    try:
        email = _email_of(client_id)
        if not email:
            log.warning("notify_client: no email for client=%s", client_id)
            return False
        subject = SUBJECTS.get(kind, "Task update: {title}").format(**summary)
        return send_email(to=email, subject=subject, body=_body(summary, kind))
    except Exception:
        log.exception("notify_client failed client=%s task=%s kind=%s", client_id, summary.get("id"), kind)
        return False


def admin_recipients() -> list[str]:
    configured = current_app.config.get("ADMIN_ALERT_EMAILS") or []
    if configured:
        return list(configured)
    return list(db.session.execute(
        select(User.email).where(User.role == "admin", User.deleted_at.is_(None))
    ).scalars())


def notify_admin(details: dict) -> bool:
    try:
        recipients = admin_recipients()
        if not recipients:
            log.warning("notify_admin: no admin recipients for task=%s", details.get("id"))
            return False
        subject = SUBJECTS["escalated"].format(**details)
        return send_email(to=recipients, subject=subject, body=_body(details, "escalated"))
    except Exception:
        log.exception("notify_admin failed task=%s", details.get("id"))
        return False
