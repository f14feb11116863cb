# matchdesk/services/assignment_service.py
"""Assignment state machine.

    pending --offer--> offered --accept--> assigned
                          |
                   decline / expiry
                          v
    pending (re-offer at same or next level)
        -> level 3: pending + broadcast window, first accept wins
        -> level 4: unassignable (manual assignment by an admin)

Every transition runs inside one unit of work that locks the task row
before reading it. Notifications and metric refreshes are queued on the
outbox and only run once the transition has committed.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from flask import current_app
from sqlalchemy import and_, or_, select

from ..errors import AssignmentError, Expired, Forbidden, InvalidState, NotFound, ValidationError
from ..extensions import db
from ..models.offer import DeclineReason, OfferResponse, TaskOffer
from ..models.task import (
    Task, TaskStatus, LEVEL_BEST_FIT, LEVEL_BROADCAST, LEVEL_ADMIN,
)
from ..models.user import User
from ..security import Actor, Role, require_actor
from . import offer_ledger
from .activity_service import log_activity
from .config_service import get_active_settings
from .intake_service import classify_task
from .metrics_service import refresh_artist_metrics
from .notification_service import notify_admin, notify_artist, notify_client, task_summary
from .ranking_service import rank_candidates
from .unit_of_work import lock_task, unit_of_work

log = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 2000

REASSIGNABLE_STATUSES = (
    TaskStatus.PENDING.value,
    TaskStatus.OFFERED.value,
    TaskStatus.UNASSIGNABLE.value,
    TaskStatus.ASSIGNED.value,
    TaskStatus.IN_PROGRESS.value,
    TaskStatus.REVISION_REQUESTED.value,
)


class NextAction(str, Enum):
    OFFERED = "offered"
    BROADCAST = "broadcast"
    ESCALATED = "escalated_to_admin"


@dataclass(frozen=True)
class AcceptResult:
    task_id: int
    new_status: str

    def to_dict(self) -> dict:
        return {"task_id": self.task_id, "new_status": self.new_status}


@dataclass(frozen=True)
class SelectionResult:
    task_id: int
    next_action: NextAction
    escalation_level: int
    next_artist_id: Optional[int] = None
    recipients: tuple = ()

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "next_action": self.next_action.value,
            "escalation_level": self.escalation_level,
            "next_artist_id": self.next_artist_id,
            "recipients": list(self.recipients),
        }


def _who(actor: Optional[Actor]) -> dict:
    if actor is None:
        return {"actor_id": None, "actor_type": "system"}
    return {"actor_id": actor.id, "actor_type": actor.role.value}


# ---------------------
# Offer selection cascade
# ---------------------

def _make_offer(uow, task, candidate, level, settings, now, actor) -> SelectionResult:
    expires_at = now + settings.acceptance_window(task.urgency)
    previous = task.status

    task.status = TaskStatus.OFFERED.value
    task.offered_to = candidate.artist_id
    task.offer_expires_at = expires_at
    task.escalation_level = level

    offer_ledger.record_offer(
        uow.session,
        task_id=task.id,
        artist_id=candidate.artist_id,
        score=candidate.total,
        breakdown=candidate.breakdown.to_dict(),
        level=level,
        expires_at=expires_at,
        now=now,
    )
    log_activity(
        uow.session, task_id=task.id, action="offered",
        previous_status=previous, new_status=task.status,
        metadata={"artist_id": candidate.artist_id, "match_score": candidate.total, "level": level},
        **_who(actor),
    )
    uow.outbox.add(notify_artist, candidate.artist_id, task_summary(task), "offered")
    log.info("task=%s offered artist=%s level=%s score=%s", task.id, candidate.artist_id, level, candidate.total)
    return SelectionResult(task.id, NextAction.OFFERED, level, next_artist_id=candidate.artist_id)


def _broadcast(uow, task, settings, now, exclude, actor) -> SelectionResult:
    ranked = rank_candidates(
        task, LEVEL_BROADCAST, session=uow.session, settings=settings, now=now, exclude=exclude
    )
    limit = settings.escalation.level3_broadcast_max_artists
    picks = ranked[:limit] if limit else ranked
    window_ends = now + settings.broadcast_window()
    previous = task.status

    task.status = TaskStatus.PENDING.value
    task.clear_offer()
    task.escalation_level = LEVEL_BROADCAST
    task.broadcast_expires_at = window_ends

    for candidate in picks:
        offer_ledger.record_offer(
            uow.session,
            task_id=task.id,
            artist_id=candidate.artist_id,
            score=candidate.total,
            breakdown=candidate.breakdown.to_dict(),
            level=LEVEL_BROADCAST,
            expires_at=window_ends,
            now=now,
        )
    recipients = tuple(c.artist_id for c in picks)
    log_activity(
        uow.session, task_id=task.id, action="broadcast",
        previous_status=previous, new_status=task.status,
        metadata={"recipients": list(recipients), "open_until": window_ends.isoformat()},
        **_who(actor),
    )
    summary = task_summary(task)
    for artist_id in recipients:
        uow.outbox.add(notify_artist, artist_id, summary, "broadcast")
    log.info("task=%s broadcast to %d artist(s) until %s", task.id, len(recipients), window_ends)
    return SelectionResult(task.id, NextAction.BROADCAST, LEVEL_BROADCAST, recipients=recipients)


def _escalate(uow, task, now, actor, reason: str) -> SelectionResult:
    previous = task.status
    offer_ledger.expire_pending(uow.session, task.id, now=now)

    task.status = TaskStatus.UNASSIGNABLE.value
    task.clear_offer()
    task.broadcast_expires_at = None
    task.escalation_level = LEVEL_ADMIN

    log_activity(
        uow.session, task_id=task.id, action="escalated_to_admin",
        previous_status=previous, new_status=task.status,
        metadata={"reason": reason},
        **_who(actor),
    )
    summary = task_summary(task, reason=reason)
    uow.outbox.add(notify_admin, summary)
    uow.outbox.add(notify_client, task.client_id, summary, "escalated")
    log.warning("task=%s escalated to admin: %s", task.id, reason)
    return SelectionResult(task.id, NextAction.ESCALATED, LEVEL_ADMIN)


def _select_next(uow, task, settings, now, actor=None) -> SelectionResult:
    """Offer, broadcast or escalate a pending task. Level never goes down here."""
    if task.escalation_level >= LEVEL_BROADCAST:
        return _escalate(uow, task, now, actor, "No artist accepted the broadcast.")

    offered = offer_ledger.previously_offered(uow.session, task.id)
    level = max(task.escalation_level, LEVEL_BEST_FIT)
    while level < LEVEL_BROADCAST:
        made = offer_ledger.count_offers_at_level(uow.session, task.id, level)
        if made < settings.max_offers_for_level(level):
            ranked = rank_candidates(
                task, level, session=uow.session, settings=settings, now=now, exclude=offered
            )
            if ranked:
                return _make_offer(uow, task, ranked[0], level, settings, now, actor)
        level += 1

    return _broadcast(uow, task, settings, now, offered, actor)


# ---------------------
# Entry points
# ---------------------

def start_assignment(task_id: int, actor: Optional[Actor] = None,
                     now: Optional[datetime] = None) -> SelectionResult:
    """Kick off offer selection for a pending task. ``actor`` None means the system."""
    if actor is not None:
        require_actor(actor, Role.ADMIN)
    now = now or datetime.utcnow()

    with unit_of_work() as uow:
        task = lock_task(uow.session, task_id)
        if task.status != TaskStatus.PENDING.value or task.is_broadcasting:
            raise InvalidState("Task is not awaiting assignment.")
        classify_task(task, now)
        settings = get_active_settings(uow.session)
        result = _select_next(uow, task, settings, now, actor)

    return result


def accept_offer(task_id: int, actor: Optional[Actor], now: Optional[datetime] = None) -> AcceptResult:
    actor = require_actor(actor, Role.FREELANCER, Role.ADMIN)
    now = now or datetime.utcnow()

    with unit_of_work() as uow:
        task = lock_task(uow.session, task_id)
        previous = task.status

        if task.is_broadcasting:
            if task.broadcast_closed(now):
                raise Expired()
            if offer_ledger.pending_offer(uow.session, task.id, actor.id) is None:
                raise Forbidden("This task was not offered to you.")
        else:
            if task.status != TaskStatus.OFFERED.value:
                raise InvalidState()
            if task.offered_to != actor.id:
                raise Forbidden("This offer was made to another artist.")
            if task.offer_expired(now):
                raise Expired()

        task.status = TaskStatus.ASSIGNED.value
        task.freelancer_id = actor.id
        task.assigned_at = now
        task.clear_offer()
        task.broadcast_expires_at = None

        offer_ledger.record_response(
            uow.session, task_id=task.id, artist_id=actor.id,
            response=OfferResponse.ACCEPTED, now=now,
        )
        losers = offer_ledger.expire_pending(uow.session, task.id, exclude_artist=actor.id, now=now)
        log_activity(
            uow.session, task_id=task.id, action="accepted",
            previous_status=previous, new_status=task.status,
            metadata={"artist_id": actor.id, "level": task.escalation_level},
            **_who(actor),
        )
        uow.outbox.add(notify_client, task.client_id, task_summary(task), "assigned")
        uow.outbox.add(refresh_artist_metrics, actor.id)

    log.info("task=%s accepted by artist=%s (%d other pending offer(s) closed)", task_id, actor.id, len(losers))
    return AcceptResult(task_id, TaskStatus.ASSIGNED.value)


def _check_decline_input(reason, note):
    if reason is not None:
        allowed = {r.value for r in DeclineReason if r is not DeclineReason.EXPIRED}
        if reason not in allowed:
            raise ValidationError(f"Unknown decline reason: {reason}.")
    if note is not None and len(note) > MAX_NOTE_LENGTH:
        raise ValidationError(f"Note must be at most {MAX_NOTE_LENGTH} characters.")


def decline_offer(task_id: int, actor: Optional[Actor], reason: Optional[str] = None,
                  note: Optional[str] = None, now: Optional[datetime] = None) -> SelectionResult:
    actor = require_actor(actor, Role.FREELANCER, Role.ADMIN)
    _check_decline_input(reason, note)
    now = now or datetime.utcnow()

    with unit_of_work() as uow:
        task = lock_task(uow.session, task_id)
        previous = task.status
        settings = get_active_settings(uow.session)

        if task.is_broadcasting:
            if task.broadcast_closed(now):
                raise Expired()
            if offer_ledger.pending_offer(uow.session, task.id, actor.id) is None:
                raise Forbidden("This task was not offered to you.")
            offer_ledger.record_response(
                uow.session, task_id=task.id, artist_id=actor.id,
                response=OfferResponse.DECLINED, reason=reason, note=note, now=now,
            )
            log_activity(
                uow.session, task_id=task.id, action="declined",
                previous_status=previous, new_status=task.status,
                metadata={"artist_id": actor.id, "reason": reason, "level": LEVEL_BROADCAST},
                **_who(actor),
            )
            if offer_ledger.pending_offers(uow.session, task.id):
                result = SelectionResult(task.id, NextAction.BROADCAST, LEVEL_BROADCAST)
            else:
                result = _escalate(uow, task, now, actor, "Every broadcast recipient declined.")
        else:
            if task.status != TaskStatus.OFFERED.value:
                raise InvalidState()
            if task.offered_to != actor.id:
                raise Forbidden("This offer was made to another artist.")
            if task.offer_expired(now):
                raise Expired()

            task.status = TaskStatus.PENDING.value
            task.clear_offer()
            offer_ledger.record_response(
                uow.session, task_id=task.id, artist_id=actor.id,
                response=OfferResponse.DECLINED, reason=reason, note=note, now=now,
            )
            log_activity(
                uow.session, task_id=task.id, action="declined",
                previous_status=previous, new_status=task.status,
                metadata={"artist_id": actor.id, "reason": reason, "level": task.escalation_level},
                **_who(actor),
            )
            result = _select_next(uow, task, settings, now)

        uow.outbox.add(refresh_artist_metrics, actor.id)

    log.info("task=%s declined by artist=%s reason=%s -> %s", task_id, actor.id, reason, result.next_action.value)
    return result


def _expire_one(task_id: int, now: datetime) -> Optional[SelectionResult]:
    with unit_of_work() as uow:
        task = lock_task(uow.session, task_id)
        settings = get_active_settings(uow.session)

        # state may have moved on since the candidate query; re-check under the lock
        if task.status == TaskStatus.OFFERED.value and task.offer_expired(now):
            artist_id = task.offered_to
            previous = task.status
            task.status = TaskStatus.PENDING.value
            task.clear_offer()
            offer_ledger.record_response(
                uow.session, task_id=task.id, artist_id=artist_id,
                response=OfferResponse.EXPIRED, reason=DeclineReason.EXPIRED.value, now=now,
            )
            log_activity(
                uow.session, task_id=task.id, action="offer_expired",
                previous_status=previous, new_status=task.status,
                metadata={"artist_id": artist_id, "level": task.escalation_level},
            )
            result = _select_next(uow, task, settings, now)
            uow.outbox.add(refresh_artist_metrics, artist_id)
        elif task.is_broadcasting and task.broadcast_closed(now):
            result = _escalate(uow, task, now, None, "Broadcast window closed without an acceptance.")
        else:
            return None

    log.info("task=%s expired -> %s", task_id, result.next_action.value)
    return result


def sweep_expired_offers(now: Optional[datetime] = None, batch_size: Optional[int] = None) -> int:
    """Expire lapsed direct offers and close lapsed broadcasts.

    Invoked by an external scheduler (see sweep.py). One transaction per
    task; a failure on one task is logged and the sweep moves on.
    Returns the number of tasks transitioned.
    """
    now = now or datetime.utcnow()
    limit = batch_size or current_app.config.get("OFFER_SWEEP_BATCH_SIZE", 200)

    due = db.session.execute(
        select(Task.id).where(or_(
            and_(Task.status == TaskStatus.OFFERED.value, Task.offer_expires_at < now),
            and_(
                Task.status == TaskStatus.PENDING.value,
                Task.escalation_level == LEVEL_BROADCAST,
                Task.broadcast_expires_at < now,
            ),
        )).order_by(Task.id).limit(limit)
    ).scalars().all()
    # release the read transaction before taking row locks one task at a time
    db.session.commit()

    processed = 0
    for task_id in due:
        try:
            if _expire_one(task_id, now) is not None:
                processed += 1
        except AssignmentError as e:
            log.warning("sweep: task=%s skipped: %s", task_id, e.message)
        except Exception:
            log.exception("sweep: task=%s failed", task_id)

    if due:
        log.info("sweep: %d of %d due task(s) transitioned", processed, len(due))
    return processed


def reassign_task(task_id: int, freelancer_id: int, actor: Optional[Actor],
                  now: Optional[datetime] = None) -> AcceptResult:
    """Manual assignment by an admin. Resets the escalation ladder."""
    actor = require_actor(actor, Role.ADMIN)
    now = now or datetime.utcnow()

    with unit_of_work() as uow:
        task = lock_task(uow.session, task_id)
        if task.status not in REASSIGNABLE_STATUSES:
            raise InvalidState(f"A {task.status} task cannot be reassigned.")

        artist = uow.session.get(User, freelancer_id)
        if artist is None or not artist.can_accept_assignments():
            raise ValidationError("Selected user is not an approved freelancer.")
        if artist.id == task.client_id:
            raise ValidationError("A client cannot be assigned their own task.")
        if artist.id == task.freelancer_id:
            raise ValidationError("Task is already assigned to this freelancer.")

        previous = task.status
        previous_artist = task.freelancer_id
        offer_ledger.expire_pending(uow.session, task.id, now=now)

        task.status = TaskStatus.ASSIGNED.value
        task.freelancer_id = artist.id
        task.assigned_at = now
        task.clear_offer()
        task.broadcast_expires_at = None
        task.escalation_level = LEVEL_BEST_FIT

        log_activity(
            uow.session, task_id=task.id, action="reassigned",
            previous_status=previous, new_status=task.status,
            metadata={"from": previous_artist, "to": artist.id},
            **_who(actor),
        )
        summary = task_summary(task)
        uow.outbox.add(notify_artist, artist.id, summary, "reassigned")
        if previous_artist:
            uow.outbox.add(notify_artist, previous_artist, summary, "unassigned")
        uow.outbox.add(notify_client, task.client_id, summary, "assigned")

    log.info("task=%s reassigned by admin=%s from=%s to=%s", task_id, actor.id, previous_artist, freelancer_id)
    return AcceptResult(task_id, TaskStatus.ASSIGNED.value)


# ---------------------
# Read side
# ---------------------

def list_unassignable_tasks() -> list[Task]:
    """The admin escalation queue, oldest first."""
    return db.session.execute(
        select(Task)
        .where(Task.status == TaskStatus.UNASSIGNABLE.value)
        .order_by(Task.updated_at.asc(), Task.id.asc())
    ).scalars().all()


def offer_history(task_id: int) -> list[TaskOffer]:
    if db.session.get(Task, task_id) is None:
        raise NotFound("Task")
    return db.session.execute(
        select(TaskOffer).where(TaskOffer.task_id == task_id).order_by(TaskOffer.id)
    ).scalars().all()


def open_offers_for(actor: Optional[Actor], now: Optional[datetime] = None) -> list[TaskOffer]:
    """Pending offers the artist can still act on."""
    actor = require_actor(actor, Role.FREELANCER, Role.ADMIN)
    now = now or datetime.utcnow()
    return db.session.execute(
        select(TaskOffer)
        .where(
            TaskOffer.artist_id == actor.id,
            TaskOffer.response == OfferResponse.PENDING.value,
            TaskOffer.expires_at >= now,
        )
        .order_by(TaskOffer.expires_at.asc())
    ).scalars().all()
