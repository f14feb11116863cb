# matchdesk/services/offer_ledger.py
"""Append-only record of every offer made for a task.

Rows go PENDING -> ACCEPTED/DECLINED/EXPIRED exactly once and are never
deleted. Every artist with a row, whatever its response, counts as
"previously offered" and is never offered the same task again.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select

from ..errors import InvalidState
from ..models.offer import TaskOffer, OfferResponse


def previously_offered(session, task_id: int) -> set[int]:
    return set(session.execute(
        select(TaskOffer.artist_id).where(TaskOffer.task_id == task_id)
    ).scalars())


def count_offers_at_level(session, task_id: int, level: int) -> int:
    return session.execute(
        select(func.count(TaskOffer.id)).where(
            TaskOffer.task_id == task_id,
            TaskOffer.escalation_level == level,
        )
    ).scalar() or 0


def pending_offer(session, task_id: int, artist_id: int, lock: bool = False) -> Optional[TaskOffer]:
    stmt = select(TaskOffer).where(
        TaskOffer.task_id == task_id,
        TaskOffer.artist_id == artist_id,
        TaskOffer.response == OfferResponse.PENDING.value,
    )
    if lock:
        stmt = stmt.with_for_update()
    return session.execute(stmt).scalar_one_or_none()


def pending_offers(session, task_id: int) -> list[TaskOffer]:
    return session.execute(
        select(TaskOffer).where(
            TaskOffer.task_id == task_id,
            TaskOffer.response == OfferResponse.PENDING.value,
        ).order_by(TaskOffer.id)
    ).scalars().all()


def record_offer(session, *, task_id: int, artist_id: int, score: float, breakdown: dict,
                 level: int, expires_at: datetime, now: Optional[datetime] = None) -> TaskOffer:
    if pending_offer(session, task_id, artist_id) is not None:
        raise InvalidState(f"Artist {artist_id} already holds a pending offer for task {task_id}.")
    offer = TaskOffer(
        task_id=task_id,
        artist_id=artist_id,
        match_score=score,
        score_breakdown=breakdown,
        escalation_level=level,
        offered_at=now or datetime.utcnow(),
        expires_at=expires_at,
        response=OfferResponse.PENDING.value,
    )
    session.add(offer)
    session.flush()
    return offer


def record_response(session, *, task_id: int, artist_id: int, response: OfferResponse,
                    reason: Optional[str] = None, note: Optional[str] = None,
                    now: Optional[datetime] = None) -> TaskOffer:
    """Close the (task, artist) pending row. No such row means a stale caller."""
    if response == OfferResponse.PENDING:
        raise ValueError("response must be terminal")
    offer = pending_offer(session, task_id, artist_id, lock=True)
    if offer is None:
        raise InvalidState()
    offer.response = response.value
    offer.decline_reason = reason
    offer.decline_note = note
    offer.responded_at = now or datetime.utcnow()
    return offer


def expire_pending(session, task_id: int, *, exclude_artist: Optional[int] = None,
                   now: Optional[datetime] = None) -> list[TaskOffer]:
    """Close every still-pending row of a task as EXPIRED (broadcast wind-down)."""
    now = now or datetime.utcnow()
    closed = []
    for offer in pending_offers(session, task_id):
        if offer.artist_id == exclude_artist:
            continue
        offer.response = OfferResponse.EXPIRED.value
        offer.decline_reason = "EXPIRED"
        offer.responded_at = now
        closed.append(offer)
    return closed
