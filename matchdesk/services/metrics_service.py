# matchdesk/services/metrics_service.py
"""Artist quality metrics that feed the performance dimension of ranking."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select

from ..models.offer import TaskOffer, OfferResponse
from ..models.task import Task, TaskStatus
from ..models.user import FreelancerProfile
from .unit_of_work import unit_of_work

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArtistMetrics:
    acceptance_rate: Optional[float]
    avg_response_time_minutes: Optional[int]
    on_time_rate: Optional[float]
    completed_tasks: int
    experience_level: str


def experience_level_for(completed: int) -> str:
    if completed > 150:
        return "EXPERT"
    if completed > 50:
        return "SENIOR"
    if completed > 10:
        return "MID"
    return "JUNIOR"


def compute_metrics(offers, completed_tasks) -> ArtistMetrics:
    """offers: answered TaskOffer rows; completed_tasks: (deadline_at, completed_at) pairs."""
    acceptance = None
    avg_response = None
    if offers:
        accepted = sum(1 for o in offers if o.response == OfferResponse.ACCEPTED.value)
        acceptance = accepted / len(offers) * 100
        minutes = [
            (o.responded_at - o.offered_at).total_seconds() / 60
            for o in offers
            if o.responded_at and o.offered_at
        ]
        if minutes:
            avg_response = round(sum(minutes) / len(minutes))

    with_deadline = [(d, c) for d, c in completed_tasks if d and c]
    on_time = None
    if with_deadline:
        on_time = sum(1 for d, c in with_deadline if c <= d) / len(with_deadline) * 100

    completed = len(completed_tasks)
    return ArtistMetrics(acceptance, avg_response, on_time, completed, experience_level_for(completed))


def refresh_artist_metrics(artist_id: int) -> Optional[ArtistMetrics]:
    """Recompute and store an artist's metrics. Runs in its own transaction."""
    with unit_of_work() as uow:
        profile = uow.session.execute(
            select(FreelancerProfile).where(FreelancerProfile.user_id == artist_id)
        ).scalar_one_or_none()
        if profile is None:
            return None

        offers = uow.session.execute(
            select(TaskOffer).where(
                TaskOffer.artist_id == artist_id,
                TaskOffer.response != OfferResponse.PENDING.value,
            )
        ).scalars().all()
        if not offers:
            return None

        completed = uow.session.execute(
            select(Task.deadline_at, Task.completed_at).where(
                Task.freelancer_id == artist_id,
                Task.status == TaskStatus.COMPLETED.value,
            )
        ).all()

        metrics = compute_metrics(offers, [tuple(row) for row in completed])
        profile.acceptance_rate = metrics.acceptance_rate
        profile.avg_response_time_minutes = metrics.avg_response_time_minutes
        profile.on_time_rate = metrics.on_time_rate
        profile.completed_tasks = metrics.completed_tasks
        profile.experience_level = metrics.experience_level
        profile.updated_at = datetime.utcnow()

    log.info("metrics refreshed artist=%s acceptance=%s", artist_id, metrics.acceptance_rate)
    return metrics
