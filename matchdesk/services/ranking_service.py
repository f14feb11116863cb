# matchdesk/services/ranking_service.py
"""Candidate ranking.

Scoring is a pure computation over plain profiles (rank_artists); loading
profiles from the database is a separate step (load_candidates) so the
scoring rules can be exercised without a session.

    total = sum(dimension_score * weight / 100) + bonuses, capped at 100

Sort: total desc, then fewer active tasks, then artist id.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func, select

from ..extensions import db
from ..models.task import (
    Task, TaskStatus, Urgency, LEVEL_BEST_FIT, LEVEL_RELAXED,
)
from ..models.user import User, FreelancerProfile, ClientArtistAffinity
from .algorithm_settings import AlgorithmSettings, TimezoneSettings, parse_hhmm
from .config_service import get_active_settings

log = logging.getLogger(__name__)

NEUTRAL_SCORE = 50
DEFAULT_RATE = 80      # on-time / acceptance when an artist has no history yet

ACTIVE_STATUSES = (
    TaskStatus.ASSIGNED.value,
    TaskStatus.IN_PROGRESS.value,
    TaskStatus.IN_REVIEW.value,
    TaskStatus.REVISION_REQUESTED.value,
)
URGENT_LEVELS = (Urgency.CRITICAL.value, Urgency.URGENT.value)

DIMENSIONS = (
    ("skill", "skill_match"),
    ("timezone", "timezone_fit"),
    ("experience", "experience_match"),
    ("workload", "workload_balance"),
    ("performance", "performance_history"),
)


@dataclass(frozen=True)
class TaskProfile:
    task_id: Optional[int]
    client_id: Optional[int]
    complexity: str
    urgency: str
    category: Optional[str] = None
    required_skills: tuple = ()
    nice_to_have_skills: tuple = ()

    @classmethod
    def from_task(cls, task: Task) -> "TaskProfile":
        return cls(
            task_id=task.id,
            client_id=task.client_id,
            complexity=task.complexity or "INTERMEDIATE",
            urgency=task.urgency or Urgency.STANDARD.value,
            category=task.category,
            required_skills=tuple(task.required_skills or ()),
            nice_to_have_skills=tuple(task.nice_to_have_skills or ()),
        )


@dataclass(frozen=True)
class ArtistProfile:
    artist_id: int
    skills: tuple = ()
    specializations: tuple = ()
    preferred_categories: tuple = ()
    timezone: Optional[str] = None
    experience_level: Optional[str] = None
    active_tasks: int = 0
    rating: Optional[float] = None
    on_time_rate: Optional[float] = None
    acceptance_rate: Optional[float] = None
    accepts_urgent_tasks: bool = True
    vacation_mode: bool = False
    vacation_until: Optional[datetime] = None
    is_favorite: bool = False


@dataclass
class ScoreBreakdown:
    # name -> {"raw", "weight", "weighted"}
    dimensions: dict = field(default_factory=dict)
    bonuses: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"dimensions": self.dimensions, "bonuses": self.bonuses}


@dataclass
class ArtistScore:
    artist_id: int
    total: float
    breakdown: ScoreBreakdown
    active_tasks: int = 0
    excluded: bool = False
    exclusion_reason: Optional[str] = None


# ---------------------
# Dimension scores (0-100)
# ---------------------

def _norm(values: Iterable[str]) -> list[str]:
    return [v.strip().lower() for v in values if v and v.strip()]


def _matches(skill: str, pool: list[str]) -> bool:
    return any(s == skill or skill in s or s in skill for s in pool)


def skill_score(required: Iterable[str], artist_skills: Iterable[str]) -> float:
    needed = _norm(required)
    if not needed:
        return 100
    pool = _norm(artist_skills)
    matched = sum(1 for skill in needed if _matches(skill, pool))
    return round(matched / len(needed) * 100)


def local_hour(tz_name: Optional[str], now: datetime) -> Optional[float]:
    """Artist's wall-clock time as fractional hours, None when unknown."""
    if not tz_name:
        return None
    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        log.debug("unknown timezone %r", tz_name)
        return None
    aware = now if now.tzinfo else now.replace(tzinfo=dt_timezone.utc)
    local = aware.astimezone(zone)
    return local.hour + local.minute / 60


def timezone_score(tz_name: Optional[str], now: datetime, settings: TimezoneSettings) -> float:
    hour = local_hour(tz_name, now)
    if hour is None:
        return NEUTRAL_SCORE
    start = parse_hhmm(settings.peak_hours_start)
    end = parse_hhmm(settings.peak_hours_end)
    if start <= hour <= end:
        return settings.peak_score
    if end < hour <= 21:
        return settings.evening_score
    if 7 <= hour < start:
        return settings.early_morning_score
    if 21 < hour <= 23:
        return settings.late_evening_score
    return settings.night_score


def is_night_hours(tz_name: Optional[str], now: datetime) -> bool:
    hour = local_hour(tz_name, now)
    if hour is None:
        return False
    return hour >= 23 or hour < 7


def experience_score(complexity: str, level: Optional[str], settings: AlgorithmSettings) -> float:
    try:
        return settings.experience_matrix.score(complexity, level)
    except KeyError:
        return NEUTRAL_SCORE


def workload_score(active_tasks: int, settings: AlgorithmSettings) -> float:
    return max(0, 100 - active_tasks * settings.workload.score_per_task)


def performance_score(rating: Optional[float], on_time_rate: Optional[float],
                      acceptance_rate: Optional[float]) -> float:
    rating_part = (rating / 5 * 100) if rating is not None else NEUTRAL_SCORE
    on_time = on_time_rate if on_time_rate is not None else DEFAULT_RATE
    accept = acceptance_rate if acceptance_rate is not None else DEFAULT_RATE
    return round(rating_part * 0.5 + on_time * 0.3 + accept * 0.2)


# ---------------------
# Per-level eligibility
# ---------------------

def skill_threshold(settings: AlgorithmSettings, level: int) -> float:
    if level <= LEVEL_BEST_FIT:
        return max(settings.escalation.level1_skill_threshold,
                   settings.exclusion_rules.min_skill_score_to_include)
    if level == LEVEL_RELAXED:
        return settings.escalation.level2_skill_threshold
    return 0


def workload_cap(settings: AlgorithmSettings, level: int) -> int:
    cap = settings.workload.max_active_tasks
    if level > LEVEL_BEST_FIT:
        cap += settings.escalation.max_workload_override
    return cap


def _exclusion(task: TaskProfile, artist: ArtistProfile, skill: float,
               settings: AlgorithmSettings, level: int, now: datetime) -> Optional[str]:
    rules = settings.exclusion_rules
    urgent = task.urgency in URGENT_LEVELS

    if rules.exclude_vacation_mode and artist.vacation_mode:
        if artist.vacation_until is None or artist.vacation_until > now:
            return "Artist is on vacation"
    threshold = skill_threshold(settings, level)
    if skill < threshold:
        return f"Skill score ({skill:g}) below threshold ({threshold:g})"
    cap = workload_cap(settings, level)
    if rules.exclude_overloaded and artist.active_tasks >= cap:
        return f"At max capacity ({artist.active_tasks}/{cap} tasks)"
    if rules.exclude_night_hours_for_urgent and urgent and is_night_hours(artist.timezone, now):
        return "Urgent task during night hours"
    if urgent and not artist.accepts_urgent_tasks:
        return "Artist does not accept urgent tasks"
    return None


# ---------------------
# Scoring
# ---------------------

def score_artist(task: TaskProfile, artist: ArtistProfile, settings: AlgorithmSettings,
                 level: int = LEVEL_BEST_FIT, now: Optional[datetime] = None) -> ArtistScore:
    now = now or datetime.utcnow()
    raw = {
        "skill": skill_score(task.required_skills, artist.skills + artist.specializations),
        "timezone": timezone_score(artist.timezone, now, settings.timezone),
        "experience": experience_score(task.complexity, artist.experience_level, settings),
        "workload": workload_score(artist.active_tasks, settings),
        "performance": performance_score(artist.rating, artist.on_time_rate, artist.acceptance_rate),
    }

    breakdown = ScoreBreakdown()
    total = 0.0
    for name, weight_attr in DIMENSIONS:
        weight = getattr(settings.weights, weight_attr)
        weighted = raw[name] * weight / 100
        breakdown.dimensions[name] = {
            "raw": raw[name],
            "weight": weight,
            "weighted": round(weighted, 2),
        }
        total += weighted

    reason = _exclusion(task, artist, raw["skill"], settings, level, now)
    if reason:
        return ArtistScore(artist.artist_id, -1, breakdown, artist.active_tasks, True, reason)

    bonuses = settings.bonus_modifiers
    if task.category and task.category in artist.preferred_categories:
        breakdown.bonuses["category_specialization"] = bonuses.category_specialization_bonus
    extras = _norm(task.nice_to_have_skills)
    pool = _norm(artist.skills + artist.specializations)
    if extras and any(_matches(skill, pool) for skill in extras):
        breakdown.bonuses["nice_to_have_skill"] = bonuses.nice_to_have_skill_bonus
    if artist.is_favorite:
        breakdown.bonuses["favorite_artist"] = bonuses.favorite_artist_bonus
    total += sum(breakdown.bonuses.values())

    total = min(100, round(total, 2))
    return ArtistScore(artist.artist_id, total, breakdown, artist.active_tasks)


def rank_artists(task: TaskProfile, roster: Iterable[ArtistProfile], settings: AlgorithmSettings,
                 level: int = LEVEL_BEST_FIT, now: Optional[datetime] = None,
                 exclude: Iterable[int] = ()) -> list[ArtistScore]:
    """Eligible artists for ``task`` at ``level``, best first. Empty is a valid answer."""
    now = now or datetime.utcnow()
    skip = set(exclude)
    scored = []
    for artist in roster:
        if artist.artist_id in skip:
            continue
        result = score_artist(task, artist, settings, level, now)
        if result.excluded:
            log.debug("task=%s artist=%s excluded: %s", task.task_id, artist.artist_id, result.exclusion_reason)
            continue
        scored.append(result)
    scored.sort(key=lambda s: (-s.total, s.active_tasks, s.artist_id))
    return scored


# ---------------------
# Loading
# ---------------------

def load_candidates(session, task: Task) -> list[ArtistProfile]:
    """Approved, available, active freelancers other than the task's client."""
    active_counts = (
        select(Task.freelancer_id.label("artist_id"), func.count(Task.id).label("n"))
        .where(Task.status.in_(ACTIVE_STATUSES), Task.freelancer_id.is_not(None))
        .group_by(Task.freelancer_id)
        .subquery()
    )
    rows = session.execute(
        select(User, FreelancerProfile, func.coalesce(active_counts.c.n, 0))
        .join(FreelancerProfile, FreelancerProfile.user_id == User.id)
        .outerjoin(active_counts, active_counts.c.artist_id == User.id)
        .where(
            User.role == "freelancer",
            User.status == "active",
            User.deleted_at.is_(None),
            FreelancerProfile.approval_status == "approved",
            FreelancerProfile.availability.is_(True),
            User.id != task.client_id,
        )
        .order_by(User.id)
    ).all()

    favorites = set(session.execute(
        select(ClientArtistAffinity.artist_id).where(
            ClientArtistAffinity.client_id == task.client_id,
            ClientArtistAffinity.is_favorite.is_(True),
        )
    ).scalars())

    return [
        ArtistProfile(
            artist_id=user.id,
            skills=tuple(fp.skills or ()),
            specializations=tuple(fp.specializations or ()),
            preferred_categories=tuple(fp.preferred_categories or ()),
            timezone=fp.timezone,
            experience_level=fp.experience_level,
            active_tasks=int(active or 0),
            rating=fp.rating_avg,
            on_time_rate=fp.on_time_rate,
            acceptance_rate=fp.acceptance_rate,
            accepts_urgent_tasks=bool(fp.accepts_urgent_tasks),
            vacation_mode=bool(fp.vacation_mode),
            vacation_until=fp.vacation_until,
            is_favorite=user.id in favorites,
        )
        for user, fp, active in rows
    ]


def rank_candidates(task: Task, level: int, *, session=None, settings: AlgorithmSettings = None,
                    now: Optional[datetime] = None, exclude: Iterable[int] = ()) -> list[ArtistScore]:
    """rank(task, level) against the database roster and the active configuration."""
    session = session or db.session
    settings = settings or get_active_settings(session)
    roster = load_candidates(session, task)
    return rank_artists(TaskProfile.from_task(task), roster, settings, level, now, exclude)
