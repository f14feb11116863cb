# matchdesk/services/intake_service.py
"""Fill in urgency/complexity for tasks that arrive without them."""
from datetime import datetime
from typing import Optional

from ..models.task import Complexity, Urgency

COMPLEX_KEYWORDS = (
    "complex", "advanced", "expert", "multi-page", "campaign",
    "series", "animation", "3d", "motion graphics",
)
SIMPLE_KEYWORDS = ("simple", "basic", "quick", "minor", "small", "edit")


def detect_task_urgency(deadline: Optional[datetime], now: Optional[datetime] = None) -> Urgency:
    if deadline is None:
        return Urgency.FLEXIBLE
    now = now or datetime.utcnow()
    hours_left = (deadline - now).total_seconds() / 3600
    if hours_left <= 4:
        return Urgency.CRITICAL
    if hours_left <= 24:
        return Urgency.URGENT
    if hours_left <= 72:
        return Urgency.STANDARD
    return Urgency.FLEXIBLE


def detect_task_complexity(estimated_hours: Optional[float], skills_count: int,
                           description: Optional[str]) -> Complexity:
    points = 0

    if estimated_hours is not None:
        if estimated_hours <= 2:
            pass
        elif estimated_hours <= 4:
            points += 1
        elif estimated_hours <= 8:
            points += 2
        else:
            points += 3

    if skills_count <= 1:
        pass
    elif skills_count <= 2:
        points += 1
    elif skills_count <= 4:
        points += 2
    else:
        points += 3

    text = (description or "").lower()
    if any(kw in text for kw in COMPLEX_KEYWORDS):
        points += 2
    if any(kw in text for kw in SIMPLE_KEYWORDS):
        points -= 1

    if points <= 1:
        return Complexity.SIMPLE
    if points <= 3:
        return Complexity.INTERMEDIATE
    if points <= 5:
        return Complexity.ADVANCED
    return Complexity.EXPERT


def classify_task(task, now: Optional[datetime] = None) -> bool:
    """Set missing urgency/complexity on ``task``. Returns True if anything changed."""
    changed = False
    if not task.urgency:
        task.urgency = detect_task_urgency(task.deadline_at, now).value
        changed = True
    if not task.complexity:
        task.complexity = detect_task_complexity(
            task.estimated_hours, len(task.required_skills or ()), task.description
        ).value
        changed = True
    return changed
