# matchdesk/services/algorithm_settings.py
"""Typed, validated view of an assignment algorithm configuration.

The admin console stores each settings group as JSON. Nothing in the engine
reads those blobs directly: they are merged over a base (the built-in
defaults, or the row being edited) and validated here, so a bad payload is
rejected when it is written and ranking never has to second-guess it.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from datetime import timedelta
from typing import Any, Mapping

from ..errors import ValidationError
from ..models.task import Complexity, Urgency, LEVEL_BEST_FIT, LEVEL_RELAXED

WEIGHT_TOLERANCE = 0.01
EXPERIENCE_LEVELS = ("JUNIOR", "MID", "SENIOR", "EXPERT")


# ---------------------
# Field checks
# ---------------------

def _number(group: str, name: str, value: Any, lo: float | None = None, hi: float | None = None) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{group}.{name} must be a number.")
    if lo is not None and value < lo:
        raise ValidationError(f"{group}.{name} must be >= {lo:g}.")
    if hi is not None and value > hi:
        raise ValidationError(f"{group}.{name} must be <= {hi:g}.")
    return value


def _integer(group: str, name: str, value: Any, lo: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{group}.{name} must be a whole number.")
    if lo is not None and value < lo:
        raise ValidationError(f"{group}.{name} must be >= {lo}.")
    return value


def _flag(group: str, name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{group}.{name} must be true or false.")
    return value


def parse_hhmm(value: str) -> float:
    """'09:30' -> 9.5"""
    hours, minutes = value.split(":")
    h, m = int(hours), int(minutes)
    if not (0 <= h <= 23 and 0 <= m <= 59):
        raise ValueError(value)
    return h + m / 60


def _hhmm(group: str, name: str, value: Any) -> float:
    if not isinstance(value, str):
        raise ValidationError(f"{group}.{name} must be a HH:MM string.")
    try:
        return parse_hhmm(value)
    except ValueError:
        raise ValidationError(f"{group}.{name} must be a HH:MM string.") from None


def _merge(cls, group: str, base, data):
    if data is None:
        return base
    if not isinstance(data, Mapping):
        raise ValidationError(f"{group} must be an object.")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValidationError(f"Unknown {group} field(s): {', '.join(unknown)}.")
    merged = replace(base, **dict(data))
    merged.validate()
    return merged


# ---------------------
# Settings groups
# ---------------------

@dataclass(frozen=True)
class Weights:
    skill_match: float = 35
    timezone_fit: float = 20
    experience_match: float = 20
    workload_balance: float = 15
    performance_history: float = 10

    def total(self) -> float:
        return sum(getattr(self, f.name) for f in fields(self))

    def validate(self):
        for f in fields(self):
            _number("weights", f.name, getattr(self, f.name), 0, 100)
        total = self.total()
        if abs(total - 100) > WEIGHT_TOLERANCE:
            raise ValidationError(f"Weights must sum to 100 (currently {total:g}).")


@dataclass(frozen=True)
class AcceptanceWindows:
    """Minutes an artist has to answer a direct offer, by task urgency."""
    critical: int = 10
    urgent: int = 30
    standard: int = 120
    flexible: int = 240

    def validate(self):
        for f in fields(self):
            _integer("acceptance_windows", f.name, getattr(self, f.name), 1)

    def for_urgency(self, urgency: str | None) -> timedelta:
        key = (urgency or Urgency.STANDARD.value).lower()
        if key not in {f.name for f in fields(self)}:
            key = "standard"
        return timedelta(minutes=getattr(self, key))


@dataclass(frozen=True)
class EscalationSettings:
    level1_skill_threshold: float = 70
    level2_skill_threshold: float = 50
    level1_max_offers: int = 3
    level2_max_offers: int = 3
    level3_broadcast_minutes: int = 30
    # 0 = offer to every eligible artist at once
    level3_broadcast_max_artists: int = 10
    max_workload_override: int = 1

    def validate(self):
        g = "escalation"
        _number(g, "level1_skill_threshold", self.level1_skill_threshold, 0, 100)
        _number(g, "level2_skill_threshold", self.level2_skill_threshold, 0, 100)
        _integer(g, "level1_max_offers", self.level1_max_offers, 1)
        _integer(g, "level2_max_offers", self.level2_max_offers, 1)
        _integer(g, "level3_broadcast_minutes", self.level3_broadcast_minutes, 1)
        _integer(g, "level3_broadcast_max_artists", self.level3_broadcast_max_artists, 0)
        _integer(g, "max_workload_override", self.max_workload_override, 0)
        if self.level2_skill_threshold > self.level1_skill_threshold:
            raise ValidationError("escalation.level2_skill_threshold cannot be stricter than level 1.")


@dataclass(frozen=True)
class TimezoneSettings:
    peak_hours_start: str = "09:00"
    peak_hours_end: str = "18:00"
    peak_score: float = 100
    evening_score: float = 80
    early_morning_score: float = 70
    late_evening_score: float = 50
    night_score: float = 20

    def validate(self):
        g = "timezone"
        start = _hhmm(g, "peak_hours_start", self.peak_hours_start)
        end = _hhmm(g, "peak_hours_end", self.peak_hours_end)
        if start >= end:
            raise ValidationError("timezone.peak_hours_start must be before peak_hours_end.")
        for name in ("peak_score", "evening_score", "early_morning_score",
                     "late_evening_score", "night_score"):
            _number(g, name, getattr(self, name), 0, 100)


def _default_matrix() -> dict:
    return {
        Complexity.SIMPLE.value:       {"JUNIOR": 100, "MID": 90, "SENIOR": 70, "EXPERT": 50},
        Complexity.INTERMEDIATE.value: {"JUNIOR": 60, "MID": 100, "SENIOR": 90, "EXPERT": 80},
        Complexity.ADVANCED.value:     {"JUNIOR": 20, "MID": 70, "SENIOR": 100, "EXPERT": 95},
        Complexity.EXPERT.value:       {"JUNIOR": 0, "MID": 40, "SENIOR": 80, "EXPERT": 100},
    }


@dataclass(frozen=True)
class ExperienceMatrix:
    """Score for (task complexity, artist experience level)."""
    table: dict = field(default_factory=_default_matrix)

    def validate(self):
        for complexity in Complexity:
            row = self.table.get(complexity.value)
            if not isinstance(row, Mapping):
                raise ValidationError(f"experience_matrix.{complexity.value} is missing.")
            for level in EXPERIENCE_LEVELS:
                if level not in row:
                    raise ValidationError(f"experience_matrix.{complexity.value}.{level} is missing.")
                _number(f"experience_matrix.{complexity.value}", level, row[level], 0, 100)

    def score(self, complexity: str, level: str) -> float:
        return self.table[complexity][level]

    def merged(self, data) -> "ExperienceMatrix":
        if data is None:
            return self
        if not isinstance(data, Mapping):
            raise ValidationError("experience_matrix must be an object.")
        unknown = sorted(set(data) - {c.value for c in Complexity})
        if unknown:
            raise ValidationError(f"Unknown experience_matrix complexity: {', '.join(unknown)}.")
        table = {k: dict(v) for k, v in self.table.items()}
        for complexity, row in data.items():
            if not isinstance(row, Mapping):
                raise ValidationError(f"experience_matrix.{complexity} must be an object.")
            bad = sorted(set(row) - set(EXPERIENCE_LEVELS))
            if bad:
                raise ValidationError(f"Unknown experience level(s): {', '.join(bad)}.")
            table.setdefault(complexity, {}).update(row)
        out = ExperienceMatrix(table=table)
        out.validate()
        return out


@dataclass(frozen=True)
class WorkloadSettings:
    max_active_tasks: int = 5
    score_per_task: float = 20

    def validate(self):
        _integer("workload", "max_active_tasks", self.max_active_tasks, 1)
        _number("workload", "score_per_task", self.score_per_task, 0, 100)


@dataclass(frozen=True)
class ExclusionRules:
    min_skill_score_to_include: float = 50
    exclude_overloaded: bool = True
    exclude_night_hours_for_urgent: bool = True
    exclude_vacation_mode: bool = True

    def validate(self):
        g = "exclusion_rules"
        _number(g, "min_skill_score_to_include", self.min_skill_score_to_include, 0, 100)
        _flag(g, "exclude_overloaded", self.exclude_overloaded)
        _flag(g, "exclude_night_hours_for_urgent", self.exclude_night_hours_for_urgent)
        _flag(g, "exclude_vacation_mode", self.exclude_vacation_mode)


@dataclass(frozen=True)
class BonusModifiers:
    category_specialization_bonus: float = 10
    nice_to_have_skill_bonus: float = 5
    favorite_artist_bonus: float = 10

    def validate(self):
        for f in fields(self):
            _number("bonus_modifiers", f.name, getattr(self, f.name), 0, 100)


# ---------------------
# Whole configuration
# ---------------------

# JSON column / payload key -> (attribute, group class)
_GROUPS = {
    "weights": ("weights", Weights),
    "acceptance_windows": ("acceptance_windows", AcceptanceWindows),
    "escalation_settings": ("escalation", EscalationSettings),
    "timezone_settings": ("timezone", TimezoneSettings),
    "workload_settings": ("workload", WorkloadSettings),
    "exclusion_rules": ("exclusion_rules", ExclusionRules),
    "bonus_modifiers": ("bonus_modifiers", BonusModifiers),
}


@dataclass(frozen=True)
class AlgorithmSettings:
    weights: Weights = field(default_factory=Weights)
    acceptance_windows: AcceptanceWindows = field(default_factory=AcceptanceWindows)
    escalation: EscalationSettings = field(default_factory=EscalationSettings)
    timezone: TimezoneSettings = field(default_factory=TimezoneSettings)
    experience_matrix: ExperienceMatrix = field(default_factory=ExperienceMatrix)
    workload: WorkloadSettings = field(default_factory=WorkloadSettings)
    exclusion_rules: ExclusionRules = field(default_factory=ExclusionRules)
    bonus_modifiers: BonusModifiers = field(default_factory=BonusModifiers)

    @classmethod
    def from_dict(cls, data: Mapping | None, base: "AlgorithmSettings | None" = None) -> "AlgorithmSettings":
        """Merge a (possibly partial) payload over ``base`` and validate.

        Groups missing from ``data`` are taken from ``base`` unchanged;
        inside a group, missing keys keep the base value.
        """
        base = base or DEFAULT_SETTINGS
        data = data or {}
        if not isinstance(data, Mapping):
            raise ValidationError("Settings must be an object.")

        changes = {}
        for key, (attr, group_cls) in _GROUPS.items():
            changes[attr] = _merge(group_cls, key, getattr(base, attr), data.get(key))
        changes["experience_matrix"] = base.experience_matrix.merged(data.get("experience_matrix"))
        return cls(**changes)

    def to_dict(self) -> dict:
        out = {}
        for key, (attr, _group_cls) in _GROUPS.items():
            group = getattr(self, attr)
            out[key] = {f.name: getattr(group, f.name) for f in fields(group)}
        out["experience_matrix"] = {k: dict(v) for k, v in self.experience_matrix.table.items()}
        return out

    def validate(self):
        for attr, _group_cls in _GROUPS.values():
            getattr(self, attr).validate()
        self.experience_matrix.validate()

    # --- engine helpers ---
    def acceptance_window(self, urgency: str | None) -> timedelta:
        return self.acceptance_windows.for_urgency(urgency)

    def max_offers_for_level(self, level: int) -> int:
        if level <= LEVEL_BEST_FIT:
            return self.escalation.level1_max_offers
        if level == LEVEL_RELAXED:
            return self.escalation.level2_max_offers
        return 0

    def broadcast_window(self) -> timedelta:
        return timedelta(minutes=self.escalation.level3_broadcast_minutes)


DEFAULT_SETTINGS = AlgorithmSettings()
