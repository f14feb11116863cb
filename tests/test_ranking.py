"""Tests for candidate ranking: dimension scores and ordering."""

from datetime import datetime, timedelta

import pytest

from conftest import NOW, favorite, make_artist, make_task, make_user
from matchdesk.services.algorithm_settings import DEFAULT_SETTINGS, AlgorithmSettings
from matchdesk.services.ranking_service import (
    ArtistProfile,
    TaskProfile,
    performance_score,
    rank_artists,
    rank_candidates,
    score_artist,
    skill_score,
    timezone_score,
    workload_score,
)


def _task(**kw) -> TaskProfile:
    base = dict(
        task_id=1, client_id=100, complexity="INTERMEDIATE", urgency="STANDARD",
        category="logo", required_skills=("logo design",),
    )
    base.update(kw)
    return TaskProfile(**base)


def _artist(artist_id=1, **kw) -> ArtistProfile:
    base = dict(
        artist_id=artist_id, skills=("Logo Design",), timezone="UTC",
        experience_level="MID", rating=5, on_time_rate=100, acceptance_rate=100,
    )
    base.update(kw)
    return ArtistProfile(**base)


def _at(hour, minute=0) -> datetime:
    return NOW.replace(hour=hour, minute=minute)


class TestSkillScore:
    def test_no_requirements_is_perfect(self) -> None:
        assert skill_score([], ["anything"]) == 100

    def test_case_insensitive_substring_either_way(self) -> None:
        assert skill_score(["Logo"], ["logo design"]) == 100
        assert skill_score(["logo design"], ["LOGO"]) == 100

    def test_partial(self) -> None:
        assert skill_score(["logo", "illustration"], ["logo"]) == 50
        assert skill_score(["a1", "b2", "c3"], ["a1", "b2"]) == 67

    def test_no_match(self) -> None:
        assert skill_score(["video editing"], ["logo"]) == 0


class TestTimezoneScore:
    @pytest.mark.parametrize("hour,expected", [
        (12, 100), (9, 100), (18, 100),
        (19, 80), (21, 80),
        (7, 70), (8, 70),
        (22, 50), (23, 50),
        (2, 20), (6, 20),
    ])
    def test_bands(self, hour, expected) -> None:
        assert timezone_score("UTC", _at(hour), DEFAULT_SETTINGS.timezone) == expected

    def test_local_time_is_used(self) -> None:
        # 12:00 UTC is 21:00 in Tokyo
        assert timezone_score("Asia/Tokyo", _at(12), DEFAULT_SETTINGS.timezone) == 80

    def test_unknown_timezone_is_neutral(self) -> None:
        assert timezone_score("Mars/Olympus", _at(12), DEFAULT_SETTINGS.timezone) == 50
        assert timezone_score("America", _at(12), DEFAULT_SETTINGS.timezone) == 50
        assert timezone_score(None, _at(12), DEFAULT_SETTINGS.timezone) == 50


class TestOtherDimensions:
    def test_workload(self) -> None:
        assert workload_score(0, DEFAULT_SETTINGS) == 100
        assert workload_score(2, DEFAULT_SETTINGS) == 60
        assert workload_score(9, DEFAULT_SETTINGS) == 0

    def test_performance_with_history(self) -> None:
        assert performance_score(4, 90, 50) == round(80 * 0.5 + 90 * 0.3 + 50 * 0.2)

    def test_performance_without_history_is_neutral(self) -> None:
        assert performance_score(None, None, None) == 65

    def test_missing_experience_level_is_neutral(self) -> None:
        result = score_artist(_task(), _artist(experience_level=None), DEFAULT_SETTINGS, now=NOW)
        assert result.breakdown.dimensions["experience"]["raw"] == 50


class TestScoreArtist:
    def test_perfect_match_scores_100(self) -> None:
        result = score_artist(_task(), _artist(), DEFAULT_SETTINGS, now=NOW)
        assert not result.excluded
        assert result.total == 100

    def test_breakdown_records_raw_weight_weighted(self) -> None:
        result = score_artist(_task(), _artist(rating=None, on_time_rate=None, acceptance_rate=None),
                              DEFAULT_SETTINGS, now=NOW)
        perf = result.breakdown.dimensions["performance"]
        assert perf == {"raw": 65, "weight": 10, "weighted": 6.5}
        assert result.total == 96.5

    def test_bonuses_apply_and_cap_at_100(self) -> None:
        task = _task(nice_to_have_skills=("branding",))
        artist = _artist(preferred_categories=("logo",), skills=("logo design", "branding"), is_favorite=True)
        result = score_artist(task, artist, DEFAULT_SETTINGS, now=NOW)
        assert result.breakdown.bonuses == {
            "category_specialization": 10,
            "nice_to_have_skill": 5,
            "favorite_artist": 10,
        }
        assert result.total == 100

    def test_bonus_lifts_weaker_artist(self) -> None:
        plain = score_artist(_task(), _artist(rating=3), DEFAULT_SETTINGS, now=NOW)
        fav = score_artist(_task(), _artist(rating=3, is_favorite=True), DEFAULT_SETTINGS, now=NOW)
        assert fav.total == pytest.approx(min(100, plain.total + 10))


class TestExclusions:
    def test_vacation(self) -> None:
        result = score_artist(_task(), _artist(vacation_mode=True), DEFAULT_SETTINGS, now=NOW)
        assert result.excluded
        assert "vacation" in result.exclusion_reason

    def test_vacation_over(self) -> None:
        artist = _artist(vacation_mode=True, vacation_until=NOW - timedelta(days=1))
        assert not score_artist(_task(), artist, DEFAULT_SETTINGS, now=NOW).excluded

    def test_skill_threshold_relaxes_by_level(self) -> None:
        task = _task(required_skills=("logo", "illustration"))   # artist matches half
        artist = _artist(skills=("logo",))
        assert score_artist(task, artist, DEFAULT_SETTINGS, level=1, now=NOW).excluded
        assert not score_artist(task, artist, DEFAULT_SETTINGS, level=2, now=NOW).excluded

    def test_broadcast_level_takes_any_skill(self) -> None:
        artist = _artist(skills=("video",))
        assert score_artist(_task(), artist, DEFAULT_SETTINGS, level=2, now=NOW).excluded
        assert not score_artist(_task(), artist, DEFAULT_SETTINGS, level=3, now=NOW).excluded

    def test_workload_cap_with_override(self) -> None:
        artist = _artist(active_tasks=5)
        assert score_artist(_task(), artist, DEFAULT_SETTINGS, level=1, now=NOW).excluded
        assert not score_artist(_task(), artist, DEFAULT_SETTINGS, level=2, now=NOW).excluded

    def test_overload_rule_can_be_disabled(self) -> None:
        settings = AlgorithmSettings.from_dict({"exclusion_rules": {"exclude_overloaded": False}})
        assert not score_artist(_task(), _artist(active_tasks=8), settings, now=NOW).excluded

    def test_night_hours_for_urgent_work(self) -> None:
        night = _at(2)
        assert score_artist(_task(urgency="URGENT"), _artist(), DEFAULT_SETTINGS, now=night).excluded
        assert not score_artist(_task(urgency="STANDARD"), _artist(), DEFAULT_SETTINGS, now=night).excluded

    def test_declines_urgent_work(self) -> None:
        artist = _artist(accepts_urgent_tasks=False)
        assert score_artist(_task(urgency="CRITICAL"), artist, DEFAULT_SETTINGS, now=NOW).excluded
        assert not score_artist(_task(urgency="FLEXIBLE"), artist, DEFAULT_SETTINGS, now=NOW).excluded


class TestRankArtists:
    def test_empty_pool(self) -> None:
        assert rank_artists(_task(), [], DEFAULT_SETTINGS, now=NOW) == []

    def test_sorted_by_total_then_workload_then_id(self) -> None:
        roster = [
            _artist(3, rating=4),
            _artist(2, rating=5, active_tasks=1),
            _artist(1, rating=5, active_tasks=1),
            _artist(4, rating=5),
        ]
        # equalise the workload dimension so ties are real
        settings = AlgorithmSettings.from_dict({"workload_settings": {"score_per_task": 0}})
        ranked = rank_artists(_task(), roster, settings, now=NOW)
        assert [r.artist_id for r in ranked] == [4, 1, 2, 3]

    def test_timezone_directory_name_does_not_break_ranking(self) -> None:
        ranked = rank_artists(_task(), [_artist(1, timezone="America"), _artist(2)], DEFAULT_SETTINGS, now=NOW)
        assert [r.artist_id for r in ranked] == [2, 1]
        assert ranked[1].breakdown.dimensions["timezone"]["raw"] == 50

    def test_excluded_and_skipped_are_dropped(self) -> None:
        roster = [_artist(1), _artist(2, vacation_mode=True), _artist(3)]
        ranked = rank_artists(_task(), roster, DEFAULT_SETTINGS, now=NOW, exclude={3})
        assert [r.artist_id for r in ranked] == [1]


class TestRankCandidates:
    def test_loads_eligible_roster(self, session) -> None:
        client = make_user(session)
        good = make_artist(session, rating=5)
        busy = make_artist(session, rating=5, active_tasks=2)
        make_artist(session, approval_status="pending")
        make_artist(session, availability=False)
        make_user(session, role="freelancer")          # no profile
        task = make_task(session, client)

        ranked = rank_candidates(task, 1, now=NOW)
        assert [r.artist_id for r in ranked] == [good.id, busy.id]
        assert ranked[1].active_tasks == 2

    def test_client_favorite_is_applied(self, session) -> None:
        client = make_user(session)
        a = make_artist(session, rating=3)
        b = make_artist(session, rating=3)
        favorite(session, client, b)
        task = make_task(session, client)

        ranked = rank_candidates(task, 1, now=NOW)
        assert ranked[0].artist_id == b.id
        assert "favorite_artist" in ranked[0].breakdown.bonuses
        assert a.id in [r.artist_id for r in ranked]
