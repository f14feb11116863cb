"""Tests for the configuration store: drafts, edit guard and publishing."""

import pytest

from conftest import actor_for, make_admin, make_user
from matchdesk.errors import Forbidden, InvalidState, NotFound, Unauthorized, ValidationError
from matchdesk.models import AlgorithmConfig
from matchdesk.services import config_service
from matchdesk.services.algorithm_settings import DEFAULT_SETTINGS


@pytest.fixture
def admin(session):
    return actor_for(make_admin(session))


class TestCreate:
    def test_creates_inactive_draft_with_next_version(self, admin) -> None:
        first = config_service.create_configuration(admin, {"name": "Baseline"})
        second = config_service.create_configuration(admin, {})
        assert first.version == 1
        assert second.version == 2
        assert not first.is_active and not second.is_active
        assert first.name == "Baseline"
        assert second.name == "Configuration v2"
        assert first.weights == DEFAULT_SETTINGS.to_dict()["weights"]

    def test_rejects_bad_weight_sum(self, admin) -> None:
        with pytest.raises(ValidationError):
            config_service.create_configuration(admin, {"weights": {"skill_match": 90}})
        assert AlgorithmConfig.query.count() == 0

    def test_rejects_unknown_top_level_field(self, admin) -> None:
        with pytest.raises(ValidationError, match="Unknown field"):
            config_service.create_configuration(admin, {"turbo": True})

    def test_requires_admin(self, session) -> None:
        freelancer = actor_for(make_user(session, role="freelancer"))
        with pytest.raises(Forbidden):
            config_service.create_configuration(freelancer, {})
        with pytest.raises(Unauthorized):
            config_service.create_configuration(None, {})


class TestUpdate:
    def test_updates_draft(self, admin) -> None:
        row = config_service.create_configuration(admin, {})
        updated = config_service.update_configuration(
            admin, row.id, {"workload_settings": {"max_active_tasks": 7}, "name": "Roomier"}
        )
        assert updated.workload_settings["max_active_tasks"] == 7
        assert updated.workload_settings["score_per_task"] == 20
        assert updated.name == "Roomier"

    def test_active_config_cannot_be_edited(self, admin) -> None:
        row = config_service.create_configuration(admin, {})
        config_service.publish_configuration(admin, row.id)
        with pytest.raises(InvalidState):
            config_service.update_configuration(admin, row.id, {"name": "valid"})
        # regardless of payload
        with pytest.raises(InvalidState):
            config_service.update_configuration(admin, row.id, {"weights": {"skill_match": 1}})
        with pytest.raises(InvalidState):
            config_service.update_configuration(admin, row.id, None)

    def test_rejects_bad_weight_sum(self, admin) -> None:
        row = config_service.create_configuration(admin, {})
        with pytest.raises(ValidationError):
            config_service.update_configuration(admin, row.id, {"weights": {"timezone_fit": 0}})

    def test_missing(self, admin) -> None:
        with pytest.raises(NotFound):
            config_service.update_configuration(admin, 999, {})


class TestPublish:
    def test_exactly_one_active(self, admin) -> None:
        a = config_service.create_configuration(admin, {})
        b = config_service.create_configuration(admin, {"bonus_modifiers": {"favorite_artist_bonus": 0}})
        config_service.publish_configuration(admin, a.id)
        config_service.publish_configuration(admin, b.id)

        active = AlgorithmConfig.query.filter_by(is_active=True).all()
        assert [r.id for r in active] == [b.id]
        assert active[0].published_at is not None
        assert config_service.get_active_settings().bonus_modifiers.favorite_artist_bonus == 0

    def test_publish_active_again_is_invalid(self, admin) -> None:
        row = config_service.create_configuration(admin, {})
        config_service.publish_configuration(admin, row.id)
        with pytest.raises(InvalidState):
            config_service.publish_configuration(admin, row.id)

    def test_missing(self, admin) -> None:
        with pytest.raises(NotFound):
            config_service.publish_configuration(admin, 404)


class TestActiveSettings:
    def test_defaults_without_active_row(self, admin) -> None:
        config_service.create_configuration(admin, {"workload_settings": {"max_active_tasks": 9}})
        assert config_service.get_active_settings() == DEFAULT_SETTINGS

    def test_new_drafts_start_from_active(self, admin) -> None:
        row = config_service.create_configuration(admin, {"workload_settings": {"max_active_tasks": 9}})
        config_service.publish_configuration(admin, row.id)
        draft = config_service.create_configuration(admin, {})
        assert draft.workload_settings["max_active_tasks"] == 9
