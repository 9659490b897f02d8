"""Tests for SlaConfiguration invariants and resolution order."""

from datetime import UTC, datetime, timedelta

import pytest
from marketplace.sla.configuration import SlaConfiguration, select_configuration
from protean.exceptions import ValidationError

NOW = datetime(2025, 3, 6, 9, 0, tzinfo=UTC)


def _config(name, case_type=None, category=None, priority=0, **kwargs):
    return SlaConfiguration(
        name=name,
        case_type=case_type,
        category=category,
        first_response_hours=kwargs.pop("first_response_hours", 24),
        resolution_hours=kwargs.pop("resolution_hours", 72),
        priority=priority,
        **kwargs,
    )


class TestInvariants:
    def test_resolution_cannot_be_shorter_than_first_response(self):
        with pytest.raises(ValidationError) as exc:
            _config("Bad", first_response_hours=48, resolution_hours=24)
        assert "resolution_hours" in exc.value.messages

    def test_effective_window_must_be_ordered(self):
        with pytest.raises(ValidationError) as exc:
            _config("Bad", effective_from=NOW, effective_to=NOW - timedelta(days=1))
        assert "effective_to" in exc.value.messages

    def test_positive_targets(self):
        with pytest.raises(ValidationError):
            _config("Bad", first_response_hours=0)


class TestTiers:
    def test_case_type_only_beats_category_only(self):
        configs = [
            _config("Returns", case_type="Return", priority=1),
            _config("Electronics", category="Electronics", priority=2),
        ]
        chosen = select_configuration(configs, "Return", "Electronics", NOW)
        assert chosen.name == "Returns"

    def test_exact_match_wins_when_present(self):
        configs = [
            _config("Returns", case_type="Return", priority=1),
            _config("Electronics", category="Electronics", priority=2),
            _config("Electronics returns", case_type="Return", category="Electronics", priority=0),
        ]
        chosen = select_configuration(configs, "Return", "Electronics", NOW)
        assert chosen.name == "Electronics returns"

    def test_category_only_beats_global(self):
        configs = [
            _config("Global"),
            _config("Electronics", category="Electronics", priority=5),
        ]
        assert select_configuration(configs, "Complaint", "Electronics", NOW).name == "Electronics"

    def test_global_default_as_fallback(self):
        configs = [_config("Global"), _config("Books", category="Books")]
        assert select_configuration(configs, "Return", "Electronics", NOW).name == "Global"

    def test_nothing_applies(self):
        configs = [_config("Books", category="Books")]
        assert select_configuration(configs, "Return", "Electronics", NOW) is None


class TestWithinTier:
    def test_lowest_priority_number_wins(self):
        configs = [
            _config("Later", case_type="Return", priority=3),
            _config("First", case_type="Return", priority=1),
        ]
        assert select_configuration(configs, "Return", None, NOW).name == "First"

    def test_tie_goes_to_most_recently_effective(self):
        configs = [
            _config("Old", effective_from=NOW - timedelta(days=30)),
            _config("New", effective_from=NOW - timedelta(days=1)),
        ]
        assert select_configuration(configs, "Return", None, NOW).name == "New"


class TestEffectiveness:
    def test_inactive_configuration_is_skipped(self):
        inactive = _config("Inactive", case_type="Return")
        inactive.deactivate()
        configs = [inactive, _config("Global")]
        assert select_configuration(configs, "Return", None, NOW).name == "Global"

    def test_future_configuration_is_skipped(self):
        configs = [_config("Future", case_type="Return", effective_from=NOW + timedelta(days=1)), _config("Global")]
        assert select_configuration(configs, "Return", None, NOW).name == "Global"

    def test_expired_configuration_is_skipped(self):
        configs = [
            _config(
                "Expired",
                case_type="Return",
                effective_from=NOW - timedelta(days=10),
                effective_to=NOW - timedelta(days=1),
            ),
            _config("Global"),
        ]
        assert select_configuration(configs, "Return", None, NOW).name == "Global"
