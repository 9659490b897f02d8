"""Application tests for SLA configuration commands and the breach sweep."""

from datetime import UTC, datetime, timedelta

import pytest
from marketplace.case.transitions import TransitionCase
from marketplace.shared.errors import error_codes
from marketplace.sla.configuration import (
    DeactivateSlaConfiguration,
    SaveSlaConfiguration,
    SlaConfiguration,
    resolve_configuration,
)
from marketplace.sla.sweep import EvaluateSlaRecord, pending_records, run_breach_sweep
from marketplace.sla.tracking import SlaStatus, SlaTrackingRecord
from protean import current_domain
from protean.exceptions import ValidationError

OPENED = datetime(2025, 3, 6, 9, 0, tzinfo=UTC)


def _save(**kwargs):
    values = {
        "name": "Returns",
        "case_type": "Return",
        "first_response_hours": 12,
        "resolution_hours": 48,
        "actor_role": "Admin",
    }
    values.update(kwargs)
    return current_domain.process(SaveSlaConfiguration(**values), asynchronous=False)


def _sla(case_id):
    return current_domain.repository_for(SlaTrackingRecord).get(case_id)


class TestConfigurationCommands:
    def test_admin_creates_configuration(self):
        config_id = _save()
        config = current_domain.repository_for(SlaConfiguration).get(config_id)
        assert config.first_response_hours == 12
        assert config.is_active

    def test_seller_cannot_manage_configurations(self):
        with pytest.raises(ValidationError) as exc:
            _save(actor_role="Seller")
        assert "not_authorized" in error_codes(exc.value)

    def test_update_replaces_targets(self):
        config_id = _save()
        _save(configuration_id=config_id, first_response_hours=6, resolution_hours=24)
        config = current_domain.repository_for(SlaConfiguration).get(config_id)
        assert config.first_response_hours == 6
        assert config.resolution_hours == 24

    def test_update_keeps_invariants(self):
        config_id = _save()
        with pytest.raises(ValidationError):
            _save(configuration_id=config_id, first_response_hours=48, resolution_hours=24)

    def test_deactivated_configuration_no_longer_resolves(self):
        config_id = _save()
        assert resolve_configuration("Return", "Electronics", as_of=OPENED).id == config_id
        current_domain.process(
            DeactivateSlaConfiguration(configuration_id=config_id, actor_role="Admin"),
            asynchronous=False,
        )
        assert resolve_configuration("Return", "Electronics", as_of=OPENED) is None

    def test_snapshot_survives_configuration_change(self, delivered_acme, open_case):
        config_id = _save()
        case_id = open_case(delivered_acme).value["case_id"]
        _save(configuration_id=config_id, first_response_hours=1, resolution_hours=2)
        record = _sla(case_id)
        assert record.first_response_hours == 12
        assert record.resolution_hours == 48


class TestBreachSweep:
    def test_sweep_flags_overdue_first_response(self, delivered_acme, default_sla, open_case):
        case_id = open_case(delivered_acme).value["case_id"]
        assert run_breach_sweep(as_of=OPENED + timedelta(hours=25)) == 1
        record = _sla(case_id)
        assert record.is_first_response_breached is True
        assert record.status == SlaStatus.FIRST_RESPONSE_BREACHED.value

    def test_sweep_before_deadline_changes_nothing(self, delivered_acme, default_sla, open_case):
        case_id = open_case(delivered_acme).value["case_id"]
        assert run_breach_sweep(as_of=OPENED + timedelta(hours=23)) == 0
        assert _sla(case_id).is_first_response_breached is False

    def test_sweep_is_idempotent(self, delivered_acme, default_sla, open_case):
        open_case(delivered_acme)
        as_of = OPENED + timedelta(hours=100)
        assert run_breach_sweep(as_of=as_of) == 1
        assert run_breach_sweep(as_of=as_of) == 0

    def test_resolved_cases_are_skipped(self, delivered_acme, default_sla, open_case):
        case_id = open_case(delivered_acme).value["case_id"]
        for hours, target in ((1, "UnderReview"), (2, "Rejected")):
            current_domain.process(
                TransitionCase(
                    case_id=case_id,
                    target_status=target,
                    actor_id="seller-acme",
                    actor_role="Seller",
                    occurred_at=OPENED + timedelta(hours=hours),
                ),
                asynchronous=False,
            )
        assert pending_records() == []
        assert run_breach_sweep(as_of=OPENED + timedelta(days=10)) == 0
        assert _sla(case_id).status == SlaStatus.RESOLVED_WITHIN_SLA.value

    def test_records_without_targets_stay_pending(self, delivered_acme, open_case):
        case_id = open_case(delivered_acme).value["case_id"]
        assert [r.case_id for r in pending_records()] == [case_id]
        assert run_breach_sweep(as_of=OPENED + timedelta(days=10)) == 0
        assert _sla(case_id).has_targets is False

    def test_configuration_added_later_is_picked_up(self, delivered_acme, open_case):
        case_id = open_case(delivered_acme).value["case_id"]
        config_id = _save(effective_from=OPENED + timedelta(hours=2))

        assert run_breach_sweep(as_of=OPENED + timedelta(hours=3)) == 1
        record = _sla(case_id)
        assert record.configuration_id == config_id
        assert record.first_response_hours == 12
        assert record.resolution_hours == 48
        assert record.first_response_deadline == OPENED + timedelta(hours=12)
        assert record.is_first_response_breached is False

    def test_late_targets_count_from_case_creation(self, delivered_acme, open_case):
        case_id = open_case(delivered_acme).value["case_id"]
        _save()
        assert run_breach_sweep(as_of=OPENED + timedelta(hours=13)) == 1
        record = _sla(case_id)
        assert record.is_first_response_breached is True
        assert record.status == SlaStatus.FIRST_RESPONSE_BREACHED.value

    def test_evaluate_single_record(self, delivered_acme, default_sla, open_case):
        case_id = open_case(delivered_acme).value["case_id"]
        changed = current_domain.process(
            EvaluateSlaRecord(case_id=case_id, as_of=OPENED + timedelta(hours=73)),
            asynchronous=False,
        )
        assert changed is True
        record = _sla(case_id)
        assert record.is_first_response_breached is True
        assert record.is_resolution_breached is True
        assert record.status == SlaStatus.RESOLUTION_BREACHED.value
