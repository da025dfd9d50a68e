"""Tests for the pure SLA calculations (deadline, classifier, countdown, compliance)."""

from datetime import timedelta

import pytest

from slawatch.config import BreachState, TicketStatus
from slawatch.sla.domain import SLACalculator, MonitorConfig

from tests.conftest import T0, make_ticket


class TestCalculateDeadline:
    def test_adds_resolution_minutes_to_created_at(self):
        assert SLACalculator.calculate_deadline(T0, 240) == T0 + timedelta(minutes=240)

    def test_is_deterministic(self):
        first = SLACalculator.calculate_deadline(T0, 1440)
        second = SLACalculator.calculate_deadline(T0, 1440)
        assert first == second


class TestClassify:
    def test_no_target_is_on_track(self):
        assert SLACalculator.classify(T0, None, T0 + timedelta(days=30)) == BreachState.ON_TRACK

    def test_plenty_of_time_is_on_track(self):
        target = T0 + timedelta(minutes=240)
        assert SLACalculator.classify(T0, target, T0 + timedelta(minutes=60)) == BreachState.ON_TRACK

    def test_buffer_boundary_is_imminent(self):
        # 60 minute window, 10% buffer: exactly 6 minutes left is imminent
        target = T0 + timedelta(minutes=60)
        now = target - timedelta(minutes=6)
        assert SLACalculator.classify(T0, target, now, 0.1) == BreachState.IMMINENT

    def test_just_outside_buffer_is_on_track(self):
        target = T0 + timedelta(minutes=60)
        now = target - timedelta(minutes=6, seconds=1)
        assert SLACalculator.classify(T0, target, now, 0.1) == BreachState.ON_TRACK

    def test_zero_remaining_is_breached(self):
        target = T0 + timedelta(minutes=60)
        assert SLACalculator.classify(T0, target, target) == BreachState.BREACHED

    def test_past_target_is_breached(self):
        target = T0 + timedelta(minutes=60)
        assert SLACalculator.classify(T0, target, target + timedelta(hours=5)) == BreachState.BREACHED

    def test_non_positive_window_is_on_track(self, caplog):
        target = T0 - timedelta(minutes=5)
        with caplog.at_level("WARNING"):
            state = SLACalculator.classify(T0, target, T0 + timedelta(days=1))
        assert state == BreachState.ON_TRACK
        assert "Non-positive SLA window" in caplog.text

    def test_zero_buffer_never_imminent(self):
        target = T0 + timedelta(minutes=60)
        now = target - timedelta(seconds=1)
        assert SLACalculator.classify(T0, target, now, 0.0) == BreachState.ON_TRACK

    def test_state_never_improves_as_time_passes(self):
        severity = {BreachState.ON_TRACK: 0, BreachState.IMMINENT: 1, BreachState.BREACHED: 2}
        target = T0 + timedelta(minutes=240)
        previous = 0
        for minute in range(0, 300, 5):
            state = SLACalculator.classify(T0, target, T0 + timedelta(minutes=minute))
            assert severity[state] >= previous
            previous = severity[state]

    def test_critical_incident_walkthrough(self):
        target = SLACalculator.calculate_deadline(T0, 240)
        assert target == T0 + timedelta(minutes=240)
        assert SLACalculator.classify(T0, target, T0 + timedelta(minutes=235)) == BreachState.IMMINENT
        assert SLACalculator.classify(T0, target, T0 + timedelta(minutes=241)) == BreachState.BREACHED

    def test_classify_ticket_uses_ticket_fields(self):
        ticket = make_ticket(sla_target_date=T0 + timedelta(minutes=60))
        assert SLACalculator.classify_ticket(ticket, T0 + timedelta(minutes=59)) == BreachState.IMMINENT


class TestRemainingAndCountdown:
    def test_remaining_minutes_none_without_target(self):
        assert SLACalculator.remaining_minutes(None, T0) is None

    def test_remaining_minutes_truncates(self):
        target = T0 + timedelta(minutes=10, seconds=50)
        assert SLACalculator.remaining_minutes(target, T0) == 10

    def test_remaining_minutes_negative_when_overdue(self):
        target = T0 - timedelta(minutes=90)
        assert SLACalculator.remaining_minutes(target, T0) == -90

    @pytest.mark.parametrize("minutes,expected", [
        (45, "45m left"),
        (60, "1h left"),
        (125, "2h 5m left"),
        (-30, "30m overdue"),
        (-61, "1h 1m overdue"),
    ])
    def test_format_countdown(self, minutes, expected):
        assert SLACalculator.format_countdown(minutes) == expected

    def test_format_countdown_none(self):
        assert SLACalculator.format_countdown(None) is None


class TestCompliance:
    def test_no_tracked_tickets_is_zero(self):
        assert SLACalculator.calculate_compliance([make_ticket()]) == 0.0

    def test_empty_is_zero(self):
        assert SLACalculator.calculate_compliance([]) == 0.0

    def test_mixed_tickets(self):
        target = T0 + timedelta(hours=4)
        tickets = [
            make_ticket(1, sla_target_date=target),
            make_ticket(2, sla_target_date=target, is_sla_breach=True),
            make_ticket(
                3, sla_target_date=target, status=TicketStatus.RESOLVED,
                resolved_at=target - timedelta(minutes=1)
            ),
            make_ticket(
                4, sla_target_date=target, status=TicketStatus.RESOLVED,
                resolved_at=target + timedelta(minutes=1)
            ),
            make_ticket(5),
        ]
        assert SLACalculator.calculate_compliance(tickets) == 50.0


class TestMonitorConfig:
    def test_defaults(self):
        config = MonitorConfig()
        assert config.check_interval_seconds == 15 * 60
        assert config.recovery_interval_seconds == 5 * 60
        assert config.imminent_buffer_fraction == 0.1
        assert config.webhook_url is None
        assert not config.dedupe_notifications

    def test_buffer_fraction_must_be_below_one(self):
        with pytest.raises(ValueError):
            MonitorConfig(imminent_buffer_fraction=1.0)

    def test_intervals_must_be_positive(self):
        with pytest.raises(ValueError):
            MonitorConfig(check_interval_minutes=0)
