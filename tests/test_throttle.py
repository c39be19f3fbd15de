"""Tests for the charging-current decision rule."""
import pytest

from evbudget.control.throttle import (
    ThrottleAction,
    ThrottleEngine,
    candidate_amps,
    decide,
)


class TestCandidateAmps:
    """Test the budget arithmetic."""

    def test_margin_and_floor(self):
        # floor((30 - 20) * 0.95) = floor(9.5)
        assert candidate_amps(30, 16, 20) == 9

    def test_capped_by_vehicle(self):
        assert candidate_amps(30, 16, 5) == 16

    def test_never_negative(self):
        assert candidate_amps(30, 16, 45) == 0

    def test_zero_cap(self):
        assert candidate_amps(30, 0, 0) == 0

    def test_custom_margin(self):
        engine = ThrottleEngine(safety_margin=1.0)
        assert engine.candidate_amps(30, 32, 20) == 10


class TestDecide:
    """Test the asymmetric hysteresis."""

    def test_scenario_a_decrease_applies_immediately(self):
        decision = decide(30, 16, 20, last_requested_amps=16, seconds_since_last_request=0)
        assert decision.action == ThrottleAction.DECREASE
        assert decision.amps == 9
        assert decision.previous_amps == 16
        assert decision.requires_actuation
        assert decision.delta == -7

    def test_scenario_b_same_candidate_is_no_change(self):
        decision = decide(30, 16, 20, last_requested_amps=9, seconds_since_last_request=10)
        assert decision.action == ThrottleAction.NO_CHANGE
        assert not decision.requires_actuation

    def test_scenario_c_increase_after_hold_off(self):
        decision = decide(30, 16, 5, last_requested_amps=9, seconds_since_last_request=31)
        assert decision.action == ThrottleAction.INCREASE
        assert decision.amps == 16

    def test_increase_within_hold_off_is_throttled(self):
        decision = decide(30, 16, 5, last_requested_amps=9, seconds_since_last_request=29.9)
        assert decision.action == ThrottleAction.THROTTLED_INCREASE
        assert decision.amps == 16
        assert not decision.requires_actuation

    def test_increase_exactly_at_hold_off(self):
        decision = decide(30, 16, 5, last_requested_amps=9, seconds_since_last_request=30)
        assert decision.action == ThrottleAction.INCREASE

    @pytest.mark.parametrize("elapsed", [0, 1, 29, 1000])
    def test_decrease_ignores_elapsed_time(self, elapsed):
        decision = decide(30, 16, 25, last_requested_amps=16, seconds_since_last_request=elapsed)
        assert decision.action == ThrottleAction.DECREASE
        assert decision.amps == 4

    def test_custom_hold_off(self):
        engine = ThrottleEngine(increase_hold_off=60)
        decision = engine.decide(30, 16, 5, last_requested_amps=9, seconds_since_last_request=45)
        assert decision.action == ThrottleAction.THROTTLED_INCREASE

    def test_to_dict(self):
        decision = decide(30, 16, 20, last_requested_amps=16, seconds_since_last_request=0)
        assert decision.to_dict() == {"action": "decrease", "amps": 9, "previous_amps": 16}
