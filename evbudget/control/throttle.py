"""Charging-current decision.

Pure functions of the current inputs, no I/O and no state.

The requested current is what is left of the home budget after the rest of
the house, minus a 5% margin for meter lag and noise, capped by what the
vehicle may draw. Changes are asymmetric: a decrease is applied at once
because the service limit is at stake, an increase only once
``INCREASE_HOLD_OFF`` seconds have passed since the last request so the car
is not hammered with commands while the house load bounces around.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..const import INCREASE_HOLD_OFF, SAFETY_MARGIN


class ThrottleAction(Enum):
    """What to do with the vehicle's requested current."""
    NO_CHANGE = "no_change"
    INCREASE = "increase"
    DECREASE = "decrease"
    THROTTLED_INCREASE = "throttled_increase"  # increase held off, not applied


@dataclass(frozen=True)
class ThrottleDecision:
    """Outcome of one decision."""
    action: ThrottleAction
    amps: int  # candidate current
    previous_amps: int  # last requested current

    @property
    def requires_actuation(self) -> bool:
        return self.action in (ThrottleAction.INCREASE, ThrottleAction.DECREASE)

    @property
    def delta(self) -> int:
        return self.amps - self.previous_amps

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "amps": self.amps,
            "previous_amps": self.previous_amps,
        }


class ThrottleEngine:
    """Decision rule with its margin and hold-off."""

    def __init__(
        self,
        safety_margin: float = SAFETY_MARGIN,
        increase_hold_off: float = INCREASE_HOLD_OFF,
    ):
        self.safety_margin = safety_margin
        self.increase_hold_off = increase_hold_off

    def candidate_amps(
        self,
        home_budget_amps: float,
        vehicle_cap_amps: int,
        home_load_excluding_vehicle: float,
    ) -> int:
        """Current the vehicle could draw without exceeding the budget."""
        remaining = (home_budget_amps - home_load_excluding_vehicle) * self.safety_margin
        return min(vehicle_cap_amps, max(0, math.floor(remaining)))

    def decide(
        self,
        home_budget_amps: float,
        vehicle_cap_amps: int,
        home_load_excluding_vehicle: float,
        last_requested_amps: int,
        seconds_since_last_request: float,
    ) -> ThrottleDecision:
        candidate = self.candidate_amps(
            home_budget_amps, vehicle_cap_amps, home_load_excluding_vehicle
        )

        if candidate == last_requested_amps:
            action = ThrottleAction.NO_CHANGE
        elif candidate < last_requested_amps:
            action = ThrottleAction.DECREASE
        elif seconds_since_last_request >= self.increase_hold_off:
            action = ThrottleAction.INCREASE
        else:
            action = ThrottleAction.THROTTLED_INCREASE

        return ThrottleDecision(
            action=action,
            amps=candidate,
            previous_amps=last_requested_amps,
        )


_DEFAULT_ENGINE = ThrottleEngine()


def candidate_amps(
    home_budget_amps: float,
    vehicle_cap_amps: int,
    home_load_excluding_vehicle: float,
) -> int:
    return _DEFAULT_ENGINE.candidate_amps(
        home_budget_amps, vehicle_cap_amps, home_load_excluding_vehicle
    )


def decide(
    home_budget_amps: float,
    vehicle_cap_amps: int,
    home_load_excluding_vehicle: float,
    last_requested_amps: int,
    seconds_since_last_request: float,
) -> ThrottleDecision:
    """Decide with the default margin and hold-off."""
    return _DEFAULT_ENGINE.decide(
        home_budget_amps,
        vehicle_cap_amps,
        home_load_excluding_vehicle,
        last_requested_amps,
        seconds_since_last_request,
    )
