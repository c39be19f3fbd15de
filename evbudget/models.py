"""Value types shared by the vehicle cache, the control loop and the drivers."""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .exceptions import ConfigurationError
from .geo import GeoPoint

if TYPE_CHECKING:
    from .control.throttle import ThrottleDecision


@dataclass(frozen=True)
class VehicleSnapshot:
    """Vehicle state as reported by a remote backend."""
    charging: bool
    transitioning: bool  # charge state is starting/pending, readings not settled
    current_amps: float
    last_requested_amps: int  # the vehicle's own record of the requested current
    position: GeoPoint
    charging_state: str = "unknown"  # vendor label, informational

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logs and status output."""
        return {
            "charging": self.charging,
            "transitioning": self.transitioning,
            "charging_state": self.charging_state,
            "current_amps": self.current_amps,
            "last_requested_amps": self.last_requested_amps,
            "position": str(self.position),
        }


@dataclass(frozen=True)
class HomeSample:
    """Whole-home draw over one measurement window."""
    avg_amps: float
    max_amps: float
    car_amps: float  # vehicle draw when the sample was taken
    timestamp: float


@dataclass(frozen=True)
class ChargerConfig:
    """Where the charger is and how much current may be drawn."""
    location: GeoPoint
    home_budget_amps: float  # whole-home ceiling
    vehicle_cap_amps: int  # hardware/contractual ceiling for the vehicle

    def __post_init__(self):
        if not math.isfinite(self.home_budget_amps) or self.home_budget_amps <= 0:
            raise ConfigurationError(
                f"home_budget_amps must be a positive number, got {self.home_budget_amps}"
            )
        if isinstance(self.vehicle_cap_amps, bool) or not isinstance(self.vehicle_cap_amps, int):
            raise ConfigurationError(
                f"vehicle_cap_amps must be an integer, got {self.vehicle_cap_amps!r}"
            )
        if self.vehicle_cap_amps < 0:
            raise ConfigurationError(
                f"vehicle_cap_amps must not be negative, got {self.vehicle_cap_amps}"
            )


class CycleStatus(Enum):
    """How a check-and-throttle cycle ended."""
    SKIPPED = "skipped"  # another cycle held the lock
    ERROR = "error"  # remote API failure, cycle abandoned
    AWAY = "away"  # vehicle not at the charger
    NOT_CHARGING = "not_charging"
    NO_SAMPLES = "no_samples"  # nothing recorded yet, nothing to decide on
    DECIDED = "decided"


@dataclass(frozen=True)
class CycleOutcome:
    """Result of one run of the controller."""
    status: CycleStatus
    decision: ThrottleDecision | None = None
    distance_km: float | None = None
    cache_age: float | None = None
    error: str | None = None

    @property
    def nearby(self) -> bool:
        """True when the cycle got past the presence check."""
        return self.status in (
            CycleStatus.NOT_CHARGING,
            CycleStatus.NO_SAMPLES,
            CycleStatus.DECIDED,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logs and status output."""
        result: dict[str, Any] = {"status": self.status.value}
        if self.decision is not None:
            result["decision"] = self.decision.to_dict()
        if self.distance_km is not None:
            result["distance_km"] = round(self.distance_km, 3)
        if self.cache_age is not None:
            result["cache_age"] = round(self.cache_age, 1)
        if self.error:
            result["error"] = self.error
        return result
