"""Control loop: home consumption, throttle rule, controller and drivers."""
from .controller import ChargeBudgetController
from .drivers import ControlDriver, PresenceScheduler, PresenceState, TelemetryDriver
from .home import EmptyWindowError, HomeConsumptionWindow, MeterReadingAggregator
from .throttle import ThrottleAction, ThrottleDecision, ThrottleEngine

__all__ = [
    "ChargeBudgetController",
    "ControlDriver",
    "EmptyWindowError",
    "HomeConsumptionWindow",
    "MeterReadingAggregator",
    "PresenceScheduler",
    "PresenceState",
    "TelemetryDriver",
    "ThrottleAction",
    "ThrottleDecision",
    "ThrottleEngine",
]
