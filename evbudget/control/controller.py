"""Charge-budget controller.

Owns the vehicle cache, the home consumption window and the throttle rule
for one vehicle, and runs the check-and-throttle cycle:

1. Is the vehicle at the charger?
2. Is it charging?
3. Record the latest home consumption, if a reading came with the trigger.
4. Decide the current to request and, if needed, send it to the vehicle.

Triggers can arrive from several places at once (the presence scheduler,
telemetry hooks). Only one cycle runs at a time: a trigger that finds the
lock held is dropped, not queued, so there is never more than one remote
API exchange in flight and no backlog builds up behind a slow call.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from ..const import NEARBY_RADIUS_KM
from ..ev.base import RemoteApiError, VehicleBackend
from ..ev.cache import VehicleStateCache
from ..exceptions import ControllerBusyError
from ..models import ChargerConfig, CycleOutcome, CycleStatus
from .home import HomeConsumptionWindow
from .throttle import ThrottleAction, ThrottleEngine

_LOGGER = logging.getLogger(__name__)

HomeReading = tuple[float, float]  # (avg_amps, max_amps)


class ChargeBudgetController:
    """Keeps one vehicle's charging current inside the home budget."""

    def __init__(
        self,
        config: ChargerConfig,
        backend: VehicleBackend,
        engine: ThrottleEngine | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the controller.

        Args:
            config: Charger location and current limits
            backend: Remote vehicle API for the vehicle being regulated
            engine: Throttle rule (defaults to the standard margin/hold-off)
            clock: Time source, seconds since the epoch
        """
        self.config = config
        self.cache = VehicleStateCache(backend, clock=clock)
        self.window = HomeConsumptionWindow(clock=clock)
        self.engine = engine or ThrottleEngine()
        self._lock = asyncio.Lock()
        self._last_outcome: CycleOutcome | None = None
        self._actuations = 0

    @property
    def busy(self) -> bool:
        """True while a cycle (or a guarded query) holds the lock."""
        return self._lock.locked()

    @property
    def last_outcome(self) -> CycleOutcome | None:
        return self._last_outcome

    @property
    def actuations(self) -> int:
        """Number of charge requests the vehicle accepted."""
        return self._actuations

    async def run_cycle(self, reading: HomeReading | None = None) -> CycleOutcome:
        """Run one check-decide-actuate pass.

        Args:
            reading: Optional ``(avg_amps, max_amps)`` home consumption to record

        Returns:
            How the cycle ended; SKIPPED if another cycle was in progress
        """
        # No await between the check and the acquire, so this cannot race
        if self._lock.locked():
            _LOGGER.info("Car handler is currently locked, skipping this check.")
            return CycleOutcome(status=CycleStatus.SKIPPED)

        async with self._lock:
            try:
                outcome = await self._cycle(reading)
            except RemoteApiError as e:
                _LOGGER.error(f"Car check failure: {e}")
                outcome = CycleOutcome(
                    status=CycleStatus.ERROR,
                    cache_age=self.cache.age,
                    error=str(e),
                )

        self._last_outcome = outcome
        _LOGGER.debug(f"Cycle outcome: {outcome.to_dict()}")
        return outcome

    async def _cycle(self, reading: HomeReading | None) -> CycleOutcome:
        distance = await self.cache.distance_to(self.config.location)
        if distance >= NEARBY_RADIUS_KM:
            _LOGGER.info(f"Car is nearby: FALSE ({distance:.2f} km from charger)")
            return CycleOutcome(
                status=CycleStatus.AWAY,
                distance_km=distance,
                cache_age=self.cache.age,
            )
        _LOGGER.info("Car is nearby: TRUE")

        charging = await self.cache.is_charging()
        _LOGGER.info(f"Is car charging? {charging}")
        if not charging:
            return CycleOutcome(
                status=CycleStatus.NOT_CHARGING,
                distance_km=distance,
                cache_age=self.cache.age,
            )

        if reading is not None:
            # A failed read abandons the cycle before anything is recorded
            state = await self.cache.get_state()
            self._record(*reading, car_amps=state.current_amps)

        if not len(self.window):
            _LOGGER.info("No home consumption recorded yet, nothing to decide on")
            return CycleOutcome(
                status=CycleStatus.NO_SAMPLES,
                distance_km=distance,
                cache_age=self.cache.age,
            )

        decision = self.engine.decide(
            home_budget_amps=self.config.home_budget_amps,
            vehicle_cap_amps=self.config.vehicle_cap_amps,
            home_load_excluding_vehicle=self.window.load_excluding_vehicle(),
            last_requested_amps=self.cache.last_requested_amps,
            seconds_since_last_request=self.cache.seconds_since_last_request,
        )
        elapsed = self.cache.seconds_since_last_request

        if decision.action == ThrottleAction.NO_CHANGE:
            _LOGGER.info(
                f"Skipping request car charge to {decision.amps}A, equal to last request "
                f"{elapsed:.0f} seconds ago."
            )
        elif decision.action == ThrottleAction.THROTTLED_INCREASE:
            _LOGGER.info(
                f"Skipping request car charge to {decision.amps}A. We requested "
                f"{decision.previous_amps}A {elapsed:.0f} seconds ago."
            )
        else:
            _LOGGER.info(
                f"Requesting car charge to {decision.amps}A (was {decision.previous_amps}A)"
            )
            await self.cache.request_charge_amps(decision.amps)
            self.cache.note_request(decision.amps)
            self._actuations += 1

        return CycleOutcome(
            status=CycleStatus.DECIDED,
            decision=decision,
            distance_km=distance,
            cache_age=self.cache.age,
        )

    def _record(self, avg_amps: float, max_amps: float, car_amps: float) -> None:
        sample = self.window.record(avg_amps, max_amps, car_amps)
        _LOGGER.info(
            f"Retrieved current home consumption as: {sample.avg_amps} amps "
            f"(max={sample.max_amps}, car={sample.car_amps})"
        )

    async def record_home_sample(self, avg_amps: float, max_amps: float) -> bool:
        """Record home consumption outside a cycle.

        The vehicle draw is taken as 0A if its state cannot be read.

        Returns:
            False if a cycle held the lock and the sample was dropped
        """
        if self._lock.locked():
            _LOGGER.info("Car handler is currently locked, dropping home sample.")
            return False
        async with self._lock:
            car_amps = await self.cache.current_amps()
            self._record(avg_amps, max_amps, car_amps)
        return True

    async def is_nearby(self) -> bool:
        """Whether the vehicle is at the charger.

        Raises:
            ControllerBusyError: If a cycle is in progress
            RemoteApiError: If the state had to be refreshed and that failed
        """
        if self._lock.locked():
            raise ControllerBusyError("A charge cycle is in progress")
        async with self._lock:
            return await self.cache.is_nearby(self.config.location)

    async def is_charging(self) -> bool:
        """Whether the vehicle is charging.

        Raises:
            ControllerBusyError: If a cycle is in progress
            RemoteApiError: If the state had to be refreshed and that failed
        """
        if self._lock.locked():
            raise ControllerBusyError("A charge cycle is in progress")
        async with self._lock:
            return await self.cache.is_charging()

    def get_status(self) -> dict[str, Any]:
        """Get controller status for logs and diagnostics."""
        entry = self.cache.entry
        return {
            "busy": self.busy,
            "charger_location": str(self.config.location),
            "home_budget_amps": self.config.home_budget_amps,
            "vehicle_cap_amps": self.config.vehicle_cap_amps,
            "vehicle": entry.snapshot.to_dict() if entry else None,
            "cache_age": round(self.cache.age, 1) if self.cache.age is not None else None,
            "last_requested_amps": self.cache.last_requested_amps,
            "home_samples": len(self.window),
            "actuations": self._actuations,
            "last_outcome": self._last_outcome.to_dict() if self._last_outcome else None,
        }
