"""Drivers that decide when the controller runs.

Two ways of triggering the same check-and-throttle cycle:

- :class:`PresenceScheduler` runs it on a timer. While the car is away it
  sleeps roughly as long as the car would need to drive home at a high
  speed, so a car 100 km away is not polled every minute. Once the car is at
  the charger it polls every ``PRESENT_POLL_INTERVAL`` seconds.
- :class:`TelemetryDriver` runs it whenever home telemetry arrives.

Either can be swapped for the other without touching the controller.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, Protocol, Union

from ..const import (
    ASSUMED_MAX_SPEED_KMH,
    PRESENT_POLL_INTERVAL,
    STATE_CACHE_TTL,
)
from ..models import CycleOutcome, CycleStatus
from .controller import ChargeBudgetController, HomeReading
from .home import MeterReadingAggregator

_LOGGER = logging.getLogger(__name__)

# Anything that yields the current (avg_amps, max_amps), sync or async
HomeLoadSource = Union[
    MeterReadingAggregator,
    Callable[[], Optional[HomeReading]],
    Callable[[], Awaitable[Optional[HomeReading]]],
]


class ControlDriver(Protocol):
    """Common interface of the scheduling strategies."""

    @property
    def running(self) -> bool:
        ...

    async def start(self) -> bool:
        ...

    async def stop(self) -> None:
        ...


class PresenceState(Enum):
    """Where the scheduler believes the vehicle is."""
    AWAY = "away"
    PRESENT = "present"


def travel_time_seconds(distance_km: float, speed_kmh: float = ASSUMED_MAX_SPEED_KMH) -> float:
    """Shortest plausible time to cover ``distance_km``."""
    return distance_km / speed_kmh * 3600


class PresenceScheduler:
    """Timer-driven driver with adaptive polling."""

    def __init__(
        self,
        controller: ChargeBudgetController,
        load_source: HomeLoadSource | None = None,
        present_interval: float = PRESENT_POLL_INTERVAL,
        cache_ttl: float = STATE_CACHE_TTL,
        max_speed_kmh: float = ASSUMED_MAX_SPEED_KMH,
    ):
        """Initialize the scheduler.

        Args:
            controller: Controller to drive
            load_source: Where home consumption comes from on each tick
            present_interval: Poll cadence while the car is at the charger
            cache_ttl: Vehicle cache lifetime, the shortest useful delay
            max_speed_kmh: Upper-bound speed used to estimate travel time
        """
        self.controller = controller
        self.load_source = load_source
        self.present_interval = present_interval
        self.cache_ttl = cache_ttl
        self.max_speed_kmh = max_speed_kmh

        self._state = PresenceState.AWAY
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._next_delay: float | None = None

    @property
    def state(self) -> PresenceState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def next_delay(self) -> float | None:
        """Delay chosen after the last tick."""
        return self._next_delay

    async def start(self) -> bool:
        """Start the polling loop."""
        if self.running:
            return True

        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        _LOGGER.info("Presence scheduler started")
        return True

    async def stop(self) -> None:
        """Stop the polling loop.

        Takes effect at the next wake point; a cycle already running is
        allowed to finish.
        """
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        _LOGGER.info("Presence scheduler stopped")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                delay = await self.tick()
            except Exception as e:
                # Keep polling; the controller already handles remote API errors
                _LOGGER.exception(f"Error in presence scheduler tick: {e}")
                delay = self.cache_ttl

            if await self._sleep(delay):
                break

    async def _sleep(self, delay: float) -> bool:
        """Wait ``delay`` seconds; True if a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _read_load(self) -> HomeReading | None:
        source = self.load_source
        if source is None:
            return None
        if isinstance(source, MeterReadingAggregator):
            return source.summary()
        result = source()
        if inspect.isawaitable(result):
            result = await result
        return result

    async def tick(self) -> float:
        """Run one cycle and work out how long to wait before the next."""
        reading = await self._read_load()
        outcome = await self.controller.run_cycle(reading)
        delay = self.delay_after(outcome)
        self._next_delay = delay
        _LOGGER.debug(f"Next presence check in {delay:.0f}s ({self._state.value})")
        return delay

    def delay_after(self, outcome: CycleOutcome) -> float:
        """Update the presence state from ``outcome`` and pick the next delay."""
        if outcome.status in (CycleStatus.SKIPPED, CycleStatus.ERROR):
            # Try again once the vehicle state would be refreshed anyway
            return self.cache_ttl

        if outcome.nearby:
            self._set_state(PresenceState.PRESENT)
            return self.present_interval

        self._set_state(PresenceState.AWAY)
        eta = travel_time_seconds(outcome.distance_km or 0.0, self.max_speed_kmh)
        # Never re-check before the cached state has expired
        floor = self.cache_ttl - (outcome.cache_age or 0.0)
        return max(eta, floor)

    def _set_state(self, state: PresenceState) -> None:
        if state != self._state:
            _LOGGER.info(f"Vehicle presence: {self._state.value} -> {state.value}")
            self._state = state


class TelemetryDriver:
    """Event-driven driver: one cycle per telemetry arrival."""

    def __init__(
        self,
        controller: ChargeBudgetController,
        aggregator: MeterReadingAggregator | None = None,
    ):
        self.controller = controller
        self.aggregator = aggregator or MeterReadingAggregator()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> bool:
        self._running = True
        _LOGGER.info("Telemetry driver started")
        return True

    async def stop(self) -> None:
        self._running = False
        _LOGGER.info("Telemetry driver stopped")

    async def on_telemetry(self, avg_amps: float, max_amps: float) -> CycleOutcome | None:
        """Home consumption arrived: run a cycle with it.

        Returns:
            The cycle outcome, or None while the driver is stopped
        """
        if not self._running:
            return None
        return await self.controller.run_cycle((avg_amps, max_amps))

    async def on_meter_reading(self, amps: float) -> CycleOutcome | None:
        """A raw meter reading arrived: aggregate it and run a cycle."""
        self.aggregator.add(amps)
        summary = self.aggregator.summary()
        if summary is None:
            return None
        return await self.on_telemetry(*summary)
