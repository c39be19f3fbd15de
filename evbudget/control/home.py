"""Recent whole-home consumption.

The controller only sees the house as a whole (vehicle included), so the
load of "everything except the car" is estimated from the latest sample
minus what the car was drawing at the time.
"""
from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Iterator

from ..const import HOME_WINDOW_SIZE, METER_AGGREGATION_WINDOW
from ..models import HomeSample

_LOGGER = logging.getLogger(__name__)


class EmptyWindowError(LookupError):
    """No home sample has been recorded yet."""
    pass


def clamp_negative_load(amps: float) -> float:
    """Treat a negative rest-of-house load as zero.

    Meter and vehicle readings are taken by different devices, so
    ``avg - car`` can dip below zero from noise and rounding alone.
    """
    return max(0.0, amps)


class HomeConsumptionWindow:
    """The last ``HOME_WINDOW_SIZE`` home samples, oldest first."""

    def __init__(
        self,
        size: int = HOME_WINDOW_SIZE,
        clock: Callable[[], float] = time.time,
    ):
        self._samples: deque[HomeSample] = deque(maxlen=size)
        self._clock = clock

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[HomeSample]:
        return iter(self._samples)

    @property
    def latest(self) -> HomeSample | None:
        return self._samples[-1] if self._samples else None

    def samples(self) -> list[HomeSample]:
        return list(self._samples)

    def record(self, avg_amps: float, max_amps: float, car_amps: float) -> HomeSample:
        """Append a sample; the oldest one drops out past the bound."""
        sample = HomeSample(
            avg_amps=float(avg_amps),
            max_amps=float(max_amps),
            car_amps=float(car_amps),
            timestamp=self._clock(),
        )
        self._samples.append(sample)
        return sample

    def load_excluding_vehicle(self) -> float:
        """Estimated home load without the vehicle, from the newest sample.

        Raises:
            EmptyWindowError: If nothing has been recorded yet
        """
        if not self._samples:
            raise EmptyWindowError("No home consumption sample recorded yet")

        sample = self._samples[-1]
        raw = sample.avg_amps - sample.car_amps
        _LOGGER.info(
            f"Home amps without car: {raw:.2f} (avg home={sample.avg_amps:.2f}, car={sample.car_amps:.2f})"
        )
        return clamp_negative_load(raw)


class MeterReadingAggregator:
    """Average and peak of raw meter readings over a trailing window.

    Stands in for the ingestion side's "AVG/MAX over the last 30 seconds"
    query when readings arrive directly, e.g. piped from a meter.
    """

    def __init__(
        self,
        window: float = METER_AGGREGATION_WINDOW,
        clock: Callable[[], float] = time.time,
    ):
        self.window = window
        self._clock = clock
        self._readings: deque[tuple[float, float]] = deque()

    def __len__(self) -> int:
        return len(self._readings)

    def _prune(self, now: float) -> None:
        cutoff = now - self.window
        while self._readings and self._readings[0][0] <= cutoff:
            self._readings.popleft()

    def add(self, amps: float, timestamp: float | None = None) -> None:
        ts = self._clock() if timestamp is None else timestamp
        self._readings.append((ts, float(amps)))
        self._prune(self._clock())

    def summary(self) -> tuple[float, float] | None:
        """``(avg_amps, max_amps)`` of the readings in the window, or None."""
        self._prune(self._clock())
        if not self._readings:
            return None
        values = [amps for _, amps in self._readings]
        return sum(values) / len(values), max(values)
