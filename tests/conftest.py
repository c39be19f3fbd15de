"""Shared test fixtures: a controllable clock and an in-memory vehicle."""
from __future__ import annotations

import asyncio

import pytest

from evbudget.ev.base import RemoteApiError
from evbudget.geo import GeoPoint
from evbudget.models import ChargerConfig, VehicleSnapshot

CHARGER = GeoPoint(lat=51.501, lon=-0.142)
FAR_AWAY = GeoPoint(lat=51.601, lon=-0.142)  # ~11 km north


class FakeClock:
    """Manually advanced clock, seconds since the epoch."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeVehicle:
    """In-memory backend that behaves like a car on the charger.

    Accepted charge requests update the reported requested and drawn current,
    the way a real car settles on the new value.
    """

    name = "Fake"

    def __init__(
        self,
        position: GeoPoint = CHARGER,
        charging_state: str = "Charging",
        current_amps: float = 16.0,
        last_requested_amps: int = 16,
    ):
        self.position = position
        self.charging_state = charging_state
        self.current_amps = current_amps
        self.last_requested_amps = last_requested_amps

        self.state_calls = 0
        self.requests: list[int] = []
        self.fail_get_state: Exception | None = None
        self.fail_after_calls: int | None = None  # raise fail_get_state only past this many reads
        self.fail_request: Exception | None = None
        self.gate: asyncio.Event | None = None  # blocks get_state until set
        self.entered: asyncio.Event | None = None
        self.closed = False

    async def get_state(self) -> VehicleSnapshot:
        self.state_calls += 1
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_get_state is not None and (
            self.fail_after_calls is None or self.state_calls > self.fail_after_calls
        ):
            raise self.fail_get_state
        return snapshot(
            position=self.position,
            charging_state=self.charging_state,
            current_amps=self.current_amps,
            last_requested_amps=self.last_requested_amps,
        )

    async def request_charge_amps(self, amps: int) -> None:
        if self.fail_request is not None:
            raise self.fail_request
        self.requests.append(amps)
        self.last_requested_amps = amps
        self.current_amps = float(amps)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def vehicle() -> FakeVehicle:
    return FakeVehicle()


@pytest.fixture
def charger_config() -> ChargerConfig:
    return ChargerConfig(location=CHARGER, home_budget_amps=30.0, vehicle_cap_amps=16)


@pytest.fixture
def remote_error() -> RemoteApiError:
    return RemoteApiError("HTTP 500: upstream unavailable")


def snapshot(
    position: GeoPoint = CHARGER,
    charging_state: str = "Charging",
    current_amps: float = 16.0,
    last_requested_amps: int = 16,
) -> VehicleSnapshot:
    return VehicleSnapshot(
        charging=charging_state in ("Charging", "Starting", "Pending"),
        transitioning=charging_state in ("Starting", "Pending"),
        current_amps=current_amps,
        last_requested_amps=last_requested_amps,
        position=position,
        charging_state=charging_state,
    )
