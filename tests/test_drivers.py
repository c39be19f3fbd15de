"""Tests for the presence scheduler and the telemetry driver."""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from evbudget.control.controller import ChargeBudgetController
from evbudget.control.drivers import (
    PresenceScheduler,
    PresenceState,
    TelemetryDriver,
    travel_time_seconds,
)
from evbudget.control.home import MeterReadingAggregator
from evbudget.models import CycleOutcome, CycleStatus


@pytest.fixture
def mock_controller():
    """Controller whose cycles always find the car charging at home."""
    controller = MagicMock()
    controller.run_cycle = AsyncMock(
        return_value=CycleOutcome(status=CycleStatus.DECIDED, distance_km=0.0, cache_age=0.0)
    )
    return controller


def test_travel_time():
    assert travel_time_seconds(150) == pytest.approx(3600)
    assert travel_time_seconds(0.5) == pytest.approx(12)
    assert travel_time_seconds(10, speed_kmh=60) == pytest.approx(600)


class TestDelayAfter:
    """Test the adaptive polling delay."""

    def test_present_polls_every_minute(self, mock_controller):
        scheduler = PresenceScheduler(mock_controller)
        outcome = CycleOutcome(status=CycleStatus.NOT_CHARGING, distance_km=0.02, cache_age=3)

        assert scheduler.delay_after(outcome) == 60
        assert scheduler.state == PresenceState.PRESENT

    def test_far_away_waits_for_travel_time(self, mock_controller):
        scheduler = PresenceScheduler(mock_controller)
        outcome = CycleOutcome(status=CycleStatus.AWAY, distance_km=100.0, cache_age=0.0)

        assert scheduler.delay_after(outcome) == pytest.approx(2400)
        assert scheduler.state == PresenceState.AWAY

    def test_close_by_waits_for_cache_expiry(self, mock_controller):
        scheduler = PresenceScheduler(mock_controller)
        # 0.2 km is under 5 s of driving, but the cached state is only 5 s old
        outcome = CycleOutcome(status=CycleStatus.AWAY, distance_km=0.2, cache_age=5.0)

        assert scheduler.delay_after(outcome) == pytest.approx(25)

    @pytest.mark.parametrize("status", [CycleStatus.SKIPPED, CycleStatus.ERROR])
    def test_retry_after_cache_ttl(self, mock_controller, status):
        scheduler = PresenceScheduler(mock_controller)
        scheduler.delay_after(CycleOutcome(status=CycleStatus.DECIDED, distance_km=0.0))

        assert scheduler.delay_after(CycleOutcome(status=status)) == 30
        # An inconclusive cycle does not change where we think the car is
        assert scheduler.state == PresenceState.PRESENT

    def test_state_transitions(self, mock_controller):
        scheduler = PresenceScheduler(mock_controller)
        assert scheduler.state == PresenceState.AWAY

        scheduler.delay_after(CycleOutcome(status=CycleStatus.DECIDED, distance_km=0.0))
        assert scheduler.state == PresenceState.PRESENT

        scheduler.delay_after(CycleOutcome(status=CycleStatus.AWAY, distance_km=3.0, cache_age=0.0))
        assert scheduler.state == PresenceState.AWAY


class TestPresenceScheduler:
    """Test the polling loop."""

    @pytest.mark.asyncio
    async def test_tick_reads_aggregator(self, mock_controller, clock):
        aggregator = MeterReadingAggregator(clock=clock)
        aggregator.add(20)
        aggregator.add(30)
        scheduler = PresenceScheduler(mock_controller, load_source=aggregator)

        delay = await scheduler.tick()

        mock_controller.run_cycle.assert_awaited_once_with((25.0, 30.0))
        assert delay == 60
        assert scheduler.next_delay == 60

    @pytest.mark.asyncio
    async def test_tick_with_sync_source(self, mock_controller):
        scheduler = PresenceScheduler(mock_controller, load_source=lambda: (12.0, 15.0))
        await scheduler.tick()
        mock_controller.run_cycle.assert_awaited_once_with((12.0, 15.0))

    @pytest.mark.asyncio
    async def test_tick_with_async_source(self, mock_controller):
        source = AsyncMock(return_value=(8.0, 9.0))
        scheduler = PresenceScheduler(mock_controller, load_source=source)
        await scheduler.tick()
        mock_controller.run_cycle.assert_awaited_once_with((8.0, 9.0))

    @pytest.mark.asyncio
    async def test_tick_without_source(self, mock_controller):
        scheduler = PresenceScheduler(mock_controller)
        await scheduler.tick()
        mock_controller.run_cycle.assert_awaited_once_with(None)

    @pytest.mark.asyncio
    async def test_start_and_stop(self, mock_controller):
        scheduler = PresenceScheduler(mock_controller)
        assert not scheduler.running

        assert await scheduler.start() is True
        assert scheduler.running
        # Starting twice does not spawn a second loop
        assert await scheduler.start() is True

        while not mock_controller.run_cycle.await_count:
            await asyncio.sleep(0)

        # The loop is sleeping 60 s; stop must not wait that long
        await asyncio.wait_for(scheduler.stop(), timeout=1)
        assert not scheduler.running
        assert mock_controller.run_cycle.await_count == 1

    @pytest.mark.asyncio
    async def test_loop_survives_unexpected_errors(self, mock_controller):
        mock_controller.run_cycle.side_effect = [
            RuntimeError("boom"),
            CycleOutcome(status=CycleStatus.DECIDED, distance_km=0.0),
        ]
        scheduler = PresenceScheduler(mock_controller, cache_ttl=0)

        await scheduler.start()
        while mock_controller.run_cycle.await_count < 2:
            await asyncio.sleep(0)
        await asyncio.wait_for(scheduler.stop(), timeout=1)

        assert mock_controller.run_cycle.await_count == 2

    @pytest.mark.asyncio
    async def test_stop_lets_running_cycle_finish(self, charger_config, vehicle, clock):
        controller = ChargeBudgetController(charger_config, vehicle, clock=clock)
        vehicle.gate = asyncio.Event()
        vehicle.entered = asyncio.Event()
        scheduler = PresenceScheduler(controller, load_source=lambda: (36.0, 38.0))

        await scheduler.start()
        await vehicle.entered.wait()

        stop_task = asyncio.create_task(scheduler.stop())
        for _ in range(5):
            await asyncio.sleep(0)
        assert not stop_task.done()

        vehicle.gate.set()
        await asyncio.wait_for(stop_task, timeout=1)

        # The cycle in flight still sent its decrease before the loop exited
        assert vehicle.requests == [9]
        assert not scheduler.running
        assert vehicle.state_calls == 1


class TestTelemetryDriver:
    """Test the event-driven driver."""

    @pytest.mark.asyncio
    async def test_ignores_telemetry_while_stopped(self, mock_controller):
        driver = TelemetryDriver(mock_controller)
        assert await driver.on_telemetry(20, 25) is None
        mock_controller.run_cycle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_runs_cycle_per_telemetry(self, mock_controller):
        driver = TelemetryDriver(mock_controller)
        await driver.start()
        assert driver.running

        outcome = await driver.on_telemetry(20, 25)

        assert outcome.status == CycleStatus.DECIDED
        mock_controller.run_cycle.assert_awaited_once_with((20, 25))

        await driver.stop()
        assert not driver.running

    @pytest.mark.asyncio
    async def test_meter_readings_are_aggregated(self, mock_controller, clock):
        driver = TelemetryDriver(mock_controller, MeterReadingAggregator(clock=clock))
        await driver.start()

        await driver.on_meter_reading(10)
        clock.advance(5)
        await driver.on_meter_reading(30)

        assert mock_controller.run_cycle.await_args_list[-1].args == ((20.0, 30.0),)
        assert mock_controller.run_cycle.await_count == 2
