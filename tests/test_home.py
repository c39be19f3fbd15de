"""Tests for the home consumption window and meter aggregation."""
import pytest

from evbudget.control.home import (
    EmptyWindowError,
    HomeConsumptionWindow,
    MeterReadingAggregator,
    clamp_negative_load,
)


class TestHomeConsumptionWindow:
    """Test the bounded sample window."""

    def test_empty_window_raises(self):
        window = HomeConsumptionWindow()
        assert len(window) == 0
        assert window.latest is None
        with pytest.raises(EmptyWindowError):
            window.load_excluding_vehicle()

    def test_record_stamps_with_clock(self, clock):
        window = HomeConsumptionWindow(clock=clock)
        sample = window.record(25, 31, 16)
        assert sample.avg_amps == 25.0
        assert sample.max_amps == 31.0
        assert sample.car_amps == 16.0
        assert sample.timestamp == clock.now
        assert window.latest == sample

    def test_never_more_than_ten_samples(self):
        window = HomeConsumptionWindow()
        for i in range(15):
            window.record(i, i, 0)
        assert len(window) == 10
        # Oldest evicted first
        assert [s.avg_amps for s in window] == [float(i) for i in range(5, 15)]

    def test_load_uses_newest_sample(self):
        window = HomeConsumptionWindow()
        window.record(40, 45, 16)
        window.record(30, 35, 10)
        assert window.load_excluding_vehicle() == pytest.approx(20.0)

    def test_negative_load_is_clamped(self):
        window = HomeConsumptionWindow()
        window.record(10, 12, 16)
        assert window.load_excluding_vehicle() == 0.0

    def test_clamp_negative_load(self):
        assert clamp_negative_load(-3.2) == 0.0
        assert clamp_negative_load(0.0) == 0.0
        assert clamp_negative_load(4.5) == 4.5


class TestMeterReadingAggregator:
    """Test the trailing 30 s average/peak."""

    def test_empty_summary(self, clock):
        aggregator = MeterReadingAggregator(clock=clock)
        assert aggregator.summary() is None

    def test_average_and_peak(self, clock):
        aggregator = MeterReadingAggregator(clock=clock)
        for amps in (10, 20, 30):
            aggregator.add(amps)
            clock.advance(5)
        avg, peak = aggregator.summary()
        assert avg == pytest.approx(20.0)
        assert peak == 30.0

    def test_old_readings_are_pruned(self, clock):
        aggregator = MeterReadingAggregator(clock=clock)
        aggregator.add(50)
        clock.advance(20)
        aggregator.add(10)
        clock.advance(10)
        # The first reading is now exactly 30 s old
        assert aggregator.summary() == (10.0, 10.0)
        assert len(aggregator) == 1

        clock.advance(31)
        assert aggregator.summary() is None

    def test_explicit_timestamps(self, clock):
        aggregator = MeterReadingAggregator(clock=clock)
        aggregator.add(99, timestamp=clock.now - 60)
        aggregator.add(12, timestamp=clock.now - 1)
        assert aggregator.summary() == (12.0, 12.0)
