#!/usr/bin/env python3
"""
Standalone EV Charge-Budget Controller

Keeps a home-charging vehicle's current under the whole-home budget. Home
consumption is read from stdin, one instantaneous amp reading per line, so
any meter bridge can feed it with a pipe.

Usage:
    python charge_controller.py [--mode scheduler|telemetry] [--env-file PATH]
                                [--log-level LEVEL]

Environment variables (or a .env file):
    CHARGER_LOCATION: "lat,lon" of the charger
    HOME_BUDGET_AMPS: Whole-home current ceiling
    VEHICLE_CAP_AMPS: Maximum current the vehicle may draw
    VEHICLE_BACKEND: tessie (default) or tesla_fleet
    TESSIE_VIN / TESSIE_API_TOKEN: Tessie credentials
    TESLA_*: Tesla Fleet API credentials
    CONTROL_MODE: scheduler (default) or telemetry
    LOG_LEVEL: Logging level (default: INFO)

Example:
    # Feed readings from a meter bridge
    meter-bridge --amps | python charge_controller.py --mode telemetry
"""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from evbudget.config import Settings, load_env_file
from evbudget.const import (
    CONF_LOG_LEVEL,
    CONTROL_MODE_SCHEDULER,
    CONTROL_MODE_TELEMETRY,
    CONTROL_MODES,
)
from evbudget.control import (
    ChargeBudgetController,
    MeterReadingAggregator,
    PresenceScheduler,
    TelemetryDriver,
)
from evbudget.ev import get_vehicle_backend
from evbudget.exceptions import ConfigurationError

logger = logging.getLogger('charge_controller')

EXIT_RUNTIME_ERROR = 1
EXIT_CONFIG_ERROR = 2


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ],
        force=True,
    )


def parse_reading(line: str) -> Optional[float]:
    """Parse one stdin line into amps, None if it is blank or not a number."""
    text = line.strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        logger.warning(f"Ignoring invalid meter reading: {text!r}")
        return None


class ChargeControllerService:
    """Wires settings, backend, controller and driver together."""

    def __init__(self, settings: Settings, mode: str):
        self.settings = settings
        self.mode = mode
        self.aggregator = MeterReadingAggregator()
        self.backend = get_vehicle_backend(settings)
        self.controller = ChargeBudgetController(settings.charger, self.backend)

        if mode == CONTROL_MODE_TELEMETRY:
            self.driver = TelemetryDriver(self.controller, self.aggregator)
        else:
            self.driver = PresenceScheduler(self.controller, load_source=self.aggregator)

        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        """Request a cooperative shutdown."""
        self._stop_event.set()

    async def handle_line(self, line: str) -> None:
        amps = parse_reading(line)
        if amps is None:
            return
        if isinstance(self.driver, TelemetryDriver):
            await self.driver.on_meter_reading(amps)
        else:
            self.aggregator.add(amps)

    async def _read_stdin(self) -> None:
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        await loop.connect_read_pipe(lambda: protocol, sys.stdin)

        while not self._stop_event.is_set():
            line = await reader.readline()
            if not line:
                logger.info("Meter input closed")
                break
            await self.handle_line(line.decode(errors='replace'))

    async def run(self) -> None:
        logger.info(
            f"Starting charge controller ({self.mode} mode, backend {self.backend.name})"
        )
        await self.driver.start()
        reader_task = asyncio.create_task(self._read_stdin())
        stop_task = asyncio.create_task(self._stop_event.wait())

        try:
            await asyncio.wait({reader_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            if reader_task.done():
                error = reader_task.exception()
                if error is not None:
                    logger.error(f"Meter input failed: {error!r}", exc_info=error)
                    raise error
                if self.mode == CONTROL_MODE_SCHEDULER:
                    # Input ended but the scheduler can keep going on its last readings
                    await stop_task
        finally:
            for task in (reader_task, stop_task):
                if not task.done():
                    task.cancel()
            await self.driver.stop()
            await self.backend.close()
            logger.info(f"Charge controller stopped: {self.controller.get_status()}")


async def run_service(settings: Settings, mode: str) -> None:
    service = ChargeControllerService(settings, mode)
    loop = asyncio.get_running_loop()

    def signal_handler(sig):
        logger.info(f"Received signal {sig.name}, shutting down...")
        service.stop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler, sig)

    await service.run()


def main():
    """Main entry point for the standalone charge controller."""
    parser = argparse.ArgumentParser(
        description='EV charge-budget controller',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Poll the vehicle on a timer, readings piped in
    meter-bridge | python charge_controller.py

    # Run a cycle on every reading
    meter-bridge | python charge_controller.py --mode telemetry

    # Use a specific env file
    python charge_controller.py --env-file /etc/evbudget.env
        """
    )

    parser.add_argument('--mode', choices=CONTROL_MODES, default=None,
                       help='Control driver (default: CONTROL_MODE or scheduler)')
    parser.add_argument('--env-file', default=None,
                       help='Path to a .env file (default: .env next to the project)')
    parser.add_argument('--log-level', default=None,
                       help='Logging level (default: LOG_LEVEL or INFO)')

    args = parser.parse_args()

    setup_logging(args.log_level or 'INFO')

    try:
        load_env_file(args.env_file)
        if not args.log_level and os.environ.get(CONF_LOG_LEVEL):
            setup_logging(os.environ[CONF_LOG_LEVEL])
        settings = Settings.from_env()
        mode = args.mode or settings.control_mode
        # Fail on backend credentials before anything starts
        get_vehicle_backend(settings)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(EXIT_CONFIG_ERROR)

    try:
        asyncio.run(run_service(settings, mode))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
    except Exception as e:
        logger.error(f"Charge controller failed: {e}")
        sys.exit(EXIT_RUNTIME_ERROR)


if __name__ == '__main__':
    main()
