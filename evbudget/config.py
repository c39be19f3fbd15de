# evbudget/config.py
"""Settings loaded from the environment.

Values come from process environment variables, with a ``.env`` file next to
the project (or the one given explicitly) filling in anything not already
set. Invalid or missing values raise :class:`ConfigurationError`; the
controller is never built from a partial configuration.
"""
import logging
import math
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .const import (
    CONF_CHARGER_LOCATION,
    CONF_CONTROL_MODE,
    CONF_HOME_BUDGET_AMPS,
    CONF_LOG_LEVEL,
    CONF_TESLA_ACCESS_TOKEN,
    CONF_TESLA_CLIENT_ID,
    CONF_TESLA_CLIENT_SECRET,
    CONF_TESLA_REFRESH_TOKEN,
    CONF_TESLA_VEHICLE_ID,
    CONF_TESSIE_API_TOKEN,
    CONF_TESSIE_VIN,
    CONF_VEHICLE_BACKEND,
    CONF_VEHICLE_CAP_AMPS,
    CONTROL_MODE_SCHEDULER,
    CONTROL_MODES,
    VEHICLE_BACKEND_TESSIE,
    VEHICLE_BACKENDS,
)
from .exceptions import ConfigurationError
from .geo import GeoPoint
from .models import ChargerConfig

_LOGGER = logging.getLogger(__name__)

basedir = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))


def load_env_file(env_file: Optional[str] = None) -> bool:
    """Load a .env file without overriding variables that are already set."""
    path = env_file or os.path.join(basedir, '.env')
    if env_file and not os.path.exists(env_file):
        raise ConfigurationError(f"Env file not found: {env_file}")
    return load_dotenv(path, override=False)


def _required(environ: Mapping[str, str], key: str) -> str:
    value = (environ.get(key) or '').strip()
    if not value:
        raise ConfigurationError(f"Missing required setting {key}")
    return value


def _optional(environ: Mapping[str, str], key: str) -> Optional[str]:
    value = (environ.get(key) or '').strip()
    return value or None


def _parse_float(key: str, value: str) -> float:
    try:
        result = float(value)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {value!r}") from None
    if not math.isfinite(result):
        raise ConfigurationError(f"{key} must be finite, got {value!r}")
    return result


def _parse_int(key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from None


@dataclass(frozen=True)
class Settings:
    charger: ChargerConfig
    vehicle_backend: str = VEHICLE_BACKEND_TESSIE
    control_mode: str = CONTROL_MODE_SCHEDULER
    log_level: str = 'INFO'

    # Tessie
    tessie_vin: Optional[str] = None
    tessie_api_token: Optional[str] = None

    # Tesla Fleet API
    tesla_vehicle_id: Optional[str] = None
    tesla_client_id: Optional[str] = None
    tesla_client_secret: Optional[str] = None
    tesla_access_token: Optional[str] = None
    tesla_refresh_token: Optional[str] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """Build settings from ``environ`` (``os.environ`` by default).

        Raises:
            ConfigurationError: On missing or invalid values
        """
        if environ is None:
            environ = os.environ

        location_str = _required(environ, CONF_CHARGER_LOCATION)
        try:
            location = GeoPoint.parse(location_str)
        except ValueError as e:
            raise ConfigurationError(f"Invalid {CONF_CHARGER_LOCATION}: {e}") from e

        charger = ChargerConfig(
            location=location,
            home_budget_amps=_parse_float(CONF_HOME_BUDGET_AMPS, _required(environ, CONF_HOME_BUDGET_AMPS)),
            vehicle_cap_amps=_parse_int(CONF_VEHICLE_CAP_AMPS, _required(environ, CONF_VEHICLE_CAP_AMPS)),
        )

        backend = (_optional(environ, CONF_VEHICLE_BACKEND) or VEHICLE_BACKEND_TESSIE).lower()
        if backend not in VEHICLE_BACKENDS:
            raise ConfigurationError(
                f"Unknown {CONF_VEHICLE_BACKEND} {backend!r} (choose from: {', '.join(VEHICLE_BACKENDS)})"
            )

        mode = (_optional(environ, CONF_CONTROL_MODE) or CONTROL_MODE_SCHEDULER).lower()
        if mode not in CONTROL_MODES:
            raise ConfigurationError(
                f"Unknown {CONF_CONTROL_MODE} {mode!r} (choose from: {', '.join(CONTROL_MODES)})"
            )

        settings = cls(
            charger=charger,
            vehicle_backend=backend,
            control_mode=mode,
            log_level=(_optional(environ, CONF_LOG_LEVEL) or 'INFO').upper(),
            tessie_vin=_optional(environ, CONF_TESSIE_VIN),
            tessie_api_token=_optional(environ, CONF_TESSIE_API_TOKEN),
            tesla_vehicle_id=_optional(environ, CONF_TESLA_VEHICLE_ID),
            tesla_client_id=_optional(environ, CONF_TESLA_CLIENT_ID),
            tesla_client_secret=_optional(environ, CONF_TESLA_CLIENT_SECRET),
            tesla_access_token=_optional(environ, CONF_TESLA_ACCESS_TOKEN),
            tesla_refresh_token=_optional(environ, CONF_TESLA_REFRESH_TOKEN),
        )
        _LOGGER.info(
            f"Loaded settings: charger at {charger.location}, budget {charger.home_budget_amps}A, "
            f"vehicle cap {charger.vehicle_cap_amps}A, backend {backend}, mode {mode}"
        )
        return settings


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Load the .env file (if any) and build settings from the environment."""
    load_env_file(env_file)
    return Settings.from_env()
