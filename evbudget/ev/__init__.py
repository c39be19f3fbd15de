"""Vehicle backends.

Provides a factory function to get the backend for the configured vendor.
Only Tessie and the Tesla Fleet API are implemented; another vendor needs a
class with ``get_state``, ``request_charge_amps`` and ``close`` (see
:class:`evbudget.ev.base.VehicleBackend`) and an entry here.
"""
import logging
from typing import TYPE_CHECKING

from ..const import (
    VEHICLE_BACKEND_TESLA_FLEET,
    VEHICLE_BACKEND_TESSIE,
    VEHICLE_BACKENDS,
)
from ..exceptions import ConfigurationError
from .base import RemoteApiError, RemoteAuthError, VehicleBackend
from .cache import CachedVehicleState, VehicleStateCache

if TYPE_CHECKING:
    from ..config import Settings

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "CachedVehicleState",
    "RemoteApiError",
    "RemoteAuthError",
    "VehicleBackend",
    "VehicleStateCache",
    "get_vehicle_backend",
]


def get_vehicle_backend(settings: "Settings", session=None) -> VehicleBackend:
    """Factory function to build the configured vehicle backend.

    Args:
        settings: Loaded settings
        session: Optional aiohttp session shared with the backend

    Returns:
        A backend instance

    Raises:
        ConfigurationError: If the backend is unknown or its credentials are missing
    """
    backend = (settings.vehicle_backend or "").lower()

    if backend == VEHICLE_BACKEND_TESSIE:
        if not settings.tessie_vin or not settings.tessie_api_token:
            raise ConfigurationError("Tessie backend needs TESSIE_VIN and TESSIE_API_TOKEN")
        from .tessie import TessieClient
        return TessieClient(
            vin=settings.tessie_vin,
            token=settings.tessie_api_token,
            session=session,
        )

    if backend == VEHICLE_BACKEND_TESLA_FLEET:
        if not settings.tesla_vehicle_id or not settings.tesla_client_id:
            raise ConfigurationError("Tesla Fleet backend needs TESLA_VEHICLE_ID and TESLA_CLIENT_ID")
        if not settings.tesla_access_token and not settings.tesla_refresh_token:
            raise ConfigurationError(
                "Tesla Fleet backend needs TESLA_ACCESS_TOKEN or TESLA_REFRESH_TOKEN"
            )
        from .tesla_fleet import TeslaFleetClient
        return TeslaFleetClient(
            vehicle_id=settings.tesla_vehicle_id,
            client_id=settings.tesla_client_id,
            client_secret=settings.tesla_client_secret or "",
            access_token=settings.tesla_access_token,
            refresh_token=settings.tesla_refresh_token,
            session=session,
        )

    _LOGGER.error(f"Unsupported vehicle backend: {settings.vehicle_backend}")
    raise ConfigurationError(
        f"Unsupported vehicle backend {settings.vehicle_backend!r} "
        f"(choose from: {', '.join(VEHICLE_BACKENDS)})"
    )
