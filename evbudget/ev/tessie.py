"""Tessie API backend.

Async client for a Tesla enrolled in Tessie (api.tessie.com). Tessie keeps
the OAuth tokens fresh and caches the car state itself, so reading state
does not wake a sleeping car. Only the two endpoints the controller needs
are implemented:

  - GET  /{vin}/state
  - POST /{vin}/command/set_charging_amps?amps=N&wait_for_completion=true
"""

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from ..const import API_TIMEOUT, EVBUDGET_USER_AGENT
from ..geo import GeoPoint
from ..models import VehicleSnapshot
from .base import RemoteApiError, RemoteAuthError

_LOGGER = logging.getLogger(__name__)

TESSIE_API_BASE_URL = "https://api.tessie.com"

# Tessie charging_state values
CHARGING_STATE_CHARGING = "Charging"
CHARGING_STATE_STARTING = "Starting"
CHARGING_STATE_PENDING = "Pending"
CHARGING_STATE_STOPPED = "Stopped"
CHARGING_STATE_COMPLETE = "Complete"
CHARGING_STATE_DISCONNECTED = "Disconnected"

# Starting/Pending still count as charging, but the readings are not settled
CHARGING_STATES_ACTIVE = (
    CHARGING_STATE_CHARGING,
    CHARGING_STATE_STARTING,
    CHARGING_STATE_PENDING,
)
CHARGING_STATES_TRANSITIONAL = (
    CHARGING_STATE_STARTING,
    CHARGING_STATE_PENDING,
)


def parse_tessie_state(data: dict) -> VehicleSnapshot:
    """Build a snapshot from a Tessie ``/state`` payload.

    Raises:
        RemoteApiError: If required fields are missing or malformed
    """
    try:
        charge_state = data["charge_state"]
        drive_state = data["drive_state"]
        charging_state = str(charge_state["charging_state"])
        current_amps = float(charge_state.get("charge_amps") or 0.0)
        last_requested = int(round(float(charge_state["charge_current_request"])))
        position = GeoPoint(
            lat=float(drive_state["latitude"]),
            lon=float(drive_state["longitude"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise RemoteApiError(f"Malformed Tessie state payload: {e!r}") from e

    return VehicleSnapshot(
        charging=charging_state in CHARGING_STATES_ACTIVE,
        transitioning=charging_state in CHARGING_STATES_TRANSITIONAL,
        current_amps=max(0.0, current_amps),
        last_requested_amps=max(0, last_requested),
        position=position,
        charging_state=charging_state,
    )


class TessieClient:
    """Async Tessie backend for one vehicle."""

    name = "Tessie"

    def __init__(
        self,
        vin: str,
        token: str,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: str = TESSIE_API_BASE_URL,
    ):
        """Initialize the Tessie client.

        Args:
            vin: Vehicle identification number
            token: Tessie API token
            session: Optional aiohttp session to reuse
            base_url: API root (overridable for testing)
        """
        self.vin = vin
        self.token = token
        self.base_url = base_url.rstrip("/")
        self._session = session
        self._own_session = False

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create an aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._own_session = True
        return self._session

    async def close(self) -> None:
        """Close the session if we own it."""
        if self._own_session and self._session and not self._session.closed:
            await self._session.close()

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict | None = None,
    ) -> Any:
        """Make an authenticated request to the Tessie API.

        Args:
            method: HTTP method (GET, POST)
            endpoint: Path below the vehicle, e.g. ``state``
            params: Optional query parameters

        Returns:
            Parsed JSON response

        Raises:
            RemoteApiError: On network, HTTP or decoding errors
        """
        url = f"{self.base_url}/{self.vin}/{endpoint}"
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "User-Agent": EVBUDGET_USER_AGENT,
        }
        session = await self._get_session()

        try:
            async with session.request(
                method,
                url,
                headers=headers,
                params=params,
                timeout=aiohttp.ClientTimeout(total=API_TIMEOUT),
            ) as response:
                if response.status in (401, 403):
                    text = await response.text()
                    raise RemoteAuthError(f"Tessie rejected the API token (HTTP {response.status}): {text}")

                if response.status not in (200, 201):
                    text = await response.text()
                    raise RemoteApiError(f"Tessie API HTTP {response.status}: {text}")

                return await response.json(content_type=None)
        except RemoteApiError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RemoteApiError(f"Tessie request {method} {endpoint} failed: {e!r}") from e
        except ValueError as e:
            # JSON decoding
            raise RemoteApiError(f"Tessie returned invalid JSON for {endpoint}: {e}") from e

    async def get_state(self) -> VehicleSnapshot:
        """Fetch the vehicle state from Tessie's cache."""
        data = await self._request("GET", "state")
        if not isinstance(data, dict):
            raise RemoteApiError(f"Unexpected Tessie state payload type: {type(data).__name__}")

        snapshot = parse_tessie_state(data)
        _LOGGER.debug(f"Tessie state for {self.vin}: {snapshot.to_dict()}")
        return snapshot

    async def request_charge_amps(self, amps: int) -> None:
        """Set the charging current and wait for the car to confirm it."""
        result = await self._request(
            "POST",
            "command/set_charging_amps",
            params={"amps": int(amps), "wait_for_completion": "true"},
        )
        _LOGGER.info(f"Setting charging amps to {amps}A: {result}")

        if not isinstance(result, dict) or not result.get("result", False):
            raise RemoteApiError(f"Tessie did not accept set_charging_amps={amps}: {result}")
