"""Tesla Fleet API backend for EV charging control.

Talks to Tesla's Fleet API directly for deployments without a Tessie
subscription. Handles OAuth2 token refresh and the two vehicle endpoints the
controller needs:

  - GET  /api/1/vehicles/{id}/vehicle_data
  - POST /api/1/vehicles/{id}/command/set_charging_amps

Reference: https://developer.tesla.com/docs/fleet-api
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional

import aiohttp

from ..const import API_TIMEOUT, EVBUDGET_USER_AGENT
from ..geo import GeoPoint
from ..models import VehicleSnapshot
from .base import RemoteApiError, RemoteAuthError
from .tessie import CHARGING_STATES_ACTIVE, CHARGING_STATES_TRANSITIONAL

_LOGGER = logging.getLogger(__name__)

TESLA_TOKEN_URL = "https://fleet-auth.prd.vn.cloud.tesla.com/oauth2/v3/token"
TESLA_API_BASE = "https://fleet-api.prd.na.vn.cloud.tesla.com"  # North America region

# Refresh this long before the token actually expires
TOKEN_REFRESH_MARGIN = 300  # seconds


def parse_vehicle_data(data: Dict[str, Any]) -> VehicleSnapshot:
    """Build a snapshot from a Fleet API ``vehicle_data`` response.

    Raises:
        RemoteApiError: If required fields are missing or malformed
    """
    try:
        charge_state = data["charge_state"]
        drive_state = data["drive_state"]
        charging_state = str(charge_state["charging_state"])
        amps = charge_state.get("charge_amps")
        if amps is None:
            amps = charge_state.get("charger_actual_current")
        current_amps = float(amps or 0.0)
        last_requested = int(round(float(charge_state["charge_current_request"])))
        position = GeoPoint(
            lat=float(drive_state["latitude"]),
            lon=float(drive_state["longitude"]),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise RemoteApiError(f"Malformed vehicle_data payload: {e!r}") from e

    return VehicleSnapshot(
        charging=charging_state in CHARGING_STATES_ACTIVE,
        transitioning=charging_state in CHARGING_STATES_TRANSITIONAL,
        current_amps=max(0.0, current_amps),
        last_requested_amps=max(0, last_requested),
        position=position,
        charging_state=charging_state,
    )


class TeslaFleetClient:
    """
    Tesla Fleet API backend for one vehicle.

    Handles OAuth2 token refresh and vehicle commands.
    """

    name = "Tesla Fleet API"

    def __init__(
        self,
        vehicle_id: str,
        client_id: str,
        client_secret: str,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        token_expires_at: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
        base_url: str = TESLA_API_BASE,
    ):
        """
        Initialize the Tesla Fleet API client.

        Args:
            vehicle_id: Tesla vehicle ID
            client_id: Tesla Fleet API client ID
            client_secret: Tesla Fleet API client secret
            access_token: Existing access token (optional)
            refresh_token: Existing refresh token (optional)
            token_expires_at: Token expiry as a unix timestamp (optional)
            session: Optional aiohttp session to reuse
            base_url: API root (region specific)
        """
        self.vehicle_id = vehicle_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.token_expires_at = token_expires_at
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

    async def refresh_access_token(self) -> Dict[str, Any]:
        """
        Exchange the refresh token for a new access token.

        Returns:
            Raw token response; the client keeps the new tokens

        Raises:
            RemoteAuthError: If there is no refresh token or Tesla refuses it
        """
        if not self.refresh_token:
            raise RemoteAuthError("No refresh token available")

        data = {
            "grant_type": "refresh_token",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.refresh_token,
        }
        session = await self._get_session()

        try:
            async with session.post(
                TESLA_TOKEN_URL,
                data=data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=aiohttp.ClientTimeout(total=API_TIMEOUT),
            ) as response:
                if response.status != 200:
                    text = await response.text()
                    _LOGGER.error(f"Token refresh failed: {response.status} {text}")
                    raise RemoteAuthError(f"Token refresh failed: {text}")
                token_data = await response.json(content_type=None)
        except RemoteApiError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RemoteAuthError(f"Token refresh failed: {e!r}") from e

        self._update_tokens(token_data)
        return token_data

    def _update_tokens(self, token_data: Dict[str, Any]):
        """Store tokens from a token endpoint response."""
        self.access_token = token_data.get("access_token")
        self.refresh_token = token_data.get("refresh_token", self.refresh_token)
        expires_in = token_data.get("expires_in", 3600)
        self.token_expires_at = time.time() + expires_in

    async def _ensure_valid_token(self):
        """Refresh the access token when missing or about to expire."""
        if not self.access_token:
            if self.refresh_token:
                await self.refresh_access_token()
                return
            raise RemoteAuthError("No access token available")

        if self.token_expires_at and time.time() > self.token_expires_at - TOKEN_REFRESH_MARGIN:
            _LOGGER.info("Access token expiring soon, refreshing...")
            await self.refresh_access_token()

    async def _api_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        retry_on_401: bool = True,
    ) -> Dict[str, Any]:
        """
        Call a Fleet API endpoint with the current bearer token.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint (e.g., "/api/1/vehicles")
            data: Request body data (for POST)
            retry_on_401: Whether to refresh the token and retry on 401

        Returns:
            Decoded JSON body

        Raises:
            RemoteApiError: On network, HTTP or decoding errors
        """
        await self._ensure_valid_token()

        url = f"{self.base_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "User-Agent": EVBUDGET_USER_AGENT,
        }
        session = await self._get_session()

        try:
            async with session.request(
                method,
                url,
                headers=headers,
                json=data,
                timeout=aiohttp.ClientTimeout(total=API_TIMEOUT),
            ) as response:
                if response.status == 401 and retry_on_401:
                    # Token may have expired, try refreshing
                    _LOGGER.info("Got 401, attempting token refresh...")
                    await self.refresh_access_token()
                    return await self._api_request(method, endpoint, data, retry_on_401=False)

                if response.status not in (200, 201):
                    text = await response.text()
                    _LOGGER.error(f"API request failed: {response.status} {text}")
                    raise RemoteApiError(f"API request failed: HTTP {response.status} {text}")

                result = await response.json(content_type=None)
        except RemoteApiError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RemoteApiError(f"Fleet API request {method} {endpoint} failed: {e!r}") from e
        except ValueError as e:
            raise RemoteApiError(f"Fleet API returned invalid JSON for {endpoint}: {e}") from e

        if not isinstance(result, dict):
            raise RemoteApiError(f"Unexpected Fleet API payload type: {type(result).__name__}")
        return result

    async def get_state(self) -> VehicleSnapshot:
        """Get charge and drive state for the vehicle."""
        result = await self._api_request("GET", f"/api/1/vehicles/{self.vehicle_id}/vehicle_data")
        snapshot = parse_vehicle_data(result.get("response") or {})
        _LOGGER.debug(f"Fleet API state for {self.vehicle_id}: {snapshot.to_dict()}")
        return snapshot

    async def request_charge_amps(self, amps: int) -> None:
        """Set the charging amperage."""
        result = await self._api_request(
            "POST",
            f"/api/1/vehicles/{self.vehicle_id}/command/set_charging_amps",
            data={"charging_amps": int(amps)},
        )
        response = result.get("response") or {}
        _LOGGER.info(f"Setting charging amps to {amps}A: {response}")

        if not response.get("result", False):
            reason = response.get("reason") or "no reason given"
            raise RemoteApiError(f"Vehicle rejected set_charging_amps={amps}: {reason}")
