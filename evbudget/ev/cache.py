"""TTL cache in front of a vehicle backend.

Remote vehicle APIs are slow, rate limited and may wake the car, so the
controller reads vehicle state through this cache. A snapshot is reused for
``STATE_CACHE_TTL`` seconds; after that, or after :meth:`invalidate`, the
next read goes to the backend.

The cache also keeps the controller's own record of the last current it
requested. If the vehicle reports a different requested current (someone
changed it from the app or another tool), the vehicle's value wins and the
request time is backdated so the next throttle decision is not held off.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from ..const import EXTERNAL_CHANGE_BACKDATE, NEARBY_RADIUS_KM, STATE_CACHE_TTL
from ..geo import GeoPoint
from ..models import VehicleSnapshot
from .base import RemoteApiError, VehicleBackend

_LOGGER = logging.getLogger(__name__)


@dataclass
class CachedVehicleState:
    """Last fetched snapshot plus local request bookkeeping."""
    snapshot: VehicleSnapshot
    fetched_at: float
    local_last_requested_amps: int = 0
    local_last_requested_at: float = 0.0


class VehicleStateCache:
    """Cache for one vehicle, owned by one controller."""

    def __init__(
        self,
        backend: VehicleBackend,
        ttl: float = STATE_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.ttl = ttl
        self._clock = clock
        self._entry: CachedVehicleState | None = None

    @property
    def entry(self) -> CachedVehicleState | None:
        return self._entry

    @property
    def age(self) -> float | None:
        """Seconds since the last successful fetch.

        None if never fetched or invalidated since.
        """
        if self._entry is None or self._entry.fetched_at <= 0:
            return None
        return self._clock() - self._entry.fetched_at

    @property
    def last_requested_amps(self) -> int:
        return self._entry.local_last_requested_amps if self._entry else 0

    @property
    def seconds_since_last_request(self) -> float:
        last_at = self._entry.local_last_requested_at if self._entry else 0.0
        return self._clock() - last_at

    def is_fresh(self) -> bool:
        age = self.age
        return age is not None and age < self.ttl

    async def get_state(self) -> VehicleSnapshot:
        """Return the cached snapshot, refreshing it when stale."""
        if self._entry is not None and self.is_fresh():
            _LOGGER.debug(f"EV: using cached state ({self.age:.1f}s old)")
            return self._entry.snapshot
        return await self.refresh()

    async def refresh(self) -> VehicleSnapshot:
        """Fetch state from the backend and replace the cached snapshot.

        Raises:
            RemoteApiError: Propagated from the backend; the cache is left as is
        """
        if self._entry is not None:
            last_amps = self._entry.local_last_requested_amps
            last_at = self._entry.local_last_requested_at
        else:
            last_amps, last_at = 0, 0.0

        snapshot = await self.backend.get_state()
        now = self._clock()
        _LOGGER.info(f"EV: Updated state cache {snapshot.to_dict()}")

        # Somebody outside this controller may have requested a different charge
        if snapshot.last_requested_amps != last_amps:
            _LOGGER.info(
                f"EV: External amps change: last requested {snapshot.last_requested_amps}A "
                f"(we had {last_amps}A)"
            )
            last_amps = snapshot.last_requested_amps
            last_at = now - EXTERNAL_CHANGE_BACKDATE

        self._entry = CachedVehicleState(
            snapshot=snapshot,
            fetched_at=now,
            local_last_requested_amps=last_amps,
            local_last_requested_at=last_at,
        )
        return snapshot

    def invalidate(self) -> None:
        """Force the next :meth:`get_state` to hit the backend."""
        if self._entry is not None:
            self._entry.fetched_at = 0.0

    async def distance_to(self, charger: GeoPoint) -> float:
        """Distance from the vehicle to ``charger`` in kilometers."""
        state = await self.get_state()
        return state.position.distance_to(charger)

    async def is_nearby(self, charger: GeoPoint) -> bool:
        return await self.distance_to(charger) < NEARBY_RADIUS_KM

    async def is_charging(self) -> bool:
        state = await self.get_state()
        if state.transitioning:
            # Ramping readings are not representative, re-read next time
            self.invalidate()
        return state.charging

    async def current_amps(self) -> float:
        """Current drawn by the vehicle, 0.0 when the state is unavailable."""
        try:
            state = await self.get_state()
        except RemoteApiError as e:
            _LOGGER.warning(f"EV: could not read vehicle current, assuming 0A: {e}")
            return 0.0
        return state.current_amps

    def note_request(self, amps: int) -> None:
        """Record a charge request the vehicle accepted."""
        if self._entry is None:
            return
        self._entry.local_last_requested_amps = amps
        self._entry.local_last_requested_at = self._clock()

    async def request_charge_amps(self, amps: int) -> None:
        await self.backend.request_charge_amps(amps)
