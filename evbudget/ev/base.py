"""Capability interface for remote vehicle-control backends.

Every vendor backend exposes the same two operations used by the
controller: fetching a :class:`VehicleSnapshot` and requesting a charging
current. Backends are selected at construction time (see
:func:`evbudget.ev.get_vehicle_backend`) and handed to the cache; nothing in
the control loop knows which vendor it talks to.
"""
from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from ..models import VehicleSnapshot

_LOGGER = logging.getLogger(__name__)


class RemoteApiError(Exception):
    """Base exception for remote vehicle API errors.

    Covers network failures, non-success HTTP status, malformed payloads and
    rejected commands.
    """
    pass


class RemoteAuthError(RemoteApiError):
    """Authentication error with a remote vehicle API."""
    pass


@runtime_checkable
class VehicleBackend(Protocol):
    """Operations a vehicle backend must provide."""

    name: str

    async def get_state(self) -> VehicleSnapshot:
        """Fetch the current vehicle state.

        Raises:
            RemoteApiError: On network, HTTP or payload errors
        """
        ...

    async def request_charge_amps(self, amps: int) -> None:
        """Ask the vehicle to charge at ``amps``.

        Raises:
            RemoteApiError: On network, HTTP or payload errors, or when the
                vehicle rejects the command
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        ...
