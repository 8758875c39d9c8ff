"""Transport interfaces for the platform BLE stack."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

NotificationCallback = Callable[[bytes], None]
LinkLostCallback = Callable[[], None]


class GattCharacteristic(Protocol):
    uuid: str

    async def subscribe(self, callback: NotificationCallback) -> None:
        """Register ``callback`` and enable notification delivery."""

    async def unsubscribe(self) -> None:
        """Disable notification delivery."""


class GattService(Protocol):
    uuid: str

    def get_characteristic(self, uuid: str) -> GattCharacteristic | None:
        """Return the characteristic with ``uuid`` or None."""


class GattSession(Protocol):
    @property
    def is_connected(self) -> bool: ...

    async def get_primary_service(self, uuid: str) -> GattService | None:
        """Return the primary service with ``uuid`` or None."""

    async def disconnect(self) -> None:
        """Release the connection."""


class Peripheral(Protocol):
    address: str
    name: str | None

    async def connect_gatt(self, on_link_lost: LinkLostCallback) -> GattSession:
        """Open a GATT connection; ``on_link_lost`` fires if the link drops."""


class BleBackend(Protocol):
    async def request_device(self, service_uuid: str, timeout_s: float) -> Peripheral | None:
        """Discover one peripheral advertising ``service_uuid``."""

    async def find_device_by_address(self, address: str, timeout_s: float) -> Peripheral | None:
        """Find a peripheral by its platform address without a picker."""
