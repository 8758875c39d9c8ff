"""BLE GATT transport implementation backed by bleak."""

from __future__ import annotations

import logging
from typing import Any

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.backends.service import BleakGATTService
from bleak.exc import BleakError

from cockpitble.core.errors import TransportConnectError, TransportError
from cockpitble.core.uuids import uuid_str
from cockpitble.transports.base import LinkLostCallback, NotificationCallback

LOGGER = logging.getLogger(__name__)


class BleakCharacteristic:
    def __init__(self, client: BleakClient, characteristic: BleakGATTCharacteristic) -> None:
        self._client = client
        self._characteristic = characteristic
        self.uuid = characteristic.uuid

    async def subscribe(self, callback: NotificationCallback) -> None:
        def _notify_handler(_: BleakGATTCharacteristic, data: bytearray) -> None:
            callback(bytes(data))

        try:
            await self._client.start_notify(self._characteristic, _notify_handler)
        except (BleakError, OSError) as exc:
            raise TransportConnectError(f"Could not enable notifications on {self.uuid}: {exc}") from exc

    async def unsubscribe(self) -> None:
        try:
            await self._client.stop_notify(self._characteristic)
        except (BleakError, OSError) as exc:
            raise TransportError(f"Could not disable notifications on {self.uuid}: {exc}") from exc


class BleakService:
    def __init__(self, client: BleakClient, service: BleakGATTService) -> None:
        self._client = client
        self._service = service
        self.uuid = service.uuid

    def get_characteristic(self, uuid: str) -> BleakCharacteristic | None:
        characteristic = self._service.get_characteristic(uuid_str(uuid))
        if characteristic is None:
            return None
        return BleakCharacteristic(self._client, characteristic)


class BleakSession:
    def __init__(self, client: BleakClient) -> None:
        self._client = client

    @property
    def is_connected(self) -> bool:
        return self._client.is_connected

    async def get_primary_service(self, uuid: str) -> BleakService | None:
        service = self._client.services.get_service(uuid_str(uuid))
        if service is None:
            return None
        return BleakService(self._client, service)

    async def disconnect(self) -> None:
        try:
            await self._client.disconnect()
        except (BleakError, OSError) as exc:
            raise TransportError(f"BLE disconnect failed: {exc}") from exc


class BleakPeripheral:
    def __init__(self, device: BLEDevice, *, connect_timeout_s: float = 10.0) -> None:
        self._device = device
        self._connect_timeout_s = connect_timeout_s
        self.address = device.address
        self.name = device.name

    async def connect_gatt(self, on_link_lost: LinkLostCallback) -> BleakSession:
        def _disconnected(_: BleakClient) -> None:
            on_link_lost()

        client = BleakClient(
            self._device,
            disconnected_callback=_disconnected,
            timeout=self._connect_timeout_s,
        )
        try:
            await client.connect()
        except TimeoutError as exc:
            raise TransportConnectError(f"BLE connect timed out for {self.address}") from exc
        except (BleakError, OSError) as exc:
            raise TransportConnectError(f"BLE connect failed for {self.address}: {exc}") from exc

        if not client.is_connected:
            raise TransportConnectError(f"BLE connect failed for {self.address}")
        return BleakSession(client)


class BleakBackend:
    """Discovery through :class:`bleak.BleakScanner`."""

    def __init__(self, *, connect_timeout_s: float = 10.0, **scanner_kwargs: Any) -> None:
        self._connect_timeout_s = connect_timeout_s
        self._scanner_kwargs = scanner_kwargs

    async def request_device(self, service_uuid: str, timeout_s: float) -> BleakPeripheral | None:
        wanted = uuid_str(service_uuid)

        def _advertises(_: BLEDevice, adv: AdvertisementData) -> bool:
            return wanted in (u.lower() for u in adv.service_uuids)

        try:
            device = await BleakScanner.find_device_by_filter(
                _advertises,
                timeout=timeout_s,
                service_uuids=[wanted],
                **self._scanner_kwargs,
            )
        except (BleakError, OSError) as exc:
            raise TransportConnectError(f"BLE scan for service {wanted} failed: {exc}") from exc

        if device is None:
            return None
        LOGGER.debug("Discovered %s (%s) advertising %s", device.address, device.name, wanted)
        return BleakPeripheral(device, connect_timeout_s=self._connect_timeout_s)

    async def find_device_by_address(self, address: str, timeout_s: float) -> BleakPeripheral | None:
        try:
            device = await BleakScanner.find_device_by_address(
                address,
                timeout=timeout_s,
                **self._scanner_kwargs,
            )
        except (BleakError, OSError) as exc:
            raise TransportConnectError(f"BLE lookup of {address} failed: {exc}") from exc

        if device is None:
            return None
        return BleakPeripheral(device, connect_timeout_s=self._connect_timeout_s)
