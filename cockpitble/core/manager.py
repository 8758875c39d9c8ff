"""Registry of connected BLE devices, scan sequencing and event aggregation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable, Mapping
from typing import Any, TypeVar

from cockpitble.core.device import BleDevice
from cockpitble.core.errors import (
    CockpitBleError,
    DuplicateDeviceError,
    ExcludedDeviceError,
    ScanError,
    UnknownDefinitionError,
)
from cockpitble.core.events import DeviceChannel, EventHook, InputEvent, PendingRemovals
from cockpitble.core.model import DetectedPeripheral, DeviceDefinition
from cockpitble.core.scheduler import CadenceCounter, Ticker
from cockpitble.core.settings import ManagerSettings
from cockpitble.transports.base import BleBackend, Peripheral

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

ExclusionSource = Iterable[str] | Callable[[], Iterable[str]]
TickerFactory = Callable[[float, Callable[[], None]], Ticker]


def normalize_address(address: str) -> str:
    return address.strip().upper()


class BleDeviceManager:
    """Discovers, connects and tracks BLE input devices.

    Structural removals from the active registry only happen in :meth:`tick`;
    device disconnect signals are queued and applied on the next tick.
    Scans run one at a time and walk the definitions in registration order.
    """

    def __init__(
        self,
        definitions: Mapping[str, DeviceDefinition],
        backend: BleBackend,
        *,
        excluded_addresses: ExclusionSource = (),
        settings: ManagerSettings | None = None,
        ticker_factory: TickerFactory | None = None,
    ) -> None:
        self.definitions: dict[str, DeviceDefinition] = dict(definitions)
        self.settings = settings or ManagerSettings()
        self._backend = backend
        self._excluded_source = excluded_addresses

        self._devices: list[BleDevice] = []
        self._excluded: list[DetectedPeripheral] = []
        self._pending_removal = PendingRemovals()

        self.input_event: EventHook[InputEvent] = EventHook("input_event")
        self.connected: EventHook[BleDeviceManager] = EventHook("connected")
        self.completed: EventHook[BleDeviceManager] = EventHook("completed")
        self.disconnected: EventHook[BleDevice] = EventHook("disconnected")

        factory = ticker_factory or Ticker
        self._ticker = factory(self.settings.tick_interval_s, self.tick)
        self._presence_counter = CadenceCounter(self.settings.presence_check_ticks)

        self._scan_in_progress = False
        self._scan_task: asyncio.Task | None = None
        self._release_tasks: set[asyncio.Task] = set()
        self._shut_down = False

    @property
    def scanning(self) -> bool:
        return self._scan_in_progress

    @property
    def is_shut_down(self) -> bool:
        return self._shut_down

    # Tick loop

    def startup(self) -> None:
        if self._shut_down:
            raise CockpitBleError("Device manager has been shut down")
        self._ticker.start()

    def tick(self) -> None:
        for device in self._pending_removal.drain():
            if device in self._devices:
                self._devices.remove(device)
                LOGGER.warning("Device disconnected: %s (%s)", device.name, device.address)
                self._release_later(device)
                self.disconnected.emit(device)

        if self._presence_counter.step():
            self.check_presence()

    def _release_later(self, device: BleDevice) -> None:
        # A lost link still holds its session; release it off the tick.
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(device.disconnect())
        self._release_tasks.add(task)
        task.add_done_callback(self._release_tasks.discard)

    def check_presence(self) -> None:
        """Queue active devices whose link is gone but never signalled."""
        for device in list(self._devices):
            if not device.is_connected:
                LOGGER.info("Device %s (%s) no longer present", device.name, device.address)
                self._pending_removal.put(device)

    # Scanning

    def _excluded_addresses(self) -> set[str]:
        source = self._excluded_source
        addresses = source() if callable(source) else source
        return {normalize_address(a) for a in addresses}

    def _find_active(self, address: str) -> BleDevice | None:
        wanted = normalize_address(address)
        return next((d for d in self._devices if normalize_address(d.address) == wanted), None)

    def connect(self) -> asyncio.Task[list[BleDevice]]:
        """Start a scan in the background; ``completed`` fires when it ends."""

        async def _run() -> list[BleDevice]:
            try:
                return await self.connect_async()
            finally:
                self.completed.emit(self)

        return asyncio.get_running_loop().create_task(_run(), name="cockpitble-scan")

    async def connect_async(self) -> list[BleDevice]:
        """Scan once for every definition and connect what is found.

        Returns the devices added by this scan. A call made while another
        scan is running returns an empty list without scanning. If
        :meth:`shutdown` cancels the scan, the devices added so far are
        returned.
        """
        if self._shut_down:
            LOGGER.warning("Scan rejected, device manager has been shut down")
            return []
        if self._scan_in_progress:
            LOGGER.warning("Scan already in progress")
            return []

        added: list[BleDevice] = []
        LOGGER.info("Starting device scan...")
        try:
            await self._run_exclusive(self._scan_all(added))
        except asyncio.CancelledError:
            if not self._cancelled_by_shutdown():
                raise
            LOGGER.info("Device scan cancelled by shutdown")
        LOGGER.info("Device scan finished, %d device(s) added", len(added))
        return added

    async def _run_exclusive(self, coro: Coroutine[Any, Any, T]) -> T:
        # The scan runs in its own task so shutdown can cancel it without
        # cancelling whoever awaits it.
        self._scan_in_progress = True
        task = asyncio.get_running_loop().create_task(coro, name="cockpitble-scan-body")
        self._scan_task = task
        try:
            return await task
        finally:
            self._scan_in_progress = False
            self._scan_task = None

    def _cancelled_by_shutdown(self) -> bool:
        current = asyncio.current_task()
        return self._shut_down and (current is None or current.cancelling() == 0)

    async def _scan_all(self, added: list[BleDevice]) -> None:
        try:
            excluded = self._excluded_addresses()
        except Exception as exc:
            LOGGER.error("Could not read excluded addresses, skipping scan: %s", exc, exc_info=True)
            return

        for definition in list(self.definitions.values()):
            device = await self._scan_definition(definition, excluded)
            if device is not None:
                added.append(device)

        if self.are_devices_connected():
            self.connected.emit(self)

    async def _scan_definition(self, definition: DeviceDefinition, excluded: set[str]) -> BleDevice | None:
        try:
            LOGGER.debug("Scanning for %s (Service: %s)...", definition.name, definition.service_uuid)
            peripheral = await self._backend.request_device(
                definition.service_uuid, self.settings.scan_timeout_s
            )
            if peripheral is None:
                LOGGER.debug("No device found for %s", definition.name)
                return None

            self._check_admissible(peripheral.address, peripheral.name, definition, excluded)
            return await self._connect_device(peripheral, definition)
        except (DuplicateDeviceError, ExcludedDeviceError) as exc:
            LOGGER.info("%s", exc)
        except Exception as exc:
            LOGGER.error("Error scanning for %s: %s", definition.name, exc, exc_info=True)
        return None

    def _check_admissible(
        self,
        address: str,
        name: str | None,
        definition: DeviceDefinition,
        excluded: set[str],
    ) -> None:
        normalized = normalize_address(address)
        if normalized in excluded:
            if not any(normalize_address(p.address) == normalized for p in self._excluded):
                self._excluded.append(
                    DetectedPeripheral(address=address, name=name, definition_name=definition.name)
                )
            raise ExcludedDeviceError(f"Device {address} is excluded")
        if self._find_active(normalized) is not None:
            raise DuplicateDeviceError(f"Device {address} already connected")

    async def _connect_device(self, peripheral: Peripheral, definition: DeviceDefinition) -> BleDevice:
        channel = DeviceChannel(self.input_event, self._pending_removal)
        device = BleDevice(peripheral, definition, channel)
        await device.connect()

        self._devices.append(device)
        LOGGER.info("Added device: %s (%s)", device.name, device.address)
        self.connected.emit(self)
        return device

    async def connect_device_by_address(self, address: str, definition_name: str) -> BleDevice:
        """Connect a known address directly, bypassing service discovery."""
        definition = self.definitions.get(definition_name)
        if definition is None:
            raise UnknownDefinitionError(f"Unknown device definition: {definition_name}")
        if self._shut_down:
            raise ScanError("Device manager has been shut down")
        if self._scan_in_progress:
            raise ScanError("Scan already in progress")

        try:
            return await self._run_exclusive(self._connect_address(address, definition))
        except asyncio.CancelledError:
            if not self._cancelled_by_shutdown():
                raise
            raise ScanError("Device manager has been shut down") from None

    async def _connect_address(self, address: str, definition: DeviceDefinition) -> BleDevice:
        LOGGER.info("Attempting direct connection to %s...", address)
        self._check_admissible(address, None, definition, self._excluded_addresses())

        peripheral = await self._backend.find_device_by_address(address, self.settings.scan_timeout_s)
        if peripheral is None:
            raise ScanError(f"No device found at {address}")
        return await self._connect_device(peripheral, definition)

    # Lifecycle

    def stop(self) -> None:
        for device in self._devices:
            device.stop()

    async def shutdown(self) -> None:
        """Terminal: stop ticking, cancel an in-flight scan, drop every device."""
        self._shut_down = True
        await self._ticker.stop()

        task = self._scan_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait([task])

        for device in list(self._devices):
            await device.disconnect()
        if self._release_tasks:
            await asyncio.gather(*self._release_tasks)
        self._devices.clear()
        self._excluded.clear()
        self._pending_removal.clear()
        LOGGER.info("Device manager shut down")

    # Queries

    def are_devices_connected(self) -> bool:
        return len(self._devices) > 0

    def get_devices(self) -> list[BleDevice]:
        return list(self._devices)

    def get_excluded_devices(self) -> list[DetectedPeripheral]:
        return list(self._excluded)

    def get_device_by_serial(self, serial: str) -> BleDevice | None:
        return next((d for d in self._devices if d.serial == serial), None)

    def map_device_name_to_label(self, device_name: str, input_name: str) -> str:
        for definition in self.definitions.values():
            input_def = definition.input_by_label(input_name)
            if input_def is not None:
                return input_def.label
        return input_name

    def statistics(self) -> dict[str, int]:
        result = {"BleDevices.Count": len(self._devices)}
        for device in self._devices:
            key = f"BleDevice.Model.{device.name}"
            result[key] = result.get(key, 0) + 1
        return result
