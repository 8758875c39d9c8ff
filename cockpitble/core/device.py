"""A single connected BLE input device."""

from __future__ import annotations

import asyncio
import enum
import logging

from cockpitble.core.errors import (
    CharacteristicNotFoundError,
    CockpitBleError,
    DeviceConnectionError,
    DeviceStateError,
    ProtocolDecodeError,
    ServiceNotFoundError,
)
from cockpitble.core.events import (
    ButtonValue,
    DeviceChannel,
    DeviceKind,
    EncoderValue,
    InputEvent,
    NullChannel,
)
from cockpitble.core.model import DeviceDefinition, InputDefinition, InputEventType
from cockpitble.transports.base import GattCharacteristic, GattSession, Peripheral

LOGGER = logging.getLogger(__name__)


class DeviceState(str, enum.Enum):
    DISCONNECTED = "Disconnected"
    CONNECTING = "Connecting"
    CONNECTED = "Connected"
    CLOSED = "Closed"


def payload_to_hex(data: bytes) -> str:
    if len(data) == 1:
        return f"{data[0]:02X}"
    return data.hex().upper()


def decode_payload(definition: DeviceDefinition, data: bytes) -> tuple[InputDefinition, InputEventType]:
    """Resolve a raw payload to its input and direction.

    Raises :class:`ProtocolDecodeError` for empty payloads and unknown codes.
    """
    if not data:
        raise ProtocolDecodeError("Empty payload")

    hex_code = payload_to_hex(data)
    input_def = definition.find_input_by_hex_code(hex_code)
    event_type = definition.event_type_for_hex_code(hex_code)
    if input_def is None or event_type is InputEventType.UNKNOWN:
        raise ProtocolDecodeError(f"Unknown hex code {hex_code} for {definition.name}")
    return input_def, event_type


class BleDevice:
    """Owns one peripheral connection and turns its notifications into input events.

    An instance connects at most once: after a failed connect or a disconnect
    it is ``Closed`` and a new instance is needed to retry.
    """

    def __init__(
        self,
        peripheral: Peripheral,
        definition: DeviceDefinition,
        channel: DeviceChannel | None = None,
    ) -> None:
        self._peripheral = peripheral
        self.definition = definition
        self._channel = channel or NullChannel()

        self.name = definition.name
        self.address = peripheral.address
        self.serial = f"BLE / [{peripheral.address}]"

        self.state = DeviceState.DISCONNECTED
        self.paused = False
        self._session: GattSession | None = None
        self._characteristic: GattCharacteristic | None = None
        self._connect_lock = asyncio.Lock()
        self._disconnect_signalled = False

    def __repr__(self) -> str:
        return f"BleDevice(name={self.name!r}, address={self.address!r}, state={self.state.value})"

    @property
    def is_connected(self) -> bool:
        return self.state is DeviceState.CONNECTED

    async def connect(self) -> None:
        if self._connect_lock.locked() or self.state is not DeviceState.DISCONNECTED:
            raise DeviceStateError(f"Cannot connect {self.name} ({self.address}) in state {self.state.value}")

        async with self._connect_lock:
            self.state = DeviceState.CONNECTING
            LOGGER.info("Connecting to %s (%s)...", self.name, self.address)
            try:
                await self._open()
            except asyncio.CancelledError:
                self.state = DeviceState.CLOSED
                await self._release()
                raise
            except CockpitBleError as exc:
                await self._connect_failed(exc)
                raise
            except Exception as exc:
                await self._connect_failed(exc)
                raise DeviceConnectionError(f"Failed to connect to {self.name}: {exc}") from exc

            if self.state is not DeviceState.CONNECTING:
                # disconnect() ran while the link was being opened
                await self._release()
                raise DeviceStateError(f"{self.name} ({self.address}) was closed while connecting")

            self.state = DeviceState.CONNECTED
            LOGGER.info("Connected to %s and subscribed to notifications", self.name)

    async def _open(self) -> None:
        self._session = await self._peripheral.connect_gatt(self._on_link_lost)
        if not self._session.is_connected:
            raise DeviceConnectionError("Failed to connect to GATT server")

        service = await self._session.get_primary_service(self.definition.service_uuid)
        if service is None:
            raise ServiceNotFoundError(f"Service {self.definition.service_uuid} not found")

        characteristic = service.get_characteristic(self.definition.characteristic_uuid)
        if characteristic is None:
            raise CharacteristicNotFoundError(
                f"Characteristic {self.definition.characteristic_uuid} not found"
            )

        await characteristic.subscribe(self.handle_notification)
        self._characteristic = characteristic

    async def _connect_failed(self, exc: Exception) -> None:
        LOGGER.error("Failed to connect to %s: %s", self.name, exc)
        self.state = DeviceState.CLOSED
        await self._release()

    async def _release(self) -> None:
        characteristic, self._characteristic = self._characteristic, None
        session, self._session = self._session, None
        if characteristic is not None:
            try:
                await characteristic.unsubscribe()
            except Exception as exc:
                LOGGER.warning("Error unsubscribing from %s: %s", self.name, exc)
        if session is not None:
            try:
                await session.disconnect()
            except Exception as exc:
                LOGGER.warning("Error disconnecting from %s: %s", self.name, exc)

    async def disconnect(self) -> None:
        """Tear down the connection; safe to call more than once."""
        was_connected = self.is_connected
        if self.state is not DeviceState.DISCONNECTED:
            self.state = DeviceState.CLOSED
        await self._release()
        if was_connected:
            LOGGER.info("Disconnected from %s", self.name)
            self._signal_disconnected()

    def _on_link_lost(self) -> None:
        if self.state is not DeviceState.CONNECTED:
            return
        LOGGER.warning("Link to %s (%s) lost", self.name, self.address)
        self.state = DeviceState.CLOSED
        self._signal_disconnected()

    def _signal_disconnected(self) -> None:
        if self._disconnect_signalled:
            return
        self._disconnect_signalled = True
        self._channel.disconnected(self)

    def stop(self) -> None:
        """Pause input processing; the connection stays up."""
        self.paused = True

    def handle_notification(self, data: bytes) -> None:
        if self.paused or not data:
            return
        try:
            input_def, event_type = decode_payload(self.definition, data)
        except ProtocolDecodeError:
            LOGGER.debug("Unknown hex code received from %s: %s", self.name, payload_to_hex(data))
            return

        try:
            LOGGER.debug(
                "%s: %s -> %s (0x%s)", self.name, input_def.label, event_type.value, payload_to_hex(data)
            )
            self._channel.publish(self._input_event(input_def, event_type))
        except Exception:
            LOGGER.exception("Error processing notification from %s", self.name)

    def _input_event(self, input_def: InputDefinition, event_type: InputEventType) -> InputEvent:
        if input_def.is_button:
            kind = DeviceKind.BUTTON
            value = ButtonValue.PRESS if event_type is InputEventType.PRESS else ButtonValue.RELEASE
        else:
            kind = DeviceKind.ENCODER
            value = EncoderValue.RIGHT if event_type is InputEventType.INCREMENT else EncoderValue.LEFT

        return InputEvent(
            serial=self.serial,
            name=self.name,
            device_id=input_def.label,
            device_label=input_def.label,
            kind=kind,
            value=int(value),
        )
