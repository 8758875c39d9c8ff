"""Entry points for applications that bridge cockpit panels into a sim host.

:class:`Bridge` wires the user config, the definition files and the BLE
backend into a :class:`BleDeviceManager`. The names re-exported here are the
ones host applications should import.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from cockpitble.core.definition_loader import LoadedDefinitions, load_definitions
from cockpitble.core.device import BleDevice, DeviceState, decode_payload
from cockpitble.core.errors import (
    CharacteristicNotFoundError,
    CockpitBleError,
    DefinitionLoadError,
    DefinitionValidationError,
    DeviceConnectionError,
    DeviceStateError,
    DuplicateDeviceError,
    ExcludedDeviceError,
    MigrationError,
    ProtocolDecodeError,
    ScanError,
    ServiceNotFoundError,
    SettingsError,
    TransportConnectError,
    TransportError,
    UnknownDefinitionError,
    UuidParseError,
)
from cockpitble.core.events import ButtonValue, DeviceKind, EncoderValue, InputEvent
from cockpitble.core.manager import BleDeviceManager
from cockpitble.core.model import (
    DetectedPeripheral,
    DeviceDefinition,
    InputDefinition,
    InputEventType,
    InputType,
    OutputDefinition,
)
from cockpitble.core.settings import ManagerSettings, load_settings
from cockpitble.core.uuids import parse_uuid
from cockpitble.transports.base import BleBackend
from cockpitble.transports.ble_gatt import BleakBackend

__all__ = [
    "CockpitBleError",
    "CharacteristicNotFoundError",
    "DefinitionLoadError",
    "DefinitionValidationError",
    "DeviceConnectionError",
    "DeviceStateError",
    "DuplicateDeviceError",
    "ExcludedDeviceError",
    "MigrationError",
    "ProtocolDecodeError",
    "ScanError",
    "ServiceNotFoundError",
    "SettingsError",
    "TransportConnectError",
    "TransportError",
    "UnknownDefinitionError",
    "UuidParseError",
    "ButtonValue",
    "DetectedPeripheral",
    "DeviceDefinition",
    "DeviceKind",
    "DeviceState",
    "EncoderValue",
    "InputDefinition",
    "InputEvent",
    "InputEventType",
    "InputType",
    "OutputDefinition",
    "ManagerSettings",
    "BleBackend",
    "BleakBackend",
    "BleDevice",
    "BleDeviceManager",
    "Bridge",
    "decode_payload",
    "parse_uuid",
]


class Bridge:
    """Loads definitions and settings and owns a :class:`BleDeviceManager`.

    ``excluded_addresses`` extends the exclusion list from the config file.
    """

    def __init__(
        self,
        *,
        backend: BleBackend | None = None,
        settings: ManagerSettings | None = None,
        definition_dirs: Iterable[Path] = (),
        excluded_addresses: Iterable[str] = (),
    ) -> None:
        self.settings = settings or load_settings()
        self.loaded: LoadedDefinitions = load_definitions(definition_dirs)
        excluded = (*self.settings.excluded_addresses, *excluded_addresses)
        self.manager = BleDeviceManager(
            self.loaded.definitions,
            backend or BleakBackend(connect_timeout_s=self.settings.connect_timeout_s),
            excluded_addresses=excluded,
            settings=self.settings,
        )

    @property
    def loading_error(self) -> bool:
        return self.loaded.loading_error

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self.loaded.warnings

    def list_definitions(self) -> list[DeviceDefinition]:
        return list(self.manager.definitions.values())

    def get_definition(self, name: str) -> DeviceDefinition:
        definition = self.manager.definitions.get(name)
        if definition is None:
            available = ", ".join(self.manager.definitions) or "<none>"
            raise UnknownDefinitionError(f"Unknown device definition '{name}'. Available: {available}")
        return definition
