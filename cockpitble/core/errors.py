"""Domain-specific errors for cockpitble."""


class CockpitBleError(Exception):
    """Base error for cockpitble."""


class SettingsError(CockpitBleError):
    """Raised when the user configuration file cannot be used."""


class DefinitionLoadError(CockpitBleError):
    """Raised when a definition file cannot be read or parsed."""


class DefinitionValidationError(CockpitBleError):
    """Raised when a definition does not conform to schema or semantics."""


class MigrationError(CockpitBleError):
    """Raised when a definition document has an unrecognized legacy shape."""


class UuidParseError(CockpitBleError, ValueError):
    """Raised when a service or characteristic UUID string is malformed."""


class UnknownDefinitionError(CockpitBleError):
    """Raised when a definition name is not registered with the manager."""


class ScanError(CockpitBleError):
    """Raised when discovery for a definition or address fails."""


class DeviceConnectionError(CockpitBleError):
    """Raised when the GATT connection handshake fails."""


class ServiceNotFoundError(DeviceConnectionError):
    """Raised when the peripheral does not expose the definition's service."""


class CharacteristicNotFoundError(DeviceConnectionError):
    """Raised when the service does not expose the definition's characteristic."""


class DeviceStateError(CockpitBleError):
    """Raised when a device operation is not valid in its current state."""


class ProtocolDecodeError(CockpitBleError):
    """Raised when a notification payload maps to no known input."""


class DuplicateDeviceError(CockpitBleError):
    """Raised when a device with the same address is already active."""


class ExcludedDeviceError(CockpitBleError):
    """Raised when a device address is on the exclusion list."""


class TransportError(CockpitBleError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised on BLE discovery or GATT connect failures."""
