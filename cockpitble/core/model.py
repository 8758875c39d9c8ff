"""Core data models used across loader, device, manager, and CLI."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Iterator

from cockpitble.core.errors import DefinitionValidationError


class InputType(str, enum.Enum):
    BUTTON = "Button"
    ENCODER = "Encoder"


class InputEventType(str, enum.Enum):
    UNKNOWN = "Unknown"
    PRESS = "Press"
    RELEASE = "Release"
    INCREMENT = "Increment"
    DECREMENT = "Decrement"


def normalize_hex_code(code: str) -> str:
    """Upper-case a hex code and strip a ``0x`` prefix and whitespace."""
    normalized = code.strip().replace(" ", "").upper()
    if normalized.startswith("0X"):
        normalized = normalized[2:]
    return normalized


@dataclass(frozen=True)
class InputDefinition:
    type: InputType
    label: str
    press: str | None = None
    release: str | None = None
    increment: str | None = None
    decrement: str | None = None

    @property
    def is_button(self) -> bool:
        return self.type is InputType.BUTTON

    @property
    def is_encoder(self) -> bool:
        return self.type is InputType.ENCODER

    def directional_codes(self) -> tuple[tuple[InputEventType, str | None], ...]:
        if self.is_button:
            return ((InputEventType.PRESS, self.press), (InputEventType.RELEASE, self.release))
        return (
            (InputEventType.INCREMENT, self.increment),
            (InputEventType.DECREMENT, self.decrement),
        )

    def hex_codes(self) -> Iterator[str]:
        """Yield the populated, normalized codes for this input's type only."""
        for _, code in self.directional_codes():
            if code:
                yield normalize_hex_code(code)


@dataclass(frozen=True)
class OutputDefinition:
    type: str
    label: str


@dataclass(frozen=True)
class DeviceDefinition:
    """Protocol surface of one device model.

    The hex code lookup table is built when the definition is constructed and
    never changes afterwards. Hex codes must be unique across all inputs.
    """

    name: str
    service_uuid: str
    characteristic_uuid: str
    inputs: tuple[InputDefinition, ...] = ()
    outputs: tuple[OutputDefinition, ...] = ()
    _hex_to_input: dict[str, InputDefinition] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "_hex_to_input", _build_hex_lookup(self.name, self.inputs))

    def find_input_by_hex_code(self, hex_code: str) -> InputDefinition | None:
        return self._hex_to_input.get(normalize_hex_code(hex_code))

    def event_type_for_hex_code(self, hex_code: str) -> InputEventType:
        input_def = self.find_input_by_hex_code(hex_code)
        if input_def is None:
            return InputEventType.UNKNOWN

        normalized = normalize_hex_code(hex_code)
        # Re-check against the input itself rather than trusting the table.
        for event_type, code in input_def.directional_codes():
            if code and normalize_hex_code(code) == normalized:
                return event_type
        return InputEventType.UNKNOWN

    def hex_codes(self) -> tuple[str, ...]:
        return tuple(self._hex_to_input)

    def input_by_label(self, label: str) -> InputDefinition | None:
        return next((i for i in self.inputs if i.label == label), None)


def _build_hex_lookup(
    name: str, inputs: tuple[InputDefinition, ...]
) -> dict[str, InputDefinition]:
    table: dict[str, InputDefinition] = {}
    for input_def in inputs:
        for code in input_def.hex_codes():
            owner = table.get(code)
            if owner is not None:
                raise DefinitionValidationError(
                    f"Definition '{name}': hex code {code} used by both "
                    f"'{owner.label}' and '{input_def.label}'"
                )
            table[code] = input_def
    return table


@dataclass(frozen=True)
class DetectedPeripheral:
    """A discovered peripheral that was not connected (e.g. excluded)."""

    address: str
    name: str | None
    definition_name: str


def definition_summary(definition: DeviceDefinition) -> dict[str, Any]:
    return {
        "name": definition.name,
        "service_uuid": definition.service_uuid,
        "characteristic_uuid": definition.characteristic_uuid,
        "inputs": [
            {"type": i.type.value, "label": i.label, "codes": list(i.hex_codes())}
            for i in definition.inputs
        ],
    }
