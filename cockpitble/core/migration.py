"""Schema migration and construction of device definitions.

Definition documents are versioned. Version 1.0 files listed buttons and
encoders in separate arrays and used long property names; version 1.1 uses a
single ``Inputs`` array where each entry carries its ``Type``. Every document
is migrated to the current version before it is validated and turned into a
:class:`DeviceDefinition`.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from cockpitble.core.errors import DefinitionValidationError, MigrationError
from cockpitble.core.model import DeviceDefinition, InputDefinition, InputType, OutputDefinition
from cockpitble.core.uuids import parse_uuid

LOGGER = logging.getLogger(__name__)

CURRENT_VERSION = "1.1"
LEGACY_VERSION = "1.0"

_LEGACY_KEYS = ("Buttons", "Encoders")
_LEGACY_PROPERTY_MAP = {
    "PressCode": "Press",
    "ReleaseCode": "Release",
    "IncrementCode": "Increment",
    "DecrementCode": "Decrement",
    "InputLabel": "Label",
}


def document_version(doc: dict[str, Any]) -> str:
    version = doc.get("Version")
    if version is None:
        return LEGACY_VERSION if any(key in doc for key in _LEGACY_KEYS) else CURRENT_VERSION
    return str(version)


def migrate_document(doc: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of ``doc`` upgraded to the current schema version.

    Running it on a current document returns an equal document.
    """
    if not isinstance(doc, dict):
        raise MigrationError("Definition document must be a JSON object")

    version = document_version(doc)
    migrated = copy.deepcopy(doc)

    if version == CURRENT_VERSION:
        if any(key in migrated for key in _LEGACY_KEYS):
            raise MigrationError(
                f"Definition '{doc.get('Name')}' mixes version {CURRENT_VERSION} "
                f"'Inputs' with legacy {', '.join(_LEGACY_KEYS)} arrays"
            )
        migrated["Version"] = CURRENT_VERSION
        return migrated

    if version != LEGACY_VERSION:
        raise MigrationError(
            f"Definition '{doc.get('Name')}' has unsupported version '{version}'"
        )

    if "Inputs" in migrated:
        raise MigrationError(
            f"Definition '{doc.get('Name')}' declares version {LEGACY_VERSION} but has 'Inputs'"
        )

    inputs: list[dict[str, Any]] = []
    for key, input_type in (("Buttons", InputType.BUTTON), ("Encoders", InputType.ENCODER)):
        entries = migrated.pop(key, [])
        if not isinstance(entries, list):
            raise MigrationError(f"Legacy '{key}' in '{doc.get('Name')}' must be an array")
        for entry in entries:
            if not isinstance(entry, dict):
                raise MigrationError(f"Legacy '{key}' entry in '{doc.get('Name')}' must be an object")
            item = {"Type": input_type.value}
            for name, value in entry.items():
                item[_LEGACY_PROPERTY_MAP.get(name, name)] = value
            inputs.append(item)

    migrated["Inputs"] = inputs
    migrated["Version"] = CURRENT_VERSION
    LOGGER.debug(
        "Migrated definition '%s' (%d inputs) from %s to %s",
        doc.get("Name"),
        len(inputs),
        LEGACY_VERSION,
        CURRENT_VERSION,
    )
    return migrated


def _input_from_doc(entry: dict[str, Any], *, context: str) -> InputDefinition:
    try:
        input_type = InputType(entry["Type"])
    except (KeyError, ValueError) as exc:
        raise DefinitionValidationError(f"{context}: invalid input type {entry.get('Type')!r}") from exc

    label = entry.get("Label")
    if not label:
        raise DefinitionValidationError(f"{context}: input is missing 'Label'")

    if input_type is InputType.BUTTON:
        required, foreign = ("Press", "Release"), ("Increment", "Decrement")
    else:
        required, foreign = ("Increment", "Decrement"), ("Press", "Release")

    missing = [key for key in required if not entry.get(key)]
    if missing:
        raise DefinitionValidationError(
            f"{context}: {input_type.value} '{label}' is missing {', '.join(missing)}"
        )
    unexpected = [key for key in foreign if entry.get(key)]
    if unexpected:
        raise DefinitionValidationError(
            f"{context}: {input_type.value} '{label}' must not define {', '.join(unexpected)}"
        )

    return InputDefinition(
        type=input_type,
        label=label,
        press=entry.get("Press"),
        release=entry.get("Release"),
        increment=entry.get("Increment"),
        decrement=entry.get("Decrement"),
    )


def definition_from_document(doc: dict[str, Any]) -> DeviceDefinition:
    """Construct a definition from an already migrated document."""
    name = doc.get("Name")
    if not name:
        raise DefinitionValidationError("Definition is missing 'Name'")

    for key in ("ServiceUUID", "CharacteristicUUID"):
        if not doc.get(key):
            raise DefinitionValidationError(f"Definition '{name}' is missing '{key}'")
        parse_uuid(doc[key])

    inputs = tuple(
        _input_from_doc(entry, context=f"{name}.Inputs[{index}]")
        for index, entry in enumerate(doc.get("Inputs", []))
    )
    outputs = tuple(
        OutputDefinition(type=entry.get("Type", ""), label=entry.get("Label", ""))
        for entry in doc.get("Outputs", [])
    )
    return DeviceDefinition(
        name=name,
        service_uuid=doc["ServiceUUID"],
        characteristic_uuid=doc["CharacteristicUUID"],
        inputs=inputs,
        outputs=outputs,
    )


def build_definition(doc: dict[str, Any]) -> DeviceDefinition:
    return definition_from_document(migrate_document(doc))
