"""Definition loading and validation for JSON-based device definitions."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from functools import lru_cache
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

from jsonschema import ValidationError, validators

from cockpitble.core.errors import (
    CockpitBleError,
    DefinitionLoadError,
    DefinitionValidationError,
)
from cockpitble.core.migration import build_definition, migrate_document
from cockpitble.core.model import DeviceDefinition

LOGGER = logging.getLogger(__name__)

_SCHEMA_SUFFIX = ".schema.json"


@dataclass(frozen=True)
class LoadedDefinitions:
    definitions: dict[str, DeviceDefinition]
    warnings: tuple[str, ...]
    loading_error: bool


@lru_cache(maxsize=1)
def _load_schema_validator() -> Any:
    schema_text = resources.files("cockpitble.schemas").joinpath("definition.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _definition_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "cockpitble/definitions", xdg_data / "cockpitble/definitions"


def _is_definition_file(name: str) -> bool:
    return name.endswith(".json") and not name.endswith(_SCHEMA_SUFFIX)


def _read_text(path: Path | Traversable) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise DefinitionLoadError(f"Could not read definition file {path}: {exc}") from exc


def parse_definition(raw_text: str, origin: str) -> DeviceDefinition:
    """Parse, migrate, validate and build one definition document."""
    try:
        doc = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        raise DefinitionLoadError(f"Invalid JSON in {origin}: {exc}") from exc

    if not isinstance(doc, dict):
        raise DefinitionLoadError(f"Definition file {origin} must contain an object at root")

    migrated = migrate_document(doc)
    try:
        _load_schema_validator().validate(migrated)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise DefinitionValidationError(
            f"Schema validation failed for {origin}{where}: {exc.message}"
        ) from exc

    return build_definition(migrated)


def load_definition_sources(sources: Iterable[tuple[str, str]]) -> LoadedDefinitions:
    """Load ``(raw_text, origin)`` pairs; one bad source never stops the rest."""
    definitions: dict[str, DeviceDefinition] = {}
    warnings: list[str] = []
    loading_error = False

    for raw_text, origin in sources:
        try:
            definition = parse_definition(raw_text, origin)
            if definition.name in definitions:
                raise DefinitionLoadError(
                    f"Definition '{definition.name}' in {origin} is already registered"
                )
        except CockpitBleError as exc:
            LOGGER.error("Failed to load %s: %s", origin, exc)
            warnings.append(str(exc))
            loading_error = True
            continue

        definitions[definition.name] = definition
        LOGGER.debug("Loaded device definition: %s", definition.name)

    LOGGER.info("Loaded %d device definition(s)", len(definitions))
    return LoadedDefinitions(
        definitions=definitions,
        warnings=tuple(warnings),
        loading_error=loading_error,
    )


def _iter_packaged_definition_paths() -> list[Traversable]:
    root = resources.files("cockpitble.definitions")
    return sorted(
        (item for item in root.iterdir() if _is_definition_file(item.name)),
        key=lambda p: p.name,
    )


def _iter_directory_paths(directories: Iterable[Path]) -> list[Path]:
    paths: list[Path] = []
    for directory in directories:
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.rglob("*.json") if _is_definition_file(p.name)))
    return paths


def _iter_sources(paths: Iterable[Path | Traversable], warnings: list[str]) -> Iterable[tuple[str, str]]:
    for path in paths:
        try:
            yield _read_text(path), str(path)
        except DefinitionLoadError as exc:
            LOGGER.error("%s", exc)
            warnings.append(str(exc))


def load_definitions(extra_dirs: Iterable[Path] = (), *, include_packaged: bool = True) -> LoadedDefinitions:
    """Load packaged definitions, then user and ``extra_dirs`` definitions."""
    read_warnings: list[str] = []
    paths: list[Path | Traversable] = []
    if include_packaged:
        paths.extend(_iter_packaged_definition_paths())
    paths.extend(_iter_directory_paths([*_definition_dirs(), *extra_dirs]))

    loaded = load_definition_sources(_iter_sources(paths, read_warnings))
    if not read_warnings:
        return loaded
    return LoadedDefinitions(
        definitions=loaded.definitions,
        warnings=tuple(read_warnings) + loaded.warnings,
        loading_error=True,
    )
