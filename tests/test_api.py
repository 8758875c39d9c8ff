from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from cockpitble.api import Bridge, InputEvent, UnknownDefinitionError
from cockpitble.core.settings import config_path


def test_bridge_loads_packaged_definitions(backend) -> None:
    bridge = Bridge(backend=backend)
    assert any(d.name == "G1000" for d in bridge.list_definitions())
    assert bridge.loading_error is False
    assert bridge.get_definition("G1000").find_input_by_hex_code("01").label == "NAV"


def test_bridge_unknown_definition(backend) -> None:
    bridge = Bridge(backend=backend)
    with pytest.raises(UnknownDefinitionError) as exc:
        bridge.get_definition("Nope")
    assert "G1000" in str(exc.value)


def test_bridge_reports_loading_error(backend, tmp_path: Path) -> None:
    extra = tmp_path / "defs"
    extra.mkdir()
    (extra / "broken.json").write_text("{", encoding="utf-8")

    bridge = Bridge(backend=backend, definition_dirs=[extra])
    assert bridge.loading_error is True
    assert bridge.load_warnings


def test_bridge_merges_configured_exclusions(backend, peripheral_factory) -> None:
    path = config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"excluded_addresses": ["AA:00:00:00:00:01"]}), encoding="utf-8")

    bridge = Bridge(backend=backend)
    g1000 = bridge.get_definition("G1000")
    backend.advertise(g1000.service_uuid, peripheral_factory("AA:00:00:00:00:01", g1000))

    asyncio.run(bridge.manager.connect_async())
    assert bridge.manager.get_devices() == []
    assert [p.address for p in bridge.manager.get_excluded_devices()] == ["AA:00:00:00:00:01"]


def test_bridge_end_to_end_input(backend, peripheral_factory) -> None:
    bridge = Bridge(backend=backend)
    g1000 = bridge.get_definition("G1000")
    peripheral = peripheral_factory("AA:00:00:00:00:02", g1000)
    backend.advertise(g1000.service_uuid, peripheral)
    events: list[InputEvent] = []
    bridge.manager.input_event.subscribe(events.append)

    asyncio.run(bridge.manager.connect_async())
    peripheral.characteristic.notify(b"\x02")

    assert events[0].device_label == "NAV"
    assert events[0].value == 1
