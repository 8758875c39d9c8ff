"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import typer

from cockpitble.api import Bridge
from cockpitble.core.device import BleDevice, decode_payload
from cockpitble.core.errors import CockpitBleError, ProtocolDecodeError
from cockpitble.core.events import InputEvent
from cockpitble.core.model import definition_summary

app = typer.Typer(help="Bluetooth LE cockpit input devices driven by JSON definitions")

_state: dict[str, list[Path]] = {"definition_dirs": []}


@app.callback()
def main(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase log verbosity"),
    definitions_dir: list[Path] = typer.Option(
        [], "--definitions-dir", help="Extra directory with definition JSON files"
    ),
) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    _state["definition_dirs"] = list(definitions_dir)


def _build_bridge(excluded: list[str] | None = None) -> Bridge:
    bridge = Bridge(definition_dirs=_state["definition_dirs"], excluded_addresses=excluded or [])
    for warning in getattr(bridge, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return bridge


def _format_event(event: InputEvent) -> str:
    return f"{event.name} {event.device_label} {event.kind.value} value={event.value}"


def _format_device(device: BleDevice) -> str:
    return f"{device.address} {device.name} serial={device.serial}"


@app.command("definitions")
def list_definitions(
    as_json: bool = typer.Option(False, "--json", help="Print definitions as JSON"),
) -> None:
    """List loaded device definitions and their inputs."""
    try:
        bridge = _build_bridge()
        definitions = bridge.list_definitions()
        if not definitions:
            typer.echo("No device definitions loaded")
            raise typer.Exit(code=1)

        if as_json:
            typer.echo(json.dumps([definition_summary(d) for d in definitions], indent=2))
            return

        for definition in definitions:
            typer.echo(f"{definition.name}: service={definition.service_uuid} characteristic={definition.characteristic_uuid}")
            for input_def in definition.inputs:
                codes = ", ".join(input_def.hex_codes())
                typer.echo(f"  {input_def.label} ({input_def.type.value}): {codes}")
    except CockpitBleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("decode")
def decode(name: str, payload: str) -> None:
    """Decode a hex PAYLOAD against definition NAME without any hardware."""
    try:
        bridge = _build_bridge()
        definition = bridge.get_definition(name)
        try:
            data = bytes.fromhex(payload.removeprefix("0x").removeprefix("0X"))
        except ValueError:
            raise ProtocolDecodeError(f"'{payload}' is not a hex payload") from None
        input_def, event_type = decode_payload(definition, data)
        typer.echo(f"{input_def.label} ({input_def.type.value}) -> {event_type.value}")
    except CockpitBleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


async def _scan(bridge: Bridge, watch: float) -> list[BleDevice]:
    manager = bridge.manager
    manager.input_event.subscribe(lambda event: typer.echo(_format_event(event)))
    manager.startup()
    try:
        await manager.connect_async()
        devices = manager.get_devices()
        for device in devices:
            typer.echo(f"Connected {_format_device(device)}")
        if devices and watch > 0:
            await asyncio.sleep(watch)
        return devices
    finally:
        await manager.shutdown()


@app.command("scan")
def scan(
    exclude: list[str] = typer.Option([], "--exclude", help="Device address to skip"),
    watch: float = typer.Option(0.0, "--watch", help="Seconds to print input events after connecting"),
) -> None:
    """Scan once for every known definition and connect matching devices."""
    try:
        bridge = _build_bridge(exclude)
        devices = asyncio.run(_scan(bridge, watch))
        if not devices:
            typer.echo("No BLE devices connected")
    except CockpitBleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


async def _connect(bridge: Bridge, address: str, name: str, watch: float) -> BleDevice:
    manager = bridge.manager
    manager.input_event.subscribe(lambda event: typer.echo(_format_event(event)))
    manager.startup()
    try:
        device = await manager.connect_device_by_address(address, name)
        typer.echo(f"Connected {_format_device(device)}")
        if watch > 0:
            await asyncio.sleep(watch)
        return device
    finally:
        await manager.shutdown()


@app.command("connect")
def connect(
    address: str,
    name: str,
    watch: float = typer.Option(0.0, "--watch", help="Seconds to print input events after connecting"),
) -> None:
    """Connect ADDRESS directly using definition NAME."""
    try:
        bridge = _build_bridge()
        asyncio.run(_connect(bridge, address, name, watch))
    except CockpitBleError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
