from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from cockpitble.core.model import DeviceDefinition, InputDefinition, InputType
from cockpitble.core.uuids import uuid_str


class FakeCharacteristic:
    def __init__(self, uuid: str, *, fail_subscribe: bool = False) -> None:
        self.uuid = uuid_str(uuid)
        self.fail_subscribe = fail_subscribe
        self.callback: Callable[[bytes], None] | None = None
        self.unsubscribed = False

    async def subscribe(self, callback: Callable[[bytes], None]) -> None:
        if self.fail_subscribe:
            raise OSError("notify handshake failed")
        self.callback = callback

    async def unsubscribe(self) -> None:
        self.unsubscribed = True
        self.callback = None

    def notify(self, data: bytes) -> None:
        assert self.callback is not None, "not subscribed"
        self.callback(data)


class FakeService:
    def __init__(self, uuid: str, characteristics: list[FakeCharacteristic]) -> None:
        self.uuid = uuid_str(uuid)
        self.characteristics = {c.uuid: c for c in characteristics}

    def get_characteristic(self, uuid: str) -> FakeCharacteristic | None:
        return self.characteristics.get(uuid_str(uuid))


class FakeSession:
    def __init__(self, services: list[FakeService], *, fail_disconnect: bool = False) -> None:
        self.services = {s.uuid: s for s in services}
        self.connected = True
        self.fail_disconnect = fail_disconnect
        self.disconnect_calls = 0

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def get_primary_service(self, uuid: str) -> FakeService | None:
        return self.services.get(uuid_str(uuid))

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False
        if self.fail_disconnect:
            raise OSError("adapter gone")


class FakePeripheral:
    def __init__(
        self,
        address: str,
        definition: DeviceDefinition,
        *,
        name: str | None = "Fake Panel",
        has_service: bool = True,
        has_characteristic: bool = True,
        connect_error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.address = address
        self.name = name
        self.characteristic = FakeCharacteristic(definition.characteristic_uuid)
        services = []
        if has_service:
            characteristics = [self.characteristic] if has_characteristic else []
            services.append(FakeService(definition.service_uuid, characteristics))
        self.session = FakeSession(services)
        self.connect_error = connect_error
        self.gate = gate
        self.connect_calls = 0
        self.on_link_lost: Callable[[], None] | None = None

    async def connect_gatt(self, on_link_lost: Callable[[], None]) -> FakeSession:
        self.connect_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        self.on_link_lost = on_link_lost
        return self.session

    def drop_link(self) -> None:
        self.session.connected = False
        assert self.on_link_lost is not None
        self.on_link_lost()


class FakeBackend:
    def __init__(self) -> None:
        self.by_service: dict[str, FakePeripheral | Exception] = {}
        self.by_address: dict[str, FakePeripheral] = {}
        self.requests: list[str] = []
        self.address_lookups: list[str] = []
        self.gate: asyncio.Event | None = None

    def advertise(self, service_uuid: str, peripheral: FakePeripheral | Exception) -> None:
        self.by_service[uuid_str(service_uuid)] = peripheral
        if isinstance(peripheral, FakePeripheral):
            self.by_address[peripheral.address.upper()] = peripheral

    async def request_device(self, service_uuid: str, timeout_s: float) -> FakePeripheral | None:
        self.requests.append(uuid_str(service_uuid))
        if self.gate is not None:
            await self.gate.wait()
        found = self.by_service.get(uuid_str(service_uuid))
        if isinstance(found, Exception):
            raise found
        return found

    async def find_device_by_address(self, address: str, timeout_s: float) -> FakePeripheral | None:
        self.address_lookups.append(address)
        return self.by_address.get(address.upper())


@pytest.fixture
def g1000() -> DeviceDefinition:
    return DeviceDefinition(
        name="G1000",
        service_uuid="0x044F",
        characteristic_uuid="0x2A4D",
        inputs=(
            InputDefinition(type=InputType.BUTTON, label="NAV", press="01", release="02"),
            InputDefinition(type=InputType.ENCODER, label="HDG", increment="10", decrement="11"),
        ),
    )


@pytest.fixture
def g5() -> DeviceDefinition:
    return DeviceDefinition(
        name="G5",
        service_uuid="0000abcd-0000-1000-8000-00805f9b34fb",
        characteristic_uuid="0xABCE",
        inputs=(InputDefinition(type=InputType.BUTTON, label="MENU", press="A1B2", release="A1B3"),),
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def peripheral_factory() -> type[FakePeripheral]:
    return FakePeripheral


@pytest.fixture(autouse=True)
def isolated_xdg(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "cfg"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
