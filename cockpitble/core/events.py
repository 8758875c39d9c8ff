"""Input events and the subscription plumbing between devices and the manager."""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from cockpitble.core.device import BleDevice

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class DeviceKind(str, enum.Enum):
    BUTTON = "Button"
    ENCODER = "Encoder"


class ButtonValue(enum.IntEnum):
    PRESS = 0
    RELEASE = 1


class EncoderValue(enum.IntEnum):
    LEFT = 0
    RIGHT = 2


@dataclass(frozen=True)
class InputEvent:
    serial: str
    name: str
    device_id: str
    device_label: str
    kind: DeviceKind
    value: int


class EventHook(Generic[T]):
    """Ordered list of subscribers for one kind of event."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: list[Callable[[T], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Callable[[T], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[T], None]) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()

    def emit(self, payload: T) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(payload)
            except Exception:
                LOGGER.exception("Subscriber of '%s' failed", self.name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


class PendingRemovals:
    """Thread-safe queue of devices waiting to leave the active registry."""

    def __init__(self) -> None:
        self._devices: list[BleDevice] = []
        self._lock = threading.Lock()

    def put(self, device: BleDevice) -> None:
        with self._lock:
            if device not in self._devices:
                self._devices.append(device)

    def drain(self) -> list[BleDevice]:
        with self._lock:
            drained, self._devices = self._devices, []
        return drained

    def clear(self) -> None:
        with self._lock:
            self._devices.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._devices)


class DeviceChannel:
    """Inbound channel from one device to the manager.

    Input events are forwarded synchronously. A disconnect is only queued;
    the manager applies it on its next tick.
    """

    def __init__(self, inputs: EventHook[InputEvent], removals: PendingRemovals) -> None:
        self._inputs = inputs
        self._removals = removals

    def publish(self, event: InputEvent) -> None:
        self._inputs.emit(event)

    def disconnected(self, device: BleDevice) -> None:
        self._removals.put(device)


class NullChannel(DeviceChannel):
    """Channel for devices not owned by a manager; drops everything."""

    def __init__(self) -> None:
        super().__init__(EventHook("null"), PendingRemovals())
