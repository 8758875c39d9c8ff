"""Bluetooth LE cockpit input devices for flight simulators."""

__version__ = "0.1.0"
