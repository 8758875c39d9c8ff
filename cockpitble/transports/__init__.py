"""Platform BLE transports."""
