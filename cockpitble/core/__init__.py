"""Domain core: definitions, devices and the device manager."""
