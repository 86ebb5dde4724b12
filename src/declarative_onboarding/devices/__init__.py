"""Read adapters for managed devices."""
from .base import DeviceReader, DeviceConfig, DeviceInfo
from .rest import RestDevice

__all__ = [
    "DeviceReader",
    "DeviceConfig",
    "DeviceInfo",
    "RestDevice",
    "create_device",
]

# Device type registry
DEVICE_TYPES = {
    "rest": RestDevice,
}


def create_device(device_id: str, config: dict, device_type: str = "rest") -> DeviceReader:
    """Factory function to create device readers."""
    device_type = device_type.lower()
    if device_type not in DEVICE_TYPES:
        raise ValueError(f"Unknown device type: {device_type}")

    device_class = DEVICE_TYPES[device_type]
    return device_class(device_id, DeviceConfig(**config))
