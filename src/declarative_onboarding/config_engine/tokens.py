"""Token substitution for descriptor paths.

Supported tokens:
    {{hostName}}   - hostname of the device
    {{deviceName}} - cluster (cm) device name of this host
"""
import logging
import re

from ..devices.base import DeviceReader, DeviceInfo
from ..errors import TokenError

logger = logging.getLogger(__name__)

CM_DEVICE_PATH = "/tm/cm/device"

TOKEN_PATTERN = re.compile(r"{{\s*(\w+)\s*}}")


class TokenResolver:
    """Replace `{{token}}` placeholders with device-derived values."""

    def __init__(self, host_name: str, device_name: str):
        self.tokens = {
            "hostName": host_name,
            "deviceName": device_name,
        }

    @classmethod
    async def from_device(cls, device: DeviceReader, info: DeviceInfo) -> "TokenResolver":
        """
        Build a resolver from the device's cluster membership.

        Args:
            device: Reader for the managed device
            info: Identity already read from the device

        Raises:
            TokenError: If not exactly one cluster device has our hostname
        """
        cm_devices = await device.list(CM_DEVICE_PATH, ["name", "hostname"])
        matches = [d for d in cm_devices if d.get("hostname") == info.hostname]

        if len(matches) != 1:
            message = (
                "Too many devices match our name" if matches
                else f"No cluster device matches hostname {info.hostname}"
            )
            logger.error(message)
            raise TokenError(message)

        return cls(host_name=info.hostname, device_name=matches[0]["name"])

    def resolve(self, template: str) -> str:
        """
        Substitute every token in `template`.

        Raises:
            TokenError: On an unknown token
        """
        def _replace(match: re.Match) -> str:
            token = match.group(1)
            if token not in self.tokens:
                raise TokenError(f"Unknown token '{token}' in path {template}")
            return self.tokens[token]

        return TOKEN_PATTERN.sub(_replace, template)
