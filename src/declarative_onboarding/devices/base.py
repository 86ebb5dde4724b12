"""Base read adapter for managed devices."""
import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class DeviceConfig:
    """Connection settings for a managed device."""
    host: str
    username: str
    password: Optional[str] = None
    password_env: str = "DO_PASSWORD"
    port: int = 443
    timeout: int = 30
    verify_ssl: bool = True

    def get_password(self) -> str:
        """Get password from config or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")


@dataclass
class DeviceInfo:
    """Identity of the managed device."""
    machine_id: str
    hostname: str
    version: Optional[str] = None


class DeviceReader(ABC):
    """Read-only access to a device's configuration objects.

    Implementations own transport concerns (auth, retries). Every read either
    returns data or raises; the reconciliation core never retries.
    """

    def __init__(self, device_id: str, config: Optional[DeviceConfig] = None):
        self.device_id = device_id
        self.config = config
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> bool:
        """Establish a session with the device."""
        self._connected = True
        return True

    async def disconnect(self) -> None:
        """Close the session."""
        self._connected = False

    @abstractmethod
    async def list(
        self,
        path: str,
        select: Optional[list[str]] = None,
        *,
        params: Optional[dict[str, str]] = None,
        silent: bool = False,
    ) -> Any:
        """Read the object or collection at `path`.

        Args:
            path: Object path, without the /mgmt prefix
            select: Properties to return (query-side selection)
            params: Extra query parameters (filters, versions)
            silent: Do not log the request and response

        Returns:
            A dict for single objects, a list for collections
        """
        pass

    @abstractmethod
    async def device_info(self) -> DeviceInfo:
        """Get the stable machine identity and hostname."""
        pass

    # Context manager support
    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
        return False
