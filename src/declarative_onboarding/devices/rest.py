"""REST read adapter (iControl-style JSON API over HTTPS).

Collections come back as `{"kind": "...collectionstate", "items": [...]}`
and are unwrapped to plain lists. Query-side selection uses `$select`.
"""
import json
import logging
from typing import Any, Optional

import httpx

from .base import DeviceReader, DeviceConfig, DeviceInfo
from ..errors import DeviceReadError
from ..utils.connection import with_retry
from ..utils.logging_config import timed

logger = logging.getLogger(__name__)

DEVICE_INFO_PATH = "/shared/identified-devices/config/device-info"


class RestDevice(DeviceReader):
    """Device reader backed by httpx."""

    def __init__(self, device_id: str, config: DeviceConfig):
        super().__init__(device_id, config)
        self._http: Optional[httpx.AsyncClient] = None
        self._base_url = f"https://{config.host}:{config.port}/mgmt"

    @timed("connect")
    async def connect(self) -> bool:
        """Open the HTTP session."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                auth=(self.config.username, self.config.get_password()),
                timeout=httpx.Timeout(self.config.timeout),
                verify=self.config.verify_ssl,
                headers={"Accept": "application/json"},
            )
        self._connected = True
        logger.info(f"Session opened for {self.device_id} at {self.config.host}")
        return True

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._http:
            await self._http.aclose()
            self._http = None
        self._connected = False
        logger.info(f"Disconnected from {self.device_id}")

    @with_retry(max_attempts=3, min_wait=1, max_wait=10)
    async def _get(self, path: str, params: dict[str, str]) -> httpx.Response:
        if self._http is None:
            await self.connect()
        return await self._http.get(path, params=params)

    async def list(
        self,
        path: str,
        select: Optional[list[str]] = None,
        *,
        params: Optional[dict[str, str]] = None,
        silent: bool = False,
    ) -> Any:
        """GET `path` and return the decoded body (collections unwrapped)."""
        query = dict(params or {})
        if select:
            query["$select"] = ",".join(select)

        if not silent:
            logger.debug(f"{self.device_id}: GET {path} {query}")

        resp = await self._get(path, query)

        if resp.status_code >= 400:
            raise DeviceReadError(
                f"GET {path} failed with {resp.status_code}: {resp.text[:200]}",
                path=path,
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except json.JSONDecodeError as e:
            raise DeviceReadError(f"GET {path} returned invalid JSON: {e}", path=path)

        if not silent:
            logger.debug(f"{self.device_id}: {path} -> {body}")

        return unwrap_collection(body)

    async def device_info(self) -> DeviceInfo:
        """Read machine id and hostname of the device."""
        info = await self.list(DEVICE_INFO_PATH)
        return DeviceInfo(
            machine_id=info["machineId"],
            hostname=info["hostname"],
            version=info.get("version"),
        )


def unwrap_collection(body: Any) -> Any:
    """Return the item list of a collection response, or the body unchanged."""
    if isinstance(body, dict):
        if "items" in body:
            return body["items"]
        if str(body.get("kind", "")).endswith("collectionstate"):
            return []
    return body
