"""Shared fixtures: an in-memory device reader."""
import asyncio
import copy
from typing import Any, Optional

import pytest

from declarative_onboarding.config.descriptors import parse_descriptors
from declarative_onboarding.devices.base import DeviceInfo, DeviceReader
from declarative_onboarding.errors import DeviceReadError


class FakeDevice(DeviceReader):
    """Device reader serving canned responses by path.

    Responses are returned as deep copies so tests can check that nothing
    downstream mutates what the device returned.
    """

    def __init__(
        self,
        responses: dict[str, Any],
        machine_id: str = "abc-123",
        hostname: str = "bigip1.example.com",
        failures: Optional[dict[str, Exception]] = None,
        delays: Optional[dict[str, float]] = None,
    ):
        super().__init__("fake-bigip")
        self.responses = responses
        self.info = DeviceInfo(machine_id=machine_id, hostname=hostname)
        self.failures = failures or {}
        self.delays = delays or {}
        self.calls: list[tuple[str, Optional[list[str]], dict[str, str]]] = []
        self.cancelled: list[str] = []

    # Defined before `list`, which shadows the builtin for the rest of the class body
    def paths_read(self) -> list[str]:
        return [call[0] for call in self.calls]

    async def list(self, path, select=None, *, params=None, silent=False):
        self.calls.append((path, select, dict(params or {})))
        try:
            if path in self.delays:
                await asyncio.sleep(self.delays[path])
        except asyncio.CancelledError:
            self.cancelled.append(path)
            raise
        if path in self.failures:
            raise self.failures[path]
        if path not in self.responses:
            raise DeviceReadError(f"GET {path} failed with 404", path=path, status_code=404)
        return copy.deepcopy(self.responses[path])

    async def device_info(self) -> DeviceInfo:
        return self.info


CM_DEVICES = [
    {"name": "bigip1", "hostname": "bigip1.example.com"},
    {"name": "bigip2", "hostname": "bigip2.example.com"},
]


@pytest.fixture
def descriptors():
    """A small descriptor set covering the main item shapes."""
    return parse_descriptors({"items": [
        {
            "path": "/tm/sys/global-settings",
            "nameless": True,
            "properties": [{"id": "hostname"}],
        },
        {
            "path": "/tm/sys/db",
            "schema_class": "DbVariables",
            "single_value": True,
            "silent": True,
            "properties": [{"id": "value"}],
        },
        {
            "path": "/tm/sys/dns",
            "schema_class": "DNS",
            "nameless": True,
            "properties": [
                {"id": "nameServers"},
                {"id": "search", "default_when_omitted": []},
            ],
        },
        {
            "path": "/tm/net/vlan",
            "schema_class": "VLAN",
            "domain": "Network",
            "properties": [{"id": "tag"}, {"id": "mtu"}],
            "references": {
                "interfacesReference": [
                    {"id": "tagged", "truth": True, "falsehood": False},
                ],
            },
        },
        {
            "path": "/tm/cm/device/~Common~{{deviceName}}",
            "schema_class": "ConfigSync",
            "domain": "DSC",
            "nameless": True,
            "properties": [{"id": "configsyncIp"}],
        },
    ]})


@pytest.fixture
def device_responses():
    """Device state matching the `descriptors` fixture."""
    return {
        "/tm/cm/device": copy.deepcopy(CM_DEVICES),
        "/tm/sys/global-settings": {
            "kind": "tm:sys:global-settings:global-settingsstate",
            "selfLink": "https://localhost/mgmt/tm/sys/global-settings",
            "hostname": "bigip1.example.com",
        },
        "/tm/sys/db": [
            {"name": "ui.advisory.enabled", "value": "false"},
            {"name": "ui.advisory.color", "value": "green"},
            {"name": "setup.run", "value": "true"},
        ],
        "/tm/sys/dns": {
            "kind": "tm:sys:dns:dnsstate",
            "nameServers": ["172.27.1.1"],
        },
        "/tm/net/vlan": [
            {
                "kind": "tm:net:vlan:vlanstate",
                "name": "external",
                "tag": 4094,
                "mtu": 1500,
                "interfacesReference": {
                    "link": "https://localhost/mgmt/tm/net/vlan/~Common~external/interfaces?ver=13.1.0",
                },
            },
        ],
        "/tm/net/vlan/~Common~external/interfaces": [
            {"kind": "tm:net:vlan:interfaces:interfacesstate", "name": "1.1", "tagged": True},
            {"kind": "tm:net:vlan:interfaces:interfacesstate", "name": "1.2"},
        ],
        "/tm/cm/device/~Common~bigip1": {
            "name": "bigip1",
            "configsyncIp": "10.0.0.1",
        },
    }


@pytest.fixture
def fake_device(device_responses):
    return FakeDevice(device_responses)
