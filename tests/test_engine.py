"""Tests for the pipeline orchestrator."""
import pytest

from declarative_onboarding.config.settings import Settings
from declarative_onboarding.config_engine import ChangeType, ConfigEngine, PriorState
from declarative_onboarding.config_store import FileSnapshotStore, MemorySnapshotStore
from declarative_onboarding.errors import ParseError

from conftest import FakeDevice

SETTINGS = Settings(
    classes_of_truth=frozenset({"hostname", "DNS", "VLAN", "ConfigSync", "DbVariables"}),
    singleton_classes=frozenset({"DNS", "ConfigSync", "DbVariables"}),
)


def declaration(name_servers=("172.27.1.1",), tag=4094):
    return {
        "schemaVersion": "1.0.0",
        "class": "Device",
        "Common": {
            "class": "Tenant",
            "mySystem": {
                "class": "System",
                "hostname": "bigip1.example.com",
                "myDns": {"class": "DNS", "nameServers": list(name_servers), "search": []},
                "myLicense": {"class": "License", "regKey": "ABCDE-FGHIJ"},
            },
            "Network": {
                "class": "Network",
                "external": {"class": "VLAN", "tag": tag, "mtu": 1500},
            },
        },
    }


class TestConfigEngine:
    """Tests for ConfigEngine.process."""

    @pytest.mark.asyncio
    async def test_process_end_to_end(self, fake_device, descriptors):
        engine = ConfigEngine(fake_device, SETTINGS, descriptors, MemorySnapshotStore())

        processed = await engine.process(declaration(name_servers=["1.2.3.4"]))

        assert processed.tenants == ["Common"]
        merged = processed.merged
        assert merged["System"]["Common"]["DNS"] == {"nameServers": ["1.2.3.4"], "search": []}
        assert "hostname" not in merged["System"]["Common"]
        assert merged["System"]["Common"]["License"] == {"myLicense": {"regKey": "ABCDE-FGHIJ"}}

    @pytest.mark.asyncio
    async def test_singletons_line_up_with_current(self, fake_device, descriptors):
        """Declared DNS matching the device is not a change."""
        engine = ConfigEngine(fake_device, SETTINGS, descriptors, MemorySnapshotStore())

        processed = await engine.process(declaration())

        assert "DNS" not in processed.result.changed_classes()
        assert processed.desired["System"]["Common"]["DNS"] == {
            "nameServers": ["172.27.1.1"],
            "search": [],
        }

    @pytest.mark.asyncio
    async def test_vlan_reported_under_network_domain(self, fake_device, descriptors):
        engine = ConfigEngine(fake_device, SETTINGS, descriptors, MemorySnapshotStore())

        processed = await engine.process(declaration(tag=100))

        vlan = next(c for c in processed.result.changes if c.class_name == "VLAN")
        assert (vlan.domain, vlan.tenant) == ("Network", "Common")
        assert processed.merged["Network"]["Common"]["VLAN"]["Network_external"]["tag"] == 100

    @pytest.mark.asyncio
    async def test_snapshot_written_and_used(self, fake_device, descriptors, tmp_path):
        store = FileSnapshotStore(tmp_path)
        engine = ConfigEngine(fake_device, SETTINGS, descriptors, store)

        processed = await engine.process(declaration())

        assert store.list_ids() == ["abc-123"]
        assert processed.fetch.original == store.get("abc-123")

    @pytest.mark.asyncio
    async def test_undeclared_domain_left_alone(self, device_responses, descriptors):
        """DSC is read from the device but not declared, so nothing is applied for it."""
        store = MemorySnapshotStore()
        engine = ConfigEngine(FakeDevice(device_responses), SETTINGS, descriptors, store)

        processed = await engine.process(declaration())

        assert "ConfigSync" not in processed.result.changed_classes()
        assert "DSC" not in processed.merged
        assert processed.fetch.current["DSC"]["Common"]["ConfigSync"] == {"configsyncIp": "10.0.0.1"}

    @pytest.mark.asyncio
    async def test_parse_error_stops_before_device(self, fake_device, descriptors):
        engine = ConfigEngine(fake_device, SETTINGS, descriptors, MemorySnapshotStore())

        with pytest.raises(ParseError):
            await engine.process({"Common": {"class": "Tenant", "bad": "value"}})

        assert fake_device.calls == []

    @pytest.mark.asyncio
    async def test_prior_state_round_trip(self, device_responses, descriptors):
        """Variables from an earlier run stay in scope after being dropped."""
        engine = ConfigEngine(FakeDevice(device_responses), SETTINGS, descriptors, MemorySnapshotStore())
        with_var = declaration()
        with_var["Common"]["mySystem"]["dbvars"] = {"class": "DbVariables", "ui.advisory.color": "blue"}

        first = await engine.process(with_var)
        second = await engine.process(declaration(), first.fetch.to_prior_state())

        assert second.fetch.current["System"]["Common"]["DbVariables"] == {"ui.advisory.color": "green"}
        assert "DbVariables" not in second.result.changed_classes()

    @pytest.mark.asyncio
    async def test_dropped_variable_converges_across_runs(self, device_responses, descriptors, tmp_path):
        """Separate runs sharing only the snapshot store settle once the device is restored."""
        store = FileSnapshotStore(tmp_path)
        with_var = declaration()
        with_var["Common"]["mySystem"]["dbvars"] = {"class": "DbVariables", "ui.advisory.enabled": "true"}

        first = await ConfigEngine(FakeDevice(device_responses), SETTINGS, descriptors, store).process(with_var)
        assert "DbVariables" in first.result.changed_classes()

        device_responses["/tm/sys/db"][0]["value"] = "true"
        second = await ConfigEngine(FakeDevice(device_responses), SETTINGS, descriptors, store).process(
            declaration()
        )
        assert second.merged["System"]["Common"]["DbVariables"] == {"ui.advisory.enabled": "false"}
        assert "DbVariables" in second.result.changed_classes()

        device_responses["/tm/sys/db"][0]["value"] = "false"
        third = await ConfigEngine(FakeDevice(device_responses), SETTINGS, descriptors, store).process(
            declaration()
        )
        assert third.fetch.current["System"]["Common"]["DbVariables"] == {"ui.advisory.enabled": "false"}
        assert "DbVariables" not in third.result.changed_classes()

    @pytest.mark.asyncio
    async def test_connects_and_disconnects(self, fake_device, descriptors):
        engine = ConfigEngine(fake_device, SETTINGS, descriptors, MemorySnapshotStore())

        await engine.process(declaration())

        assert not fake_device.is_connected

    @pytest.mark.asyncio
    async def test_existing_session_left_open(self, fake_device, descriptors):
        await fake_device.connect()
        engine = ConfigEngine(fake_device, SETTINGS, descriptors, MemorySnapshotStore())

        await engine.process(declaration())

        assert fake_device.is_connected

    @pytest.mark.asyncio
    async def test_preview(self, fake_device, descriptors):
        engine = ConfigEngine(fake_device, SETTINGS, descriptors, MemorySnapshotStore())

        summary = await engine.preview(declaration(tag=100))

        assert "[~] Network/Common/VLAN" in summary

    def test_parse_only(self, fake_device, descriptors):
        engine = ConfigEngine(fake_device, SETTINGS, descriptors, MemorySnapshotStore())

        parsed = engine.parse(declaration())

        assert parsed.parsed["System"]["Common"]["DNS"]["myDns"]["nameServers"] == ["172.27.1.1"]
