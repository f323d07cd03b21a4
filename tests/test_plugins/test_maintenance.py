"""Tests for the maintenance hooks plugin."""

import pytest

from shardkeeper.core.errors import PartialFailureError
from shardkeeper.plugins import MaintenanceHooks


@pytest.fixture
def hooks(topology, transport):
    """Maintenance hooks installed on the topology's dispatcher."""
    hooks = MaintenanceHooks(transport)
    hooks.install(topology.callbacks)
    return hooks


class TestMaintenanceHooks:
    """Maintenance hook tests."""

    def test_install_registers_every_phase(self, hooks, topology):
        """Test one pre, post and error handler per target."""
        assert len(hooks.registrations) == 9
        assert {r.target for r in hooks.registrations} == set(MaintenanceHooks.TARGETS)

    @pytest.mark.asyncio
    async def test_clone_is_bracketed(self, hooks, topology, transport):
        """Test monitoring is suppressed around clones and restored after."""
        await topology.shard(0, 999).split(2)

        first_clone = transport.calls.index(("clone_data", "10.1.0.1"))
        assert transport.calls.index(("suppress_monitoring", "10.1.0.1")) < first_clone
        assert transport.calls.index(("stop_query_killer", "spare-m1")) < transport.calls.index(
            ("clone_data", "spare-m1")
        )
        assert "spare-s1" in transport.called("resume_monitoring")
        assert transport.node("10.1.0.1").monitoring
        assert transport.node("spare-m1").query_killer

    @pytest.mark.asyncio
    async def test_cleanup_covers_children(self, hooks, topology, transport):
        """Test cleanup quiesces the parent and every child master."""
        parent = topology.shard(0, 999)
        await parent.split(2)
        await parent.move_reads_to_children()
        await parent.move_writes_to_children()
        masters = {"10.1.0.1", "spare-m1", "spare-m2"}
        transport.calls.clear()

        await parent.cleanup()

        assert set(transport.called("suppress_monitoring")) == masters
        assert set(transport.called("start_query_killer")) == masters
        assert transport.called("suppress_monitoring")[0] == "10.1.0.1"
        for address in masters:
            assert transport.node(address).monitoring
            assert transport.node(address).query_killer
        assert hooks._pending == {}

    @pytest.mark.asyncio
    async def test_failed_clone_leaves_maintenance(self, hooks, topology, transport):
        """Test nodes are restored when the clone they were quiesced for fails."""
        transport.fail("clone_data", "spare-m2")

        with pytest.raises(PartialFailureError):
            await topology.shard(0, 999).split(2)

        for address in ("10.1.0.1", "spare-m2", "spare-s3", "spare-s4"):
            assert transport.node(address).monitoring
            assert transport.node(address).query_killer
        assert hooks._pending == {}

    @pytest.mark.asyncio
    async def test_schema_import_is_bracketed(self, hooks, topology, transport):
        """Test cutover schema import runs in maintenance."""
        new = await topology.shard_cutover(5000)

        assert new.master.address in transport.called("suppress_monitoring")
        assert transport.node(new.master.address).monitoring

    @pytest.mark.asyncio
    async def test_hook_failure_does_not_block(self, hooks, topology, transport):
        """Test a failing monitoring call is logged and the operation continues."""
        transport.fail("suppress_monitoring", "10.1.0.1")

        result = await topology.shard(0, 999).split(2)

        assert result.complete

    @pytest.mark.asyncio
    async def test_uninstall(self, hooks, topology, transport):
        """Test uninstalled hooks no longer run."""
        hooks.uninstall(topology.callbacks)

        await topology.shard(0, 999).split(2)

        assert transport.called("suppress_monitoring") == []
