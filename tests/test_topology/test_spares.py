"""Tests for spare allocation."""

import asyncio

import pytest

from shardkeeper.core.errors import InsufficientResourceError, ValidationError
from shardkeeper.topology import HardwareProfile, Node, NodeRole, SpareAllocator, SpareFilter


class TestSpareCounting:
    """Spare matching tests."""

    @pytest.mark.asyncio
    async def test_count_by_role(self, topology):
        """Test spares are counted per eligible role."""
        assert topology.count_spares() == 6
        assert topology.count_spares(role=NodeRole.MASTER) == 2
        assert topology.count_spares(role=NodeRole.STANDBY_REPLICA) == 4

    @pytest.mark.asyncio
    async def test_count_like_reference_node(self, topology):
        """Test hardware likeness against a reference node."""
        reference = topology.node("10.1.0.1")
        other = Node("10.9.9.9", hardware=HardwareProfile("db-small", "dc1"))

        assert topology.count_spares(like=reference) == 6
        assert topology.count_spares(like=other) == 0

    def test_filter_describe(self):
        """Test filter descriptions used in error messages."""
        assert SpareFilter().describe() == "any"
        assert SpareFilter(role=NodeRole.MASTER).describe() == "role=master"


class TestSpareClaims:
    """Claim atomicity tests."""

    @pytest.mark.asyncio
    async def test_claim_reduces_count_by_n(self, topology, inventory):
        """Test a successful claim removes exactly n spares."""
        before = topology.count_spares()

        claimed = await topology.claim_spares(3, role=NodeRole.STANDBY_REPLICA)

        assert len(claimed) == 3
        assert all(n.role == NodeRole.SPARE for n in claimed)
        assert topology.count_spares() == before - 3
        for node in claimed:
            assert node.address not in inventory.spare_addresses()

    @pytest.mark.asyncio
    async def test_insufficient_claims_nothing(self, topology, inventory):
        """Test a claim that cannot be satisfied takes nothing."""
        with pytest.raises(InsufficientResourceError) as exc_info:
            await topology.claim_spares(3, role=NodeRole.MASTER)

        assert exc_info.value.requested == 3
        assert topology.count_spares() == 6
        assert len(inventory.spare_addresses()) == 6

    @pytest.mark.asyncio
    async def test_claim_one(self, topology):
        """Test claiming a single spare."""
        spare = await topology.claim_spare(role=NodeRole.MASTER)

        assert spare.address in ("spare-m1", "spare-m2")
        assert topology.count_spares(role=NodeRole.MASTER) == 1

    @pytest.mark.asyncio
    async def test_concurrent_claims_never_share_a_node(self, topology):
        """Test concurrent callers each get distinct nodes."""
        results = await asyncio.gather(
            *(topology.claim_spares(2) for _ in range(4)), return_exceptions=True
        )

        claimed = [n.address for r in results if isinstance(r, list) for n in r]
        failures = [r for r in results if isinstance(r, InsufficientResourceError)]

        assert len(claimed) == len(set(claimed)) == 6
        assert len(failures) == 1
        assert topology.count_spares() == 0

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self, topology):
        """Test a batch fails as a whole if one request cannot be met."""
        requests = [
            (1, SpareFilter(role=NodeRole.MASTER)),
            (5, SpareFilter(role=NodeRole.STANDBY_REPLICA)),
        ]

        with pytest.raises(InsufficientResourceError):
            await topology.allocator.claim_batch(requests)

        assert topology.count_spares() == 6

    @pytest.mark.asyncio
    async def test_batch_requests_do_not_overlap(self, topology):
        """Test one node is never returned for two requests in a batch."""
        groups = await topology.allocator.claim_batch(
            [(2, SpareFilter()), (2, SpareFilter())]
        )

        addresses = [n.address for group in groups for n in group]
        assert len(set(addresses)) == 4

    @pytest.mark.asyncio
    async def test_any_role_spares_used_last(self):
        """Test a dedicated spare is preferred so a mixed batch can be met."""
        allocator = SpareAllocator()
        allocator.add(Node("any-1"))
        allocator.add(Node("m-1", spare_role=NodeRole.MASTER))

        masters, standbys = await allocator.claim_batch(
            [
                (1, SpareFilter(role=NodeRole.MASTER)),
                (1, SpareFilter(role=NodeRole.STANDBY_REPLICA)),
            ]
        )

        assert [n.address for n in masters] == ["m-1"]
        assert [n.address for n in standbys] == ["any-1"]

    @pytest.mark.asyncio
    async def test_shortage_reports_available_count(self):
        """Test the error counts spares left after earlier requests of the batch."""
        allocator = SpareAllocator()
        allocator.add(Node("any-1"))
        allocator.add(Node("any-2"))

        with pytest.raises(InsufficientResourceError) as exc_info:
            await allocator.claim_batch([(1, SpareFilter()), (2, SpareFilter())])

        error = exc_info.value
        assert error.requested == 2
        assert error.available == 1
        assert "only 1 are available" in str(error)
        assert "1 more match" in str(error)
        assert len(allocator) == 2

    @pytest.mark.asyncio
    async def test_negative_count_rejected(self, topology):
        """Test negative counts are a validation error."""
        with pytest.raises(ValidationError):
            await topology.claim_spares(-1)

    def test_only_spares_can_be_added(self, topology):
        """Test the allocator refuses nodes in service."""
        with pytest.raises(ValidationError):
            topology.allocator.add(topology.node("10.0.0.2"))

    @pytest.mark.asyncio
    async def test_stats(self, topology):
        """Test allocator statistics."""
        await topology.claim_spares(2)
        with pytest.raises(InsufficientResourceError):
            await topology.claim_spares(10)

        stats = await topology.allocator.get_stats()

        assert stats == {"available": 4, "claims": 1, "nodes_claimed": 2, "failed_claims": 1}
