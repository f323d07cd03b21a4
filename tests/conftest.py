"""Shared fixtures: an in-memory fleet.

Fleet layout:
- pool "users": master 10.0.0.1, active 10.0.0.2 (weight 100),
  standby 10.0.0.3, backup 10.0.0.4
- shard [0, 999]: master 10.1.0.1, standby 10.1.0.2
- shard [1000, 2999]: master 10.2.0.1, no replicas
- shard [3000, infinity): master 10.3.0.1, standby 10.3.0.2
- spares: spare-m1, spare-m2 (master capable), spare-s1..spare-s4 (standby)
"""

import pytest

from shardkeeper.core.config import Settings
from shardkeeper.inventory import MemoryInventory, NodeRecord, PoolRecord, ShardRecord
from shardkeeper.topology import Topology
from shardkeeper.transport import InMemoryTransport

HARDWARE = "db-large"
SCHEMA = "CREATE TABLE posts (id BIGINT PRIMARY KEY, body TEXT);"


def node(address, role, pool_id=None, weight=0, spare_role=None, hardware_class=HARDWARE):
    return NodeRecord(
        address=address,
        role=role,
        pool_id=pool_id,
        weight=weight,
        version="8.0",
        hardware_class=hardware_class,
        datacenter="dc1",
        spare_role=spare_role,
    )


def fleet_pools() -> list[PoolRecord]:
    users = PoolRecord(
        name="users",
        master_address="10.0.0.1",
        nodes=[
            node("10.0.0.1", "master", "users"),
            node("10.0.0.2", "active_replica", "users", weight=100),
            node("10.0.0.3", "standby_replica", "users"),
            node("10.0.0.4", "backup_replica", "users"),
        ],
    )
    first = ShardRecord(
        name="shard-0-999",
        master_address="10.1.0.1",
        nodes=[
            node("10.1.0.1", "master", "shard-0-999"),
            node("10.1.0.2", "standby_replica", "shard-0-999"),
        ],
        min_id=0,
        max_id=999,
    )
    second = ShardRecord(
        name="shard-1000-2999",
        master_address="10.2.0.1",
        nodes=[node("10.2.0.1", "master", "shard-1000-2999")],
        min_id=1000,
        max_id=2999,
    )
    last = ShardRecord(
        name="shard-3000-infinity",
        master_address="10.3.0.1",
        nodes=[
            node("10.3.0.1", "master", "shard-3000-infinity"),
            node("10.3.0.2", "standby_replica", "shard-3000-infinity"),
        ],
        min_id=3000,
        max_id=None,
    )
    return [users, first, second, last]


def fleet_spares() -> list[NodeRecord]:
    return [
        node("spare-m1", "spare", spare_role="master"),
        node("spare-m2", "spare", spare_role="master"),
        node("spare-s1", "spare", spare_role="standby_replica"),
        node("spare-s2", "spare", spare_role="standby_replica"),
        node("spare-s3", "spare", spare_role="standby_replica"),
        node("spare-s4", "spare", spare_role="standby_replica"),
    ]


def seed_fleet(transport: InMemoryTransport) -> None:
    rows = {
        "users": set(range(10)),
        "shard-0-999": set(range(0, 1000)),
        "shard-1000-2999": set(range(1000, 3000)),
        "shard-3000-infinity": set(range(3000, 3100)),
    }
    for record in fleet_pools():
        for member in record.nodes:
            source = None if member.address == record.master_address else record.master_address
            transport.seed(member.address, source=source, schema=SCHEMA, rows=rows[record.name])
    for spare in fleet_spares():
        transport.seed(spare.address)


@pytest.fixture
def settings():
    """Settings independent of the environment."""
    return Settings(_env_file=None, standbys_per_pool=2, max_concurrency=4)


@pytest.fixture
def inventory():
    """In-memory inventory holding the fleet."""
    return MemoryInventory(pools=fleet_pools(), spares=fleet_spares())


@pytest.fixture
def transport():
    """Simulated fleet matching the inventory."""
    transport = InMemoryTransport()
    seed_fleet(transport)
    return transport


@pytest.fixture
async def topology(inventory, transport, settings):
    """Loaded topology over the in-memory fleet."""
    topology = Topology(inventory, transport, settings)
    await topology.load()
    return topology
