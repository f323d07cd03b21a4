#!/usr/bin/env python3
"""
ShardKeeper Demo Script

Showcases key capabilities against a simulated in-memory fleet:
1. Pools and spares
2. Master promotion
3. Four-phase shard split
4. Range cutover of the last shard

Usage:
    python demo.py
"""

import asyncio
import json
import sys

import httpx

from shardkeeper.api.main import app
from shardkeeper.core.config import get_settings
from shardkeeper.core.logging_config import setup_logging
from shardkeeper.inventory import MemoryInventory, NodeRecord, PoolRecord, ShardRecord
from shardkeeper.plugins import MaintenanceHooks
from shardkeeper.topology import Topology, configure_topology
from shardkeeper.transport import InMemoryTransport

API_V1 = "/api/v1"
SCHEMA = "CREATE TABLE events (id BIGINT PRIMARY KEY, payload TEXT);"


def print_header(title: str) -> None:
    """Print a section header."""
    print(f"\n{'='*60}")
    print(f"  {title}")
    print(f"{'='*60}\n")


def print_json(data: dict) -> None:
    """Pretty print JSON data."""
    print(json.dumps(data, indent=2, default=str))


def member(address: str, role: str, pool_id: str | None = None, **kwargs) -> NodeRecord:
    return NodeRecord(
        address=address,
        role=role,
        pool_id=pool_id,
        version="8.0",
        hardware_class="db-large",
        datacenter="dc1",
        **kwargs,
    )


def build_fleet() -> tuple[MemoryInventory, InMemoryTransport]:
    """A small fleet: one pool, two shards and six spares."""
    pools = [
        PoolRecord(
            name="accounts",
            master_address="db-a1",
            nodes=[
                member("db-a1", "master", "accounts"),
                member("db-a2", "active_replica", "accounts", weight=100),
                member("db-a3", "standby_replica", "accounts"),
            ],
        ),
        ShardRecord(
            name="shard-0-9999",
            master_address="db-s1",
            nodes=[
                member("db-s1", "master", "shard-0-9999"),
                member("db-s2", "standby_replica", "shard-0-9999"),
            ],
            min_id=0,
            max_id=9999,
        ),
        ShardRecord(
            name="shard-10000-infinity",
            master_address="db-t1",
            nodes=[
                member("db-t1", "master", "shard-10000-infinity"),
                member("db-t2", "standby_replica", "shard-10000-infinity"),
            ],
            min_id=10000,
            max_id=None,
        ),
    ]
    spares = [member(f"spare-m{i}", "spare", spare_role="master") for i in (1, 2, 3)]
    spares += [member(f"spare-s{i}", "spare", spare_role="standby_replica") for i in range(1, 7)]

    transport = InMemoryTransport()
    rows = {
        "accounts": set(range(100)),
        "shard-0-9999": set(range(10000)),
        "shard-10000-infinity": set(range(10000, 12000)),
    }
    for record in pools:
        for node in record.nodes:
            source = None if node.address == record.master_address else record.master_address
            transport.seed(node.address, source=source, schema=SCHEMA, rows=rows[record.name])
    for spare in spares:
        transport.seed(spare.address)

    return MemoryInventory(pools=pools, spares=spares), transport


async def demo_pools(client: httpx.AsyncClient) -> None:
    """Demo: Pools and Spares"""
    print_header("1. POOLS AND SPARES")

    response = await client.get(f"{API_V1}/pools/accounts")
    pool = response.json()
    print(f"Pool '{pool['name']}'")
    print(f"  Master: {pool['master']['address']}")
    for replica in pool["replicas"]:
        print(f"  Replica: {replica['address']} ({replica['role']}, weight {replica['weight']})")

    print("\nActivating standby db-a3 with weight 50...")
    response = await client.post(
        f"{API_V1}/pools/accounts/replicas/db-a3/activate", json={"weight": 50}
    )
    print(f"  Active weight total: {response.json()['active_weight_total']}")

    response = await client.get(f"{API_V1}/spares")
    print(f"\nUnclaimed spares: {response.json()['total']}")


async def demo_promotion(client: httpx.AsyncClient) -> None:
    """Demo: Master Promotion"""
    print_header("2. MASTER PROMOTION")

    print("Listing promotion candidates...")
    response = await client.post(
        f"{API_V1}/pools/accounts/promote", json={"demoted_role": "standby"}
    )
    candidates = response.json()
    print(f"  Candidates: {', '.join(candidates['candidates'])}")

    promoted = candidates["candidates"][0]
    print(f"\nPromoting {promoted}; old master becomes a standby...")
    response = await client.post(
        f"{API_V1}/pools/accounts/promote",
        json={"promoted": promoted, "demoted_role": "standby"},
    )
    print_json(response.json()["outcomes"])


async def demo_split(client: httpx.AsyncClient) -> None:
    """Demo: Shard Split"""
    print_header("3. SHARD SPLIT")

    print("Phase 1: cloning [0, 9999] onto two children...")
    response = await client.post(f"{API_V1}/shards/0/9999/split", json={"child_count": 2})
    print(f"  Children: {', '.join(response.json()['children'])}")

    print("Phase 2: moving reads to children...")
    await client.post(f"{API_V1}/shards/0/9999/reads")
    print("Phase 3: moving writes to children...")
    await client.post(f"{API_V1}/shards/0/9999/writes")

    print("Phase 4: cleanup...")
    response = await client.post(f"{API_V1}/shards/0/9999/cleanup")
    for child, pruned in response.json()["pruned"].items():
        print(f"  {child}: pruned {pruned} rows")


async def demo_cutover(client: httpx.AsyncClient) -> None:
    """Demo: Range Cutover"""
    print_header("4. RANGE CUTOVER")

    print("Capping the last shard at 19999...")
    response = await client.post(f"{API_V1}/shards/cutover", json={"cutover_id": 20000})
    shard = response.json()
    print(f"  New shard: {shard['name']} on {shard['master']['address']}")

    response = await client.get(f"{API_V1}/shards")
    print("\nShard map:")
    for entry in response.json()["shards"]:
        print(f"  {entry['name']:<24} {entry['state']:<10} {entry['master']['address']}")

    response = await client.get("/health")
    health = response.json()
    print(f"\nHealth: {health['status']} ({health['spares']} spares left)")


async def main() -> None:
    """Run the demo."""
    settings = get_settings()
    setup_logging("demo", settings.log_level, settings.log_file)

    print("\n" + "=" * 60)
    print("        ShardKeeper Demo - Pool and Shard Orchestration")
    print("=" * 60)

    inventory, transport = build_fleet()
    topology = Topology(inventory, transport, settings)
    MaintenanceHooks(transport).install(topology.callbacks)
    await topology.load()
    configure_topology(topology)

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://demo"
    ) as client:
        try:
            await demo_pools(client)
            await demo_promotion(client)
            await demo_split(client)
            await demo_cutover(client)
        except httpx.HTTPError as e:
            print(f"\nHTTP Error: {e}")
            sys.exit(1)

    print_header("DEMO COMPLETE")
    print("Rendered application configuration:")
    print_json(topology.render_config())


if __name__ == "__main__":
    asyncio.run(main())
