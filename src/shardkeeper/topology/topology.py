"""Topology - Catalog of every pool, shard, node and spare in the fleet."""

import logging
from typing import TYPE_CHECKING

from ..callbacks import CallbackDispatcher
from ..core.config import Settings, get_settings
from ..core.context import ExecutionContext
from ..core.errors import InconsistentTopologyError, NotFoundError, ValidationError
from ..core.fanout import FanOutResult, fan_out
from ..inventory.backend import InventoryBackend
from ..inventory.memory import MemoryInventory
from ..inventory.records import PoolRecord, ShardRecord
from ..transport.base import NodeTransport
from ..transport.memory import InMemoryTransport
from .node import REPLICA_ROLES, Node, NodeRole
from .pool import Pool
from .shard import Shard, ShardState
from .spares import SpareAllocator

if TYPE_CHECKING:
    from ..workflows.promotion import DemotionPolicy, PromotionResult

logger = logging.getLogger(__name__)

# Child states in which the child, not the parent, serves reads / writes
READ_SHIFTED = frozenset({ShardState.CHILD, ShardState.NEEDS_CLEANUP, ShardState.READY})
WRITE_SHIFTED = frozenset({ShardState.NEEDS_CLEANUP, ShardState.READY})


class Topology:
    """
    Top-level catalog.

    Composes all pools and shards (by name), all known nodes (by address) and
    the spare allocator. Resolves operator targets, owns the collaborators
    (inventory, transport, callback dispatcher) and renders the application
    configuration from current in-memory state.
    """

    def __init__(
        self,
        inventory: InventoryBackend,
        transport: NodeTransport,
        settings: Settings | None = None,
        callbacks: CallbackDispatcher | None = None,
    ):
        self.settings = settings or get_settings()
        self.inventory = inventory
        self.transport = transport
        self.callbacks = callbacks if callbacks is not None else CallbackDispatcher()
        self.allocator = SpareAllocator(inventory)
        self.context = ExecutionContext.from_settings(self.settings)

        self._pools: dict[str, Pool] = {}
        self._nodes: dict[str, Node] = {}
        self._loaded = False

    # Loading

    async def load(self) -> None:
        """Materialize pools, shards, nodes and spares from the inventory."""
        if self._loaded:
            return

        records = await self.inventory.load_pools()
        parents: dict[str, str] = {}

        for record in records:
            pool = self._pool_from_record(record)
            self.register_pool(pool)
            if isinstance(record, ShardRecord) and record.parent_id:
                parents[pool.name] = record.parent_id

        for name, parent_name in parents.items():
            child = self._pools[name]
            parent = self._pools.get(parent_name)
            if not isinstance(parent, Shard):
                raise InconsistentTopologyError(
                    f"{name} references missing parent shard {parent_name}"
                )
            child.parent = parent
            parent.children.append(child)

        for record in await self.inventory.load_spares():
            node = Node.from_record(record, topology=self)
            self._nodes[node.address] = node
            self.allocator.add(node)

        self._loaded = True
        logger.info(
            f"Loaded {len(self._pools)} pools, {len(self._nodes)} nodes, "
            f"{len(self.allocator)} spares"
        )

    def _pool_from_record(self, record: PoolRecord) -> Pool:
        if isinstance(record, ShardRecord):
            pool: Pool = Shard(
                record.min_id,
                record.max_id,
                state=ShardState(record.state),
                topology=self,
                name_prefix=self.settings.shard_name_prefix,
            )
            pool.name = record.name
        else:
            pool = Pool(record.name, topology=self)

        nodes = [Node.from_record(r, topology=self) for r in record.nodes]
        for node in nodes:
            if node.address == record.master_address:
                pool._attach_master(node)
        for node in nodes:
            if node.address == record.master_address:
                continue
            if node.role not in REPLICA_ROLES:
                raise InconsistentTopologyError(
                    f"{node.address} in {record.name} has role {node.role.value}"
                )
            pool._attach_replica(node, node.role, node.weight)
        return pool

    def register_pool(self, pool: Pool) -> Pool:
        """Add a pool and its nodes to the catalog."""
        if pool.name in self._pools and self._pools[pool.name] is not pool:
            raise ValidationError(f"pool {pool.name} already exists")
        pool.topology = self
        self._pools[pool.name] = pool
        for node in pool.nodes:
            node.topology = self
            self._nodes[node.address] = node
        return pool

    def create_shard(
        self,
        min_id: int,
        max_id: int | None,
        master: Node,
        state: ShardState = ShardState.READY,
        parent: Shard | None = None,
    ) -> Shard:
        """Register a new shard with the given master; persistence is the caller's."""
        shard = Shard(
            min_id,
            max_id,
            master=master,
            state=state,
            topology=self,
            name_prefix=self.settings.shard_name_prefix,
        )
        self.register_pool(shard)
        if parent is not None:
            shard.parent = parent
            parent.children.append(shard)
        logger.info(f"Registered {shard.name} with master {master.address}")
        return shard

    async def rename_pool(self, old_name: str, new_name: str | None = None) -> Pool:
        """
        Re-key a pool under a new name and drop the old inventory record.

        With new_name omitted the pool's current name is used, which is how a
        shard whose range (and therefore identity) changed is re-keyed.
        """
        pool = self.pool(old_name)
        if new_name is not None:
            pool.name = new_name
        if pool.name == old_name:
            return pool
        if pool.name in self._pools:
            raise ValidationError(f"pool {pool.name} already exists")

        del self._pools[old_name]
        self._pools[pool.name] = pool
        await self.inventory.delete_pool(old_name)
        logger.info(f"Renamed {old_name} to {pool.name}")
        return pool

    async def retire_pool(self, name: str) -> None:
        """
        Drop a pool from the catalog and retire its nodes.

        Shards must be in recycle state.
        """
        pool = self.pool(name)
        if isinstance(pool, Shard) and pool.state != ShardState.RECYCLE:
            raise ValidationError(
                f"{name} is {pool.state.value}; only recycled shards can be retired"
            )

        nodes = pool.nodes
        for node in nodes:
            pool._detach(node)
            node.role = NodeRole.RETIRED
            node.weight = 0
            node.master = None

        del self._pools[name]
        await self.inventory.upsert_nodes([n.to_record() for n in nodes])
        await self.inventory.delete_pool(name)
        logger.info(f"Retired {name} ({len(nodes)} nodes)")
        await self.write_config()

    # Lookup

    def resolve(self, target: str | tuple[int, int | None]) -> Node | Pool:
        """Resolve an address, a pool name or a (min_id, max_id) pair."""
        if isinstance(target, tuple):
            return self.shard(*target)
        if target in self._nodes:
            return self._nodes[target]
        if target in self._pools:
            return self._pools[target]
        raise NotFoundError(f"no node or pool named {target}")

    def node(self, address: str) -> Node:
        node = self._nodes.get(address)
        if node is None:
            raise NotFoundError(f"node {address} not found")
        return node

    def pool(self, name: str) -> Pool:
        pool = self._pools.get(name)
        if pool is None:
            raise NotFoundError(f"pool {name} not found")
        return pool

    def pools(self, include_shards: bool = False) -> list[Pool]:
        return [
            p for p in self._pools.values() if include_shards or not isinstance(p, Shard)
        ]

    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def shard(self, min_id: int, max_id: int | None) -> Shard:
        """Find any shard (top-level or child) by range."""
        for pool in self._pools.values():
            if isinstance(pool, Shard) and pool.range == (min_id, max_id):
                return pool
        raise NotFoundError(f"shard [{min_id}, {max_id}] not found")

    def shards(self, state: ShardState | None = None) -> list[Shard]:
        """
        Top-level shards ordered by min_id.

        Recycled shards are only listed when asked for by state.
        """
        result = [
            p
            for p in self._pools.values()
            if isinstance(p, Shard) and p.parent is None
            and (p.state == state if state is not None else p.state != ShardState.RECYCLE)
        ]
        return sorted(result, key=lambda s: s.min_id)

    def shard_for_id(self, id_: int) -> Shard:
        for shard in self.shards():
            if shard.covers(id_):
                return shard
        raise NotFoundError(f"no shard covers id {id_}")

    def last_shard(self) -> Shard:
        """The unbounded top-level shard."""
        for shard in self.shards():
            if shard.is_unbounded:
                return shard
        raise NotFoundError("no unbounded shard")

    def validate_shard_ranges(self) -> None:
        """
        Check top-level shards are contiguous with a single unbounded last shard.

        Raises:
            InconsistentTopologyError: on a gap, an overlap or a misplaced
            unbounded shard
        """
        shards = self.shards()
        if not shards:
            return

        for current, following in zip(shards, shards[1:]):
            if current.max_id is None:
                raise InconsistentTopologyError(
                    f"{current.name} is unbounded but {following.name} follows it"
                )
            if following.min_id != current.max_id + 1:
                raise InconsistentTopologyError(
                    f"{current.name} and {following.name} are not contiguous"
                )

        if not shards[-1].is_unbounded:
            raise InconsistentTopologyError(f"last shard {shards[-1].name} is bounded")

    def shard_pending_split(self, min_id: int | None = None, max_id: int | None = None) -> Shard:
        """
        Pick the shard a split phase applies to.

        With a range, that shard must have children. Without one, the single
        shard with children is selected; several require disambiguation.
        """
        if min_id is not None:
            shard = self.shard(min_id, max_id)
            if not shard.children:
                raise ValidationError(f"{shard.name} has no split in progress")
            return shard

        pending = [s for s in self.shards() if s.children]
        if not pending:
            raise NotFoundError("no shard has a split in progress")
        if len(pending) > 1:
            names = ", ".join(s.name for s in pending)
            raise ValidationError(f"several shards are mid-split ({names}); give min_id and max_id")
        return pending[0]

    # Spares

    def count_spares(self, role: NodeRole | None = None, like: Node | None = None) -> int:
        return self.allocator.count(role=role, like=like)

    async def claim_spares(
        self, count: int, role: NodeRole | None = None, like: Node | None = None
    ) -> list[Node]:
        return await self.allocator.claim(count, role=role, like=like)

    async def claim_spare(self, role: NodeRole | None = None, like: Node | None = None) -> Node:
        return await self.allocator.claim_one(role=role, like=like)

    # Operations

    async def promote(
        self,
        demoted: Node,
        promoted: Node | None = None,
        *,
        demoted_role: "DemotionPolicy",
        replicas: list[Node] | None = None,
        context: ExecutionContext | None = None,
    ) -> "PromotionResult":
        """Promote a replica of demoted's pool in place of demoted."""
        pool = demoted.pool
        if pool is None or pool.master is not demoted:
            raise ValidationError(f"{demoted.address} is not the master of any pool")
        return await pool.promote(
            promoted, demoted_role=demoted_role, replicas=replicas, context=context
        )

    async def shard_cutover(self, cutover_id: int, context: ExecutionContext | None = None) -> Shard:
        """Cap the last shard at cutover_id - 1 and open [cutover_id, infinity)."""
        return await self.last_shard().cutover(cutover_id, context=context)

    async def probe_all(self, context: ExecutionContext | None = None) -> FanOutResult[bool]:
        """Probe every pool node concurrently; failures are collected."""
        context = context or self.context
        nodes = [n for p in self._pools.values() for n in p.nodes]
        result = await fan_out(
            nodes, lambda n: n.probe(), key=lambda n: n.address, limit=context.concurrency
        )
        unreachable = [a for a, ok in result.succeeded.items() if not ok]
        if unreachable:
            logger.warning(f"Unreachable nodes: {', '.join(unreachable)}")
        return result

    # Configuration

    def _shard_entry(
        self, shard: Shard, read_pool: Pool, write_pool: Pool | None
    ) -> dict:
        return {
            "name": shard.name,
            "min_id": shard.min_id,
            "max_id": shard.max_id,
            "state": shard.state.value,
            "read_master": read_pool.master.address if read_pool.master else None,
            "write_master": (
                write_pool.master.address if write_pool and write_pool.master else None
            ),
            "replicas": {n.address: n.weight for n in read_pool.active_replicas},
        }

    def render_config(self) -> dict:
        """
        Build the application configuration document from in-memory state.

        Pure function of current state: calling it twice gives equal documents.
        """
        pools = [
            {
                "name": p.name,
                "master": p.master.address if p.master else None,
                "replicas": {n.address: n.weight for n in p.active_replicas},
            }
            for p in self.pools()
        ]

        shards = []
        for shard in self.shards():
            if shard.state == ShardState.DEPRECATED and shard.children:
                for child in sorted(shard.children, key=lambda c: c.min_id):
                    read_pool = child if child.state in READ_SHIFTED else shard
                    write_pool = child if child.state in WRITE_SHIFTED else shard
                    shards.append(self._shard_entry(child, read_pool, write_pool))
            elif shard.state == ShardState.OFFLINE:
                entry = self._shard_entry(shard, shard, None)
                entry.update({"read_master": None, "replicas": {}})
                shards.append(entry)
            elif shard.state == ShardState.READ_ONLY:
                shards.append(self._shard_entry(shard, shard, None))
            else:
                shards.append(self._shard_entry(shard, shard, shard))

        return {"pools": pools, "shards": shards}

    async def write_config(self) -> None:
        """Regenerate and persist the application configuration."""
        await self.inventory.write_config(self.render_config())

    # Inspection

    def summary(self) -> dict:
        return {
            "pools": len(self.pools()),
            "shards": len(self.shards()),
            "nodes": len(self._nodes),
            "spares": len(self.allocator),
            "pending_splits": [s.name for s in self.shards() if s.children],
        }

    async def get_stats(self) -> dict:
        """Get topology, allocator and dispatcher statistics."""
        return {
            **self.summary(),
            "allocator": await self.allocator.get_stats(),
            "callbacks": await self.callbacks.get_stats(),
        }


# Global topology instance
_topology: Topology | None = None


def configure_topology(topology: Topology | None) -> None:
    """Install the topology served by get_topology(); None resets it."""
    global _topology
    _topology = topology


async def get_topology() -> Topology:
    """Get or create the loaded topology singleton."""
    global _topology
    if _topology is None:
        settings = get_settings()
        _topology = Topology(
            MemoryInventory(config_path=settings.config_path),
            InMemoryTransport(),
            settings,
        )
    await _topology.load()
    return _topology
