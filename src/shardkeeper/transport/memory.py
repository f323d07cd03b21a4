"""
In-memory transport.

Simulates a fleet of database nodes for tests and the demo. Each node has a
reachability flag, a replication source, a schema, a set of row ids and a few
maintenance flags. Any (action, address) pair can be made to fail.
"""

import asyncio
from dataclasses import dataclass, field

from ..core.errors import NodeActionError
from .base import NodeTransport


@dataclass
class SimulatedNode:
    """State of one simulated database node."""

    address: str
    reachable: bool = True
    running: bool = True
    source: str | None = None
    replication_paused: bool = False
    lag: float = 0.0
    schema: str = ""
    rows: set[int] = field(default_factory=set)
    read_only: bool = False
    access_revoked: bool = False
    query_killer: bool = True
    monitoring: bool = True


class InMemoryTransport(NodeTransport):
    """
    In-memory node transport.

    failures
    Set of (action, address) pairs that raise NodeActionError.

    calls
    Ordered log of (action, address) for every primitive invoked.
    """

    def __init__(self, failures: set[tuple[str, str]] | None = None):
        self.failures: set[tuple[str, str]] = set(failures or ())
        self.calls: list[tuple[str, str]] = []
        self._nodes: dict[str, SimulatedNode] = {}
        self._lock = asyncio.Lock()

    def seed(
        self,
        address: str,
        *,
        source: str | None = None,
        schema: str = "",
        rows: set[int] | None = None,
        lag: float = 0.0,
        reachable: bool = True,
    ) -> SimulatedNode:
        """Create or replace a simulated node."""
        node = SimulatedNode(
            address=address,
            source=source,
            schema=schema,
            rows=set(rows or ()),
            lag=lag,
            reachable=reachable,
        )
        self._nodes[address] = node
        return node

    def node(self, address: str) -> SimulatedNode:
        """Get (creating on first use) the simulated node."""
        if address not in self._nodes:
            self._nodes[address] = SimulatedNode(address=address)
        return self._nodes[address]

    def fail(self, action: str, address: str) -> None:
        """Make action fail on address."""
        self.failures.add((action, address))

    def _enter(self, action: str, address: str) -> SimulatedNode:
        self.calls.append((action, address))
        node = self.node(address)
        if (action, address) in self.failures:
            raise NodeActionError(address, action, "injected failure")
        if action != "probe" and not node.reachable:
            raise NodeActionError(address, action, "node unreachable")
        return node

    def called(self, action: str) -> list[str]:
        """Addresses the action was invoked on, in order."""
        return [address for a, address in self.calls if a == action]

    async def probe(self, address: str) -> bool:
        node = self._enter("probe", address)
        return node.reachable and node.running

    async def start_service(self, address: str) -> None:
        self._enter("start_service", address).running = True

    async def stop_service(self, address: str) -> None:
        self._enter("stop_service", address).running = False

    async def clone_data(self, source: str, targets: list[str]) -> None:
        origin = self._enter("clone_data", source)
        for target in targets:
            node = self._enter("clone_data", target)
            async with self._lock:
                node.schema = origin.schema
                node.rows = set(origin.rows)
            await asyncio.sleep(0)

    async def export_schema(self, address: str) -> str:
        return self._enter("export_schema", address).schema

    async def import_schema(self, address: str, schema: str) -> None:
        node = self._enter("import_schema", address)
        node.schema = schema
        node.rows = set()

    async def prune_data(self, address: str, min_id: int, max_id: int | None) -> int:
        node = self._enter("prune_data", address)
        keep = {
            row for row in node.rows if row >= min_id and (max_id is None or row <= max_id)
        }
        deleted = len(node.rows) - len(keep)
        node.rows = keep
        return deleted

    async def change_replication_source(self, address: str, master_address: str) -> None:
        node = self._enter("change_replication_source", address)
        node.source = master_address
        node.replication_paused = False

    async def stop_replication(self, address: str) -> None:
        node = self._enter("stop_replication", address)
        node.source = None
        node.replication_paused = False

    async def pause_replication(self, address: str) -> None:
        self._enter("pause_replication", address).replication_paused = True

    async def resume_replication(self, address: str) -> None:
        self._enter("resume_replication", address).replication_paused = False

    async def replication_lag(self, address: str) -> float | None:
        node = self._enter("replication_lag", address)
        if node.source is None or node.replication_paused:
            return None
        return node.lag

    async def replication_source(self, address: str) -> str | None:
        return self._enter("replication_source", address).source

    async def enable_read_only(self, address: str) -> None:
        self._enter("enable_read_only", address).read_only = True

    async def disable_read_only(self, address: str) -> None:
        self._enter("disable_read_only", address).read_only = False

    async def revoke_access(self, address: str) -> None:
        self._enter("revoke_access", address).access_revoked = True

    async def start_query_killer(self, address: str) -> None:
        self._enter("start_query_killer", address).query_killer = True

    async def stop_query_killer(self, address: str) -> None:
        self._enter("stop_query_killer", address).query_killer = False

    async def suppress_monitoring(self, address: str) -> None:
        self._enter("suppress_monitoring", address).monitoring = False

    async def resume_monitoring(self, address: str) -> None:
        self._enter("resume_monitoring", address).monitoring = True
