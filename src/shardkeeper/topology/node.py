"""Node - a single database instance."""

import logging
import weakref
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ..callbacks import intercepted
from ..inventory.records import NodeRecord

if TYPE_CHECKING:
    from ..callbacks import CallbackDispatcher
    from ..transport.base import NodeTransport
    from .pool import Pool
    from .topology import Topology

logger = logging.getLogger(__name__)


class NodeRole(Enum):
    """Role of a node in the fleet."""

    MASTER = "master"
    ACTIVE_REPLICA = "active_replica"  # Serves reads, has a weight
    STANDBY_REPLICA = "standby_replica"  # No traffic, promotion candidate
    BACKUP_REPLICA = "backup_replica"  # No traffic, used for backups
    SPARE = "spare"  # Unassigned, available for allocation
    RETIRED = "retired"  # Removed from service


REPLICA_ROLES = frozenset(
    {NodeRole.ACTIVE_REPLICA, NodeRole.STANDBY_REPLICA, NodeRole.BACKUP_REPLICA}
)


class Reachability(Enum):
    """Probe result. Never persisted."""

    UNKNOWN = "unknown"
    REACHABLE = "reachable"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class HardwareProfile:
    """Hardware attributes used for spare matching."""

    hardware_class: str = ""
    datacenter: str = ""


class Node:
    """
    A database node.

    The node holds attributes only. Remote actions are delegated to the
    topology's transport and pass through the callback dispatcher as
    "node.<action>".

    pool is a weak back-reference used for lookup; the pool owns the node.
    master is the node this one replicates from, as recorded.
    """

    callback_scope = "node"

    def __init__(
        self,
        address: str,
        role: NodeRole = NodeRole.SPARE,
        weight: int = 0,
        version: str = "",
        hardware: HardwareProfile | None = None,
        spare_role: NodeRole | None = None,
        topology: "Topology | None" = None,
    ):
        self.address = address
        self.role = role
        self.weight = weight
        self.version = version
        self.hardware = hardware or HardwareProfile()
        self.spare_role = spare_role
        self.topology = topology
        self.master: Node | None = None
        self.status = Reachability.UNKNOWN
        self._pool_ref: weakref.ReferenceType | None = None

    def __repr__(self) -> str:
        return f"Node({self.address!r}, role={self.role.value})"

    def __str__(self) -> str:
        return self.address

    @property
    def pool(self) -> "Pool | None":
        """Owning pool, if any."""
        return self._pool_ref() if self._pool_ref is not None else None

    @pool.setter
    def pool(self, pool: "Pool | None") -> None:
        self._pool_ref = weakref.ref(pool) if pool is not None else None

    @property
    def callbacks(self) -> "CallbackDispatcher | None":
        return self.topology.callbacks if self.topology is not None else None

    @property
    def transport(self) -> "NodeTransport":
        if self.topology is None:
            raise RuntimeError(f"Node {self.address} is not attached to a topology")
        return self.topology.transport

    @property
    def is_master(self) -> bool:
        return self.role == NodeRole.MASTER

    @property
    def is_replica(self) -> bool:
        return self.role in REPLICA_ROLES

    @property
    def is_spare(self) -> bool:
        return self.role == NodeRole.SPARE

    def is_like(self, other: "Node") -> bool:
        """True if this node has the same hardware and version as other."""
        if self.hardware != other.hardware:
            return False
        return not other.version or not self.version or self.version == other.version

    def to_record(self) -> NodeRecord:
        pool = self.pool
        return NodeRecord(
            address=self.address,
            role=self.role.value,
            pool_id=pool.name if pool is not None else None,
            weight=self.weight,
            version=self.version,
            hardware_class=self.hardware.hardware_class,
            datacenter=self.hardware.datacenter,
            spare_role=self.spare_role.value if self.spare_role else None,
        )

    @classmethod
    def from_record(cls, record: NodeRecord, topology: "Topology | None" = None) -> "Node":
        return cls(
            address=record.address,
            role=NodeRole(record.role),
            weight=record.weight,
            version=record.version,
            hardware=HardwareProfile(
                hardware_class=record.hardware_class,
                datacenter=record.datacenter,
            ),
            spare_role=NodeRole(record.spare_role) if record.spare_role else None,
            topology=topology,
        )

    # Probing (read only)

    async def probe(self) -> bool:
        """Probe reachability and record the status."""
        try:
            reachable = await self.transport.probe(self.address)
        except Exception as e:
            logger.warning(f"Probe of {self.address} failed: {e}")
            reachable = False
        self.status = Reachability.REACHABLE if reachable else Reachability.UNREACHABLE
        return reachable

    async def replication_lag(self) -> float | None:
        return await self.transport.replication_lag(self.address)

    async def replication_source(self) -> str | None:
        return await self.transport.replication_source(self.address)

    async def export_schema(self) -> str:
        return await self.transport.export_schema(self.address)

    # Remote actions

    @intercepted("start_service")
    async def start_service(self) -> None:
        await self.transport.start_service(self.address)

    @intercepted("stop_service")
    async def stop_service(self) -> None:
        await self.transport.stop_service(self.address)

    @intercepted("change_master")
    async def change_master(self, new_master: "Node") -> None:
        """Replicate from new_master and record it."""
        await self.transport.change_replication_source(self.address, new_master.address)
        self.master = new_master
        logger.info(f"{self.address} now replicates from {new_master.address}")

    @intercepted("disable_replication")
    async def disable_replication(self) -> None:
        """Sever the replication link. Irreversible."""
        await self.transport.stop_replication(self.address)
        self.master = None

    @intercepted("pause_replication")
    async def pause_replication(self) -> None:
        await self.transport.pause_replication(self.address)

    @intercepted("resume_replication")
    async def resume_replication(self) -> None:
        await self.transport.resume_replication(self.address)

    @intercepted("enable_read_only")
    async def enable_read_only(self) -> None:
        await self.transport.enable_read_only(self.address)

    @intercepted("disable_read_only")
    async def disable_read_only(self) -> None:
        await self.transport.disable_read_only(self.address)

    @intercepted("revoke_access")
    async def revoke_access(self) -> None:
        await self.transport.revoke_access(self.address)

    @intercepted("clone_to")
    async def clone_to(self, targets: list["Node"]) -> None:
        """Copy this node's full data set onto every target. Long running."""
        addresses = [t.address for t in targets]
        logger.info(f"Cloning {self.address} to {', '.join(addresses)}")
        await self.transport.clone_data(self.address, addresses)

    @intercepted("import_schema")
    async def import_schema(self, schema: str) -> None:
        await self.transport.import_schema(self.address, schema)

    @intercepted("prune_data")
    async def prune_data(self, min_id: int, max_id: int | None) -> int:
        """Delete rows outside [min_id, max_id]. Returns rows deleted."""
        deleted = await self.transport.prune_data(self.address, min_id, max_id)
        logger.info(f"Pruned {deleted} rows outside [{min_id}, {max_id}] on {self.address}")
        return deleted
