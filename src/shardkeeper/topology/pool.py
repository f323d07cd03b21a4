"""Pool - a master node plus its replicas."""

import logging
from typing import TYPE_CHECKING

from ..callbacks import intercepted
from ..core.context import ExecutionContext
from ..core.errors import InconsistentTopologyError, ValidationError
from ..inventory.records import PoolRecord
from .node import Node, NodeRole

if TYPE_CHECKING:
    from ..callbacks import CallbackDispatcher
    from ..inventory.backend import InventoryBackend
    from ..workflows.promotion import DemotionPolicy, PromotionResult
    from .topology import Topology

logger = logging.getLogger(__name__)


class Pool:
    """
    A master node and the replicas that replicate from it.

    The pool owns its nodes: a node belongs to at most one pool and a pool
    has at most one master. Every replica's recorded master is the pool
    master. Mutations go through the callback dispatcher as "pool.<op>" and
    end by persisting the pool and regenerating configuration.
    """

    callback_scope = "pool"

    def __init__(self, name: str, master: Node | None = None, topology: "Topology | None" = None):
        self.name = name
        self.topology = topology
        self.master: Node | None = None
        self.replicas: list[Node] = []

        if master is not None:
            self._attach_master(master)

    def __repr__(self) -> str:
        master = self.master.address if self.master else None
        return f"{type(self).__name__}({self.name!r}, master={master!r})"

    def __str__(self) -> str:
        return self.name

    @property
    def callbacks(self) -> "CallbackDispatcher | None":
        return self.topology.callbacks if self.topology is not None else None

    @property
    def inventory(self) -> "InventoryBackend":
        if self.topology is None:
            raise RuntimeError(f"Pool {self.name} is not attached to a topology")
        return self.topology.inventory

    @property
    def nodes(self) -> list[Node]:
        """Master followed by replicas."""
        return ([self.master] if self.master else []) + list(self.replicas)

    @property
    def active_replicas(self) -> list[Node]:
        return [n for n in self.replicas if n.role == NodeRole.ACTIVE_REPLICA]

    @property
    def standby_replicas(self) -> list[Node]:
        return [n for n in self.replicas if n.role == NodeRole.STANDBY_REPLICA]

    @property
    def backup_replicas(self) -> list[Node]:
        return [n for n in self.replicas if n.role == NodeRole.BACKUP_REPLICA]

    def has_node(self, node: Node) -> bool:
        return node is self.master or node in self.replicas

    # Membership bookkeeping (no persistence, no remote action)

    def _attach_master(self, node: Node) -> None:
        if self.master is not None and self.master is not node:
            raise InconsistentTopologyError(
                f"{self.name} already has master {self.master.address}"
            )
        node.role = NodeRole.MASTER
        node.weight = 0
        node.pool = self
        self.master = node

    def _attach_replica(self, node: Node, role: NodeRole, weight: int = 0) -> None:
        if node.pool is not None and node.pool is not self:
            raise ValidationError(f"{node.address} already belongs to {node.pool.name}")
        node.role = role
        node.weight = weight if role == NodeRole.ACTIVE_REPLICA else 0
        node.pool = self
        node.master = self.master
        if node not in self.replicas:
            self.replicas.append(node)

    def _detach(self, node: Node) -> None:
        if node is self.master:
            self.master = None
        elif node in self.replicas:
            self.replicas.remove(node)
        node.pool = None

    def _require_replica(self, node: Node) -> None:
        if node not in self.replicas:
            raise ValidationError(f"{node.address} is not a replica in {self.name}")

    # Persistence

    def to_record(self) -> PoolRecord:
        return PoolRecord(
            name=self.name,
            master_address=self.master.address if self.master else None,
            nodes=[n.to_record() for n in self.nodes],
        )

    async def sync_configuration(self) -> None:
        """Upsert this pool's roles, weights and membership into the inventory."""
        await self.inventory.upsert_pool(self.to_record())

    async def _commit(self) -> None:
        await self.sync_configuration()
        if self.topology is not None:
            await self.topology.write_config()

    # Role management

    @intercepted("add_replica")
    async def add_replica(
        self, node: Node, role: NodeRole = NodeRole.STANDBY_REPLICA, weight: int = 0
    ) -> None:
        """
        Bring a node into the pool as a replica of the master.

        Args:
            node: Node to add; must not belong to another pool
            role: Replica role
            weight: Read weight, required (> 0) for active replicas
        """
        if self.master is None:
            raise ValidationError(f"{self.name} has no master to replicate from")
        if role not in (NodeRole.ACTIVE_REPLICA, NodeRole.STANDBY_REPLICA, NodeRole.BACKUP_REPLICA):
            raise ValidationError(f"{role.value} is not a replica role")
        if role == NodeRole.ACTIVE_REPLICA and weight <= 0:
            raise ValidationError("active replicas need a weight greater than 0")
        if node.pool is not None and node.pool is not self:
            raise ValidationError(f"{node.address} already belongs to {node.pool.name}")

        await node.change_master(self.master)
        self._attach_replica(node, role, weight)
        logger.info(f"Added {node.address} to {self.name} as {role.value}")
        await self._commit()

    @intercepted("mark_replica_active")
    async def mark_replica_active(self, node: Node, weight: int | None = None) -> None:
        """Move a standby replica into read rotation with the given weight."""
        self._require_replica(node)
        if weight is None:
            weight = self.topology.settings.default_replica_weight if self.topology else 100
        if node.role != NodeRole.STANDBY_REPLICA:
            raise ValidationError(
                f"{node.address} is {node.role.value}; only standby replicas can be activated"
            )
        if weight <= 0:
            raise ValidationError("active replica weight must be greater than 0")

        node.role = NodeRole.ACTIVE_REPLICA
        node.weight = weight
        logger.info(f"{node.address} in {self.name} is now active with weight {weight}")
        await self._commit()

    @intercepted("mark_replica_standby")
    async def mark_replica_standby(self, node: Node) -> None:
        """Take an active replica out of read rotation."""
        self._require_replica(node)
        if node.role != NodeRole.ACTIVE_REPLICA:
            raise ValidationError(
                f"{node.address} is {node.role.value}; only active replicas can be made standby"
            )

        node.role = NodeRole.STANDBY_REPLICA
        node.weight = 0
        logger.info(f"{node.address} in {self.name} is now standby")
        await self._commit()

    @intercepted("remove_replica")
    async def remove_replica(self, node: Node) -> None:
        """
        Sever a standby or backup replica and drop it from the pool.

        The replication link is stopped on the node; this cannot be undone.
        """
        self._require_replica(node)
        if node.role not in (NodeRole.STANDBY_REPLICA, NodeRole.BACKUP_REPLICA):
            raise ValidationError(
                f"{node.address} is {node.role.value}; only standby or backup replicas "
                "can be removed"
            )

        await node.disable_replication()
        self._detach(node)
        node.role = NodeRole.RETIRED
        node.weight = 0
        logger.info(f"Removed {node.address} from {self.name}")

        await self.inventory.upsert_nodes([node.to_record()])
        await self._commit()

    @intercepted("promote")
    async def promote(
        self,
        promoted: Node | None = None,
        *,
        demoted_role: "DemotionPolicy",
        replicas: list[Node] | None = None,
        context: ExecutionContext | None = None,
    ) -> "PromotionResult":
        """
        Replace this pool's master with one of its replicas.

        See PromotionProtocol for the sequence and failure semantics.
        """
        from ..workflows.promotion import PromotionProtocol

        protocol = PromotionProtocol(self, context)
        return await protocol.run(promoted, demoted_role=demoted_role, replicas=replicas)

    # Inspection

    def check_invariants(self) -> None:
        """
        Raise InconsistentTopologyError if the recorded state is inconsistent.
        """
        if self.master is not None and self.master.role != NodeRole.MASTER:
            raise InconsistentTopologyError(
                f"{self.name} master {self.master.address} has role {self.master.role.value}"
            )
        for node in self.replicas:
            if node.master is not self.master:
                recorded = node.master.address if node.master else None
                raise InconsistentTopologyError(
                    f"{node.address} in {self.name} replicates from {recorded}, "
                    f"expected {self.master.address if self.master else None}"
                )
            if node.role == NodeRole.ACTIVE_REPLICA and node.weight <= 0:
                raise InconsistentTopologyError(
                    f"active replica {node.address} in {self.name} has weight {node.weight}"
                )

    def summary(self) -> dict:
        """Pool summary for operators."""
        return {
            "name": self.name,
            "master": self.master.address if self.master else None,
            "replicas": [
                {"address": n.address, "role": n.role.value, "weight": n.weight}
                for n in self.replicas
            ],
            "active_weight_total": sum(n.weight for n in self.active_replicas),
        }
