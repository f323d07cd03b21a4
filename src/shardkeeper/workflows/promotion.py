"""Master promotion within a single pool."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from ..core.context import ExecutionContext
from ..core.errors import (
    InconsistentTopologyError,
    NodeActionError,
    NotAReplicaError,
    NotPromotableError,
    PartialFailureError,
    ValidationError,
)
from ..core.fanout import fan_out
from ..topology.node import Node, NodeRole

if TYPE_CHECKING:
    from ..topology.pool import Pool

logger = logging.getLogger(__name__)


class DemotionPolicy(Enum):
    """What happens to the old master after promotion."""

    RETIRE = "retire"  # Leaves the pool with role retired
    STANDBY = "standby"  # Replicates from the new master as a standby replica


@dataclass
class PromotionResult:
    """Outcome of a promotion, or the candidate list when none was chosen."""

    pool: str
    demoted: str
    promoted: str | None = None
    demoted_role: str | None = None
    candidates: list[str] = field(default_factory=list)
    lags: dict[str, float | None] = field(default_factory=dict)
    outcomes: dict[str, str] = field(default_factory=dict)

    @property
    def executed(self) -> bool:
        return self.promoted is not None


class PromotionProtocol:
    """
    Replace a pool's master with one of its replicas.

    Everything up to the first remote mutation is validation and leaves the
    fleet untouched. The first irreversible step is making the old master
    read-only (when it is reachable); from there on, failures are reported
    per node in a PartialFailureError and nothing is rolled back.
    """

    def __init__(self, pool: "Pool", context: ExecutionContext | None = None):
        self.pool = pool
        if context is None:
            context = pool.topology.context if pool.topology is not None else ExecutionContext()
        self.context = context

    async def run(
        self,
        promoted: Node | None,
        *,
        demoted_role: DemotionPolicy | str,
        replicas: list[Node] | None = None,
    ) -> PromotionResult:
        """
        Validate and, when promoted is given, execute the promotion.

        Args:
            promoted: Replica to promote; None to only list candidates
            demoted_role: Policy for the old master, required
            replicas: Replica list to use when the master is unreachable

        Returns:
            PromotionResult; with promoted None, candidates ordered by lag
        """
        demoted = self.pool.master
        if demoted is None:
            raise ValidationError(f"{self.pool.name} has no master to demote")
        try:
            policy = DemotionPolicy(demoted_role)
        except ValueError:
            raise ValidationError(f"unknown demotion policy {demoted_role!r}") from None

        reachable = await demoted.probe()
        known = self._known_replicas(demoted, reachable, replicas)
        if not known:
            raise ValidationError("cannot demote a master with no replicas")

        if promoted is not None and (promoted.master is not demoted or promoted not in known):
            raise NotAReplicaError(
                f"{promoted.address} does not replicate from {demoted.address}"
            )

        if self.context.verify_replication and reachable:
            await self._verify_sources(demoted, known)

        if promoted is None:
            return await self._candidates(demoted, known)

        await self._check_eligible(promoted)

        logger.info(
            f"Promoting {promoted.address} in {self.pool.name} "
            f"(demoted {demoted.address} -> {policy.value})"
        )
        return await self._execute(demoted, promoted, known, policy, reachable)

    # Validation

    def _known_replicas(
        self, demoted: Node, reachable: bool, supplied: list[Node] | None
    ) -> list[Node]:
        if supplied is None:
            if not reachable:
                raise ValidationError(
                    f"{demoted.address} is unreachable; supply its replica list"
                )
            return list(self.pool.replicas)

        known = []
        for node in supplied:
            if node not in self.pool.replicas or node.master is not demoted:
                raise ValidationError(
                    f"{node.address} is not a recorded replica of {demoted.address}"
                )
            if node not in known:
                known.append(node)
        return known

    async def _verify_sources(self, demoted: Node, replicas: list[Node]) -> None:
        """Compare live replication sources with the recorded master."""
        result = await fan_out(
            replicas,
            lambda n: n.replication_source(),
            key=lambda n: n.address,
            limit=self.context.concurrency,
        )
        mismatched = {a: s for a, s in result.succeeded.items() if s != demoted.address}
        mismatched.update({a: str(e) for a, e in result.failed.items()})
        if mismatched:
            details = ", ".join(f"{a}: {s}" for a, s in sorted(mismatched.items()))
            raise InconsistentTopologyError(
                f"replicas of {demoted.address} disagree with recorded topology ({details})"
            )

    async def _lag(self, node: Node) -> float | None:
        try:
            return await node.replication_lag()
        except NodeActionError as e:
            logger.warning(f"Could not read replication lag on {node.address}: {e}")
            return None

    async def _check_eligible(self, node: Node) -> None:
        if node.role == NodeRole.BACKUP_REPLICA:
            raise NotPromotableError(f"{node.address} is a backup replica")
        if not self.context.verify_replication:
            return

        lag = await self._lag(node)
        if lag is None:
            raise NotPromotableError(f"{node.address} is not replicating")
        if lag > self.context.max_replication_lag:
            raise NotPromotableError(
                f"{node.address} lags {lag:.1f}s (limit {self.context.max_replication_lag:.1f}s)"
            )

    async def _candidates(self, demoted: Node, replicas: list[Node]) -> PromotionResult:
        eligible = [n for n in replicas if n.role != NodeRole.BACKUP_REPLICA]
        lags = await fan_out(
            eligible, self._lag, key=lambda n: n.address, limit=self.context.concurrency
        )
        limit = self.context.max_replication_lag

        def promotable(address: str) -> bool:
            lag = lags.succeeded.get(address)
            if not self.context.verify_replication:
                return True
            return lag is not None and lag <= limit

        addresses = [n.address for n in eligible if promotable(n.address)]
        addresses.sort(
            key=lambda a: (
                lags.succeeded.get(a) if lags.succeeded.get(a) is not None else float("inf"),
                a,
            )
        )
        return PromotionResult(
            pool=self.pool.name,
            demoted=demoted.address,
            candidates=addresses,
            lags={a: lags.succeeded.get(a) for a in addresses},
        )

    # Execution

    async def _execute(
        self,
        demoted: Node,
        promoted: Node,
        replicas: list[Node],
        policy: DemotionPolicy,
        reachable: bool,
    ) -> PromotionResult:
        pool = self.pool
        outcomes: dict[str, str] = {}

        if reachable:
            await demoted.enable_read_only()

        try:
            await promoted.disable_replication()
            await promoted.disable_read_only()
        except NodeActionError as e:
            state = "read-only" if reachable else "unreachable"
            raise PartialFailureError(
                "promote",
                {promoted.address: str(e)},
                message=f"{demoted.address} is {state} and {promoted.address} "
                "could not be made writable",
            ) from e
        outcomes[promoted.address] = "ok"

        pool.master = None
        pool.replicas.remove(promoted)
        pool._attach_master(promoted)

        others = [n for n in replicas if n is not promoted]
        reparented = await fan_out(
            others,
            lambda n: n.change_master(promoted),
            key=lambda n: n.address,
            limit=self.context.concurrency,
        )
        outcomes.update(reparented.outcomes())
        for node in others:
            if outcomes[node.address] == "ok" and node.master is not promoted:
                outcomes[node.address] = "change_master cancelled by a callback"
                logger.error(f"{node.address} still replicates from {demoted.address}: cancelled")
        for address, error in reparented.failed.items():
            logger.error(f"{address} still replicates from {demoted.address}: {error}")

        outcomes[demoted.address] = await self._demote(demoted, promoted, policy, reachable)

        await pool.sync_configuration()
        if demoted.pool is None:
            await pool.inventory.upsert_nodes([demoted.to_record()])
        if pool.topology is not None:
            await pool.topology.write_config()

        result = PromotionResult(
            pool=pool.name,
            demoted=demoted.address,
            promoted=promoted.address,
            demoted_role=demoted.role.value,
            outcomes=outcomes,
        )
        if any(outcome != "ok" for outcome in outcomes.values()):
            raise PartialFailureError(
                "promote",
                outcomes,
                message=f"{promoted.address} is master of {pool.name} but not every node followed",
            )

        logger.info(f"{promoted.address} is now master of {pool.name}")
        return result

    async def _demote(
        self, demoted: Node, promoted: Node, policy: DemotionPolicy, reachable: bool
    ) -> str:
        """Apply the demotion policy; returns the node's outcome string."""
        if policy == DemotionPolicy.STANDBY:
            if not reachable:
                outcome = "unreachable; retired instead of standby"
            else:
                try:
                    await demoted.change_master(promoted)
                except NodeActionError as e:
                    outcome = f"{e}; retired instead of standby"
                else:
                    if demoted.master is promoted:
                        self.pool._attach_replica(demoted, NodeRole.STANDBY_REPLICA)
                        return "ok"
                    outcome = "change_master cancelled by a callback; retired instead of standby"
            logger.warning(f"{demoted.address}: {outcome}")
        else:
            outcome = "ok"

        demoted.pool = None
        demoted.role = NodeRole.RETIRED
        demoted.weight = 0
        demoted.master = None
        return outcome
