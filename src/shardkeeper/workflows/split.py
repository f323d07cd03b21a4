"""Shard split pipeline.

A split runs in four operator-driven phases that may be hours apart, each
resuming from persisted shard state:

1. split: claim spares, clone the parent onto each child, register children
2. move_reads_to_children: children start serving reads for their range
3. move_writes_to_children: children start serving writes for their range
4. cleanup: children stop replicating and prune foreign rows; the parent is
   recycled
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..core.context import ExecutionContext
from ..core.errors import NodeActionError, PartialFailureError, ValidationError
from ..core.fanout import fan_out
from ..topology.node import Node, NodeRole
from ..topology.shard import ShardState
from ..topology.spares import SpareFilter

if TYPE_CHECKING:
    from ..topology.shard import Shard

logger = logging.getLogger(__name__)

Range = tuple[int, int]


def range_label(id_range: Range) -> str:
    return f"[{id_range[0]}, {id_range[1]}]"


def even_ranges(min_id: int, max_id: int, count: int) -> list[Range]:
    """Partition [min_id, max_id] into count contiguous ranges of near-equal size."""
    size = max_id - min_id + 1
    if count < 2:
        raise ValidationError("a split needs at least 2 children")
    if count > size:
        raise ValidationError(f"cannot split {size} ids into {count} children")

    bounds = [min_id + size * i // count for i in range(count + 1)]
    return [(bounds[i], bounds[i + 1] - 1) for i in range(count)]


def validate_ranges(min_id: int, max_id: int, ranges: list[Range]) -> list[Range]:
    """
    Check that ranges exactly partition [min_id, max_id].

    Returns:
        The ranges ordered by lower bound
    """
    if len(ranges) < 2:
        raise ValidationError("a split needs at least 2 ranges")

    ordered = sorted((int(lo), int(hi)) for lo, hi in ranges)
    for lo, hi in ordered:
        if hi < lo:
            raise ValidationError(f"invalid range {range_label((lo, hi))}")

    if ordered[0][0] != min_id:
        raise ValidationError(f"ranges must start at {min_id}")
    for (_, hi), (next_lo, _) in zip(ordered, ordered[1:]):
        if next_lo != hi + 1:
            raise ValidationError(f"ranges leave a gap or overlap after {hi}")
    if ordered[-1][1] != max_id:
        raise ValidationError(f"ranges must end at {max_id}")
    return ordered


@dataclass
class SplitResult:
    """State of a split after phase 1."""

    parent: str
    children: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    complete: bool = False


class SplitPipeline:
    """Runs the split phases against one parent shard."""

    def __init__(self, shard: "Shard", context: ExecutionContext | None = None):
        self.shard = shard
        self.topology = shard.topology
        if self.topology is None:
            raise RuntimeError(f"{shard.name} is not attached to a topology")
        self.context = context or self.topology.context

    # Phase 1

    def _check_splittable(self) -> None:
        shard = self.shard
        if shard.is_unbounded:
            raise ValidationError(f"{shard.name} is unbounded; use a cutover instead")
        if shard.parent is not None:
            raise ValidationError(f"{shard.name} is itself a child of an unfinished split")
        if shard.state != ShardState.READY:
            raise ValidationError(f"{shard.name} is {shard.state.value}, not ready")
        if shard.master is None:
            raise ValidationError(f"{shard.name} has no master to clone from")

    def uncovered_ranges(self) -> list[Range]:
        """Parts of the parent range not yet owned by a child."""
        shard = self.shard
        gaps = []
        cursor = shard.min_id
        for child in sorted(shard.children, key=lambda c: c.min_id):
            if child.min_id > cursor:
                gaps.append((cursor, child.min_id - 1))
            cursor = max(cursor, child.max_id + 1)
        if cursor <= shard.max_id:
            gaps.append((cursor, shard.max_id))
        return gaps

    async def split(
        self, child_count: int | None = None, ranges: list[Range] | None = None
    ) -> SplitResult:
        """
        Phase 1.

        Exactly one of child_count or ranges must be given.

        Raises:
            ValidationError: bad target or ranges; nothing claimed
            InsufficientResourceError: not enough spares; nothing claimed
            PartialFailureError: some children failed to build; the rest exist
        """
        self._check_splittable()
        shard = self.shard
        if shard.children:
            raise ValidationError(f"{shard.name} already has children; resume the split instead")
        if (child_count is None) == (ranges is None):
            raise ValidationError("give either a child count or explicit ranges")

        if ranges is not None:
            planned = validate_ranges(shard.min_id, shard.max_id, ranges)
        else:
            planned = even_ranges(shard.min_id, shard.max_id, child_count)

        logger.info(
            f"Splitting {shard.name} into {', '.join(range_label(r) for r in planned)}"
        )
        return await self._build_children(planned)

    async def resume(self) -> SplitResult:
        """Phase 1 for whatever part of the range has no child yet."""
        self._check_splittable()
        if not self.shard.children:
            raise ValidationError(f"{self.shard.name} has no split to resume")

        missing = self.uncovered_ranges()
        logger.info(
            f"Resuming split of {self.shard.name}: "
            f"{', '.join(range_label(r) for r in missing) or 'nothing missing'}"
        )
        return await self._build_children(missing)

    async def _build_children(self, planned: list[Range]) -> SplitResult:
        parent = self.shard
        like = parent.master
        standbys = self.context.standbys_per_pool

        requests = []
        for _ in planned:
            requests.append((1, SpareFilter(role=NodeRole.MASTER, like=like)))
            requests.append((standbys, SpareFilter(role=NodeRole.STANDBY_REPLICA, like=like)))
        claimed = await self.topology.allocator.claim_batch(requests) if planned else []

        assignments = [
            (id_range, claimed[2 * i][0], claimed[2 * i + 1])
            for i, id_range in enumerate(planned)
        ]
        built = await fan_out(
            assignments,
            self._build_child,
            key=lambda a: range_label(a[0]),
            limit=self.context.concurrency,
        )
        for (id_range, master, replicas) in assignments:
            label = range_label(id_range)
            if label in built.failed:
                stranded = ", ".join(self._describe(n) for n in [master, *replicas])
                logger.error(
                    f"Child {label} of {parent.name} failed: {built.failed[label]}; "
                    f"claimed nodes: {stranded}"
                )

        complete = not self.uncovered_ranges()
        if complete:
            parent.set_state(ShardState.DEPRECATED)
        await parent.sync_configuration()
        await self.topology.write_config()

        result = SplitResult(
            parent=parent.name,
            children=[c.name for c in sorted(parent.children, key=lambda c: c.min_id)],
            failed={label: str(e) for label, e in built.failed.items()},
            complete=complete,
        )
        if built.failed:
            raise PartialFailureError(
                "split",
                built.outcomes(),
                message=f"{len(built.failed)} of {len(assignments)} children of "
                f"{parent.name} failed; resume the split to retry them",
            )

        logger.info(f"Phase 1 of {parent.name} done; children {', '.join(result.children)}")
        return result

    @staticmethod
    def _describe(node: Node) -> str:
        if node.pool is not None:
            return f"{node.address} ({node.role.value} in {node.pool.name})"
        if node.master is not None:
            return f"{node.address} (unassigned, replicating from {node.master.address})"
        return f"{node.address} (unassigned)"

    async def _follow(self, node: Node, master: Node) -> None:
        await node.change_master(master)
        if node.master is not master:
            raise NodeActionError(node.address, "change_master", "cancelled by a callback")

    async def _build_child(self, assignment: tuple[Range, Node, list[Node]]) -> str:
        """Clone and wire up one child; it is registered only once fully built."""
        (min_id, max_id), master, replicas = assignment
        parent = self.shard

        await parent.master.clone_to([master, *replicas])
        await self._follow(master, parent.master)
        for replica in replicas:
            await self._follow(replica, master)

        child = self.topology.create_shard(
            min_id, max_id, master=master, state=ShardState.REPLICATING, parent=parent
        )
        for replica in replicas:
            child._attach_replica(replica, NodeRole.STANDBY_REPLICA)
        await child.sync_configuration()
        return child.name

    # Phases 2 and 3

    def _check_in_progress(self) -> None:
        shard = self.shard
        if shard.state != ShardState.DEPRECATED or not shard.children:
            raise ValidationError(f"{shard.name} has no completed phase 1 split")

    async def _advance_children(self, allowed: set[ShardState], target: ShardState) -> None:
        self._check_in_progress()
        children = sorted(self.shard.children, key=lambda c: c.min_id)
        for child in children:
            if child.state != target and child.state not in allowed:
                raise ValidationError(
                    f"{child.name} is {child.state.value}; expected "
                    f"{' or '.join(s.value for s in sorted(allowed, key=lambda s: s.value))}"
                )

        for child in children:
            child.set_state(target)
            await child.sync_configuration()
        await self.topology.write_config()

    async def move_reads_to_children(self) -> None:
        """Phase 2."""
        await self._advance_children({ShardState.REPLICATING}, ShardState.CHILD)
        logger.info(f"Reads for {self.shard.name} now go to its children")

    async def move_writes_to_children(self) -> None:
        """Phase 3."""
        await self._advance_children({ShardState.CHILD}, ShardState.NEEDS_CLEANUP)
        logger.info(f"Writes for {self.shard.name} now go to its children")

    # Phase 4

    async def _cleanup_child(self, child: "Shard") -> int:
        await child.master.disable_replication()
        return await child.master.prune_data(child.min_id, child.max_id)

    async def cleanup(self) -> dict[str, int]:
        """
        Phase 4.

        Returns:
            Rows pruned per child

        Raises:
            PartialFailureError: some children failed; rerun cleanup after
            fixing them, finished children are safe to process again
        """
        self._check_in_progress()
        parent = self.shard
        children = sorted(parent.children, key=lambda c: c.min_id)
        for child in children:
            if child.state != ShardState.NEEDS_CLEANUP:
                raise ValidationError(
                    f"{child.name} is {child.state.value}; move writes to children first"
                )

        await parent.master.revoke_access()

        pruned = await fan_out(
            children, self._cleanup_child, key=lambda c: c.name, limit=self.context.concurrency
        )
        if pruned.failed:
            for name, error in pruned.failed.items():
                logger.error(f"Cleanup of {name} failed: {error}")
            raise PartialFailureError(
                "cleanup",
                pruned.outcomes(),
                message=f"cleanup of {parent.name} incomplete",
            )

        for child in children:
            child.set_state(ShardState.READY)
            child.parent = None
        parent.children = []
        parent.set_state(ShardState.RECYCLE)

        for child in children:
            await child.sync_configuration()
        await parent.sync_configuration()
        await self.topology.write_config()

        logger.info(f"Split of {parent.name} finished; parent is ready to recycle")
        return dict(pruned.succeeded)
