"""Shard - a pool owning a contiguous slice of the id space."""

import logging
from enum import Enum
from typing import TYPE_CHECKING

from ..callbacks import intercepted
from ..core.context import ExecutionContext
from ..core.errors import ValidationError
from ..inventory.records import ShardRecord
from .node import Node
from .pool import Pool

if TYPE_CHECKING:
    from ..workflows.split import SplitResult
    from .topology import Topology

logger = logging.getLogger(__name__)


class ShardState(Enum):
    """Shard lifecycle state."""

    READY = "ready"
    READ_ONLY = "read_only"
    OFFLINE = "offline"
    DEPRECATED = "deprecated"  # Split initiated, children take over
    RECYCLE = "recycle"  # Terminal, hardware may be reused

    # Child lifecycle during a split
    REPLICATING = "replicating"  # Cloned, replicating from parent, no traffic
    CHILD = "child"  # Serves reads for its range
    NEEDS_CLEANUP = "needs_cleanup"  # Serves reads and writes, holds foreign rows


TRANSITIONS: dict[ShardState, frozenset[ShardState]] = {
    ShardState.READY: frozenset(
        {ShardState.READ_ONLY, ShardState.OFFLINE, ShardState.DEPRECATED}
    ),
    ShardState.READ_ONLY: frozenset({ShardState.READY, ShardState.OFFLINE}),
    ShardState.OFFLINE: frozenset({ShardState.READY, ShardState.READ_ONLY}),
    ShardState.DEPRECATED: frozenset({ShardState.RECYCLE}),
    ShardState.RECYCLE: frozenset(),
    ShardState.REPLICATING: frozenset({ShardState.CHILD}),
    ShardState.CHILD: frozenset({ShardState.NEEDS_CLEANUP}),
    ShardState.NEEDS_CLEANUP: frozenset({ShardState.READY}),
}


def shard_name(prefix: str, min_id: int, max_id: int | None) -> str:
    """Shard identity derived from its range."""
    upper = "infinity" if max_id is None else str(max_id)
    return f"{prefix}-{min_id}-{upper}"


class Shard(Pool):
    """
    A pool that owns ids [min_id, max_id]; max_id None means unbounded.

    children is non-empty only while a split is in progress. Children keep a
    back-reference to their parent until cleanup completes.
    """

    callback_scope = "shard"

    def __init__(
        self,
        min_id: int,
        max_id: int | None,
        master: Node | None = None,
        state: ShardState = ShardState.READY,
        topology: "Topology | None" = None,
        name_prefix: str = "shard",
    ):
        if max_id is not None and max_id < min_id:
            raise ValidationError(f"invalid shard range [{min_id}, {max_id}]")

        self.min_id = min_id
        self.max_id = max_id
        self.name_prefix = name_prefix
        self.state = state
        self.children: list[Shard] = []
        self.parent: Shard | None = None
        super().__init__(shard_name(name_prefix, min_id, max_id), master=master, topology=topology)

    @property
    def range(self) -> tuple[int, int | None]:
        return (self.min_id, self.max_id)

    @property
    def is_unbounded(self) -> bool:
        return self.max_id is None

    @property
    def size(self) -> int | None:
        """Number of ids covered, None when unbounded."""
        return None if self.max_id is None else self.max_id - self.min_id + 1

    def covers(self, id_: int) -> bool:
        return id_ >= self.min_id and (self.max_id is None or id_ <= self.max_id)

    def set_range(self, min_id: int, max_id: int | None) -> None:
        """Change the range; the identity follows."""
        self.min_id = min_id
        self.max_id = max_id
        self.name = shard_name(self.name_prefix, min_id, max_id)

    def set_state(self, state: ShardState) -> None:
        """Apply a lifecycle transition, rejecting illegal ones."""
        if state == self.state:
            return
        if state not in TRANSITIONS[self.state]:
            raise ValidationError(
                f"{self.name} cannot go from {self.state.value} to {state.value}"
            )
        logger.info(f"{self.name}: {self.state.value} -> {state.value}")
        self.state = state

    def to_record(self) -> ShardRecord:
        base = super().to_record()
        return ShardRecord(
            name=base.name,
            master_address=base.master_address,
            nodes=base.nodes,
            min_id=self.min_id,
            max_id=self.max_id,
            state=self.state.value,
            parent_id=self.parent.name if self.parent else None,
        )

    # Operational toggles

    async def _toggle(self, state: ShardState) -> None:
        if self.parent is not None or self.children:
            raise ValidationError(f"{self.name} is part of a split in progress")
        self.set_state(state)
        await self._commit()

    @intercepted("mark_read_only")
    async def mark_read_only(self) -> None:
        await self._toggle(ShardState.READ_ONLY)

    @intercepted("mark_offline")
    async def mark_offline(self) -> None:
        await self._toggle(ShardState.OFFLINE)

    @intercepted("mark_online")
    async def mark_online(self) -> None:
        await self._toggle(ShardState.READY)

    # Split pipeline

    @intercepted("split")
    async def split(
        self,
        child_count: int | None = None,
        ranges: list[tuple[int, int]] | None = None,
        context: ExecutionContext | None = None,
    ) -> "SplitResult":
        """Phase 1: claim spares, clone data and register children."""
        from ..workflows.split import SplitPipeline

        return await SplitPipeline(self, context).split(child_count=child_count, ranges=ranges)

    @intercepted("resume_split")
    async def resume_split(self, context: ExecutionContext | None = None) -> "SplitResult":
        """Phase 1 again, only for the uncovered part of the range."""
        from ..workflows.split import SplitPipeline

        return await SplitPipeline(self, context).resume()

    @intercepted("move_reads_to_children")
    async def move_reads_to_children(self) -> None:
        """Phase 2: route reads for each child range to the child."""
        from ..workflows.split import SplitPipeline

        await SplitPipeline(self).move_reads_to_children()

    @intercepted("move_writes_to_children")
    async def move_writes_to_children(self) -> None:
        """Phase 3: route writes for each child range to the child."""
        from ..workflows.split import SplitPipeline

        await SplitPipeline(self).move_writes_to_children()

    @intercepted("cleanup")
    async def cleanup(self, context: ExecutionContext | None = None) -> dict[str, int]:
        """Phase 4: prune foreign rows, promote children, recycle the parent."""
        from ..workflows.split import SplitPipeline

        return await SplitPipeline(self, context).cleanup()

    # Cutover

    @intercepted("cutover")
    async def cutover(self, cutover_id: int, context: ExecutionContext | None = None) -> "Shard":
        """Cap this unbounded shard at cutover_id - 1 and open a new last shard."""
        from ..workflows.cutover import ShardCutover

        return await ShardCutover(self, context).run(cutover_id)

    def summary(self) -> dict:
        data = super().summary()
        data.update(
            {
                "min_id": self.min_id,
                "max_id": self.max_id,
                "state": self.state.value,
                "parent": self.parent.name if self.parent else None,
                "children": [c.name for c in self.children],
            }
        )
        return data
