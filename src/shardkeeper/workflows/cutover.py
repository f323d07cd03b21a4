"""Range cutover of the unbounded last shard."""

import logging
from typing import TYPE_CHECKING

from ..core.context import ExecutionContext
from ..core.errors import NodeActionError, PartialFailureError, ValidationError
from ..topology.node import NodeRole
from ..topology.shard import ShardState
from ..topology.spares import SpareFilter

if TYPE_CHECKING:
    from ..topology.shard import Shard

logger = logging.getLogger(__name__)


class ShardCutover:
    """
    Caps the last shard at cutover_id - 1 and opens [cutover_id, infinity).

    Spares for the new shard are matched against the current last shard's
    master and reserved before anything changes. The new master receives the
    schema only; the old shard keeps its master, replicas and data.
    """

    def __init__(self, shard: "Shard", context: ExecutionContext | None = None):
        self.shard = shard
        self.topology = shard.topology
        if self.topology is None:
            raise RuntimeError(f"{shard.name} is not attached to a topology")
        self.context = context or self.topology.context

    def _validate(self, cutover_id: int) -> None:
        shard = self.shard
        if not shard.is_unbounded:
            raise ValidationError(f"{shard.name} is bounded; only the last shard can be cut over")
        if cutover_id <= shard.min_id:
            raise ValidationError(
                f"cutover id {cutover_id} must be greater than {shard.name}'s min id {shard.min_id}"
            )
        if shard.state != ShardState.READY:
            raise ValidationError(f"{shard.name} is {shard.state.value}, not ready")
        if shard.master is None:
            raise ValidationError(f"{shard.name} has no master")

    async def run(self, cutover_id: int) -> "Shard":
        """
        Perform the cutover.

        Returns:
            The new unbounded shard

        Raises:
            ValidationError: bad cutover id or shard; nothing changed
            InsufficientResourceError: not enough spares; nothing claimed
            PartialFailureError: shards are registered but the new shard's
            schema or standbys are incomplete
        """
        self._validate(cutover_id)
        old = self.shard
        old_master = old.master

        claimed = await self.topology.allocator.claim_batch(
            [
                (1, SpareFilter(role=NodeRole.MASTER, like=old_master)),
                (
                    self.context.standbys_per_pool,
                    SpareFilter(role=NodeRole.STANDBY_REPLICA, like=old_master),
                ),
            ]
        )
        new_master, standbys = claimed[0][0], claimed[1]

        old_name = old.name
        old.set_range(old.min_id, cutover_id - 1)
        await self.topology.rename_pool(old_name)
        new = self.topology.create_shard(cutover_id, None, master=new_master)
        logger.info(f"Cut {old_name} over at {cutover_id}: {old.name} and {new.name}")

        outcomes = await self._populate(new, old_master, standbys)

        await old.sync_configuration()
        await new.sync_configuration()
        await self.topology.write_config()

        if any(outcome != "ok" for outcome in outcomes.values()):
            raise PartialFailureError(
                "cutover", outcomes, message=f"{new.name} was created but is incomplete"
            )
        return new

    async def _populate(self, new: "Shard", old_master, standbys) -> dict[str, str]:
        """Copy the schema onto the new master, then build its standbys."""
        new_master = new.master
        outcomes: dict[str, str] = {}

        try:
            schema = await old_master.export_schema()
            await new_master.import_schema(schema)
        except NodeActionError as e:
            logger.error(f"Schema transfer to {new_master.address} failed: {e}")
            outcomes[new_master.address] = str(e)
            outcomes.update({n.address: "skipped" for n in standbys})
            return outcomes
        outcomes[new_master.address] = "ok"

        if not standbys:
            return outcomes

        try:
            await new_master.clone_to(standbys)
        except NodeActionError as e:
            logger.error(f"Cloning {new_master.address} to standbys failed: {e}")
            outcomes.update({n.address: str(e) for n in standbys})
            return outcomes

        for standby in standbys:
            try:
                await new.add_replica(standby)
            except NodeActionError as e:
                outcomes[standby.address] = str(e)
            else:
                outcomes[standby.address] = "ok"
        return outcomes
