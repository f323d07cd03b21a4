"""Spare Allocator - matches and claims unassigned nodes."""

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..core.errors import InsufficientResourceError, ValidationError
from .node import Node, NodeRole

if TYPE_CHECKING:
    from ..inventory.backend import InventoryBackend

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpareFilter:
    """
    Spare selection criteria.

    role:
        Role the spare must be eligible to fill, None for any.

    like:
        Reference node; the spare must share its hardware profile and version.
    """

    role: NodeRole | None = None
    like: Node | None = None

    def matches(self, node: Node) -> bool:
        if self.role is not None and node.spare_role not in (None, self.role):
            return False
        if self.like is not None and not node.is_like(self.like):
            return False
        return True

    def describe(self) -> str:
        parts = []
        if self.role is not None:
            parts.append(f"role={self.role.value}")
        if self.like is not None:
            parts.append(f"like={self.like.address}")
        return ", ".join(parts) or "any"


@dataclass
class AllocatorStats:
    """Allocator statistics."""

    claims: int = 0
    nodes_claimed: int = 0
    failed_claims: int = 0


class SpareAllocator:
    """
    Tracks unassigned nodes and hands them out.

    Claims are serialized by a single lock: a node is handed to exactly one
    caller, and a claim that cannot be fully satisfied takes nothing.
    """

    def __init__(self, inventory: "InventoryBackend | None" = None):
        self.inventory = inventory
        self._spares: dict[str, Node] = {}
        self._lock = asyncio.Lock()
        self._stats = AllocatorStats()

    def __len__(self) -> int:
        return len(self._spares)

    def __contains__(self, address: str) -> bool:
        return address in self._spares

    def add(self, node: Node) -> None:
        """Track a node as spare."""
        if node.role != NodeRole.SPARE:
            raise ValidationError(f"{node.address} has role {node.role.value}, not spare")
        self._spares[node.address] = node

    def get(self, address: str) -> Node | None:
        return self._spares.get(address)

    def all(self) -> list[Node]:
        return list(self._spares.values())

    def _select(self, count: int, spare_filter: SpareFilter, taken: set[str]) -> list[Node]:
        """Pick spares, keeping any-role spares for last since they fit every request."""
        candidates = [
            n for n in self._spares.values()
            if n.address not in taken and spare_filter.matches(n)
        ]
        candidates.sort(key=lambda n: n.spare_role is None)
        return candidates[:count]

    def count(self, role: NodeRole | None = None, like: Node | None = None) -> int:
        """Number of spares matching the filters."""
        spare_filter = SpareFilter(role=role, like=like)
        return sum(1 for n in self._spares.values() if spare_filter.matches(n))

    async def claim(
        self, count: int, role: NodeRole | None = None, like: Node | None = None
    ) -> list[Node]:
        """
        Claim `count` matching spares.

        Raises:
            InsufficientResourceError: fewer than count match; nothing claimed
        """
        claimed = await self.claim_batch([(count, SpareFilter(role=role, like=like))])
        return claimed[0]

    async def claim_one(self, role: NodeRole | None = None, like: Node | None = None) -> Node:
        """Claim a single matching spare."""
        return (await self.claim(1, role=role, like=like))[0]

    async def claim_batch(
        self, requests: list[tuple[int, SpareFilter]]
    ) -> list[list[Node]]:
        """
        Claim several groups of spares atomically.

        Every request is satisfied or none is; a node is never handed out for
        two requests.

        Args:
            requests: (count, filter) pairs

        Returns:
            One list of claimed nodes per request, in request order
        """
        for count, _ in requests:
            if count < 0:
                raise ValidationError("spare count must not be negative")

        async with self._lock:
            taken: set[str] = set()
            selections: list[list[Node]] = []

            for count, spare_filter in requests:
                selected = self._select(count, spare_filter, taken)
                if len(selected) < count:
                    self._stats.failed_claims += 1
                    matching = self.count(spare_filter.role, spare_filter.like)
                    message = (
                        f"need {count} spares ({spare_filter.describe()}) "
                        f"but only {len(selected)} are available"
                    )
                    if matching > len(selected):
                        message += (
                            f"; {matching - len(selected)} more match but are needed "
                            "by earlier requests of this claim"
                        )
                    raise InsufficientResourceError(
                        message, requested=count, available=len(selected)
                    )
                taken.update(n.address for n in selected)
                selections.append(selected)

            if self.inventory is not None and taken:
                await self.inventory.mark_claimed(sorted(taken))

            for address in taken:
                del self._spares[address]

            self._stats.claims += 1
            self._stats.nodes_claimed += len(taken)

        if taken:
            logger.info(f"Claimed spares: {', '.join(sorted(taken))}")
        return selections

    async def get_stats(self) -> dict:
        """Get allocator statistics."""
        return {
            "available": len(self._spares),
            "claims": self._stats.claims,
            "nodes_claimed": self._stats.nodes_claimed,
            "failed_claims": self._stats.failed_claims,
        }
