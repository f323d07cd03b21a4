"""Abstract inventory backend interface."""

from abc import ABC, abstractmethod
from typing import Any

from .records import NodeRecord, PoolRecord


class InventoryBackend(ABC):
    """
    Abstract base class for inventory backends.

    All writes are last-writer-wins upserts; calling them repeatedly with the
    same record leaves the inventory unchanged.
    """

    @abstractmethod
    async def load_pools(self) -> list[PoolRecord]:
        """
        Load every pool and shard record.

        Returns:
            Records in a stable order; shards are ShardRecord instances
        """
        pass

    @abstractmethod
    async def load_spares(self) -> list[NodeRecord]:
        """Load unclaimed spare nodes."""
        pass

    @abstractmethod
    async def upsert_pool(self, record: PoolRecord) -> None:
        """Insert or replace a pool record and its member node records."""
        pass

    @abstractmethod
    async def delete_pool(self, name: str) -> bool:
        """
        Delete a pool record.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    async def upsert_nodes(self, records: list[NodeRecord]) -> None:
        """Insert or replace node records that are not part of a pool."""
        pass

    @abstractmethod
    async def mark_claimed(self, addresses: list[str]) -> None:
        """Record that the given spares are no longer available."""
        pass

    @abstractmethod
    async def write_config(self, document: dict[str, Any]) -> None:
        """Persist the rendered application configuration."""
        pass
