"""
Abstract node transport interface.

The engine never executes anything on a database host itself. Every remote
action goes through one of these per-node primitives, addressed by node
address. Implementations raise NodeActionError when a primitive fails.

Long primitives (clone_data, import_schema) block until done and are not
cancellable by the engine.
"""

from abc import ABC, abstractmethod


class NodeTransport(ABC):
    """Abstract base class for node transports."""

    # Reachability and service control

    @abstractmethod
    async def probe(self, address: str) -> bool:
        """Return True if the node answers."""
        pass

    @abstractmethod
    async def start_service(self, address: str) -> None:
        """Start the database service."""
        pass

    @abstractmethod
    async def stop_service(self, address: str) -> None:
        """Stop the database service."""
        pass

    # Data movement

    @abstractmethod
    async def clone_data(self, source: str, targets: list[str]) -> None:
        """Copy the full data set from source onto every target."""
        pass

    @abstractmethod
    async def export_schema(self, address: str) -> str:
        """Export table definitions (no rows)."""
        pass

    @abstractmethod
    async def import_schema(self, address: str, schema: str) -> None:
        """Apply exported table definitions."""
        pass

    @abstractmethod
    async def prune_data(self, address: str, min_id: int, max_id: int | None) -> int:
        """
        Delete rows whose sharding key is outside [min_id, max_id].

        Args:
            address: Node to prune
            min_id: Lowest id to keep
            max_id: Highest id to keep, None for unbounded

        Returns:
            Number of rows deleted
        """
        pass

    # Replication

    @abstractmethod
    async def change_replication_source(self, address: str, master_address: str) -> None:
        """Point replication at a new master and start it."""
        pass

    @abstractmethod
    async def stop_replication(self, address: str) -> None:
        """Stop replication and forget the source. Irreversible."""
        pass

    @abstractmethod
    async def pause_replication(self, address: str) -> None:
        """Pause replication, keeping the source."""
        pass

    @abstractmethod
    async def resume_replication(self, address: str) -> None:
        """Resume paused replication."""
        pass

    @abstractmethod
    async def replication_lag(self, address: str) -> float | None:
        """Seconds behind master, None when replication is not running."""
        pass

    @abstractmethod
    async def replication_source(self, address: str) -> str | None:
        """Address the node replicates from, None for none."""
        pass

    # Access control

    @abstractmethod
    async def enable_read_only(self, address: str) -> None:
        pass

    @abstractmethod
    async def disable_read_only(self, address: str) -> None:
        pass

    @abstractmethod
    async def revoke_access(self, address: str) -> None:
        """Revoke application users' access."""
        pass

    # Maintenance hooks

    @abstractmethod
    async def start_query_killer(self, address: str) -> None:
        pass

    @abstractmethod
    async def stop_query_killer(self, address: str) -> None:
        pass

    @abstractmethod
    async def suppress_monitoring(self, address: str) -> None:
        pass

    @abstractmethod
    async def resume_monitoring(self, address: str) -> None:
        pass
