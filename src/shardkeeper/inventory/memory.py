"""In-memory inventory backend for development and testing."""

import asyncio
import copy
import json
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from .backend import InventoryBackend
from .records import NodeRecord, PoolRecord


class MemoryInventory(InventoryBackend):
    """
    Reference inventory keeping records in dictionaries.

    Records are deep-copied on the way in and out so callers never share
    state with the store. When config_path is set, write_config also renders
    the document as JSON into that file.
    """

    def __init__(
        self,
        pools: list[PoolRecord] | None = None,
        spares: list[NodeRecord] | None = None,
        config_path: Path | None = None,
    ):
        self.config_path = config_path
        self._pools: dict[str, PoolRecord] = {}
        self._nodes: dict[str, NodeRecord] = {}
        self._spares: dict[str, NodeRecord] = {}
        self._config: dict[str, Any] | None = None
        self._lock = asyncio.Lock()
        self._stats = {
            "pool_upserts": 0,
            "pool_deletes": 0,
            "node_upserts": 0,
            "spares_claimed": 0,
            "config_writes": 0,
        }

        for record in pools or []:
            self._store_pool(copy.deepcopy(record))
        for record in spares or []:
            self._spares[record.address] = copy.deepcopy(record)

    def _store_pool(self, record: PoolRecord) -> None:
        self._pools[record.name] = record
        for node in record.nodes:
            self._nodes[node.address] = node

    async def load_pools(self) -> list[PoolRecord]:
        async with self._lock:
            return [copy.deepcopy(r) for r in self._pools.values()]

    async def load_spares(self) -> list[NodeRecord]:
        async with self._lock:
            return [copy.deepcopy(r) for r in self._spares.values()]

    async def upsert_pool(self, record: PoolRecord) -> None:
        async with self._lock:
            self._store_pool(copy.deepcopy(record))
            self._stats["pool_upserts"] += 1

    async def delete_pool(self, name: str) -> bool:
        async with self._lock:
            if name not in self._pools:
                return False
            del self._pools[name]
            self._stats["pool_deletes"] += 1
            return True

    async def upsert_nodes(self, records: list[NodeRecord]) -> None:
        async with self._lock:
            for record in records:
                self._nodes[record.address] = copy.deepcopy(record)
                self._stats["node_upserts"] += 1

    async def mark_claimed(self, addresses: list[str]) -> None:
        async with self._lock:
            for address in addresses:
                if self._spares.pop(address, None) is not None:
                    self._stats["spares_claimed"] += 1

    async def write_config(self, document: dict[str, Any]) -> None:
        async with self._lock:
            self._config = copy.deepcopy(document)
            self._stats["config_writes"] += 1

            if self.config_path is not None:
                await self._render_file(document)

    async def _render_file(self, document: dict[str, Any]) -> None:
        """Write the document next to its target, then swap it into place."""
        await aiofiles.os.makedirs(self.config_path.parent, exist_ok=True)
        temp_path = self.config_path.with_suffix(self.config_path.suffix + ".tmp")

        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(document, indent=2, sort_keys=True))

        await aiofiles.os.replace(temp_path, self.config_path)

    # Inspection helpers

    def pool_record(self, name: str) -> PoolRecord | None:
        """Get a stored pool record."""
        record = self._pools.get(name)
        return copy.deepcopy(record) if record else None

    def node_record(self, address: str) -> NodeRecord | None:
        """Get a stored node record."""
        record = self._nodes.get(address)
        return copy.deepcopy(record) if record else None

    def pool_names(self) -> list[str]:
        """Get stored pool names in insertion order."""
        return list(self._pools)

    def spare_addresses(self) -> list[str]:
        """Get unclaimed spare addresses."""
        return list(self._spares)

    @property
    def config(self) -> dict[str, Any] | None:
        """Last written configuration document."""
        return copy.deepcopy(self._config)

    async def get_stats(self) -> dict:
        """Get inventory statistics."""
        return {
            "pools": len(self._pools),
            "nodes": len(self._nodes),
            "spares": len(self._spares),
            **self._stats,
        }
