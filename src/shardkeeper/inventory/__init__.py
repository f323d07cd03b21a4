"""Inventory - persisted topology records and backends."""

from .backend import InventoryBackend
from .memory import MemoryInventory
from .records import NodeRecord, PoolRecord, ShardRecord

__all__ = [
    "InventoryBackend",
    "MemoryInventory",
    "NodeRecord",
    "PoolRecord",
    "ShardRecord",
]
