"""
Persisted record shapes.

These are the inventory view of the topology: plain values only, no
references between entities. Pools reference their master by address and
shards reference their parent by pool name.
"""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass
class NodeRecord:
    """Persisted node attributes."""

    address: str
    role: str
    pool_id: str | None = None
    weight: int = 0
    version: str = ""
    hardware_class: str = ""
    datacenter: str = ""
    spare_role: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PoolRecord:
    """Persisted pool: identity, master address and member nodes."""

    name: str
    master_address: str | None
    nodes: list[NodeRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ShardRecord(PoolRecord):
    """Persisted shard. max_id None means unbounded."""

    min_id: int = 0
    max_id: int | None = None
    state: str = "ready"
    parent_id: str | None = None
