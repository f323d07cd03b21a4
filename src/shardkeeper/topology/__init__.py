"""Topology - Nodes, pools, shards and the fleet catalog."""

from .node import HardwareProfile, Node, NodeRole, Reachability
from .spares import SpareAllocator, SpareFilter
from .pool import Pool
from .shard import Shard, ShardState, shard_name
from .topology import Topology, configure_topology, get_topology

__all__ = [
    "HardwareProfile",
    "Node",
    "NodeRole",
    "Reachability",
    "SpareAllocator",
    "SpareFilter",
    "Pool",
    "Shard",
    "ShardState",
    "shard_name",
    "Topology",
    "configure_topology",
    "get_topology",
]
