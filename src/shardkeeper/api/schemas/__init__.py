"""API schemas."""

from .pool import (
    ActivateRequest,
    NodeResponse,
    PoolListResponse,
    PoolResponse,
    PromoteRequest,
    PromoteResponse,
    SpareListResponse,
)
from .shard import (
    CleanupResponse,
    CutoverRequest,
    ShardListResponse,
    ShardResponse,
    ShardStateRequest,
    SplitRequest,
    SplitResponse,
)

__all__ = [
    "ActivateRequest",
    "NodeResponse",
    "PoolListResponse",
    "PoolResponse",
    "PromoteRequest",
    "PromoteResponse",
    "SpareListResponse",
    "CleanupResponse",
    "CutoverRequest",
    "ShardListResponse",
    "ShardResponse",
    "ShardStateRequest",
    "SplitRequest",
    "SplitResponse",
]
