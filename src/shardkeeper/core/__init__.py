"""Core configuration, errors and execution helpers."""

from .config import Settings, get_settings
from .context import ExecutionContext
from .errors import (
    CallbackAbort,
    InconsistentTopologyError,
    InsufficientResourceError,
    NodeActionError,
    NotAReplicaError,
    NotFoundError,
    NotPromotableError,
    PartialFailureError,
    ShardKeeperError,
    ValidationError,
)
from .fanout import FanOutResult, fan_out

__all__ = [
    "Settings",
    "get_settings",
    "ExecutionContext",
    "ShardKeeperError",
    "ValidationError",
    "NotAReplicaError",
    "NotPromotableError",
    "NotFoundError",
    "InsufficientResourceError",
    "InconsistentTopologyError",
    "PartialFailureError",
    "NodeActionError",
    "CallbackAbort",
    "FanOutResult",
    "fan_out",
]
