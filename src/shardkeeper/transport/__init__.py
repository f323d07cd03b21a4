"""Transport - per-node remote primitives."""

from .base import NodeTransport
from .memory import InMemoryTransport

__all__ = ["NodeTransport", "InMemoryTransport"]
