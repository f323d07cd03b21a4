"""API routes."""

from .pools import router as pools_router
from .shards import router as shards_router
from .spares import router as spares_router

__all__ = [
    "pools_router",
    "shards_router",
    "spares_router",
]
