"""Workflows - Promotion, split and cutover sequences."""

from .cutover import ShardCutover
from .promotion import DemotionPolicy, PromotionProtocol, PromotionResult
from .split import SplitPipeline, SplitResult, even_ranges, validate_ranges

__all__ = [
    "ShardCutover",
    "DemotionPolicy",
    "PromotionProtocol",
    "PromotionResult",
    "SplitPipeline",
    "SplitResult",
    "even_ranges",
    "validate_ranges",
]
