"""Weighted composite scores and threshold-band classification."""

from histomorph.core.config import validate_weight_table
from histomorph.scoring.engine import (
    Classification,
    CompositeScore,
    classify,
    score,
)

__all__ = [
    "Classification",
    "CompositeScore",
    "classify",
    "score",
    "validate_weight_table",
]
