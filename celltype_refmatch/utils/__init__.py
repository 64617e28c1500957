"""Utility functions for CellType-RefMatch.

Provides statistical helpers used across modules.
"""

from .stats import (
    MAD_SCALE,
    lower_outlier_threshold,
    median_absolute_deviation,
    scaled_ranks,
)

__all__ = [
    "MAD_SCALE",
    "lower_outlier_threshold",
    "median_absolute_deviation",
    "scaled_ranks",
]
