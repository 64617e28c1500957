"""Combining classification results across references."""

from .combine import (
    CombinedResult,
    combine_common_results,
    combine_recomputed_results,
    common_marker_genes,
)
from .pooling import pool_references, prefix_reference_labels

__all__ = [
    "CombinedResult",
    "combine_common_results",
    "combine_recomputed_results",
    "common_marker_genes",
    "pool_references",
    "prefix_reference_labels",
]
