"""Marker selection for reference-based classification.

Computes directional markers between every pair of reference labels, or
resolves user-supplied markers, and exposes them as gene sets for scoring.
"""

from .marker_set import MarkerSet, markers_from_user
from .selection import (
    check_markers,
    compute_markers,
    default_n_markers,
    label_statistics,
    rank_by_label_sd,
    select_markers,
)
from .selector import GeneSelector

__all__ = [
    # Container
    "MarkerSet",
    "markers_from_user",
    # Selection
    "select_markers",
    "compute_markers",
    "check_markers",
    "default_n_markers",
    "label_statistics",
    "rank_by_label_sd",
    # Scoring view
    "GeneSelector",
]
