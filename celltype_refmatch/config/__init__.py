"""Centralized configuration for CellType-RefMatch.

Example
-------
>>> from celltype_refmatch.config import ClassifyConfig
>>> config = ClassifyConfig.from_yaml("classify.yaml")
>>> config.tuning.tune_thresh
0.05
"""

from .classify import (
    COMBINE_STRATEGIES,
    MARKER_METHODS,
    AggregationConfig,
    ClassifyConfig,
    MarkerConfig,
    ParallelConfig,
    PruningConfig,
    ScoringConfig,
    TuningConfig,
)

__all__ = [
    "COMBINE_STRATEGIES",
    "MARKER_METHODS",
    "AggregationConfig",
    "ClassifyConfig",
    "MarkerConfig",
    "ParallelConfig",
    "PruningConfig",
    "ScoringConfig",
    "TuningConfig",
]
