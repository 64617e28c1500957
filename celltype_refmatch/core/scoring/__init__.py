"""Scoring, fine-tuning and pruning.

Provides quantile-of-Spearman scoring against reference labels, the
fine-tuning state machine, and MAD-based pruning of uncertain calls.
"""

from .correlation import best_index, quantile_scores, score_block, spearman_matrix
from .pruning import (
    delta_from_median,
    flag_outliers,
    get_delta_from_median,
    label_thresholds,
    prune_scores,
)
from .scoring import check_marker_overlap, score_sample, score_samples
from .tuning import (
    Continue,
    Done,
    TuneContext,
    TuneOutcome,
    TuneResult,
    fine_tune,
    fine_tune_codes,
    narrow,
    tune_step,
)

__all__ = [
    # Correlation
    "spearman_matrix",
    "quantile_scores",
    "score_block",
    "best_index",
    # Scoring
    "score_sample",
    "score_samples",
    "check_marker_overlap",
    # Fine-tuning
    "Continue",
    "Done",
    "TuneContext",
    "TuneOutcome",
    "TuneResult",
    "narrow",
    "tune_step",
    "fine_tune_codes",
    "fine_tune",
    # Pruning
    "delta_from_median",
    "label_thresholds",
    "flag_outliers",
    "get_delta_from_median",
    "prune_scores",
]
