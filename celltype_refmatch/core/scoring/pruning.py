"""Pruning of low-confidence assignments.

For every test sample the delta is the score of its assigned label minus
the median score across all labels. Deltas are grouped by assigned label and
a sample is flagged when its delta is more than ``nmads`` MADs below the
group median. Working per label makes the rule insensitive to differences
in correlation scale between labels. Labels with fewer than
``min_group_size`` samples have no usable MAD and are never MAD-pruned;
this is a deliberate conservative choice.

Pruning is a per-sample confidence downgrade, never an error.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Tuple, Union

import numpy as np
import pandas as pd

from ...utils.stats import lower_outlier_threshold


def delta_from_median(scores: np.ndarray, assigned: np.ndarray) -> np.ndarray:
    """Assigned-label score minus the row median.

    Parameters
    ----------
    scores : np.ndarray
        Samples x labels score matrix.
    assigned : np.ndarray
        Column index of the assigned label per sample.
    """
    scores = np.asarray(scores, dtype=float)
    rows = np.arange(scores.shape[0])
    return scores[rows, assigned] - np.median(scores, axis=1)


def label_thresholds(
    delta: np.ndarray,
    labels: np.ndarray,
    nmads: float = 3.0,
    min_group_size: int = 2,
) -> pd.Series:
    """Lower delta threshold per assigned label.

    Labels with fewer than ``min_group_size`` samples get ``-inf`` so that
    none of their samples is flagged.
    """
    delta = np.asarray(delta, dtype=float)
    labels = np.asarray(labels, dtype=object)
    thresholds = {}
    for label in sorted(set(labels)):
        group = delta[labels == label]
        if group.size < max(min_group_size, 1):
            thresholds[label] = float("-inf")
        else:
            thresholds[label] = lower_outlier_threshold(group, nmads)
    return pd.Series(thresholds, dtype=float, name="threshold")


def flag_outliers(
    delta: np.ndarray,
    labels: np.ndarray,
    nmads: float = 3.0,
    min_diff_med: float = float("-inf"),
    tuning_gap: Optional[np.ndarray] = None,
    min_diff_next: float = 0.0,
    min_group_size: int = 2,
) -> Tuple[np.ndarray, pd.Series]:
    """Flag samples for pruning from precomputed deltas.

    Returns
    -------
    Tuple[np.ndarray, pd.Series]
        Boolean flags per sample and the per-label thresholds.
    """
    delta = np.asarray(delta, dtype=float)
    labels = np.asarray(labels, dtype=object)
    thresholds = label_thresholds(delta, labels, nmads=nmads, min_group_size=min_group_size)

    per_sample = thresholds.reindex(labels).to_numpy(dtype=float)
    flagged = delta < per_sample
    flagged |= delta < min_diff_med
    if tuning_gap is not None:
        flagged |= np.asarray(tuning_gap, dtype=float) < min_diff_next
    return flagged, thresholds


def get_delta_from_median(result: Any) -> pd.Series:
    """Delta of each sample in a classification result.

    Uses the assigned (post-tuning) label's score in the initial score
    matrix; this is the top score whenever tuning kept the top label.
    """
    scores = result.scores
    assigned = scores.columns.get_indexer(result.labels.astype(str))
    delta = delta_from_median(scores.to_numpy(), assigned)
    return pd.Series(delta, index=scores.index, name="delta")


def prune_scores(
    result: Any,
    nmads: float = 3.0,
    min_diff_med: float = float("-inf"),
    min_diff_next: float = 0.0,
    min_group_size: int = 2,
    get_thresholds: bool = False,
    logger: Optional[logging.Logger] = None,
) -> Union[pd.Series, Tuple[pd.Series, pd.Series]]:
    """Identify low-confidence assignments in a classification result.

    Parameters
    ----------
    result : ClassificationResult
        Result with ``scores``, ``labels`` and ``tuning_scores``.
    nmads : float
        MADs below the label median delta that trigger pruning.
    min_diff_med : float
        Samples with a delta below this value are pruned.
    min_diff_next : float
        Samples whose first minus second tuning score is below this value
        are pruned.
    min_group_size : int
        Minimum number of samples for a label to be MAD-pruned.
    get_thresholds : bool
        Also return the per-label delta thresholds.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    pd.Series or Tuple[pd.Series, pd.Series]
        Boolean flag per sample (True = prune), and optionally the
        thresholds indexed by label.
    """
    logger = logger or logging.getLogger(__name__)

    delta = get_delta_from_median(result)
    gap = None
    tuning = getattr(result, "tuning_scores", None)
    if tuning is not None and len(tuning) == len(delta):
        gap = (tuning["first"] - tuning["second"]).to_numpy(dtype=float)

    flagged, thresholds = flag_outliers(
        delta.to_numpy(),
        result.labels.astype(str).to_numpy(),
        nmads=nmads,
        min_diff_med=min_diff_med,
        tuning_gap=gap,
        min_diff_next=min_diff_next,
        min_group_size=min_group_size,
    )
    logger.info("Pruning flagged %d of %d samples", int(flagged.sum()), flagged.size)

    flags = pd.Series(flagged, index=delta.index, name="pruned")
    if get_thresholds:
        return flags, thresholds
    return flags
