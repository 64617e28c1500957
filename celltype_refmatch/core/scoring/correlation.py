"""Quantile-of-correlation scores on aligned arrays.

All functions here take genes x samples numpy blocks that were already
restricted to a marker gene set; gene bookkeeping lives in the callers.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from ...utils.stats import scaled_ranks


def spearman_matrix(test_block: np.ndarray, ref_block: np.ndarray) -> np.ndarray:
    """Spearman correlation of every test column with every reference column.

    Parameters
    ----------
    test_block : np.ndarray
        Genes x test samples.
    ref_block : np.ndarray
        Genes x reference samples, same gene rows.

    Returns
    -------
    np.ndarray
        Test samples x reference samples correlations.
    """
    return scaled_ranks(test_block).T @ scaled_ranks(ref_block)


def quantile_scores(
    correlations: np.ndarray,
    ref_codes: np.ndarray,
    candidates: Sequence[int],
    quantile: float,
) -> np.ndarray:
    """Per-label quantile of the correlation distribution.

    Parameters
    ----------
    correlations : np.ndarray
        Test samples x reference samples.
    ref_codes : np.ndarray
        Label code of each reference column.
    candidates : Sequence[int]
        Label codes to score, in output column order.
    quantile : float
        Quantile in [0, 1] (linear interpolation).

    Returns
    -------
    np.ndarray
        Test samples x candidates scores.
    """
    out = np.empty((correlations.shape[0], len(candidates)), dtype=float)
    for k, code in enumerate(candidates):
        cols = ref_codes == code
        out[:, k] = np.quantile(correlations[:, cols], quantile, axis=1)
    return out


def score_block(
    test_block: np.ndarray,
    ref_values: np.ndarray,
    ref_codes: np.ndarray,
    rows: np.ndarray,
    candidates: Sequence[int],
    quantile: float,
) -> np.ndarray:
    """Score test columns against the candidate labels on ``rows``.

    ``test_block`` holds all gene rows of the shared axis; both it and the
    reference are restricted to ``rows`` and the reference additionally to
    the columns of the candidate labels.
    """
    candidates = list(candidates)
    test_block = np.asarray(test_block, dtype=float)
    if test_block.ndim == 1:
        test_block = test_block[:, None]

    col_mask = np.isin(ref_codes, candidates)
    correlations = spearman_matrix(test_block[rows], ref_values[np.ix_(rows, col_mask)])
    return quantile_scores(correlations, ref_codes[col_mask], candidates, quantile)


def best_index(scores: np.ndarray) -> np.ndarray:
    """Column of the maximal score per row; ties go to the first column."""
    scores = np.atleast_2d(scores)
    return np.argmax(scores, axis=1)
