"""Statistical utilities for CellType-RefMatch.

Provides robust dispersion statistics and rank transforms shared by the
scoring and pruning modules.
"""

from __future__ import annotations

from typing import Iterable, Union

import numpy as np
from scipy.stats import rankdata

ArrayLike = Union[Iterable[float], np.ndarray]

# Scale factor making the MAD consistent with the standard deviation
# for normally distributed data.
MAD_SCALE = 1.4826


def _to_clean_array(values: ArrayLike) -> np.ndarray:
    """Convert input to clean numpy array, removing non-finite values.

    Parameters
    ----------
    values : ArrayLike
        Input values (list, iterable, or array).

    Returns
    -------
    np.ndarray
        Clean array with only finite values.
    """
    arr = np.asarray(list(values), dtype=float)
    if arr.size == 0:
        return arr
    return arr[np.isfinite(arr)]


def median_absolute_deviation(values: ArrayLike, *, scale: float = MAD_SCALE) -> float:
    """Compute the scaled median absolute deviation.

    Parameters
    ----------
    values : ArrayLike
        Input values. Non-finite values are ignored.
    scale : float
        Multiplier applied to the raw MAD (default 1.4826).

    Returns
    -------
    float
        Scaled MAD. NaN if no finite values are present.
    """
    arr = _to_clean_array(values)
    if arr.size == 0:
        return float("nan")
    center = np.median(arr)
    return float(scale * np.median(np.abs(arr - center)))


def lower_outlier_threshold(values: ArrayLike, nmads: float) -> float:
    """Return ``median - nmads * MAD`` for a set of values.

    Values strictly below the returned threshold are lower outliers.
    NaN if no finite values are present.
    """
    arr = _to_clean_array(values)
    if arr.size == 0:
        return float("nan")
    return float(np.median(arr) - nmads * median_absolute_deviation(arr))


def scaled_ranks(matrix: np.ndarray) -> np.ndarray:
    """Rank each column, then centre and scale it to unit length.

    The dot product of two scaled rank columns is their Spearman
    correlation. Ties receive average ranks. Constant columns become
    all-zero columns so they correlate 0 with everything.

    Parameters
    ----------
    matrix : np.ndarray
        Features (rows) x samples (columns).

    Returns
    -------
    np.ndarray
        Array of the same shape with scaled ranks.
    """
    values = np.asarray(matrix, dtype=float)
    if values.ndim == 1:
        values = values[:, None]
    if values.shape[0] == 0:
        return np.zeros_like(values)

    ranks = rankdata(values, axis=0)
    ranks -= ranks.mean(axis=0, keepdims=True)
    norms = np.sqrt(np.sum(ranks * ranks, axis=0))
    nonzero = norms > 0
    ranks[:, nonzero] /= norms[nonzero]
    ranks[:, ~nonzero] = 0.0
    return ranks
