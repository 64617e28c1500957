"""Marker gene selection between reference labels.

Supported methods:

- ``de`` / ``classic``: difference of per-label medians (or means)
- ``sd``: genes with high variance of per-label medians across all labels
- ``wilcox``: pairwise Wilcoxon AUC, robust for sparse single-cell data
- ``t``: pairwise Welch t statistic
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy.stats import rankdata, ttest_ind

from ...errors import NoMarkersError
from ..reference.data import as_expression_frame, label_order, validate_labels
from .marker_set import MarkerSet


def default_n_markers(method: str, n_labels: int) -> Optional[int]:
    """Default number of markers per label pair.

    The classic method keeps ``round(500 * (2/3) ** log2(n_labels))`` genes
    so that the union stays roughly constant as labels are added. The
    rank-based methods keep 10 per pair. ``sd`` has no per-pair count.
    """
    if method in ("de", "classic"):
        return int(round(500 * (2.0 / 3.0) ** math.log2(max(n_labels, 2))))
    if method == "sd":
        return None
    return 10


def label_statistics(
    values: np.ndarray,
    label_array: np.ndarray,
    labels: Sequence[str],
    statistic: str = "median",
) -> np.ndarray:
    """Per-label summary of each gene.

    Parameters
    ----------
    values : np.ndarray
        Genes x samples matrix.
    label_array : np.ndarray
        Label per sample.
    labels : Sequence[str]
        Labels in output column order.
    statistic : str
        "median" or "mean".

    Returns
    -------
    np.ndarray
        Genes x labels matrix.
    """
    if statistic not in ("median", "mean"):
        raise ValueError(f"Unknown statistic '{statistic}' (expected 'median' or 'mean')")
    summarize = np.median if statistic == "median" else np.mean
    out = np.empty((values.shape[0], len(labels)), dtype=float)
    for j, label in enumerate(labels):
        out[:, j] = summarize(values[:, label_array == label], axis=1)
    return out


def _top_rows(effect: np.ndarray, keep: np.ndarray, n: Optional[int]) -> np.ndarray:
    """Rows passing ``keep`` ordered by decreasing effect (stable on row order)."""
    idx = np.flatnonzero(keep)
    order = idx[np.argsort(-effect[idx], kind="stable")]
    if n is not None:
        order = order[:n]
    return order


def rank_by_label_sd(
    stats: np.ndarray,
    sd_thresh: float,
    n: Optional[int] = None,
) -> np.ndarray:
    """Rows whose label-summary standard deviation exceeds ``sd_thresh``.

    Rows are ordered by decreasing standard deviation and truncated to the
    top ``n`` when given.
    """
    if stats.shape[1] < 2:
        return np.empty(0, dtype=int)
    sds = np.std(stats, axis=1, ddof=1)
    return _top_rows(sds, sds > sd_thresh, n)


def _classic_markers(
    stats: np.ndarray,
    genes: np.ndarray,
    labels: Sequence[str],
    n: int,
) -> Dict[str, Dict[str, List[str]]]:
    pairwise: Dict[str, Dict[str, List[str]]] = {}
    for i, first in enumerate(labels):
        pairwise[first] = {}
        for j, second in enumerate(labels):
            if i == j:
                continue
            diff = stats[:, i] - stats[:, j]
            rows = _top_rows(diff, diff > 0, n)
            pairwise[first][second] = list(genes[rows])
    return pairwise


def _wilcox_markers(
    values: np.ndarray,
    label_array: np.ndarray,
    genes: np.ndarray,
    labels: Sequence[str],
    n: int,
    min_effect: float,
) -> Dict[str, Dict[str, List[str]]]:
    pairwise: Dict[str, Dict[str, List[str]]] = {label: {} for label in labels}
    for i, first in enumerate(labels):
        cols_a = label_array == first
        n_a = int(cols_a.sum())
        for second in labels[i + 1:]:
            cols_b = label_array == second
            n_b = int(cols_b.sum())

            block = np.concatenate([values[:, cols_a], values[:, cols_b]], axis=1)
            ranks = rankdata(block, axis=1)
            u_stat = ranks[:, :n_a].sum(axis=1) - n_a * (n_a + 1) / 2.0
            auc = u_stat / float(n_a * n_b)

            pairwise[first][second] = list(genes[_top_rows(auc, auc > min_effect, n)])
            reverse = 1.0 - auc
            pairwise[second][first] = list(genes[_top_rows(reverse, reverse > min_effect, n)])
    return pairwise


def _t_markers(
    values: np.ndarray,
    label_array: np.ndarray,
    genes: np.ndarray,
    labels: Sequence[str],
    n: int,
) -> Dict[str, Dict[str, List[str]]]:
    pairwise: Dict[str, Dict[str, List[str]]] = {label: {} for label in labels}
    for i, first in enumerate(labels):
        block_a = values[:, label_array == first]
        for second in labels[i + 1:]:
            block_b = values[:, label_array == second]
            with np.errstate(divide="ignore", invalid="ignore"):
                t_stat = ttest_ind(block_a, block_b, axis=1, equal_var=False).statistic
            t_stat = np.asarray(t_stat, dtype=float)
            diff = block_a.mean(axis=1) - block_b.mean(axis=1)
            valid = ~np.isnan(t_stat)

            pairwise[first][second] = list(genes[_top_rows(t_stat, valid & (diff > 0), n)])
            pairwise[second][first] = list(genes[_top_rows(-t_stat, valid & (diff < 0), n)])
    return pairwise


def compute_markers(
    values: np.ndarray,
    label_array: np.ndarray,
    genes: Sequence[str],
    labels: Sequence[str],
    method: str = "de",
    n: Optional[int] = None,
    statistic: str = "median",
    sd_thresh: float = 1.0,
    min_effect: float = 0.5,
    stats: Optional[np.ndarray] = None,
) -> MarkerSet:
    """Compute markers from validated arrays.

    ``values`` is genes x samples aligned with ``genes`` and ``label_array``;
    ``labels`` gives the label order. ``stats`` may pass precomputed
    per-label summaries for the "de" and "sd" methods.
    """
    genes_arr = np.asarray(list(genes), dtype=object)
    labels = tuple(labels)
    if n is None:
        n = default_n_markers(method, len(labels))

    if method in ("de", "classic", "sd") and stats is None:
        stats = label_statistics(values, label_array, labels, statistic)

    if method in ("de", "classic"):
        pairwise = _classic_markers(stats, genes_arr, labels, n)
    elif method == "sd":
        rows = rank_by_label_sd(stats, sd_thresh, n)
        return MarkerSet.from_genes(list(genes_arr[rows]), labels, method="sd")
    elif method == "wilcox":
        pairwise = _wilcox_markers(values, label_array, genes_arr, labels, n, min_effect)
    elif method == "t":
        pairwise = _t_markers(values, label_array, genes_arr, labels, n)
    else:
        raise ValueError(
            f"Unknown marker method '{method}' (expected de, classic, sd, wilcox or t)"
        )
    return MarkerSet.from_pairwise(pairwise, labels, "de" if method == "classic" else method)


def select_markers(
    reference: Any,
    labels: Sequence[Any],
    method: str = "de",
    n: Optional[int] = None,
    statistic: str = "median",
    sd_thresh: float = 1.0,
    min_effect: float = 0.5,
    genes: Optional[Sequence[str]] = None,
    logger: Optional[logging.Logger] = None,
) -> MarkerSet:
    """Select marker genes between every pair of reference labels.

    Parameters
    ----------
    reference : DataFrame or array-like
        Genes x samples log-expression matrix.
    labels : Sequence
        Label per reference sample.
    method : str
        "de" (alias "classic"), "sd", "wilcox" or "t".
    n : int, optional
        Markers per ordered label pair (global top-N for "sd").
        Defaults to :func:`default_n_markers`.
    statistic : str
        Per-label summary for "de" and "sd": "median" or "mean".
    sd_thresh : float
        Minimum standard deviation of label summaries for "sd".
    min_effect : float
        Minimum AUC for "wilcox".
    genes : Sequence[str], optional
        Gene names for array input.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    MarkerSet
        Directional pairwise markers and their union.

    Raises
    ------
    NoMarkersError
        If no gene passes selection for any label pair.
    """
    logger = logger or logging.getLogger(__name__)

    frame = as_expression_frame(reference, genes=genes, name="reference", logger=logger)
    frame, label_array = validate_labels(frame, labels, logger=logger)
    order = label_order(label_array)

    marker_set = compute_markers(
        frame.to_numpy(),
        label_array,
        list(frame.index),
        order,
        method=method,
        n=n,
        statistic=statistic,
        sd_thresh=sd_thresh,
        min_effect=min_effect,
    )
    check_markers(marker_set)
    logger.info(
        "Selected %d marker genes (%s) across %d labels",
        len(marker_set),
        method,
        len(order),
    )
    return marker_set


def check_markers(marker_set: MarkerSet, name: str = "reference") -> None:
    """Raise :class:`NoMarkersError` if the marker union is empty."""
    if len(marker_set) == 0:
        raise NoMarkersError(
            f"{name}: marker selection ({marker_set.method}) produced no genes",
            expected="> 0 marker genes",
            found=0,
            context={"labels": list(marker_set.labels)},
        )
