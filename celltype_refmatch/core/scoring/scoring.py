"""Correlation-based scoring of test samples against reference labels.

A label's score for a test sample is a fixed quantile (default 0.8) of the
Spearman correlations between the sample and every reference sample of that
label, computed over marker genes only. The quantile is less sensitive to a
single outlying reference sample than the maximum and more robust to skewed
label distributions than the mean.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ...errors import InsufficientOverlapError, NoMarkersError
from ..markers.marker_set import MarkerSet
from ..reference.data import as_expression_frame, label_order, validate_labels
from .correlation import score_block


def check_marker_overlap(
    marker_genes: Sequence[str],
    available: Iterable[str],
    min_fraction: float = 0.1,
    name: str = "test",
) -> List[str]:
    """Return the marker genes present in ``available``.

    Raises
    ------
    InsufficientOverlapError
        If fewer than ``max(1, ceil(min_fraction * len(marker_genes)))``
        markers are present.
    """
    available = set(available)
    present = [g for g in marker_genes if g in available]
    required = max(1, int(math.ceil(min_fraction * len(marker_genes))))
    if len(present) < required:
        raise InsufficientOverlapError(
            f"Too few marker genes present in {name}",
            expected=f">= {required} of {len(marker_genes)} markers",
            found=len(present),
        )
    return present


def score_sample(
    test_vector: Union[pd.Series, Any],
    reference: Any,
    labels: Sequence[Any],
    markers: Union[MarkerSet, Sequence[str]],
    quantile: float = 0.8,
    min_marker_fraction: float = 0.1,
    genes: Optional[Sequence[str]] = None,
    logger: Optional[logging.Logger] = None,
) -> pd.Series:
    """Score one test sample against every reference label.

    Parameters
    ----------
    test_vector : pd.Series or array-like
        Log-expression of one sample, indexed by gene (or aligned with
        ``genes`` for array input).
    reference : DataFrame or array-like
        Genes x samples reference matrix.
    labels : Sequence
        Label per reference sample.
    markers : MarkerSet or Sequence[str]
        Marker genes; a MarkerSet contributes its full union.
    quantile : float
        Quantile of the per-label correlations used as score.
    min_marker_fraction : float
        Minimum fraction of markers that must be present in the test.
    genes : Sequence[str], optional
        Gene names shared by array inputs.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    pd.Series
        Score per label, in label order. ``idxmax`` gives the assigned
        label with ties broken towards the lexicographically first label.

    Raises
    ------
    NoMarkersError
        If ``markers`` is empty.
    InsufficientOverlapError
        If too few markers are present in the test sample and reference.
    """
    logger = logger or logging.getLogger(__name__)

    if isinstance(test_vector, pd.Series):
        test = test_vector.astype(float)
        test.index = test.index.astype(str)
    else:
        test = pd.Series(np.asarray(test_vector, dtype=float), index=genes)
    test = test.dropna()

    frame = as_expression_frame(reference, genes=genes, name="reference", logger=logger)
    frame, label_array = validate_labels(frame, labels, logger=logger)
    order = label_order(label_array)

    marker_genes = list(markers.genes) if isinstance(markers, MarkerSet) else list(markers)
    if not marker_genes:
        raise NoMarkersError(
            "No marker genes given for scoring",
            expected="> 0 marker genes",
            found=0,
        )
    present = check_marker_overlap(
        marker_genes,
        set(test.index) & set(frame.index),
        min_fraction=min_marker_fraction,
    )

    codes = np.array([order.index(label) for label in label_array], dtype=int)
    ref_values = frame.loc[present].to_numpy()
    test_values = test.loc[present].to_numpy()
    rows = np.arange(len(present))

    scores = score_block(test_values, ref_values, codes, rows, range(len(order)), quantile)
    return pd.Series(scores[0], index=pd.Index(order, name="label"), name="score")


def score_samples(
    test: Any,
    trained: Any,
    quantile: float = 0.8,
    min_marker_fraction: float = 0.1,
    min_common_genes: int = 50,
    genes: Optional[Sequence[str]] = None,
    logger: Optional[logging.Logger] = None,
) -> pd.DataFrame:
    """Score every test sample against the labels of a trained reference.

    Parameters
    ----------
    test : DataFrame or array-like
        Genes x samples test matrix.
    trained : TrainedReference
        Output of ``train_reference``.
    quantile : float
        Quantile of the per-label correlations used as score.
    min_marker_fraction : float
        Minimum fraction of markers that must be present in the test.
    min_common_genes : int
        Minimum number of genes shared with the reference.
    genes : Sequence[str], optional
        Gene names for array input.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    pd.DataFrame
        Samples x labels score matrix, labels in lexicographic order.
    """
    logger = logger or logging.getLogger(__name__)

    frame = as_expression_frame(test, genes=genes, name="test", logger=logger)
    prepared = trained.prepare(
        frame,
        min_marker_fraction=min_marker_fraction,
        min_common_genes=min_common_genes,
    )
    scores = score_block(
        prepared.test_values,
        prepared.ref_values,
        trained.codes,
        prepared.selector.all_rows,
        range(len(trained.labels)),
        quantile,
    )
    logger.debug(
        "Scored %d samples on %d marker genes", scores.shape[0], prepared.selector.all_rows.size
    )
    return pd.DataFrame(
        scores,
        index=frame.columns.copy(),
        columns=pd.Index(trained.labels, name="label"),
    )
