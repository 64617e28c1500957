"""Expression matrix and label validation.

Every component works on one input shape: a genes x samples
``pandas.DataFrame`` of log-expression values plus, for references, a
label vector aligned with the columns. This module converts and checks
inputs at the entry points so that the scoring code can assume clean data.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ...errors import (
    DimensionMismatchError,
    InsufficientOverlapError,
    LabelCardinalityError,
)


def as_expression_frame(
    matrix: Any,
    genes: Optional[Sequence[str]] = None,
    samples: Optional[Sequence[str]] = None,
    check_missing: bool = True,
    name: str = "matrix",
    logger: Optional[logging.Logger] = None,
) -> pd.DataFrame:
    """Convert a matrix-like object to a validated genes x samples frame.

    Parameters
    ----------
    matrix : DataFrame or array-like
        Genes (rows) x samples (columns) log-expression values.
    genes : Sequence[str], optional
        Gene identifiers; required when ``matrix`` is not a DataFrame.
    samples : Sequence[str], optional
        Sample identifiers for array input (default ``sample_<i>``).
    check_missing : bool
        Drop genes with any missing value.
    name : str
        Name used in log and error messages.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    pd.DataFrame
        New float DataFrame; the input is never modified.

    Raises
    ------
    DimensionMismatchError
        If gene names are missing, of the wrong length, or not unique.
    """
    logger = logger or logging.getLogger(__name__)

    if isinstance(matrix, pd.DataFrame):
        frame = matrix.astype(float, copy=True)
        if genes is not None:
            if len(genes) != frame.shape[0]:
                raise DimensionMismatchError(
                    f"{name}: gene names do not match the number of rows",
                    expected=frame.shape[0],
                    found=len(genes),
                )
            frame.index = pd.Index([str(g) for g in genes])
        else:
            frame.index = frame.index.astype(str)
        frame.columns = frame.columns.astype(str)
    else:
        values = np.asarray(matrix, dtype=float)
        if values.ndim == 1:
            values = values[:, None]
        if values.ndim != 2:
            raise DimensionMismatchError(
                f"{name}: expected a 2-dimensional matrix",
                expected=2,
                found=values.ndim,
            )
        if genes is None:
            raise DimensionMismatchError(
                f"{name}: gene names are required for array input",
                suggestion="Pass genes=... or use a DataFrame indexed by gene.",
            )
        if len(genes) != values.shape[0]:
            raise DimensionMismatchError(
                f"{name}: gene names do not match the number of rows",
                expected=values.shape[0],
                found=len(genes),
            )
        if samples is None:
            samples = [f"sample_{i}" for i in range(values.shape[1])]
        elif len(samples) != values.shape[1]:
            raise DimensionMismatchError(
                f"{name}: sample names do not match the number of columns",
                expected=values.shape[1],
                found=len(samples),
            )
        frame = pd.DataFrame(
            values.copy(),
            index=pd.Index([str(g) for g in genes]),
            columns=pd.Index([str(s) for s in samples]),
        )

    duplicated = frame.index[frame.index.duplicated()].unique()
    if len(duplicated) > 0:
        raise DimensionMismatchError(
            f"{name}: gene identifiers must be unique",
            found=list(duplicated[:5]),
            suggestion="Collapse or rename duplicated genes before classification.",
        )

    if check_missing:
        missing = frame.isna().any(axis=1)
        if missing.any():
            logger.info(
                "%s: dropping %d genes with missing values", name, int(missing.sum())
            )
            frame = frame.loc[~missing]

    if (frame.to_numpy() < 0).any():
        logger.warning(
            "%s contains negative values; log-normalized expression is expected",
            name,
        )

    return frame


def validate_labels(
    reference: pd.DataFrame,
    labels: Sequence[Any],
    name: str = "reference",
    logger: Optional[logging.Logger] = None,
) -> Tuple[pd.DataFrame, np.ndarray]:
    """Align labels with reference columns and drop unlabeled samples.

    Parameters
    ----------
    reference : pd.DataFrame
        Genes x samples reference matrix.
    labels : Sequence
        One label per reference column. Missing labels drop the column.
    name : str
        Reference name for messages.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    Tuple[pd.DataFrame, np.ndarray]
        Reference restricted to labeled columns and the string labels.

    Raises
    ------
    DimensionMismatchError
        If the label count differs from the number of columns.
    LabelCardinalityError
        If fewer than two distinct labels remain.
    """
    logger = logger or logging.getLogger(__name__)

    labels_list = list(labels)
    if len(labels_list) != reference.shape[1]:
        raise DimensionMismatchError(
            f"{name}: number of labels does not match number of samples",
            expected=reference.shape[1],
            found=len(labels_list),
        )

    keep = np.array([not pd.isna(label) for label in labels_list], dtype=bool)
    if not keep.all():
        logger.info(
            "%s: dropping %d samples with missing labels", name, int((~keep).sum())
        )
        reference = reference.loc[:, keep]
    label_array = np.array(
        [str(label) for label, ok in zip(labels_list, keep) if ok], dtype=object
    )

    distinct = label_order(label_array)
    if len(distinct) < 2:
        raise LabelCardinalityError(
            f"{name}: at least two distinct labels are required",
            expected=">= 2",
            found=len(distinct),
        )
    return reference, label_array


def label_order(labels: Sequence[Any]) -> Tuple[str, ...]:
    """Return the distinct labels in lexicographic order.

    This order defines score-matrix columns and therefore the tie-break:
    among equal top scores the lexicographically smallest label wins.
    """
    return tuple(sorted({str(label) for label in labels}))


def intersect_genes(
    *frames: pd.DataFrame,
    min_common_genes: int = 1,
    names: Optional[Sequence[str]] = None,
) -> List[str]:
    """Return genes present in every frame, in the order of the first.

    Raises
    ------
    InsufficientOverlapError
        If fewer than ``min_common_genes`` genes are shared.
    """
    if not frames:
        return []
    common = set(frames[0].index)
    for frame in frames[1:]:
        common &= set(frame.index)
    genes = [g for g in frames[0].index if g in common]

    if len(genes) < max(min_common_genes, 1):
        label = " / ".join(names) if names else f"{len(frames)} matrices"
        raise InsufficientOverlapError(
            f"Too few genes shared between {label}",
            expected=f">= {max(min_common_genes, 1)}",
            found=len(genes),
        )
    return genes


def aggregate_by_cluster(
    test: pd.DataFrame,
    clusters: Sequence[Any],
    logger: Optional[logging.Logger] = None,
) -> pd.DataFrame:
    """Average test samples per cluster.

    Parameters
    ----------
    test : pd.DataFrame
        Genes x samples test matrix.
    clusters : Sequence
        Cluster identifier per test column.

    Returns
    -------
    pd.DataFrame
        Genes x clusters matrix of mean expression, clusters sorted.
    """
    logger = logger or logging.getLogger(__name__)

    clusters = [str(c) for c in clusters]
    if len(clusters) != test.shape[1]:
        raise DimensionMismatchError(
            "Number of cluster assignments does not match number of test samples",
            expected=test.shape[1],
            found=len(clusters),
        )
    grouped = test.T.groupby(pd.Index(clusters, name="cluster"), sort=True).mean().T
    grouped.columns = grouped.columns.astype(str)
    logger.info(
        "Aggregated %d test samples into %d clusters", test.shape[1], grouped.shape[1]
    )
    return grouped
