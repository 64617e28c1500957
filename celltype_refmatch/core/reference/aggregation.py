"""Pseudo-bulk aggregation of single-cell references.

Large single-cell references are expensive to score against. Aggregation
replaces each label's cells with a handful of representative profiles:
cells are projected onto principal components, clustered within each label
by k-means, and every cluster becomes one profile equal to the mean of its
cells in the original expression space.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.cluster import KMeans
from sklearn.decomposition import PCA

from .data import as_expression_frame, label_order, validate_labels


@dataclass(frozen=True)
class PseudoBulkReference:
    """Reduced reference made of per-label cluster means.

    Attributes
    ----------
    matrix : pd.DataFrame
        Genes x profiles expression matrix
    labels : Tuple[str, ...]
        Label of each profile (aligned with matrix columns)
    n_cells : Tuple[int, ...]
        Number of cells averaged into each profile
    """

    matrix: pd.DataFrame
    labels: Tuple[str, ...]
    n_cells: Tuple[int, ...]

    @property
    def n_profiles(self) -> int:
        return self.matrix.shape[1]


def n_centers_for(n_cells: int, power: float = 0.5, ncenters: Optional[int] = None) -> int:
    """Number of profiles for a label with ``n_cells`` cells.

    ``round(n_cells ** power)`` with a minimum of 1 and a maximum of
    ``n_cells``; a fixed ``ncenters`` overrides the formula.
    """
    if n_cells <= 0:
        return 0
    if ncenters is not None:
        k = int(ncenters)
    else:
        k = int(round(n_cells ** power))
    return int(min(max(k, 1), n_cells))


def _project(values: np.ndarray, ntop: int, rank: int, seed: int) -> np.ndarray:
    """Project cells (rows) onto principal components of the top-variance genes."""
    n_cells, n_genes = values.shape
    if n_cells < 2 or n_genes < 2:
        return values

    variances = values.var(axis=0)
    top = np.argsort(-variances, kind="stable")[: min(ntop, n_genes)]
    selected = values[:, top]

    n_comps = min(rank, n_cells - 1, selected.shape[1])
    if n_comps < 1:
        return selected
    pca = PCA(n_components=n_comps, random_state=seed)
    return pca.fit_transform(selected)


def _cluster_cells(coords: np.ndarray, k: int, seed: int) -> np.ndarray:
    """Assign each row of ``coords`` to one of ``k`` clusters."""
    n_distinct = len(np.unique(coords, axis=0))
    k = min(k, n_distinct)
    if k <= 1:
        return np.zeros(coords.shape[0], dtype=np.int32)
    kmeans = KMeans(n_clusters=k, random_state=seed, n_init=10)
    return kmeans.fit_predict(coords).astype(np.int32)


def aggregate_reference(
    reference: Any,
    labels: Sequence[Any],
    ncenters: Optional[int] = None,
    power: float = 0.5,
    ntop: int = 1000,
    rank: int = 20,
    seed: int = 1337,
    genes: Optional[Sequence[str]] = None,
    logger: Optional[logging.Logger] = None,
) -> PseudoBulkReference:
    """Aggregate a single-cell reference into pseudo-bulk profiles.

    Parameters
    ----------
    reference : DataFrame or array-like
        Genes x cells log-expression matrix.
    labels : Sequence
        Label per reference cell.
    ncenters : int, optional
        Fixed number of profiles per label.
    power : float
        Profiles per label = round(N ** power); 0.5 gives sqrt(N).
    ntop : int
        Number of highest-variance genes used for PCA.
    rank : int
        Number of principal components used for clustering.
    seed : int
        Random seed for PCA and k-means.
    genes : Sequence[str], optional
        Gene names for array input.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    PseudoBulkReference
        Profiles ordered by label then cluster index.
    """
    logger = logger or logging.getLogger(__name__)

    frame = as_expression_frame(reference, genes=genes, name="reference", logger=logger)
    frame, label_array = validate_labels(frame, labels, logger=logger)

    values = frame.to_numpy().T  # cells x genes
    coords = _project(values, ntop=ntop, rank=rank, seed=seed)

    profiles = []
    profile_names = []
    profile_labels = []
    profile_sizes = []
    for label in label_order(label_array):
        idx = np.flatnonzero(label_array == label)
        k = n_centers_for(len(idx), power=power, ncenters=ncenters)
        assignments = _cluster_cells(coords[idx], k, seed)

        for i, cluster_id in enumerate(np.unique(assignments)):
            members = idx[assignments == cluster_id]
            profiles.append(values[members].mean(axis=0))
            profile_names.append(f"{label}.{i}")
            profile_labels.append(label)
            profile_sizes.append(len(members))

        logger.debug(
            "Label %s: %d cells -> %d profiles",
            label,
            len(idx),
            len(np.unique(assignments)),
        )

    matrix = pd.DataFrame(
        np.column_stack(profiles),
        index=frame.index.copy(),
        columns=pd.Index(profile_names),
    )
    logger.info(
        "Aggregated %d reference cells into %d pseudo-bulk profiles",
        frame.shape[1],
        matrix.shape[1],
    )
    return PseudoBulkReference(
        matrix=matrix,
        labels=tuple(profile_labels),
        n_cells=tuple(profile_sizes),
    )
