"""Reference training.

Training validates a reference, optionally aggregates it into pseudo-bulk
profiles, restricts it to genes shared with the test data, and computes the
marker set. The resulting :class:`TrainedReference` can classify any number
of test matrices.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ...config import ClassifyConfig
from ...errors import InsufficientOverlapError
from ..markers.marker_set import MarkerSet, markers_from_user
from ..markers.selection import check_markers, compute_markers, label_statistics
from ..markers.selector import GeneSelector
from ..reference.aggregation import aggregate_reference
from ..reference.data import (
    as_expression_frame,
    intersect_genes,
    label_order,
    validate_labels,
)
from ..scoring.scoring import check_marker_overlap


@dataclass(frozen=True)
class PreparedScoring:
    """Reference and test arrays aligned on the genes they share.

    Attributes
    ----------
    genes : Tuple[str, ...]
        Shared gene axis (rows of both arrays)
    ref_values : np.ndarray
        Genes x reference samples
    test_values : np.ndarray
        Genes x test samples
    selector : GeneSelector
        Marker rows on the shared axis
    marker_genes : Tuple[str, ...]
        Markers present in the test
    """

    genes: Tuple[str, ...]
    ref_values: np.ndarray
    test_values: np.ndarray
    selector: GeneSelector
    marker_genes: Tuple[str, ...]


@dataclass(frozen=True)
class TrainedReference:
    """A reference ready for classification.

    Attributes
    ----------
    name : str
        Reference identifier (used by the combiners)
    genes : Tuple[str, ...]
        Gene axis of ``values``
    values : np.ndarray
        Genes x reference samples log-expression
    label_array : np.ndarray
        Label per reference sample
    labels : Tuple[str, ...]
        Distinct labels in lexicographic order
    codes : np.ndarray
        Index into ``labels`` per reference sample
    markers : MarkerSet
        Marker genes between labels
    label_stats : np.ndarray
        Genes x labels summaries (used for "sd" fine-tuning)
    sd_thresh : float
        Standard deviation threshold for "sd" markers
    n_markers : int, optional
        Markers per pair (global count for "sd")
    """

    name: str
    genes: Tuple[str, ...]
    values: np.ndarray
    label_array: np.ndarray
    labels: Tuple[str, ...]
    codes: np.ndarray
    markers: MarkerSet
    label_stats: np.ndarray
    sd_thresh: float = 1.0
    n_markers: Optional[int] = None

    @property
    def n_samples(self) -> int:
        return self.values.shape[1]

    @property
    def marker_genes(self) -> Tuple[str, ...]:
        return self.markers.genes

    def to_frame(self) -> pd.DataFrame:
        """Reference matrix as a genes x samples DataFrame."""
        return pd.DataFrame(self.values, index=pd.Index(self.genes))

    def prepare(
        self,
        test: pd.DataFrame,
        min_marker_fraction: float = 0.1,
        min_common_genes: int = 50,
    ) -> PreparedScoring:
        """Align this reference with a genes x samples test frame.

        Raises
        ------
        InsufficientOverlapError
            If too few genes or markers are shared with the test.
        """
        available = set(test.index)
        shared = [g for g in self.genes if g in available]
        if len(shared) < max(min_common_genes, 1):
            raise InsufficientOverlapError(
                f"Too few genes shared between test and reference '{self.name}'",
                expected=f">= {max(min_common_genes, 1)}",
                found=len(shared),
            )
        marker_genes = check_marker_overlap(
            self.marker_genes,
            available,
            min_fraction=min_marker_fraction,
            name=f"test (reference '{self.name}')",
        )

        gene_index = {g: i for i, g in enumerate(self.genes)}
        rows = np.array([gene_index[g] for g in shared], dtype=int)
        selector = GeneSelector.from_markers(
            self.markers,
            self.labels,
            {g: i for i, g in enumerate(shared)},
            label_stats=self.label_stats[rows],
            sd_thresh=self.sd_thresh,
            n=self.n_markers,
        )
        return PreparedScoring(
            genes=tuple(shared),
            ref_values=self.values[rows],
            test_values=test.loc[shared].to_numpy(dtype=float),
            selector=selector,
            marker_genes=tuple(marker_genes),
        )


def train_reference(
    reference: Any,
    labels: Sequence[Any],
    markers: Optional[Mapping[str, Any]] = None,
    test_genes: Optional[Sequence[str]] = None,
    config: Optional[ClassifyConfig] = None,
    name: str = "reference",
    genes: Optional[Sequence[str]] = None,
    logger: Optional[logging.Logger] = None,
) -> TrainedReference:
    """Train a reference for classification.

    Parameters
    ----------
    reference : DataFrame or array-like
        Genes x samples log-expression matrix.
    labels : Sequence
        Label per reference sample.
    markers : Mapping, optional
        User-supplied markers, nested (label -> label -> genes) or flat
        (label -> genes). Computed from the reference when None.
    test_genes : Sequence[str], optional
        Genes of the test data; the reference is restricted to the
        intersection before marker selection.
    config : ClassifyConfig, optional
        Classification configuration (defaults if None).
    name : str
        Reference identifier.
    genes : Sequence[str], optional
        Gene names for array input.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    TrainedReference
        Reference with markers, ready for :func:`classify_with_reference`.
    """
    config = config or ClassifyConfig()
    logger = logger or logging.getLogger(__name__)

    frame = as_expression_frame(
        reference,
        genes=genes,
        check_missing=config.scoring.check_missing,
        name=name,
        logger=logger,
    )
    frame, label_array = validate_labels(frame, labels, name=name, logger=logger)

    if config.aggregation.enabled:
        agg = config.aggregation
        pseudo = aggregate_reference(
            frame,
            label_array,
            ncenters=agg.ncenters,
            power=agg.power,
            ntop=agg.ntop,
            rank=agg.rank,
            seed=agg.random_seed,
            logger=logger,
        )
        frame = pseudo.matrix
        label_array = np.array(pseudo.labels, dtype=object)

    if test_genes is not None:
        common = intersect_genes(
            frame,
            pd.DataFrame(index=pd.Index([str(g) for g in test_genes])),
            min_common_genes=config.scoring.min_common_genes,
            names=[name, "test"],
        )
        if len(common) < frame.shape[0]:
            logger.info(
                "%s: restricted to %d/%d genes shared with test",
                name,
                len(common),
                frame.shape[0],
            )
        frame = frame.loc[common]

    order = label_order(label_array)
    code_map: Dict[str, int] = {label: i for i, label in enumerate(order)}
    codes = np.array([code_map[label] for label in label_array], dtype=int)
    values = frame.to_numpy(dtype=float)

    mcfg = config.markers
    stats = label_statistics(values, label_array, order, mcfg.statistic)
    if markers is not None:
        marker_set = markers_from_user(markers, order, frame.index, logger=logger)
    else:
        marker_set = compute_markers(
            values,
            label_array,
            list(frame.index),
            order,
            method=mcfg.method,
            n=mcfg.n,
            statistic=mcfg.statistic,
            sd_thresh=mcfg.sd_thresh,
            min_effect=mcfg.min_effect,
            stats=stats,
        )
    check_markers(marker_set, name=name)

    logger.info(
        "Trained reference '%s': %d samples, %d labels, %d genes, %d markers (%s)",
        name,
        values.shape[1],
        len(order),
        values.shape[0],
        len(marker_set),
        marker_set.method,
    )
    return TrainedReference(
        name=name,
        genes=tuple(frame.index),
        values=values,
        label_array=label_array,
        labels=order,
        codes=codes,
        markers=marker_set,
        label_stats=stats,
        sd_thresh=mcfg.sd_thresh,
        n_markers=mcfg.n,
    )
