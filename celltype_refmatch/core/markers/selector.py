"""Row-index view of a marker set for the scoring loops.

Scoring and fine-tuning work on aligned numpy arrays, so marker genes are
translated once into row indices of the shared gene axis. The selector is
a plain frozen dataclass of arrays and is passed to joblib workers as is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from .marker_set import MarkerSet
from .selection import rank_by_label_sd


@dataclass(frozen=True)
class GeneSelector:
    """Select marker rows for a subset of label codes.

    Attributes
    ----------
    n_labels : int
        Number of labels in the reference
    pairwise_rows : Dict[Tuple[int, int], np.ndarray]
        (first, second) label codes -> marker row indices
    all_rows : np.ndarray
        Rows used when every label is a candidate
    label_stats : np.ndarray, optional
        Rows x labels summaries used to re-rank genes in "sd" mode
    sd_thresh : float
        Standard deviation threshold for "sd" mode
    n : int, optional
        Genes kept in "sd" mode
    """

    n_labels: int
    pairwise_rows: Dict[Tuple[int, int], np.ndarray]
    all_rows: np.ndarray
    label_stats: Optional[np.ndarray] = None
    sd_thresh: float = 1.0
    n: Optional[int] = None

    @classmethod
    def from_markers(
        cls,
        markers: MarkerSet,
        labels: Sequence[str],
        gene_rows: Mapping[str, int],
        label_stats: Optional[np.ndarray] = None,
        sd_thresh: float = 1.0,
        n: Optional[int] = None,
    ) -> "GeneSelector":
        """Translate a marker set into row indices.

        Genes missing from ``gene_rows`` are dropped silently; callers check
        overlap before building the selector.
        """
        labels = list(labels)

        def to_rows(genes) -> np.ndarray:
            return np.array([gene_rows[g] for g in genes if g in gene_rows], dtype=int)

        pairwise_rows: Dict[Tuple[int, int], np.ndarray] = {}
        if markers.is_pairwise:
            for i, first in enumerate(labels):
                for j, second in enumerate(labels):
                    if i != j:
                        pairwise_rows[(i, j)] = to_rows(markers.get(first, second))

        return cls(
            n_labels=len(labels),
            pairwise_rows=pairwise_rows,
            all_rows=np.unique(to_rows(markers.genes)),
            label_stats=None if markers.is_pairwise else label_stats,
            sd_thresh=sd_thresh,
            n=n,
        )

    def select(self, candidates: Sequence[int]) -> np.ndarray:
        """Sorted unique marker rows for the given label codes."""
        candidates = list(candidates)
        if len(candidates) == self.n_labels:
            return self.all_rows
        if self.pairwise_rows:
            chunks = [
                self.pairwise_rows[(i, j)]
                for i in candidates
                for j in candidates
                if i != j
            ]
            if not chunks:
                return np.empty(0, dtype=int)
            return np.unique(np.concatenate(chunks))
        if self.label_stats is not None:
            rows = rank_by_label_sd(self.label_stats[:, candidates], self.sd_thresh, self.n)
            return np.unique(rows)
        return self.all_rows
