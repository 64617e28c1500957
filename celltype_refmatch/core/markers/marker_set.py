"""Marker set container and user-supplied marker resolution.

A marker set maps every ordered label pair (first, second) to the genes that
are up in ``first`` relative to ``second``. The union over all pairs is the
gene restriction used for scoring; the union over the pairs inside a label
subset is the restriction used during fine-tuning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

PairwiseMarkers = Dict[str, Dict[str, Tuple[str, ...]]]


@dataclass(frozen=True)
class MarkerSet:
    """Directional pairwise markers for a set of labels.

    Attributes:
        labels: Labels covered by this marker set, in label order
        method: Method that produced the markers ("de", "sd", "wilcox", "t",
            "user" or "user-flat")
        pairwise: first -> second -> genes up in first vs second
        genes: Union of all markers, in first-seen order
    """

    labels: Tuple[str, ...]
    method: str
    pairwise: PairwiseMarkers = field(default_factory=dict)
    genes: Tuple[str, ...] = ()

    @classmethod
    def from_pairwise(
        cls,
        pairwise: Mapping[str, Mapping[str, Sequence[str]]],
        labels: Sequence[str],
        method: str,
    ) -> "MarkerSet":
        """Build a marker set and its gene union from a nested mapping."""
        labels = tuple(labels)
        cleaned: PairwiseMarkers = {}
        for first in labels:
            inner = pairwise.get(first, {})
            cleaned[first] = {
                second: tuple(str(g) for g in inner.get(second, ()))
                for second in labels
                if second != first
            }
        genes = _ordered_union(
            cleaned[first][second]
            for first in labels
            for second in labels
            if first != second
        )
        return cls(labels=labels, method=method, pairwise=cleaned, genes=genes)

    @classmethod
    def from_genes(
        cls,
        genes: Sequence[str],
        labels: Sequence[str],
        method: str = "sd",
    ) -> "MarkerSet":
        """Build a label-set-wide marker set with no pairwise structure."""
        return cls(
            labels=tuple(labels),
            method=method,
            pairwise={},
            genes=_ordered_union([genes]),
        )

    @property
    def is_pairwise(self) -> bool:
        return bool(self.pairwise)

    def get(self, first: str, second: str) -> Tuple[str, ...]:
        """Markers up in ``first`` relative to ``second``."""
        return self.pairwise.get(first, {}).get(second, ())

    def between(self, labels: Iterable[str]) -> Tuple[str, ...]:
        """Union of markers over every ordered pair within ``labels``.

        For a marker set without pairwise structure the global genes are
        returned unchanged.
        """
        if not self.is_pairwise:
            return self.genes
        subset = list(labels)
        return _ordered_union(
            self.get(first, second)
            for first in subset
            for second in subset
            if first != second
        )

    def restrict(self, genes: Iterable[str]) -> "MarkerSet":
        """Return a copy keeping only markers found in ``genes``."""
        allowed = set(genes)
        if not self.is_pairwise:
            return MarkerSet.from_genes(
                [g for g in self.genes if g in allowed], self.labels, self.method
            )
        pairwise = {
            first: {
                second: tuple(g for g in markers if g in allowed)
                for second, markers in inner.items()
            }
            for first, inner in self.pairwise.items()
        }
        return MarkerSet.from_pairwise(pairwise, self.labels, self.method)

    def to_frame(self) -> pd.DataFrame:
        """Long table with columns first, second, rank, gene."""
        records: List[Dict[str, Any]] = []
        if self.is_pairwise:
            for first, inner in self.pairwise.items():
                for second, markers in inner.items():
                    for rank, gene in enumerate(markers, start=1):
                        records.append(
                            {"first": first, "second": second, "rank": rank, "gene": gene}
                        )
        else:
            for rank, gene in enumerate(self.genes, start=1):
                records.append({"first": None, "second": None, "rank": rank, "gene": gene})
        return pd.DataFrame.from_records(records, columns=["first", "second", "rank", "gene"])

    def __len__(self) -> int:
        return len(self.genes)


def _ordered_union(groups: Iterable[Iterable[str]]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for group in groups:
        for gene in group:
            seen.setdefault(gene, None)
    return tuple(seen)


def markers_from_user(
    markers: Mapping[str, Any],
    labels: Sequence[str],
    available_genes: Optional[Iterable[str]] = None,
    logger: Optional[logging.Logger] = None,
) -> MarkerSet:
    """Resolve user-supplied markers against the reference labels and genes.

    Two layouts are accepted:

    - nested ``label -> label -> genes``: pairwise markers, used as given;
    - flat ``label -> genes``: the genes of ``A`` are used as the markers of
      ``A`` against every other label (loses pairwise specificity).

    Args:
        markers: Nested or flat marker mapping
        labels: Reference labels in label order
        available_genes: Genes present in the reference; others are dropped
        logger: Optional logger instance

    Returns:
        MarkerSet with method "user" (nested) or "user-flat" (flat)
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    labels = tuple(labels)
    unknown = sorted(set(markers) - set(labels))
    if unknown:
        logger.warning("Ignoring markers for labels absent from reference: %s", unknown)

    nested = any(isinstance(value, Mapping) for value in markers.values())
    if nested:
        pairwise = {
            first: {
                second: list(inner.get(second, ()))
                for second in labels
                if second != first
            }
            for first, inner in markers.items()
            if first in labels
        }
        method = "user"
    else:
        pairwise = {
            first: {second: list(genes) for second in labels if second != first}
            for first, genes in markers.items()
            if first in labels
        }
        method = "user-flat"

    marker_set = MarkerSet.from_pairwise(pairwise, labels, method)
    if available_genes is not None:
        available = set(available_genes)
        missing = [g for g in marker_set.genes if g not in available]
        if missing:
            logger.debug(
                "Dropping %d/%d user markers absent from reference: %s",
                len(missing),
                len(marker_set.genes),
                missing[:10],
            )
            marker_set = marker_set.restrict(available)

    logger.info(
        "Resolved %s markers: %d genes across %d labels",
        method,
        len(marker_set),
        len(labels),
    )
    return marker_set
