"""Classification result container."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

import pandas as pd


@dataclass(frozen=True)
class ClassificationResult:
    """Per-sample classification against one reference.

    Attributes:
        scores: Initial score matrix (samples x labels)
        first_labels: Top label before fine-tuning
        labels: Label after fine-tuning
        pruned_labels: Label, or the no-call marker for pruned samples
        pruned: True for samples flagged by pruning
        delta: Assigned-label score minus the median score
        tuning_scores: First and second score of the last tuning round
        reference: Reference identifier
        marker_genes: Marker genes used for the initial scoring
        common_genes: Genes shared by test and reference
    """

    scores: pd.DataFrame
    first_labels: pd.Series
    labels: pd.Series
    pruned_labels: pd.Series
    pruned: pd.Series
    delta: pd.Series
    tuning_scores: pd.DataFrame
    reference: str = "reference"
    marker_genes: Tuple[str, ...] = ()
    common_genes: Tuple[str, ...] = field(default=(), repr=False)

    @property
    def samples(self) -> pd.Index:
        return self.scores.index

    def __len__(self) -> int:
        return len(self.scores)

    def label_counts(self, pruned: bool = False) -> pd.Series:
        """Number of samples per assigned label."""
        source = self.pruned_labels if pruned else self.labels
        return source.value_counts(dropna=False).sort_index()

    def to_frame(self, include_scores: bool = False) -> pd.DataFrame:
        """Flatten to one row per sample.

        Columns: first_labels, labels, pruned_labels, pruned, delta,
        tuning_first, tuning_second, and ``score.<label>`` columns when
        ``include_scores`` is True.
        """
        frame = pd.DataFrame(
            {
                "first_labels": self.first_labels,
                "labels": self.labels,
                "pruned_labels": self.pruned_labels,
                "pruned": self.pruned,
                "delta": self.delta,
                "tuning_first": self.tuning_scores["first"],
                "tuning_second": self.tuning_scores["second"],
            },
            index=self.scores.index,
        )
        if include_scores:
            scores = self.scores.add_prefix("score.")
            frame = pd.concat([frame, scores], axis=1)
        return frame
