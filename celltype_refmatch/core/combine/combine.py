"""Combination of classification results from several references.

Two strategies are provided:

- ``common``: every reference is rescored on one shared marker set (the union
  of all references' markers restricted to genes present everywhere), which
  puts all scores on the same gene basis.
- ``recomputed``: each reference keeps its own markers and result; per sample
  the assigned label's score is compared across references. Scores from
  different references are not normalised, so this is a heuristic: a
  reference with systematically higher correlations wins more often.

In both strategies ties go to the first reference in listing order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ...errors import DimensionMismatchError, InsufficientOverlapError
from ..classify.result import ClassificationResult
from ..classify.training import TrainedReference
from ..reference.data import as_expression_frame
from ..scoring.correlation import score_block

ResultsInput = Union[Mapping[str, ClassificationResult], Sequence[ClassificationResult]]


@dataclass(frozen=True)
class CombinedResult:
    """Per-sample labels merged across references.

    Attributes:
        labels: Winning label per sample
        reference: Reference the winning label came from
        score: Score of the winning label
        scores: Best score per sample and reference (samples x references)
        first_labels: Pre-tuning label from the winning reference
        pruned_labels: Winning label, or the no-call marker if the winning
            reference pruned the sample
        strategy: "common" or "recomputed"
        results: The per-reference results that were combined
    """

    labels: pd.Series
    reference: pd.Series
    score: pd.Series
    scores: pd.DataFrame
    first_labels: pd.Series
    pruned_labels: pd.Series
    strategy: str = "recomputed"
    results: Dict[str, ClassificationResult] = field(default_factory=dict, repr=False)

    @property
    def samples(self) -> pd.Index:
        return self.labels.index

    def __len__(self) -> int:
        return len(self.labels)

    def to_frame(self, include_scores: bool = False) -> pd.DataFrame:
        """Flatten to one row per sample."""
        frame = pd.DataFrame(
            {
                "first_labels": self.first_labels,
                "labels": self.labels,
                "pruned_labels": self.pruned_labels,
                "reference": self.reference,
                "score": self.score,
            },
            index=self.labels.index,
        )
        if include_scores:
            frame = pd.concat([frame, self.scores.add_prefix("score.")], axis=1)
        return frame


def _named_results(results: ResultsInput) -> Dict[str, ClassificationResult]:
    if isinstance(results, Mapping):
        named = {str(k): v for k, v in results.items()}
    else:
        named = {}
        for i, result in enumerate(results):
            name = result.reference
            if name in named:
                name = f"{name}.{i}"
            named[name] = result
    if not named:
        raise ValueError("At least one classification result is required")
    return named


def _check_samples(named: Mapping[str, ClassificationResult], samples: pd.Index) -> None:
    for name, result in named.items():
        if len(result.samples) != len(samples) or set(result.samples) != set(samples):
            raise DimensionMismatchError(
                f"Result '{name}' covers different samples",
                expected=f"{len(samples)} samples matching the first result",
                found=f"{len(result.samples)} samples",
                context={"reference": name},
            )


def _pick_winner(scores: np.ndarray) -> np.ndarray:
    # NaN never wins; argmax returns the first maximum
    filled = np.where(np.isnan(scores), -np.inf, scores)
    return np.argmax(filled, axis=1)


def _assemble(
    named: Mapping[str, ClassificationResult],
    samples: pd.Index,
    ref_scores: np.ndarray,
    labels: np.ndarray,
    winner: np.ndarray,
    strategy: str,
    pruned_label: Optional[str],
) -> CombinedResult:
    names = list(named)
    rows = np.arange(len(samples))

    first = np.empty(len(samples), dtype=object)
    own = np.empty(len(samples), dtype=object)
    pruned = np.zeros(len(samples), dtype=bool)
    for k, name in enumerate(names):
        mask = winner == k
        if not mask.any():
            continue
        result = named[name]
        first[mask] = result.first_labels.reindex(samples).to_numpy(dtype=object)[mask]
        own[mask] = result.labels.reindex(samples).to_numpy(dtype=object)[mask]
        pruned[mask] = result.pruned.reindex(samples).to_numpy(dtype=bool)[mask]

    final = labels[rows, winner]
    # a pruning flag only applies to the label it was computed for
    pruned &= own == final
    return CombinedResult(
        labels=pd.Series(final, index=samples, name="labels", dtype=object),
        reference=pd.Series(np.asarray(names, dtype=object)[winner], index=samples, name="reference"),
        score=pd.Series(ref_scores[rows, winner], index=samples, name="score"),
        scores=pd.DataFrame(ref_scores, index=samples, columns=pd.Index(names, name="reference")),
        first_labels=pd.Series(first, index=samples, name="first_labels"),
        pruned_labels=pd.Series(
            np.where(pruned, pruned_label, final).astype(object),
            index=samples,
            name="pruned_labels",
        ),
        strategy=strategy,
        results=dict(named),
    )


def combine_recomputed_results(
    results: ResultsInput,
    pruned_label: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> CombinedResult:
    """Combine independently computed per-reference results.

    Parameters
    ----------
    results : Mapping[str, ClassificationResult] or Sequence
        Per-reference results over the same test samples. A sequence is
        keyed by each result's ``reference`` name.
    pruned_label : str, optional
        No-call marker for samples pruned by their winning reference.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    CombinedResult
        For each sample, the tuned label of the reference whose assigned
        label scored highest in its own scoring.

    Raises
    ------
    InsufficientOverlapError
        If the references share no gene.
    DimensionMismatchError
        If the results cover different samples.
    """
    logger = logger or logging.getLogger(__name__)
    named = _named_results(results)

    shared = None
    for result in named.values():
        genes = set(result.common_genes)
        shared = genes if shared is None else shared & genes
    if not shared:
        raise InsufficientOverlapError(
            "References share no gene",
            expected=">= 1 gene common to all references",
            found=0,
            suggestion="Use references measured on overlapping gene panels",
            context={"references": list(named)},
        )

    samples = next(iter(named.values())).samples
    _check_samples(named, samples)

    n = len(samples)
    ref_scores = np.empty((n, len(named)), dtype=float)
    labels = np.empty((n, len(named)), dtype=object)
    for k, result in enumerate(named.values()):
        assigned = result.labels.reindex(samples)
        scores = result.scores.reindex(samples)
        cols = scores.columns.get_indexer(assigned.astype(str))
        ref_scores[:, k] = scores.to_numpy(dtype=float)[np.arange(n), cols]
        labels[:, k] = assigned.to_numpy(dtype=object)

    winner = _pick_winner(ref_scores)
    combined = _assemble(named, samples, ref_scores, labels, winner, "recomputed", pruned_label)
    logger.info(
        "Combined %d references over %d samples (%d shared genes): %s",
        len(named),
        n,
        len(shared),
        ", ".join(f"{k}={v}" for k, v in combined.reference.value_counts().items()),
    )
    return combined


def common_marker_genes(
    trained: Sequence[TrainedReference],
    test_genes: Sequence[str],
) -> List[str]:
    """Union of all references' markers restricted to genes present everywhere.

    Raises
    ------
    InsufficientOverlapError
        If the restricted marker set is empty.
    """
    common = set(test_genes)
    for ref in trained:
        common &= set(ref.genes)

    seen = set()
    genes = []
    for ref in trained:
        for gene in ref.marker_genes:
            if gene in common and gene not in seen:
                seen.add(gene)
                genes.append(gene)

    if not genes:
        raise InsufficientOverlapError(
            "No marker gene is shared by all references and the test",
            expected=">= 1 common marker gene",
            found=0,
            suggestion="Use the 'recomputed' strategy or references with overlapping panels",
            context={"references": [ref.name for ref in trained], "common_genes": len(common)},
        )
    return genes


def _rescore(
    test: pd.DataFrame,
    ref: TrainedReference,
    genes: Sequence[str],
    quantile: float,
) -> np.ndarray:
    gene_index = {g: i for i, g in enumerate(ref.genes)}
    rows = np.array([gene_index[g] for g in genes], dtype=int)
    test_values = test.loc[list(genes)].to_numpy(dtype=float)
    return score_block(
        test_values,
        ref.values[rows],
        ref.codes,
        np.arange(len(genes)),
        range(len(ref.labels)),
        quantile,
    )


def combine_common_results(
    test: Any,
    trained: Union[Mapping[str, TrainedReference], Sequence[TrainedReference]],
    results: Optional[ResultsInput] = None,
    quantile: float = 0.8,
    pruned_label: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> CombinedResult:
    """Rescore every reference on a shared marker set and take the best label.

    Args:
        test: Genes x samples test matrix
        trained: Trained references (mapping name -> reference, or sequence
            in listing order)
        results: Optional per-reference results; they supply the pre-tuning
            and pruning information of the winning reference. A pruning flag
            is kept only where the winning reference's own label equals the
            rescored label; otherwise the sample is not pruned
        quantile: Score quantile
        pruned_label: No-call marker for pruned samples
        logger: Logger instance

    Returns:
        CombinedResult with the highest-scoring (reference, label) pair per
        sample. Ties go to the first reference, then to label order.

    Raises:
        InsufficientOverlapError: If no marker gene is shared by all
            references and the test
    """
    logger = logger or logging.getLogger(__name__)

    if isinstance(trained, Mapping):
        refs: List[Tuple[str, TrainedReference]] = [(str(k), v) for k, v in trained.items()]
    else:
        refs = [(ref.name, ref) for ref in trained]
    if not refs:
        raise ValueError("At least one trained reference is required")

    frame = as_expression_frame(test, name="test", logger=logger)
    samples = frame.columns
    genes = common_marker_genes([ref for _, ref in refs], list(frame.index))
    logger.info("Rescoring %d references on %d common marker genes", len(refs), len(genes))

    n = len(samples)
    ref_scores = np.empty((n, len(refs)), dtype=float)
    labels = np.empty((n, len(refs)), dtype=object)
    for k, (name, ref) in enumerate(refs):
        scores = _rescore(frame, ref, genes, quantile)
        best = np.argmax(scores, axis=1)
        ref_scores[:, k] = scores[np.arange(n), best]
        labels[:, k] = np.asarray(ref.labels, dtype=object)[best]
        logger.debug("  %s: mean best score %.3f", name, float(np.mean(ref_scores[:, k])))

    if results is not None:
        named = _named_results(results)
        missing = [name for name, _ in refs if name not in named]
        if missing:
            raise ValueError(f"No classification result for references: {missing}")
        named = {name: named[name] for name, _ in refs}
        _check_samples(named, samples)
    else:
        named = {name: _placeholder_result(samples, labels[:, k], name) for k, (name, _) in enumerate(refs)}

    winner = _pick_winner(ref_scores)
    return _assemble(named, samples, ref_scores, labels, winner, "common", pruned_label)


def _placeholder_result(samples: pd.Index, labels: np.ndarray, name: str) -> ClassificationResult:
    """Minimal result carrying labels only, used when no results are supplied."""
    series = pd.Series(labels, index=samples, dtype=object)
    return ClassificationResult(
        scores=pd.DataFrame(index=samples),
        first_labels=series.rename("first_labels"),
        labels=series.rename("labels"),
        pruned_labels=series.rename("pruned_labels"),
        pruned=pd.Series(False, index=samples, name="pruned"),
        delta=pd.Series(np.nan, index=samples, name="delta"),
        tuning_scores=pd.DataFrame({"first": np.nan, "second": np.nan}, index=samples),
        reference=name,
    )
