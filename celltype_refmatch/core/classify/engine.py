"""Classification engine for reference-based cell-type labelling.

This module provides :func:`classify_with_reference`, which runs the
per-reference pipeline (scoring, fine-tuning, pruning), and the
:class:`ClassificationEngine` that orchestrates training, classification
against one or more references, combination and CSV export.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ...config import ClassifyConfig
from ..combine.combine import (
    CombinedResult,
    combine_common_results,
    combine_recomputed_results,
)
from ..reference.data import aggregate_by_cluster, as_expression_frame
from ..scoring.pruning import delta_from_median, flag_outliers
from .parallel import ScoringContext, run_scoring_parallel
from .result import ClassificationResult
from .training import TrainedReference, train_reference

ReferenceInput = Tuple[Any, Sequence[Any]]


def classify_with_reference(
    test: Any,
    trained: TrainedReference,
    config: Optional[ClassifyConfig] = None,
    clusters: Optional[Sequence[Any]] = None,
    genes: Optional[Sequence[str]] = None,
    logger: Optional[logging.Logger] = None,
) -> ClassificationResult:
    """Classify test samples against a trained reference.

    Parameters
    ----------
    test : DataFrame or array-like
        Genes x samples log-expression matrix.
    trained : TrainedReference
        Output of :func:`train_reference`.
    config : ClassifyConfig, optional
        Classification configuration (defaults if None).
    clusters : Sequence, optional
        Cluster per test sample; samples are averaged per cluster and the
        result has one row per cluster.
    genes : Sequence[str], optional
        Gene names for array input.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    ClassificationResult
        Scores, first/tuned/pruned labels and deltas per sample.
    """
    config = config or ClassifyConfig()
    logger = logger or logging.getLogger(__name__)

    frame = as_expression_frame(
        test,
        genes=genes,
        check_missing=config.scoring.check_missing,
        name="test",
        logger=logger,
    )
    if clusters is not None:
        frame = aggregate_by_cluster(frame, clusters, logger=logger)

    prepared = trained.prepare(
        frame,
        min_marker_fraction=config.scoring.min_marker_fraction,
        min_common_genes=config.scoring.min_common_genes,
    )
    logger.info(
        "Classifying %d samples against '%s' (%d shared genes, %d markers)",
        frame.shape[1],
        trained.name,
        len(prepared.genes),
        len(prepared.marker_genes),
    )

    context = ScoringContext(
        ref_values=prepared.ref_values,
        ref_codes=trained.codes,
        selector=prepared.selector,
        n_labels=len(trained.labels),
        quantile=config.scoring.quantile,
        fine_tune=config.tuning.enabled,
        tune_thresh=config.tuning.tune_thresh,
        max_iterations=config.tuning.max_iterations,
    )
    output = run_scoring_parallel(
        prepared.test_values,
        context,
        n_jobs=config.parallel.n_jobs,
        chunk_size=config.parallel.chunk_size,
        backend=config.parallel.backend,
        logger=logger,
    )

    samples = frame.columns
    label_arr = np.asarray(trained.labels, dtype=object)
    first_labels = label_arr[output.first_codes]
    labels = label_arr[output.final_codes]

    delta = delta_from_median(output.scores, output.final_codes)
    pcfg = config.pruning
    if pcfg.enabled:
        pruned, _ = flag_outliers(
            delta,
            labels,
            nmads=pcfg.nmads,
            min_diff_med=pcfg.min_diff_med,
            tuning_gap=output.tuning_first - output.tuning_second,
            min_diff_next=pcfg.min_diff_next,
            min_group_size=pcfg.min_group_size,
        )
    else:
        pruned = np.zeros(len(samples), dtype=bool)
    pruned_labels = np.where(pruned, pcfg.pruned_label, labels).astype(object)

    n_changed = int((output.first_codes != output.final_codes).sum())
    logger.info(
        "'%s': fine-tuning changed %d labels, pruning flagged %d of %d samples",
        trained.name,
        n_changed,
        int(pruned.sum()),
        len(samples),
    )

    return ClassificationResult(
        scores=pd.DataFrame(
            output.scores,
            index=samples,
            columns=pd.Index(trained.labels, name="label"),
        ),
        first_labels=pd.Series(first_labels, index=samples, name="first_labels"),
        labels=pd.Series(labels, index=samples, name="labels"),
        pruned_labels=pd.Series(pruned_labels, index=samples, name="pruned_labels"),
        pruned=pd.Series(pruned, index=samples, name="pruned"),
        delta=pd.Series(delta, index=samples, name="delta"),
        tuning_scores=pd.DataFrame(
            {"first": output.tuning_first, "second": output.tuning_second},
            index=samples,
        ),
        reference=trained.name,
        marker_genes=prepared.marker_genes,
        common_genes=prepared.genes,
    )


class ClassificationEngine:
    """Reference-based classification engine.

    This engine classifies a test matrix against one or more labelled
    references. It:
    1. Trains each reference on the genes it shares with the test
    2. Scores every test sample and fine-tunes close calls
    3. Prunes low-confidence assignments
    4. Combines per-reference results when several references are given

    Example:
        >>> engine = ClassificationEngine(ClassifyConfig())
        >>> result = engine.run(
        ...     test=test_matrix,
        ...     references={"blueprint": (ref_matrix, ref_labels)},
        ...     output_dir=Path("output/"),
        ... )
        >>> result.to_frame().head()
    """

    def __init__(
        self,
        config: Optional[ClassifyConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize classification engine.

        Args:
            config: Classification configuration (uses defaults if None)
            logger: Logger instance
        """
        self.config = config or ClassifyConfig()
        self.logger = logger or logging.getLogger(__name__)

    def train(
        self,
        reference: Any,
        labels: Sequence[Any],
        markers: Optional[Mapping[str, Any]] = None,
        test_genes: Optional[Sequence[str]] = None,
        name: str = "reference",
    ) -> TrainedReference:
        """Train one reference with the engine configuration."""
        return train_reference(
            reference,
            labels,
            markers=markers,
            test_genes=test_genes,
            config=self.config,
            name=name,
            logger=self.logger,
        )

    def classify(
        self,
        test: Any,
        trained: TrainedReference,
        clusters: Optional[Sequence[Any]] = None,
    ) -> ClassificationResult:
        """Classify a test matrix against one trained reference."""
        return classify_with_reference(
            test,
            trained,
            config=self.config,
            clusters=clusters,
            logger=self.logger,
        )

    def run(
        self,
        test: Any,
        references: Union[Mapping[str, ReferenceInput], Sequence[ReferenceInput]],
        markers: Optional[Mapping[str, Mapping[str, Any]]] = None,
        clusters: Optional[Sequence[Any]] = None,
        output_dir: Optional[Path] = None,
    ) -> Union[ClassificationResult, CombinedResult]:
        """Run the full classification pipeline.

        Args:
            test: Genes x samples test matrix
            references: Mapping name -> (matrix, labels), or a sequence of
                (matrix, labels) pairs named ref0, ref1, ...
            markers: Optional user markers per reference name
            clusters: Optional cluster per test sample
            output_dir: Where to write CSVs (None = don't write)

        Returns:
            ClassificationResult for a single reference, CombinedResult
            when several references are given
        """
        named = self._name_references(references)
        markers = markers or {}

        self.logger.info("=" * 70)
        self.logger.info("CLASSIFICATION ENGINE")
        self.logger.info("=" * 70)
        self.logger.info("References: %s", ", ".join(named))
        self.logger.info("Marker method: %s", self.config.markers.method)
        self.logger.info("")

        test_frame = as_expression_frame(
            test,
            check_missing=self.config.scoring.check_missing,
            name="test",
            logger=self.logger,
        )
        if clusters is not None:
            test_frame = aggregate_by_cluster(test_frame, clusters, logger=self.logger)

        # 1. Train references
        self.logger.info("Phase 1: Training %d reference(s)...", len(named))
        trained: Dict[str, TrainedReference] = {}
        for name, (matrix, labels) in named.items():
            trained[name] = self.train(
                matrix,
                labels,
                markers=markers.get(name),
                test_genes=list(test_frame.index),
                name=name,
            )

        # 2. Classify against each reference
        self.logger.info("Phase 2: Scoring and fine-tuning...")
        results: Dict[str, ClassificationResult] = {
            name: self.classify(test_frame, ref) for name, ref in trained.items()
        }

        if len(results) == 1:
            result: Union[ClassificationResult, CombinedResult] = next(iter(results.values()))
        else:
            # 3. Combine
            strategy = self.config.combine_strategy
            self.logger.info("Phase 3: Combining results (%s strategy)...", strategy)
            if strategy == "common":
                result = combine_common_results(
                    test_frame,
                    trained,
                    results=results,
                    quantile=self.config.scoring.quantile,
                    pruned_label=self.config.pruning.pruned_label,
                    logger=self.logger,
                )
            else:
                result = combine_recomputed_results(
                    results,
                    pruned_label=self.config.pruning.pruned_label,
                    logger=self.logger,
                )

        if output_dir:
            self.export(result, results, Path(output_dir))

        self.logger.info("")
        self.logger.info("Classification complete!")
        self.logger.info(
            "  Samples: %d, Labels assigned: %d",
            len(result.labels),
            result.labels.nunique(),
        )
        return result

    def export(
        self,
        result: Union[ClassificationResult, CombinedResult],
        per_reference: Mapping[str, ClassificationResult],
        output_dir: Path,
    ) -> List[Path]:
        """Write classification tables to ``output_dir``."""
        output_dir.mkdir(parents=True, exist_ok=True)
        written = []

        path = output_dir / "classification.csv"
        result.to_frame().to_csv(path, index_label="sample")
        written.append(path)
        self.logger.info("Wrote classification.csv")

        for name, ref_result in per_reference.items():
            path = output_dir / f"scores_{name}.csv"
            ref_result.scores.to_csv(path, index_label="sample")
            written.append(path)
            self.logger.info("Wrote %s", path.name)
        return written

    @staticmethod
    def _name_references(
        references: Union[Mapping[str, ReferenceInput], Sequence[ReferenceInput]],
    ) -> Dict[str, ReferenceInput]:
        if isinstance(references, Mapping):
            named = {str(k): v for k, v in references.items()}
        else:
            named = {f"ref{i}": ref for i, ref in enumerate(references)}
        if not named:
            raise ValueError("At least one reference is required")
        return named
