"""
Parallel scoring and fine-tuning of test samples.

Test samples are independent, so the test matrix is split into chunks of
columns and each chunk is scored and fine-tuned in a worker process:
1. Extracts minimal data (numpy arrays) for each chunk
2. Runs initial scoring and per-sample fine-tuning in parallel workers
3. Merges chunk results back in sample order

Fine-tuning is sequential within a sample but independent across samples,
which makes the sample the natural parallel grain.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from ..markers.selector import GeneSelector
from ..scoring.correlation import best_index, score_block
from ..scoring.tuning import TuneContext, fine_tune_codes


@dataclass
class ScoringContext:
    """Reference-side data shared by every work item."""

    ref_values: np.ndarray  # genes x reference samples
    ref_codes: np.ndarray  # label code per reference sample
    selector: GeneSelector
    n_labels: int
    quantile: float = 0.8
    fine_tune: bool = True
    tune_thresh: float = 0.05
    max_iterations: Optional[int] = None


@dataclass
class ScoringWorkItem:
    """Minimal data for scoring one chunk of test samples."""

    chunk_id: int
    sample_indices: np.ndarray  # column positions in the test matrix
    test_values: np.ndarray  # genes x chunk samples


@dataclass
class ScoringChunkResult:
    """Result from scoring one chunk."""

    chunk_id: int
    sample_indices: np.ndarray
    scores: np.ndarray  # chunk samples x labels
    first_codes: np.ndarray
    final_codes: np.ndarray
    tuning_first: np.ndarray
    tuning_second: np.ndarray
    n_iterations: np.ndarray
    timing_seconds: float = 0.0


@dataclass
class ScoringOutput:
    """Merged arrays for the whole test matrix."""

    scores: np.ndarray
    first_codes: np.ndarray
    final_codes: np.ndarray
    tuning_first: np.ndarray
    tuning_second: np.ndarray
    n_iterations: np.ndarray


def extract_work_items(test_values: np.ndarray, chunk_size: int) -> List[ScoringWorkItem]:
    """Split test columns into chunks of at most ``chunk_size`` samples."""
    n_samples = test_values.shape[1]
    chunk_size = max(int(chunk_size), 1)
    items = []
    for chunk_id, start in enumerate(range(0, n_samples, chunk_size)):
        indices = np.arange(start, min(start + chunk_size, n_samples))
        items.append(
            ScoringWorkItem(
                chunk_id=chunk_id,
                sample_indices=indices,
                test_values=np.ascontiguousarray(test_values[:, indices]),
            )
        )
    return items


def _second_best(scores: np.ndarray) -> np.ndarray:
    if scores.shape[1] < 2:
        return np.full(scores.shape[0], np.nan)
    return np.sort(scores, axis=1)[:, -2]


def worker_score_chunk(item: ScoringWorkItem, context: ScoringContext) -> ScoringChunkResult:
    """Score and fine-tune one chunk of test samples.

    This function is designed to be called via joblib workers.
    """
    start_time = time.time()

    scores = score_block(
        item.test_values,
        context.ref_values,
        context.ref_codes,
        context.selector.all_rows,
        range(context.n_labels),
        context.quantile,
    )
    first_codes = best_index(scores)
    final_codes = first_codes.copy()
    tuning_first = scores.max(axis=1)
    tuning_second = _second_best(scores)
    n_iterations = np.zeros(len(first_codes), dtype=int)

    if context.fine_tune:
        for k in range(item.test_values.shape[1]):
            tune_context = TuneContext(
                sample=item.test_values[:, k],
                ref_values=context.ref_values,
                ref_codes=context.ref_codes,
                selector=context.selector,
                tune_thresh=context.tune_thresh,
                quantile=context.quantile,
            )
            outcome = fine_tune_codes(
                tune_context, scores[k], max_iterations=context.max_iterations
            )
            final_codes[k] = outcome.label
            tuning_first[k] = outcome.first_score
            tuning_second[k] = outcome.second_score
            n_iterations[k] = outcome.n_iterations

    return ScoringChunkResult(
        chunk_id=item.chunk_id,
        sample_indices=item.sample_indices,
        scores=scores,
        first_codes=first_codes,
        final_codes=final_codes,
        tuning_first=tuning_first,
        tuning_second=tuning_second,
        n_iterations=n_iterations,
        timing_seconds=time.time() - start_time,
    )


def _merge_results(
    results: List[ScoringChunkResult],
    n_samples: int,
    n_labels: int,
) -> ScoringOutput:
    output = ScoringOutput(
        scores=np.empty((n_samples, n_labels), dtype=float),
        first_codes=np.empty(n_samples, dtype=int),
        final_codes=np.empty(n_samples, dtype=int),
        tuning_first=np.empty(n_samples, dtype=float),
        tuning_second=np.empty(n_samples, dtype=float),
        n_iterations=np.empty(n_samples, dtype=int),
    )
    for result in results:
        idx = result.sample_indices
        output.scores[idx] = result.scores
        output.first_codes[idx] = result.first_codes
        output.final_codes[idx] = result.final_codes
        output.tuning_first[idx] = result.tuning_first
        output.tuning_second[idx] = result.tuning_second
        output.n_iterations[idx] = result.n_iterations
    return output


def run_scoring_parallel(
    test_values: np.ndarray,
    context: ScoringContext,
    n_jobs: int = 1,
    chunk_size: int = 500,
    backend: str = "loky",
    logger: Optional[logging.Logger] = None,
) -> ScoringOutput:
    """Score and fine-tune every test sample, in parallel when requested.

    Parameters
    ----------
    test_values : np.ndarray
        Genes x test samples on the shared gene axis
    context : ScoringContext
        Reference arrays, gene selector and scoring parameters
    n_jobs : int
        Number of joblib workers (1 = sequential)
    chunk_size : int
        Samples per work item
    backend : str
        joblib backend
    logger : logging.Logger, optional
        Logger for progress tracking

    Returns
    -------
    ScoringOutput
        Scores, label codes and tuning statistics in sample order
    """
    _logger = logger or logging.getLogger(__name__)

    work_items = extract_work_items(test_values, chunk_size)
    _logger.info(
        "Scoring %d samples in %d chunks with %d workers",
        test_values.shape[1],
        len(work_items),
        n_jobs,
    )

    start_time = time.time()
    if n_jobs == 1 or len(work_items) <= 1:
        results = [worker_score_chunk(item, context) for item in work_items]
    else:
        try:
            from joblib import Parallel, delayed

            results = Parallel(n_jobs=n_jobs, backend=backend)(
                delayed(worker_score_chunk)(item, context) for item in work_items
            )
        except (OSError, RuntimeError) as e:
            _logger.warning("Parallel execution failed: %s. Falling back to sequential.", e)
            results = [worker_score_chunk(item, context) for item in work_items]

    _logger.info("Scoring completed in %.2f seconds", time.time() - start_time)
    for result in results:
        _logger.debug(
            "  Chunk %d: %d samples (%.2f sec)",
            result.chunk_id,
            len(result.sample_indices),
            result.timing_seconds,
        )

    return _merge_results(results, test_values.shape[1], context.n_labels)
