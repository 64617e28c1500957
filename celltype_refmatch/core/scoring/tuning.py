"""Fine-tuning of label assignments.

Fine-tuning resolves close calls between related labels. Starting from the
initial scores, only labels within ``tune_thresh`` of the top score are kept;
markers are recomputed for the pairs among those labels and the sample is
rescored against their reference samples only. This repeats until one label
remains or a round fails to shrink the candidate set.

The loop is written as an explicit state machine over immutable states:
``Continue(candidates, scores)`` moves to either a narrower ``Continue`` or a
terminal ``Done(label, ...)``. Every successful round strictly shrinks the
candidate set, so at most ``n_labels - 1`` rounds are possible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..markers.selector import GeneSelector
from .correlation import score_block

if TYPE_CHECKING:
    from ..classify.training import TrainedReference


@dataclass(frozen=True)
class Continue:
    """Non-terminal state: candidate label codes and their current scores."""

    candidates: Tuple[int, ...]
    scores: np.ndarray


@dataclass(frozen=True)
class Done:
    """Terminal state: chosen label code and the last computed scores."""

    label: int
    candidates: Tuple[int, ...]
    scores: np.ndarray


TuneState = Union[Continue, Done]


@dataclass(frozen=True)
class TuneContext:
    """Everything a tuning step needs besides the state itself."""

    sample: np.ndarray  # genes on the shared axis
    ref_values: np.ndarray  # genes x reference samples
    ref_codes: np.ndarray  # label code per reference sample
    selector: GeneSelector
    tune_thresh: float = 0.05
    quantile: float = 0.8


@dataclass(frozen=True)
class TuneOutcome:
    """Result of tuning one sample in label-code space.

    Attributes
    ----------
    label : int
        Final label code
    path : Tuple[Tuple[int, ...], ...]
        Candidate subset at every iteration, starting with all labels
    candidates : Tuple[int, ...]
        Labels scored in the last round
    scores : np.ndarray
        Scores of the last round (aligned with candidates)
    n_iterations : int
        Number of rescoring rounds performed
    """

    label: int
    path: Tuple[Tuple[int, ...], ...]
    candidates: Tuple[int, ...]
    scores: np.ndarray
    n_iterations: int

    @property
    def first_score(self) -> float:
        return float(np.max(self.scores))

    @property
    def second_score(self) -> float:
        if self.scores.size < 2:
            return float("nan")
        return float(np.sort(self.scores)[-2])


def _top(state: Continue) -> Done:
    best = int(np.argmax(state.scores))
    return Done(state.candidates[best], state.candidates, state.scores)


def narrow(candidates: Sequence[int], scores: np.ndarray, tune_thresh: float) -> Tuple[int, ...]:
    """Labels whose score is within ``tune_thresh`` of the maximum."""
    threshold = np.max(scores) - tune_thresh
    return tuple(c for c, s in zip(candidates, scores) if s >= threshold)


def tune_step(state: Continue, context: TuneContext) -> TuneState:
    """Advance the fine-tuning state machine by one transition."""
    keep = narrow(state.candidates, state.scores, context.tune_thresh)
    if len(keep) == 1:
        return Done(keep[0], state.candidates, state.scores)
    if len(keep) == len(state.candidates):
        return _top(state)

    rows = context.selector.select(keep)
    if rows.size == 0:
        return _top(state)

    scores = score_block(
        context.sample,
        context.ref_values,
        context.ref_codes,
        rows,
        keep,
        context.quantile,
    )[0]
    return Continue(keep, scores)


def fine_tune_codes(
    context: TuneContext,
    initial_scores: np.ndarray,
    max_iterations: Optional[int] = None,
) -> TuneOutcome:
    """Run fine-tuning for one sample from its initial scores.

    Parameters
    ----------
    context : TuneContext
        Sample, reference arrays and gene selector.
    initial_scores : np.ndarray
        Scores for every label code, in code order.
    max_iterations : int, optional
        Transition cap; defaults to the number of labels.

    Returns
    -------
    TuneOutcome
        Final label code, candidate path and last-round scores.
    """
    initial_scores = np.asarray(initial_scores, dtype=float)
    state: TuneState = Continue(tuple(range(initial_scores.size)), initial_scores)
    path = [state.candidates]
    cap = max_iterations if max_iterations is not None else initial_scores.size

    for _ in range(max(cap, 1)):
        state = tune_step(state, context)
        if isinstance(state, Done):
            break
        path.append(state.candidates)
    else:
        state = _top(state)

    return TuneOutcome(
        label=state.label,
        path=tuple(path),
        candidates=state.candidates,
        scores=state.scores,
        n_iterations=len(path) - 1,
    )


@dataclass(frozen=True)
class TuneResult:
    """Fine-tuning result for one sample, in label space.

    Attributes
    ----------
    label : str
        Final label
    scores : pd.Series
        Scores of the last round, indexed by label
    path : Tuple[Tuple[str, ...], ...]
        Candidate labels at every iteration
    n_iterations : int
        Number of rescoring rounds
    """

    label: str
    scores: pd.Series
    path: Tuple[Tuple[str, ...], ...]
    n_iterations: int


def fine_tune(
    test_vector: pd.Series,
    trained: "TrainedReference",
    initial_scores: pd.Series,
    tune_thresh: float = 0.05,
    quantile: float = 0.8,
    max_iterations: Optional[int] = None,
    min_marker_fraction: float = 0.1,
    logger: Optional[logging.Logger] = None,
) -> TuneResult:
    """Fine-tune the label of a single test sample.

    Parameters
    ----------
    test_vector : pd.Series
        Log-expression of one sample indexed by gene.
    trained : TrainedReference
        Reference with precomputed markers.
    initial_scores : pd.Series
        Initial score per label (e.g. from :func:`score_sample`).
    tune_thresh : float
        Margin below the top score for labels to stay candidates.
    quantile : float
        Scoring quantile.
    max_iterations : int, optional
        Hard cap on transitions.
    min_marker_fraction : float
        Minimum marker overlap with the test sample.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    TuneResult
        Final label with the last-round scores and the candidate path.
    """
    logger = logger or logging.getLogger(__name__)

    test = test_vector.astype(float).to_frame(name="sample")
    test.index = test.index.astype(str)
    prepared = trained.prepare(test, min_marker_fraction=min_marker_fraction, min_common_genes=1)

    scores = initial_scores.reindex(list(trained.labels)).to_numpy(dtype=float)
    context = TuneContext(
        sample=prepared.test_values[:, 0],
        ref_values=prepared.ref_values,
        ref_codes=trained.codes,
        selector=prepared.selector,
        tune_thresh=tune_thresh,
        quantile=quantile,
    )
    outcome = fine_tune_codes(context, scores, max_iterations=max_iterations)

    labels = trained.labels
    logger.debug(
        "Fine-tuning finished after %d rounds: %s",
        outcome.n_iterations,
        labels[outcome.label],
    )
    return TuneResult(
        label=labels[outcome.label],
        scores=pd.Series(
            outcome.scores,
            index=pd.Index([labels[c] for c in outcome.candidates], name="label"),
            name="score",
        ),
        path=tuple(tuple(labels[c] for c in step) for step in outcome.path),
        n_iterations=outcome.n_iterations,
    )
