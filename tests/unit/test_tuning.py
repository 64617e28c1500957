"""Unit tests for the fine-tuning state machine."""

import numpy as np
import pytest

from celltype_refmatch.core.markers import GeneSelector
from celltype_refmatch.core.scoring import (
    Continue,
    Done,
    TuneContext,
    fine_tune,
    fine_tune_codes,
    narrow,
    score_block,
    score_sample,
    tune_step,
)


@pytest.fixture
def prepared(trained, query_matrix):
    """Reference and test aligned on shared genes."""
    test, _ = query_matrix
    return trained.prepare(test)


def _context(trained, prepared, column, tune_thresh=0.05):
    return TuneContext(
        sample=prepared.test_values[:, column],
        ref_values=prepared.ref_values,
        ref_codes=trained.codes,
        selector=prepared.selector,
        tune_thresh=tune_thresh,
    )


class TestNarrow:
    """Tests for candidate narrowing."""

    def test_within_threshold(self):
        """Test labels within tune_thresh of the top are kept."""
        assert narrow((0, 1, 2), np.array([0.9, 0.86, 0.8]), 0.05) == (0, 1)

    def test_threshold_inclusive(self):
        """Test a score exactly at the margin stays."""
        assert narrow((3, 5), np.array([0.5, 0.25]), 0.25) == (3, 5)


class TestTuneStep:
    """Tests for single state transitions."""

    def test_single_candidate_done(self, trained, prepared):
        """Test a clear winner ends tuning without rescoring."""
        state = Continue((0, 1, 2), np.array([0.9, 0.5, 0.4]))
        result = tune_step(state, _context(trained, prepared, 0))
        assert isinstance(result, Done)
        assert result.label == 0

    def test_narrowing_rescores(self, trained, prepared):
        """Test close labels are rescored on their own markers."""
        state = Continue((0, 1, 2), np.array([0.9, 0.88, 0.5]))
        result = tune_step(state, _context(trained, prepared, 0))
        assert isinstance(result, Continue)
        assert result.candidates == (0, 1)
        assert result.scores.shape == (2,)

    def test_no_shrink_takes_top(self, trained, prepared):
        """Test a round that keeps every label stops at the top label."""
        state = Continue((0, 1, 2), np.array([0.88, 0.9, 0.89]))
        result = tune_step(state, _context(trained, prepared, 0))
        assert isinstance(result, Done)
        assert result.label == 1

    def test_empty_gene_set_stops(self, trained, prepared):
        """Test an empty marker set for the subset ends tuning."""
        empty = np.empty(0, dtype=int)
        selector = GeneSelector(
            n_labels=3,
            pairwise_rows={(i, j): empty for i in range(3) for j in range(3) if i != j},
            all_rows=np.arange(10),
        )
        context = TuneContext(
            sample=prepared.test_values[:, 0],
            ref_values=prepared.ref_values,
            ref_codes=trained.codes,
            selector=selector,
        )
        result = tune_step(Continue((0, 1, 2), np.array([0.88, 0.9, 0.2])), context)
        assert isinstance(result, Done)
        assert result.label == 1


class TestFineTuneCodes:
    """Tests for the full tuning loop."""

    def test_path_is_monotone(self, trained, prepared, query_matrix):
        """Test candidate sets strictly shrink and stay nested."""
        _, truth = query_matrix
        all_rows = prepared.selector.all_rows
        for k in range(prepared.test_values.shape[1]):
            initial = score_block(
                prepared.test_values[:, k], prepared.ref_values, trained.codes, all_rows, range(3), 0.8
            )[0]
            outcome = fine_tune_codes(_context(trained, prepared, k, tune_thresh=0.2), initial)
            for previous, current in zip(outcome.path, outcome.path[1:]):
                assert len(current) < len(previous)
                assert set(current) <= set(previous)
            assert outcome.n_iterations <= len(trained.labels) - 1
            assert trained.labels[outcome.label] == truth[k]

    def test_max_iterations_caps_rounds(self, trained, prepared):
        """Test the iteration cap forces a decision."""
        outcome = fine_tune_codes(
            _context(trained, prepared, 0), np.array([0.9, 0.88, 0.5]), max_iterations=1
        )
        assert outcome.n_iterations == 1
        assert outcome.label in (0, 1)

    def test_tuning_scores(self, trained, prepared):
        """Test first and second scores come from the last round."""
        outcome = fine_tune_codes(_context(trained, prepared, 0), np.array([0.9, 0.5, 0.4]))
        assert outcome.first_score == pytest.approx(0.9)
        assert outcome.second_score == pytest.approx(0.5)


class TestFineTune:
    """Tests for label-level fine-tuning of one sample."""

    def test_ambiguous_sample(self, reference, trained):
        """Test a mixture of A and B ends on A or B."""
        ref, labels = reference
        labels_arr = np.asarray(labels)
        sample = 0.5 * (
            ref.loc[:, labels_arr == "A"].mean(axis=1) + ref.loc[:, labels_arr == "B"].mean(axis=1)
        )
        initial = score_sample(sample, ref, labels, trained.markers)
        result = fine_tune(sample, trained, initial, tune_thresh=0.2)

        assert result.label in ("A", "B")
        assert result.path[0] == ("A", "B", "C")
        assert result.n_iterations <= 2
        assert result.label in result.scores.index

    def test_clear_sample_keeps_label(self, trained, reference, query_matrix):
        """Test an unambiguous sample keeps its initial label."""
        ref, labels = reference
        test, truth = query_matrix
        sample = test.iloc[:, 0]
        initial = score_sample(sample, ref, labels, trained.markers)
        result = fine_tune(sample, trained, initial)
        assert result.label == truth[0] == initial.idxmax()
