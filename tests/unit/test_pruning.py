"""Unit tests for pruning of low-confidence assignments."""

import numpy as np
import pandas as pd
import pytest

from celltype_refmatch.core.classify import classify_with_reference
from celltype_refmatch.core.scoring import (
    delta_from_median,
    flag_outliers,
    get_delta_from_median,
    label_thresholds,
    prune_scores,
)


class TestDelta:
    """Tests for the delta statistic."""

    def test_delta_from_median(self):
        """Test assigned score minus the row median."""
        scores = np.array([[0.9, 0.5, 0.3], [0.2, 0.4, 0.8]])
        delta = delta_from_median(scores, np.array([0, 1]))
        np.testing.assert_allclose(delta, [0.4, 0.0])

    def test_delta_from_result(self, trained, query_matrix):
        """Test deltas of a result are non-negative for top-scoring labels."""
        test, _ = query_matrix
        result = classify_with_reference(test, trained)
        delta = get_delta_from_median(result)
        assert list(delta.index) == list(test.columns)
        unchanged = result.first_labels == result.labels
        assert (delta[unchanged] >= 0).all()
        pd.testing.assert_series_equal(delta, result.delta)


class TestThresholds:
    """Tests for per-label MAD thresholds."""

    def test_outlier_flagged(self):
        """Test a delta far below its label median is pruned."""
        delta = np.array([0.5, 0.51, 0.49, 0.5, 0.1])
        flags, thresholds = flag_outliers(delta, np.array(["A"] * 5))
        assert flags.tolist() == [False, False, False, False, True]
        assert thresholds["A"] == pytest.approx(0.5 - 3 * 1.4826 * 0.01)

    def test_singleton_group_not_pruned(self):
        """Test a label assigned to a single sample is never MAD-pruned."""
        delta = np.array([0.5, 0.5, 0.52, -10.0])
        flags, thresholds = flag_outliers(delta, np.array(["A", "A", "A", "B"]))
        assert not flags[3]
        assert np.isneginf(thresholds["B"])

    def test_per_label_groups(self):
        """Test thresholds are computed per assigned label."""
        delta = np.array([0.5, 0.5, 0.5, 0.05, 0.05, 0.05])
        labels = np.array(["A", "A", "A", "B", "B", "B"])
        flags, _ = flag_outliers(delta, labels)
        assert not flags.any()
        thresholds = label_thresholds(delta, labels)
        assert list(thresholds.index) == ["A", "B"]

    def test_min_diff_med(self):
        """Test the absolute delta floor."""
        delta = np.array([0.5, 0.5, 0.01])
        flags, _ = flag_outliers(delta, np.array(["A", "B", "C"]), min_diff_med=0.05)
        assert flags.tolist() == [False, False, True]

    def test_min_diff_next(self):
        """Test the tuning gap floor."""
        delta = np.array([0.5, 0.5])
        gap = np.array([0.2, 0.01])
        flags, _ = flag_outliers(delta, np.array(["A", "B"]), tuning_gap=gap, min_diff_next=0.05)
        assert flags.tolist() == [False, True]


class TestPruneScores:
    """Tests for pruning classification results."""

    def test_idempotent(self, trained, query_matrix):
        """Test pruning the same result twice gives the same flags."""
        test, _ = query_matrix
        result = classify_with_reference(test, trained)
        first = prune_scores(result)
        second = prune_scores(result)
        pd.testing.assert_series_equal(first, second)
        assert first.name == "pruned"
        assert (first == result.pruned).all()

    def test_get_thresholds(self, trained, query_matrix):
        """Test thresholds are returned on request."""
        test, _ = query_matrix
        result = classify_with_reference(test, trained)
        flags, thresholds = prune_scores(result, get_thresholds=True)
        assert len(flags) == test.shape[1]
        assert set(thresholds.index) == set(result.labels)

    def test_stricter_nmads_prunes_more(self, trained, query_matrix):
        """Test lowering nmads never prunes fewer samples."""
        test, _ = query_matrix
        result = classify_with_reference(test, trained)
        loose = prune_scores(result, nmads=5.0)
        strict = prune_scores(result, nmads=0.5)
        assert strict.sum() >= loose.sum()
        assert not (loose & ~strict).any()
