"""Unit tests for input validation, statistics and reference aggregation."""

import numpy as np
import pandas as pd
import pytest

from celltype_refmatch.core.reference import (
    PseudoBulkReference,
    aggregate_by_cluster,
    aggregate_reference,
    as_expression_frame,
    intersect_genes,
    label_order,
    n_centers_for,
    validate_labels,
)
from celltype_refmatch.errors import (
    DimensionMismatchError,
    InsufficientOverlapError,
    LabelCardinalityError,
)
from celltype_refmatch.utils.stats import (
    lower_outlier_threshold,
    median_absolute_deviation,
    scaled_ranks,
)


class TestStats:
    """Tests for robust statistics and rank transforms."""

    def test_mad_scaled(self):
        """Test MAD uses the 1.4826 consistency factor."""
        values = [1.0, 2.0, 3.0, 4.0, 100.0]
        assert median_absolute_deviation(values) == pytest.approx(1.4826)

    def test_mad_ignores_nan(self):
        """Test non-finite values are ignored."""
        assert median_absolute_deviation([1.0, np.nan, 1.0]) == 0.0
        assert np.isnan(median_absolute_deviation([]))

    def test_lower_outlier_threshold(self):
        """Test threshold is median minus nmads scaled MADs."""
        values = [0.5, 0.51, 0.49, 0.5, 0.1]
        expected = 0.5 - 3 * 1.4826 * 0.01
        assert lower_outlier_threshold(values, 3) == pytest.approx(expected)

    def test_scaled_ranks_give_spearman(self):
        """Test dot products of scaled ranks equal Spearman correlation."""
        from scipy.stats import spearmanr

        rng = np.random.default_rng(1)
        x = rng.normal(size=30)
        y = x + rng.normal(size=30)
        ranks = scaled_ranks(np.column_stack([x, y]))
        assert ranks[:, 0] @ ranks[:, 1] == pytest.approx(spearmanr(x, y).correlation)

    def test_constant_column_zero(self):
        """Test constant columns become zeros."""
        ranks = scaled_ranks(np.array([[1.0, 2.0], [1.0, 3.0], [1.0, 1.0]]))
        assert np.all(ranks[:, 0] == 0.0)


class TestExpressionFrame:
    """Tests for matrix conversion and validation."""

    def test_array_requires_genes(self):
        """Test array input without gene names is rejected."""
        with pytest.raises(DimensionMismatchError):
            as_expression_frame(np.ones((3, 2)))

    def test_array_with_genes(self):
        """Test array input is converted with default sample names."""
        frame = as_expression_frame(np.ones((3, 2)), genes=["a", "b", "c"])
        assert list(frame.index) == ["a", "b", "c"]
        assert list(frame.columns) == ["sample_0", "sample_1"]

    def test_duplicate_genes_rejected(self):
        """Test duplicated gene identifiers raise DimensionMismatchError."""
        frame = pd.DataFrame(np.ones((3, 2)), index=["a", "a", "b"])
        with pytest.raises(DimensionMismatchError) as excinfo:
            as_expression_frame(frame)
        assert excinfo.value.error_code == "E104_DIMENSION_MISMATCH"

    def test_missing_values_dropped(self):
        """Test genes with NaN are dropped and the input is untouched."""
        frame = pd.DataFrame([[1.0, 2.0], [np.nan, 1.0], [3.0, 4.0]], index=["a", "b", "c"])
        result = as_expression_frame(frame)
        assert list(result.index) == ["a", "c"]
        assert frame.shape == (3, 2)

    def test_negative_values_warn(self, caplog):
        """Test negative values are logged as a warning."""
        frame = pd.DataFrame([[-1.0, 2.0]], index=["a"])
        with caplog.at_level("WARNING"):
            as_expression_frame(frame)
        assert "negative" in caplog.text


class TestLabels:
    """Tests for label validation."""

    def test_length_mismatch(self, reference):
        """Test label count must match the sample count."""
        ref, labels = reference
        with pytest.raises(DimensionMismatchError):
            validate_labels(ref, labels[:-1])

    def test_single_label_rejected(self, reference):
        """Test fewer than two distinct labels raises LabelCardinalityError."""
        ref, _ = reference
        with pytest.raises(LabelCardinalityError):
            validate_labels(ref, ["A"] * ref.shape[1])

    def test_missing_labels_drop_columns(self, reference):
        """Test samples with missing labels are removed."""
        ref, labels = reference
        labels = list(labels)
        labels[0] = None
        labels[1] = np.nan
        frame, label_array = validate_labels(ref, labels)
        assert frame.shape[1] == ref.shape[1] - 2
        assert len(label_array) == frame.shape[1]

    def test_label_order_lexicographic(self):
        """Test label order is the sorted distinct labels."""
        assert label_order(["T", "B", "T", "NK"]) == ("B", "NK", "T")


class TestGeneIntersection:
    """Tests for gene intersection."""

    def test_order_of_first(self):
        """Test shared genes keep the order of the first frame."""
        a = pd.DataFrame(index=["x", "y", "z"])
        b = pd.DataFrame(index=["z", "x"])
        assert intersect_genes(a, b) == ["x", "z"]

    def test_insufficient_overlap(self):
        """Test too few shared genes raise InsufficientOverlapError."""
        a = pd.DataFrame(index=["x", "y"])
        b = pd.DataFrame(index=["z"])
        with pytest.raises(InsufficientOverlapError):
            intersect_genes(a, b)

    def test_cluster_means(self):
        """Test test samples are averaged per cluster."""
        test = pd.DataFrame([[1.0, 3.0, 10.0]], index=["g"], columns=["s1", "s2", "s3"])
        grouped = aggregate_by_cluster(test, ["c1", "c1", "c2"])
        assert list(grouped.columns) == ["c1", "c2"]
        assert grouped.loc["g", "c1"] == 2.0


class TestAggregation:
    """Tests for pseudo-bulk aggregation."""

    def test_center_counts(self):
        """Test k = round(N ** power), minimum 1."""
        assert n_centers_for(4) == 2
        assert n_centers_for(1) == 1
        assert n_centers_for(100) == 10
        assert n_centers_for(9, power=1.0) == 9
        assert n_centers_for(9, ncenters=20) == 9

    def test_profiles_per_label(self, tiny_reference):
        """Test 4 cells give 2 profiles and 1 cell gives 1 profile."""
        pseudo = aggregate_reference(tiny_reference, ["A", "A", "A", "A", "B"])
        assert isinstance(pseudo, PseudoBulkReference)
        assert pseudo.labels.count("A") == 2
        assert pseudo.labels.count("B") == 1
        assert list(pseudo.matrix.columns) == ["A.0", "A.1", "B.0"]
        assert sum(pseudo.n_cells) == 5

    def test_profiles_are_means(self, tiny_reference):
        """Test a single-cell label keeps its cell as profile."""
        pseudo = aggregate_reference(tiny_reference, ["A", "A", "A", "A", "B"])
        np.testing.assert_allclose(pseudo.matrix["B.0"].to_numpy(), tiny_reference["c4"].to_numpy())
        assert list(pseudo.matrix.index) == list(tiny_reference.index)

    def test_deterministic_with_seed(self, reference):
        """Test identical seeds give identical profiles."""
        ref, labels = reference
        first = aggregate_reference(ref, labels, seed=3)
        second = aggregate_reference(ref, labels, seed=3)
        pd.testing.assert_frame_equal(first.matrix, second.matrix)
        assert first.n_profiles == 3 * n_centers_for(10)
