"""Unit tests for the command-line interface."""

import pandas as pd
import pytest
import yaml
from click.testing import CliRunner

from celltype_refmatch.cli import cli


@pytest.fixture
def csv_inputs(dataset, tmp_path):
    """Reference, labels and test matrix written as CSV files."""
    ref, labels, test, truth = dataset
    ref_path = tmp_path / "ref.csv"
    label_path = tmp_path / "ref_labels.csv"
    test_path = tmp_path / "test.csv"
    ref.to_csv(ref_path)
    pd.DataFrame({"label": labels}).to_csv(label_path, index=False)
    test.to_csv(test_path)
    return ref_path, label_path, test_path, truth


class TestClassifyCommand:
    """Tests for `celltype-refmatch classify`."""

    def test_classify_writes_outputs(self, csv_inputs, tmp_path):
        """Test classification tables and the run summary are written."""
        ref_path, label_path, test_path, truth = csv_inputs
        out = tmp_path / "out"
        result = CliRunner().invoke(
            cli,
            [
                "classify",
                "--test", str(test_path),
                "--ref", str(ref_path),
                "--labels", str(label_path),
                "--out", str(out),
            ],
            obj={},
        )
        assert result.exit_code == 0, result.output

        table = pd.read_csv(out / "classification.csv", index_col="sample")
        assert table["labels"].tolist() == truth
        assert (out / "scores_ref.csv").exists()

        summary = next(d for d in yaml.safe_load_all((out / "run_summary.yaml").read_text()) if d)
        assert summary["references"] == ["ref"]
        assert summary["n_samples"] == len(truth)

    def test_mismatched_label_count(self, csv_inputs, tmp_path):
        """Test one label table for two references is rejected."""
        ref_path, label_path, test_path, _ = csv_inputs
        result = CliRunner().invoke(
            cli,
            [
                "classify",
                "--test", str(test_path),
                "--ref", str(ref_path),
                "--ref", str(ref_path),
                "--labels", str(label_path),
                "--out", str(tmp_path / "out"),
            ],
            obj={},
        )
        assert result.exit_code != 0
        assert "label tables" in result.output

    def test_classification_error_exit_code(self, csv_inputs, tmp_path):
        """Test a too-small gene overlap exits with status 1."""
        ref_path, label_path, test_path, _ = csv_inputs
        config = tmp_path / "config.yaml"
        config.write_text("classify:\n  scoring:\n    min_common_genes: 500\n")
        result = CliRunner().invoke(
            cli,
            [
                "classify",
                "--test", str(test_path),
                "--ref", str(ref_path),
                "--labels", str(label_path),
                "--config", str(config),
                "--out", str(tmp_path / "out"),
            ],
            obj={},
        )
        assert result.exit_code == 1

    def test_label_key_with_csv_reference(self, csv_inputs, tmp_path):
        """Test --label-key without --labels on a CSV reference is a usage error."""
        ref_path, _, test_path, _ = csv_inputs
        result = CliRunner().invoke(
            cli,
            [
                "classify",
                "--test", str(test_path),
                "--ref", str(ref_path),
                "--label-key", "cell_type",
                "--out", str(tmp_path / "out"),
            ],
            obj={},
        )
        assert result.exit_code == 2
        assert not isinstance(result.exception, TypeError)
        assert "--labels" in result.output


class TestMarkersCommand:
    """Tests for `celltype-refmatch markers`."""

    def test_markers_table(self, csv_inputs, tmp_path):
        """Test the marker table lists pairwise markers."""
        ref_path, label_path, _, _ = csv_inputs
        out = tmp_path / "markers.csv"
        result = CliRunner().invoke(
            cli,
            ["markers", "--ref", str(ref_path), "--labels", str(label_path), "--out", str(out),
             "--n", "5"],
            obj={},
        )
        assert result.exit_code == 0, result.output

        table = pd.read_csv(out)
        assert list(table.columns) == ["first", "second", "rank", "gene"]
        assert set(table["first"]) == {"A", "B", "C"}
        assert table.groupby(["first", "second"]).size().max() <= 5

    def test_no_markers_exit_code(self, csv_inputs, tmp_path):
        """Test identical label profiles exit with status 1 and a diagnostic."""
        ref_path, label_path, _, _ = csv_inputs
        flat = pd.read_csv(ref_path, index_col=0)
        flat.loc[:, :] = 1.0
        flat_path = tmp_path / "flat.csv"
        flat.to_csv(flat_path)
        result = CliRunner().invoke(
            cli,
            ["markers", "--ref", str(flat_path), "--labels", str(label_path),
             "--out", str(tmp_path / "markers.csv")],
            obj={},
        )
        assert result.exit_code == 1
        assert "E101_NO_MARKERS" in result.output


class TestAggregateCommand:
    """Tests for `celltype-refmatch aggregate`."""

    def test_pseudobulk_outputs(self, csv_inputs, tmp_path):
        """Test pseudo-bulk profiles and their labels are written."""
        ref_path, label_path, _, _ = csv_inputs
        out = tmp_path / "agg"
        result = CliRunner().invoke(
            cli,
            ["aggregate", "--ref", str(ref_path), "--labels", str(label_path), "--out", str(out)],
            obj={},
        )
        assert result.exit_code == 0, result.output

        matrix = pd.read_csv(out / "pseudobulk.csv", index_col=0)
        table = pd.read_csv(out / "pseudobulk_labels.csv")
        assert matrix.shape == (200, 9)
        assert list(table.columns) == ["profile", "n_cells", "label"]
        assert table["n_cells"].sum() == 30
        assert list(table["profile"]) == list(matrix.columns)

    def test_single_label_exit_code(self, csv_inputs, tmp_path):
        """Test a reference with one label exits with status 1 and a diagnostic."""
        ref_path, _, _, _ = csv_inputs
        single = tmp_path / "single_labels.csv"
        pd.DataFrame({"label": ["A"] * 30}).to_csv(single, index=False)
        result = CliRunner().invoke(
            cli,
            ["aggregate", "--ref", str(ref_path), "--labels", str(single),
             "--out", str(tmp_path / "agg")],
            obj={},
        )
        assert result.exit_code == 1
        assert "E103_LABEL_CARDINALITY" in result.output
