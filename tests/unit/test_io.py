"""Unit tests for CSV, AnnData and log I/O."""

import json

import numpy as np
import pandas as pd
import pytest
import yaml

from celltype_refmatch.io import (
    ensure_output_dir,
    expression_from_anndata,
    get_logger,
    get_timestamped_log_path,
    load_expression_matrix,
    load_labels,
    log_json,
    log_yaml,
    write_dataframe,
)
from tests.fixtures import create_mock_adata


class TestCsv:
    """Tests for expression matrix and label tables."""

    def test_round_trip_csv(self, reference, tmp_path):
        """Test a written matrix loads back unchanged."""
        ref, _ = reference
        path = write_dataframe(ref, tmp_path / "ref.csv", index=True)
        loaded = load_expression_matrix(path)
        pd.testing.assert_frame_equal(loaded, ref, check_names=False)

    def test_tsv_and_transpose(self, tmp_path):
        """Test tab-separated, samples-as-rows input."""
        path = tmp_path / "cells.tsv"
        path.write_text("cell\tg1\tg2\nc1\t1.0\t2.0\nc2\t3.0\t4.0\n")
        loaded = load_expression_matrix(path, transpose=True)
        assert list(loaded.index) == ["g1", "g2"]
        assert loaded.loc["g2", "c1"] == 2.0

    def test_missing_file(self, tmp_path):
        """Test a missing matrix raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_expression_matrix(tmp_path / "nope.csv")

    def test_non_numeric(self, tmp_path):
        """Test non-numeric columns are rejected."""
        path = tmp_path / "bad.csv"
        path.write_text("gene,s1\ng1,high\n")
        with pytest.raises(ValueError, match="non-numeric"):
            load_expression_matrix(path)

    def test_single_column_labels(self, tmp_path):
        """Test a one-column label table is read in order."""
        path = tmp_path / "labels.csv"
        path.write_text("label\nT\nB\nNK\n")
        assert load_labels(path) == ["T", "B", "NK"]

    def test_keyed_labels_reordered(self, tmp_path):
        """Test a keyed table is aligned with the sample order."""
        path = tmp_path / "labels.csv"
        path.write_text("sample,label\ns1,T\ns2,B\ns3,\n")
        assert load_labels(path, samples=["s2", "s1", "s3"]) == ["B", "T", None]

    def test_keyed_labels_missing_sample(self, tmp_path):
        """Test samples absent from the table are reported."""
        path = tmp_path / "labels.csv"
        path.write_text("sample,label\ns1,T\n")
        with pytest.raises(ValueError, match="missing"):
            load_labels(path, samples=["s1", "s2"])

    def test_ensure_output_dir(self, tmp_path):
        """Test nested output directories are created."""
        out = ensure_output_dir(tmp_path / "a" / "b")
        assert out.is_dir()


class TestAnnData:
    """Tests for the AnnData adapter."""

    def test_transposes_and_labels(self, reference):
        """Test cells x genes AnnData becomes genes x cells."""
        ref, labels = reference
        adata = create_mock_adata(ref, labels)
        frame, extracted = expression_from_anndata(adata, label_key="cell_type")
        assert frame.shape == ref.shape
        assert list(frame.index) == list(ref.index)
        assert extracted == list(labels)
        np.testing.assert_allclose(frame.to_numpy(), ref.to_numpy(), rtol=1e-5)

    def test_sparse_and_layer(self, reference):
        """Test sparse X and layer selection."""
        ref, _ = reference
        adata = create_mock_adata(ref, sparse_x=True)
        frame, labels = expression_from_anndata(adata)
        assert labels is None
        np.testing.assert_allclose(frame.to_numpy(), ref.to_numpy(), rtol=1e-5)

        layered, _ = expression_from_anndata(adata, layer="logcounts")
        np.testing.assert_allclose(layered.to_numpy(), ref.to_numpy() + 1.0, rtol=1e-5)

    def test_missing_keys(self, reference):
        """Test unknown layers and label columns raise KeyError."""
        ref, _ = reference
        adata = create_mock_adata(ref)
        with pytest.raises(KeyError):
            expression_from_anndata(adata, layer="counts")
        with pytest.raises(KeyError):
            expression_from_anndata(adata, label_key="cell_type")


class TestRunLogs:
    """Tests for run log helpers."""

    def test_timestamped_path(self, tmp_path):
        """Test the timestamp goes before the suffix."""
        path = get_timestamped_log_path(tmp_path / "classify.log")
        assert path.name.startswith("classify_")
        assert path.suffix == ".log"

    def test_file_logger(self, tmp_path):
        """Test the file logger writes formatted records."""
        logger, path = get_logger("refmatch.test", tmp_path / "run.log", timestamped=False)
        logger.info("hello %s", "world")
        for handler in logger.handlers:
            handler.flush()
        assert "| INFO | hello world" in path.read_text()

    def test_json_and_yaml(self, tmp_path):
        """Test JSON lines and YAML documents are appended."""
        log_json(tmp_path / "run.jsonl", {"stage": "score", "n": 3})
        log_json(tmp_path / "run.jsonl", {"stage": "prune", "n": 1})
        lines = (tmp_path / "run.jsonl").read_text().splitlines()
        assert [json.loads(line)["stage"] for line in lines] == ["score", "prune"]

        log_yaml(tmp_path / "summary.yaml", {"labels": {"A": 2}})
        documents = [d for d in yaml.safe_load_all((tmp_path / "summary.yaml").read_text()) if d]
        assert documents == [{"labels": {"A": 2}}]
