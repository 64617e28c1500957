"""Pytest configuration and shared fixtures for celltype-refmatch tests."""

import sys
from pathlib import Path

import pytest
import numpy as np
import pandas as pd

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tests.fixtures import create_disjoint_references, create_mock_dataset


# ============================================================================
# Synthetic Data Fixtures
# ============================================================================


@pytest.fixture
def dataset():
    """Reference (3 labels x 10 samples), labels, test (3 x 5) and truth."""
    return create_mock_dataset()


@pytest.fixture
def reference(dataset):
    """Reference matrix and labels."""
    ref, labels, _, _ = dataset
    return ref, labels


@pytest.fixture
def query_matrix(dataset):
    """Test matrix and its true labels."""
    _, _, test, truth = dataset
    return test, truth


@pytest.fixture
def trained(dataset):
    """Reference trained with default configuration against the test genes."""
    from celltype_refmatch.core.classify import train_reference

    ref, labels, test, _ = dataset
    return train_reference(ref, labels, test_genes=list(test.index), name="mock")


@pytest.fixture
def disjoint_references():
    """Two references overlapping in the single gene SHARED."""
    return create_disjoint_references(shared_gene=True)


@pytest.fixture
def tiny_reference() -> pd.DataFrame:
    """Five-cell reference: label A has 4 cells, label B has 1."""
    rng = np.random.default_rng(0)
    values = rng.normal(5.0, 1.0, size=(10, 5))
    values[:3, :2] += 4.0
    values[3:6, 2:4] += 4.0
    return pd.DataFrame(
        values,
        index=[f"g{i}" for i in range(10)],
        columns=[f"c{i}" for i in range(5)],
    )


@pytest.fixture
def tmp_output_dir(tmp_path: Path) -> Path:
    """Create a temporary output directory for tests."""
    output_dir = tmp_path / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def sample_classify_config(tmp_path) -> Path:
    """Create sample classification configuration file."""
    import yaml

    config = {
        "classify": {
            "markers": {"method": "wilcox", "n": 15},
            "scoring": {"quantile": 0.9, "min_common_genes": 20},
            "tuning": {"tune_thresh": 0.1},
            "pruning": {"nmads": 2.5, "pruned_label": "unassigned"},
            "parallel": {"n_jobs": 2, "chunk_size": 100},
            "combine_strategy": "common",
        }
    }

    path = tmp_path / "classify.yaml"
    with open(path, "w") as f:
        yaml.dump(config, f)

    return path
