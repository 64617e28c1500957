"""Synthetic reference and test matrices.

Every dataset shares one gene baseline; each label raises its own block of
genes by ``shift``. Test samples are drawn from the same model as the
reference, so their true labels are known.
"""

from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd


def _draw(
    rng: np.random.Generator,
    baseline: np.ndarray,
    labels: Sequence[str],
    n_per_label: int,
    block_size: int,
    shift: float,
    noise: float,
    prefix: str,
) -> Tuple[np.ndarray, List[str], List[str]]:
    columns = []
    names = []
    truth = []
    for i, label in enumerate(labels):
        profile = baseline.copy()
        profile[i * block_size:(i + 1) * block_size] += shift
        for k in range(n_per_label):
            columns.append(profile + rng.normal(0.0, noise, size=baseline.size))
            names.append(f"{prefix}{label}_{k}")
            truth.append(label)
    return np.column_stack(columns), names, truth


def create_mock_dataset(
    n_genes: int = 200,
    labels: Sequence[str] = ("A", "B", "C"),
    n_ref: int = 10,
    n_test: int = 5,
    block_size: int = 20,
    shift: float = 3.0,
    noise: float = 0.3,
    gene_prefix: str = "Gene_",
    seed: int = 42,
) -> Tuple[pd.DataFrame, List[str], pd.DataFrame, List[str]]:
    """Create a labelled reference and a test matrix with known labels.

    Parameters
    ----------
    n_genes : int
        Number of genes
    labels : Sequence[str]
        Reference labels; label i raises genes [i*block_size, (i+1)*block_size)
    n_ref : int
        Reference samples per label
    n_test : int
        Test samples per label
    block_size : int
        Marker genes per label
    shift : float
        Expression increase of marker genes
    noise : float
        Standard deviation of per-sample noise
    gene_prefix : str
        Prefix of gene names
    seed : int
        Random seed for reproducibility

    Returns
    -------
    Tuple[pd.DataFrame, List[str], pd.DataFrame, List[str]]
        Reference (genes x samples), reference labels, test matrix and
        true test labels
    """
    rng = np.random.default_rng(seed)
    baseline = rng.uniform(1.0, 6.0, size=n_genes)
    genes = pd.Index([f"{gene_prefix}{i}" for i in range(n_genes)])

    ref_values, ref_names, ref_labels = _draw(
        rng, baseline, labels, n_ref, block_size, shift, noise, "ref_"
    )
    test_values, test_names, test_labels = _draw(
        rng, baseline, labels, n_test, block_size, shift, noise, "test_"
    )
    reference = pd.DataFrame(ref_values, index=genes, columns=ref_names)
    test = pd.DataFrame(test_values, index=genes, columns=test_names)
    return reference, ref_labels, test, test_labels


def create_disjoint_references(
    n_genes: int = 100,
    shared_gene: bool = True,
    seed: int = 7,
) -> Tuple[Tuple[pd.DataFrame, List[str]], Tuple[pd.DataFrame, List[str]], pd.DataFrame, List[str]]:
    """Two references on disjoint gene panels and a test covering both.

    With ``shared_gene`` a constant gene named ``SHARED`` is added to both
    references and the test, so the references overlap in exactly one gene.
    """
    ref_a, labels_a, test_a, truth = create_mock_dataset(
        n_genes=n_genes, gene_prefix="G", seed=seed
    )
    ref_b, labels_b, test_b, _ = create_mock_dataset(
        n_genes=n_genes, gene_prefix="H", seed=seed + 1
    )
    if shared_gene:
        for frame in (ref_a, ref_b, test_a):
            frame.loc["SHARED"] = 2.0
    test = pd.concat([test_a, test_b], axis=0)
    return (ref_a, labels_a), (ref_b, labels_b), test, truth
