"""Naive pooling of references into one labelled matrix.

Pooling keeps the genes common to all references and prefixes every label
with its reference name, so that labels from different references never
merge. The pooled reference is trained and classified like any other; marker
selection then also compares labels across references, which is sensitive to
batch effects between them.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..reference.data import as_expression_frame, intersect_genes, validate_labels


def prefix_reference_labels(labels: Sequence[Any], name: str, sep: str = ":") -> List[str]:
    """Prefix each label with a reference name (``"<name><sep><label>"``)."""
    return [f"{name}{sep}{label}" for label in labels]


def pool_references(
    references: Mapping[str, Tuple[Any, Sequence[Any]]],
    min_common_genes: int = 50,
    sep: str = ":",
    logger: Optional[logging.Logger] = None,
) -> Tuple[pd.DataFrame, np.ndarray]:
    """Pool several references on their shared genes.

    Parameters
    ----------
    references : Mapping[str, Tuple[matrix, labels]]
        Genes x samples matrices with their labels, keyed by name.
    min_common_genes : int
        Minimum number of genes shared by all references.
    sep : str
        Separator between reference name and label.
    logger : logging.Logger, optional
        Logger instance.

    Returns
    -------
    Tuple[pd.DataFrame, np.ndarray]
        Pooled genes x samples matrix (columns ``"<name><sep><sample>"``) and
        prefixed labels.
    """
    logger = logger or logging.getLogger(__name__)
    if not references:
        raise ValueError("At least one reference is required")

    frames = []
    pooled_labels: List[str] = []
    for name, (matrix, labels) in references.items():
        frame = as_expression_frame(matrix, name=name, logger=logger)
        frame, label_array = validate_labels(frame, labels, name=name, logger=logger)
        frame = frame.copy()
        frame.columns = [f"{name}{sep}{col}" for col in frame.columns]
        frames.append(frame)
        pooled_labels.extend(prefix_reference_labels(label_array, name, sep=sep))

    genes = intersect_genes(*frames, min_common_genes=min_common_genes, names=list(references))
    pooled = pd.concat([frame.loc[genes] for frame in frames], axis=1)
    logger.info(
        "Pooled %d references: %d genes, %d samples, %d labels",
        len(frames),
        len(genes),
        pooled.shape[1],
        len(set(pooled_labels)),
    )
    return pooled, np.array(pooled_labels, dtype=object)
