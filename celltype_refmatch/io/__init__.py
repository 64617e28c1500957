"""I/O utilities for celltype-refmatch.

Provides run logging, CSV I/O for expression matrices and labels, and an
AnnData adapter.
"""

from .logging import get_logger, get_timestamped_log_path, log_json, log_yaml
from .csv import (
    ensure_output_dir,
    load_expression_matrix,
    load_labels,
    write_dataframe,
)
from .anndata import expression_from_anndata, load_h5ad

__all__ = [
    # Logging
    "get_logger",
    "get_timestamped_log_path",
    "log_json",
    "log_yaml",
    # CSV I/O
    "ensure_output_dir",
    "load_expression_matrix",
    "load_labels",
    "write_dataframe",
    # AnnData
    "expression_from_anndata",
    "load_h5ad",
]
