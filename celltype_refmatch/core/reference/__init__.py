"""Reference data handling.

Provides input validation for expression matrices and labels, and
pseudo-bulk aggregation of single-cell references.
"""

from .aggregation import PseudoBulkReference, aggregate_reference, n_centers_for
from .data import (
    aggregate_by_cluster,
    as_expression_frame,
    intersect_genes,
    label_order,
    validate_labels,
)

__all__ = [
    # Data
    "as_expression_frame",
    "validate_labels",
    "label_order",
    "intersect_genes",
    "aggregate_by_cluster",
    # Aggregation
    "PseudoBulkReference",
    "aggregate_reference",
    "n_centers_for",
]
