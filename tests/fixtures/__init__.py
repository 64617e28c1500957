"""Test fixtures for celltype-refmatch.

Provides synthetic reference/test generators and AnnData wrappers.
"""

from .mock_adata import create_mock_adata
from .mock_reference import create_disjoint_references, create_mock_dataset

__all__ = [
    "create_mock_adata",
    "create_disjoint_references",
    "create_mock_dataset",
]
