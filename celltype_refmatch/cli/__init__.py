"""Command-line interface for celltype-refmatch.

Example Usage
-------------
    # From command line:
    celltype-refmatch --help
    celltype-refmatch classify --test test.csv --ref ref.csv --labels labels.csv --out out/
    celltype-refmatch markers --ref ref.csv --labels labels.csv --out markers.csv
    celltype-refmatch aggregate --ref cells.h5ad --label-key cell_type --out pseudobulk/
"""

from .main import cli, main

__all__ = [
    "cli",
    "main",
]
