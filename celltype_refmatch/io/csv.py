"""CSV I/O for expression matrices and label tables.

Expression matrices are stored genes as rows and samples as columns, with the
gene identifier in the first column. Label tables hold one label per
reference sample, either as a single column in sample order or keyed by
sample identifier.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union

import pandas as pd

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

TAB_SUFFIXES = (".tsv", ".txt", ".tab")


def _separator(path: Path, sep: Optional[str]) -> str:
    if sep is not None:
        return sep
    suffixes = [s.lower() for s in path.suffixes]
    if suffixes and suffixes[-1] == ".gz":
        suffixes = suffixes[:-1]
    return "\t" if suffixes and suffixes[-1] in TAB_SUFFIXES else ","


def ensure_output_dir(path: PathLike) -> Path:
    """Create the directory at path if it does not exist and return it."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def load_expression_matrix(
    path: PathLike,
    sep: Optional[str] = None,
    transpose: bool = False,
) -> pd.DataFrame:
    """Read a genes x samples expression matrix.

    Parameters
    ----------
    path : PathLike
        CSV or TSV file (``.gz`` allowed); the first column holds gene ids.
    sep : str, optional
        Field separator. Inferred from the suffix when None (tab for
        .tsv/.txt/.tab, comma otherwise).
    transpose : bool
        The file stores samples as rows and genes as columns.

    Returns
    -------
    pd.DataFrame
        Float matrix with string gene index and string sample columns.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the table is empty or has non-numeric values.
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Expression matrix not found: {csv_path}")

    df = pd.read_csv(csv_path, sep=_separator(csv_path, sep), index_col=0)
    if transpose:
        df = df.T
    if df.empty:
        raise ValueError(f"Expression matrix {csv_path} is empty")

    non_numeric = [c for c in df.columns if not pd.api.types.is_numeric_dtype(df[c])]
    if non_numeric:
        raise ValueError(
            f"Expression matrix {csv_path} has non-numeric columns: {non_numeric[:5]}"
        )

    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)
    logger.info("Loaded %s: %d genes x %d samples", csv_path.name, df.shape[0], df.shape[1])
    return df.astype(float)


def load_labels(
    path: PathLike,
    samples: Optional[Sequence[str]] = None,
    column: Optional[str] = None,
    sep: Optional[str] = None,
) -> List[str]:
    """Read reference labels.

    Parameters
    ----------
    path : PathLike
        Label table. A single column is taken in sample order. With two or
        more columns the first column is the sample id.
    samples : Sequence[str], optional
        Reference sample ids; a keyed table is reordered to match.
    column : str, optional
        Label column of a keyed table (default: the last column).
    sep : str, optional
        Field separator (inferred from the suffix when None).

    Returns
    -------
    List[str]
        One label per sample. Missing labels are returned as None.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If the labels cannot be aligned with ``samples``.
    """
    csv_path = Path(path)
    if not csv_path.exists():
        raise FileNotFoundError(f"Label table not found: {csv_path}")
    df = pd.read_csv(csv_path, sep=_separator(csv_path, sep), dtype=str)

    if df.shape[1] == 1:
        values = df.iloc[:, 0]
        if samples is not None and len(values) != len(samples):
            raise ValueError(
                f"Label table {csv_path} has {len(values)} rows, expected {len(samples)}"
            )
    else:
        label_col = column or df.columns[-1]
        if label_col not in df.columns:
            raise ValueError(f"Label column `{label_col}` not found in {csv_path}")
        keyed = df.set_index(df.columns[0])[label_col]
        if samples is None:
            values = keyed
        else:
            missing = [s for s in samples if s not in keyed.index]
            if missing:
                raise ValueError(
                    f"Label table {csv_path} is missing {len(missing)} samples, e.g. {missing[:3]}"
                )
            values = keyed.loc[list(samples)]

    return [None if pd.isna(v) else str(v) for v in values]


def write_dataframe(df: pd.DataFrame, path: PathLike, *, index: bool = False) -> Path:
    """Write DataFrame to path ensuring the parent directory exists."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=index, sep=_separator(output_path, None))
    return output_path
