"""AnnData adapter.

AnnData stores cells as rows and genes as columns; classification works on
genes x samples matrices, so the adapter transposes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy import sparse

logger = logging.getLogger(__name__)


def expression_from_anndata(
    adata: Any,
    label_key: Optional[str] = None,
    layer: Optional[str] = None,
) -> Tuple[pd.DataFrame, Optional[List[Any]]]:
    """Extract a genes x cells expression frame (and labels) from AnnData.

    Parameters
    ----------
    adata : AnnData
        Cells x genes object.
    label_key : str, optional
        Column of ``adata.obs`` holding the labels.
    layer : str, optional
        Layer to read instead of ``adata.X``.

    Returns
    -------
    Tuple[pd.DataFrame, Optional[List]]
        Genes x cells frame and the label per cell (None without
        ``label_key``).

    Raises
    ------
    KeyError
        If ``layer`` or ``label_key`` is not present.
    """
    if layer is not None:
        if layer not in adata.layers:
            raise KeyError(f"Layer '{layer}' not in adata.layers: {list(adata.layers.keys())}")
        matrix = adata.layers[layer]
    else:
        matrix = adata.X
    matrix = matrix.toarray() if sparse.issparse(matrix) else np.asarray(matrix)

    frame = pd.DataFrame(
        matrix.T.astype(float),
        index=pd.Index(adata.var_names.astype(str)),
        columns=pd.Index(adata.obs_names.astype(str)),
    )

    labels = None
    if label_key is not None:
        if label_key not in adata.obs.columns:
            raise KeyError(f"Label column '{label_key}' not in adata.obs")
        labels = [None if pd.isna(v) else v for v in adata.obs[label_key].tolist()]

    logger.info(
        "Extracted %d genes x %d cells from AnnData%s",
        frame.shape[0],
        frame.shape[1],
        f" (layer '{layer}')" if layer else "",
    )
    return frame, labels


def load_h5ad(
    path: Union[str, Path],
    label_key: Optional[str] = None,
    layer: Optional[str] = None,
) -> Tuple[pd.DataFrame, Optional[List[Any]]]:
    """Read an .h5ad file and extract expression and labels."""
    import anndata as ad

    h5ad_path = Path(path)
    if not h5ad_path.exists():
        raise FileNotFoundError(f"AnnData file not found: {h5ad_path}")
    adata = ad.read_h5ad(h5ad_path)
    logger.info("Loaded %d cells, %d features from %s", adata.n_obs, adata.n_vars, h5ad_path.name)
    return expression_from_anndata(adata, label_key=label_key, layer=layer)
