"""celltype-refmatch: reference-based cell-type classification.

This package labels the samples of an unlabelled expression dataset by
comparing them with labelled reference profiles:
- Marker selection between every pair of reference labels
- Quantile-of-Spearman scoring against each label
- Iterative fine-tuning of close-scoring labels on their markers
- MAD-based pruning of low-confidence assignments
- Combination of results from several references
- Optional pseudo-bulk aggregation of single-cell references

Example usage:
    >>> from celltype_refmatch import train_reference, classify_with_reference
    >>>
    >>> trained = train_reference(ref_matrix, ref_labels, test_genes=test.index)
    >>> result = classify_with_reference(test, trained)
    >>> result.pruned_labels.value_counts()
"""

__version__ = "0.1.0"

from .core.classify import (
    ClassificationEngine,
    ClassificationResult,
    TrainedReference,
    classify_with_reference,
    train_reference,
)
from .core.combine import CombinedResult, combine_common_results, combine_recomputed_results
from .config import ClassifyConfig

__all__ = [
    "__version__",
    "ClassificationEngine",
    "ClassificationResult",
    "ClassifyConfig",
    "CombinedResult",
    "TrainedReference",
    "classify_with_reference",
    "combine_common_results",
    "combine_recomputed_results",
    "train_reference",
]
