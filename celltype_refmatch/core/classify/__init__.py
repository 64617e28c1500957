"""Reference training and classification.

Training restricts a reference to the genes shared with the test data and
computes its markers; classification scores, fine-tunes and prunes every
test sample, in parallel over chunks of samples when requested.
"""

from .engine import ClassificationEngine, classify_with_reference
from .parallel import ScoringContext, ScoringOutput, run_scoring_parallel
from .result import ClassificationResult
from .training import PreparedScoring, TrainedReference, train_reference

__all__ = [
    # Engine
    "ClassificationEngine",
    "classify_with_reference",
    # Training
    "TrainedReference",
    "PreparedScoring",
    "train_reference",
    # Results
    "ClassificationResult",
    # Parallel
    "ScoringContext",
    "ScoringOutput",
    "run_scoring_parallel",
]
