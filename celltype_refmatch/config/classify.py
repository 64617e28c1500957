"""Configuration classes for reference-based classification.

All classification parameters are configurable so the same code can be
used for bulk references, single-cell references and multi-reference runs.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

MARKER_METHODS = ("de", "classic", "sd", "wilcox", "t")
COMBINE_STRATEGIES = ("recomputed", "common")


@dataclass
class MarkerConfig:
    """Configuration for marker selection.

    Attributes
    ----------
    method : str
        Marker method ("de"/"classic", "sd", "wilcox", "t")
    n : int, optional
        Markers kept per label pair (None = method default)
    statistic : str
        Per-label summary for "de" and "sd" ("median" or "mean")
    sd_thresh : float
        Minimum standard deviation of label summaries for "sd"
    min_effect : float
        Minimum AUC for "wilcox"
    """

    method: str = "de"
    n: Optional[int] = None
    statistic: str = "median"
    sd_thresh: float = 1.0
    min_effect: float = 0.5


@dataclass
class ScoringConfig:
    """Configuration for correlation scoring.

    Attributes
    ----------
    quantile : float
        Quantile of the per-label correlation distribution used as score
    min_common_genes : int
        Minimum genes shared by test and reference
    min_marker_fraction : float
        Minimum fraction of marker genes that must be present in the test
    check_missing : bool
        Drop genes containing NaN values before training
    """

    quantile: float = 0.8
    min_common_genes: int = 50
    min_marker_fraction: float = 0.1
    check_missing: bool = True


@dataclass
class TuningConfig:
    """Configuration for fine-tuning.

    Attributes
    ----------
    enabled : bool
        Run fine-tuning after the initial scoring
    tune_thresh : float
        Labels within this margin of the top score stay candidates
    max_iterations : int, optional
        Hard iteration cap (None = number of labels)
    """

    enabled: bool = True
    tune_thresh: float = 0.05
    max_iterations: Optional[int] = None


@dataclass
class PruningConfig:
    """Configuration for score pruning.

    Attributes
    ----------
    enabled : bool
        Compute pruned labels
    nmads : float
        Number of MADs below the label median delta that triggers pruning
    min_diff_med : float
        Prune samples whose delta is below this value
    min_diff_next : float
        Prune samples whose first/second tuning score gap is below this value
    min_group_size : int
        Labels with fewer assigned samples are not MAD-pruned
    pruned_label : str, optional
        Marker written to pruned_labels for low-confidence samples
    """

    enabled: bool = True
    nmads: float = 3.0
    min_diff_med: float = float("-inf")
    min_diff_next: float = 0.0
    min_group_size: int = 2
    pruned_label: Optional[str] = None


@dataclass
class AggregationConfig:
    """Configuration for pseudo-bulk reference aggregation.

    Attributes
    ----------
    enabled : bool
        Aggregate references before training
    ncenters : int, optional
        Fixed number of profiles per label (overrides power)
    power : float
        Profiles per label = round(N ** power)
    ntop : int
        Highest-variance genes used for PCA
    rank : int
        Number of principal components
    random_seed : int
        Random seed for PCA and k-means
    """

    enabled: bool = False
    ncenters: Optional[int] = None
    power: float = 0.5
    ntop: int = 1000
    rank: int = 20
    random_seed: int = 1337


@dataclass
class ParallelConfig:
    """Configuration for per-sample parallelism.

    Attributes
    ----------
    n_jobs : int
        Number of joblib workers (1 = sequential)
    chunk_size : int
        Test samples per work item
    backend : str
        joblib backend
    """

    n_jobs: int = 1
    chunk_size: int = 500
    backend: str = "loky"


@dataclass
class ClassifyConfig:
    """Master configuration for classification.

    Attributes
    ----------
    markers : MarkerConfig
        Marker selection configuration
    scoring : ScoringConfig
        Scoring configuration
    tuning : TuningConfig
        Fine-tuning configuration
    pruning : PruningConfig
        Pruning configuration
    aggregation : AggregationConfig
        Reference aggregation configuration
    parallel : ParallelConfig
        Parallel execution configuration
    combine_strategy : str
        Strategy for multiple references ("recomputed" or "common")
    """

    markers: MarkerConfig = field(default_factory=MarkerConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    tuning: TuningConfig = field(default_factory=TuningConfig)
    pruning: PruningConfig = field(default_factory=PruningConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)
    combine_strategy: str = "recomputed"

    def __post_init__(self):
        if self.markers.method not in MARKER_METHODS:
            raise ValueError(
                f"Unknown marker method '{self.markers.method}' "
                f"(expected one of {MARKER_METHODS})"
            )
        if self.combine_strategy not in COMBINE_STRATEGIES:
            raise ValueError(
                f"Unknown combine strategy '{self.combine_strategy}' "
                f"(expected one of {COMBINE_STRATEGIES})"
            )
        if not 0.0 <= self.scoring.quantile <= 1.0:
            raise ValueError(f"quantile must be in [0, 1], got {self.scoring.quantile}")

    @classmethod
    def from_yaml(cls, path: Path) -> "ClassifyConfig":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}

        # Handle nested classify section
        if "classify" in data:
            data = data["classify"]

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassifyConfig":
        """Build configuration from a nested dictionary."""
        return cls(
            markers=MarkerConfig(**data.get("markers", {})),
            scoring=ScoringConfig(**data.get("scoring", {})),
            tuning=TuningConfig(**data.get("tuning", {})),
            pruning=PruningConfig(**data.get("pruning", {})),
            aggregation=AggregationConfig(**data.get("aggregation", {})),
            parallel=ParallelConfig(**data.get("parallel", {})),
            combine_strategy=data.get("combine_strategy", "recomputed"),
        )

    @classmethod
    def default(cls) -> "ClassifyConfig":
        """Create default configuration."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)
