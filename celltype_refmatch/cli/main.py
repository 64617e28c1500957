"""Command-line interface for celltype-refmatch.

Provides CLI commands for classifying a test dataset against labelled
references, exporting markers, and aggregating single-cell references.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Tuple

import click
import pandas as pd
import yaml

from celltype_refmatch import __version__


def setup_logging(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Setup logging for CLI commands."""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    return logging.getLogger("celltype_refmatch")


def _load_dataset(
    path: str,
    label_path: Optional[str] = None,
    label_key: Optional[str] = None,
    layer: Optional[str] = None,
) -> Tuple[pd.DataFrame, Optional[List[Any]]]:
    """Load an expression matrix (CSV/TSV or .h5ad) and optional labels."""
    from celltype_refmatch.io import load_expression_matrix, load_h5ad, load_labels

    if path.endswith(".h5ad"):
        frame, labels = load_h5ad(path, label_key=label_key, layer=layer)
    else:
        frame, labels = load_expression_matrix(path), None
    if label_path:
        labels = load_labels(label_path, samples=list(frame.columns))
    return frame, labels


def _load_markers(path: Optional[str]) -> Optional[dict]:
    if not path:
        return None
    with open(path, "r", encoding="utf-8") as handle:
        if path.endswith(".json"):
            return json.load(handle)
        return yaml.safe_load(handle)


@click.group()
@click.version_option(version=__version__, prog_name="celltype-refmatch")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("--debug", is_flag=True, help="Enable debug output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """celltype-refmatch: reference-based cell-type classification.

    Labels every sample of a test expression matrix by correlating it with
    labelled reference profiles, fine-tuning close calls on markers and
    pruning low-confidence assignments.

    Examples:

        # Classify against one reference
        celltype-refmatch classify --test test.csv --ref ref.csv --labels labels.csv --out out/

        # Combine two references
        celltype-refmatch classify --test test.csv \\
            --ref a.csv --labels a_labels.csv --ref b.csv --labels b_labels.csv --out out/

        # Export markers of a reference
        celltype-refmatch markers --ref ref.csv --labels labels.csv --out markers.csv
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["logger"] = setup_logging(verbose, debug)


@cli.command()
@click.option("--test", "-t", "test_path", required=True, type=click.Path(exists=True),
              help="Test expression matrix (genes x samples CSV/TSV, or .h5ad)")
@click.option("--ref", "-r", "ref_paths", required=True, multiple=True, type=click.Path(exists=True),
              help="Reference expression matrix (repeat for several references)")
@click.option("--labels", "-l", "label_paths", multiple=True, type=click.Path(exists=True),
              help="Label table per reference, in --ref order")
@click.option("--label-key", default=None, help="obs column with labels for .h5ad references")
@click.option("--layer", default=None, help="AnnData layer to read")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output directory")
@click.option("--config", "-c", type=click.Path(exists=True),
              help="Classification configuration file (YAML)")
@click.option("--markers", "markers_path", type=click.Path(exists=True),
              help="User markers (JSON or YAML) for a single reference")
@click.option("--clusters", "clusters_path", type=click.Path(exists=True),
              help="Cluster per test sample; classify cluster averages")
@click.option("--combine", type=click.Choice(["recomputed", "common"]), default=None,
              help="Strategy for combining several references")
@click.option("--n-jobs", type=int, default=None, help="Parallel workers for scoring")
@click.option("--log-file", is_flag=True, help="Also write a timestamped run log to --out")
@click.pass_context
def classify(
    ctx: click.Context,
    test_path: str,
    ref_paths: Tuple[str, ...],
    label_paths: Tuple[str, ...],
    label_key: Optional[str],
    layer: Optional[str],
    output_path: str,
    config: Optional[str],
    markers_path: Optional[str],
    clusters_path: Optional[str],
    combine: Optional[str],
    n_jobs: Optional[int],
    log_file: bool,
) -> None:
    """Classify test samples against one or more references."""
    logger = ctx.obj["logger"]

    from celltype_refmatch.config import ClassifyConfig
    from celltype_refmatch.core.classify import ClassificationEngine
    from celltype_refmatch.errors import ClassificationError
    from celltype_refmatch.io import ensure_output_dir, get_logger, load_labels, log_yaml

    if label_paths and len(label_paths) != len(ref_paths):
        raise click.BadParameter(
            f"got {len(label_paths)} label tables for {len(ref_paths)} references",
            param_hint="--labels",
        )
    if not label_paths and not label_key:
        raise click.UsageError("Provide --labels per reference or --label-key for .h5ad input")

    out_dir = ensure_output_dir(output_path)
    if log_file:
        logger, log_path = get_logger("celltype_refmatch.run", out_dir / "classify.log")
        click.echo(f"Logging to {log_path}")

    cfg = ClassifyConfig.from_yaml(Path(config)) if config else ClassifyConfig()
    if combine:
        cfg.combine_strategy = combine
    if n_jobs is not None:
        cfg.parallel.n_jobs = n_jobs

    test, _ = _load_dataset(test_path, layer=layer)
    references = {}
    for i, ref_path in enumerate(ref_paths):
        label_path = label_paths[i] if label_paths else None
        matrix, labels = _load_dataset(ref_path, label_path, label_key=label_key, layer=layer)
        if labels is None:
            raise click.UsageError(
                f"No labels for reference {ref_path}: --label-key only applies to .h5ad input, "
                "use --labels for CSV/TSV references"
            )
        name = Path(ref_path).name.split(".")[0]
        if name in references:
            name = f"{name}_{i}"
        references[name] = (matrix, labels)

    markers = None
    user_markers = _load_markers(markers_path)
    if user_markers is not None:
        if len(references) != 1:
            raise click.UsageError("--markers is only supported with a single reference")
        markers = {next(iter(references)): user_markers}

    clusters = None
    if clusters_path:
        clusters = load_labels(clusters_path, samples=list(test.columns))

    engine = ClassificationEngine(cfg, logger=logger)
    try:
        result = engine.run(
            test,
            references,
            markers=markers,
            clusters=clusters,
            output_dir=out_dir,
        )
    except ClassificationError as e:
        click.echo(str(e), err=True)
        sys.exit(1)

    summary = {
        "test": test_path,
        "references": list(references),
        "n_samples": len(result.labels),
        "label_counts": {str(k): int(v) for k, v in result.labels.value_counts().items()},
        "n_pruned": int(result.pruned_labels.isna().sum())
        if cfg.pruning.pruned_label is None
        else int((result.pruned_labels == cfg.pruning.pruned_label).sum()),
        "config": cfg.to_dict(),
    }
    log_yaml(out_dir / "run_summary.yaml", summary)
    click.echo(f"Classified {len(result.labels)} samples -> {out_dir / 'classification.csv'}")


@cli.command()
@click.option("--ref", "-r", "ref_path", required=True, type=click.Path(exists=True),
              help="Reference expression matrix (CSV/TSV or .h5ad)")
@click.option("--labels", "-l", "label_path", type=click.Path(exists=True),
              help="Label table for the reference")
@click.option("--label-key", default=None, help="obs column with labels for .h5ad input")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output marker table (CSV)")
@click.option("--method", type=click.Choice(["de", "classic", "sd", "wilcox", "t"]), default="de",
              help="Marker selection method")
@click.option("--n", "n_markers", type=int, default=None, help="Markers per label pair")
@click.pass_context
def markers(
    ctx: click.Context,
    ref_path: str,
    label_path: Optional[str],
    label_key: Optional[str],
    output_path: str,
    method: str,
    n_markers: Optional[int],
) -> None:
    """Compute markers between every pair of reference labels."""
    logger = ctx.obj["logger"]

    from celltype_refmatch.core.markers import check_markers, select_markers
    from celltype_refmatch.errors import ClassificationError
    from celltype_refmatch.io import write_dataframe

    matrix, labels = _load_dataset(ref_path, label_path, label_key=label_key)
    if labels is None:
        raise click.UsageError("Provide --labels or --label-key")

    try:
        marker_set = select_markers(matrix, labels, method=method, n=n_markers, logger=logger)
        check_markers(marker_set, name=Path(ref_path).name)
    except ClassificationError as e:
        click.echo(str(e), err=True)
        sys.exit(1)

    path = write_dataframe(marker_set.to_frame(), output_path)
    click.echo(f"Wrote {len(marker_set)} marker genes ({marker_set.method}) to {path}")


@cli.command()
@click.option("--ref", "-r", "ref_path", required=True, type=click.Path(exists=True),
              help="Single-cell reference expression matrix (CSV/TSV or .h5ad)")
@click.option("--labels", "-l", "label_path", type=click.Path(exists=True),
              help="Label table for the reference")
@click.option("--label-key", default=None, help="obs column with labels for .h5ad input")
@click.option("--out", "-o", "output_path", required=True, type=click.Path(),
              help="Output directory")
@click.option("--ncenters", type=int, default=None, help="Fixed number of profiles per label")
@click.option("--power", type=float, default=0.5, help="Profiles per label = round(N ** power)")
@click.option("--ntop", type=int, default=1000, help="High-variance genes used for clustering")
@click.option("--rank", type=int, default=20, help="Principal components used for clustering")
@click.option("--seed", type=int, default=1337, help="Random seed")
@click.pass_context
def aggregate(
    ctx: click.Context,
    ref_path: str,
    label_path: Optional[str],
    label_key: Optional[str],
    output_path: str,
    ncenters: Optional[int],
    power: float,
    ntop: int,
    rank: int,
    seed: int,
) -> None:
    """Aggregate a single-cell reference into pseudo-bulk profiles."""
    logger = ctx.obj["logger"]

    from celltype_refmatch.core.reference import aggregate_reference
    from celltype_refmatch.errors import ClassificationError
    from celltype_refmatch.io import ensure_output_dir, write_dataframe

    matrix, labels = _load_dataset(ref_path, label_path, label_key=label_key)
    if labels is None:
        raise click.UsageError("Provide --labels or --label-key")

    try:
        pseudo = aggregate_reference(
            matrix,
            labels,
            ncenters=ncenters,
            power=power,
            ntop=ntop,
            rank=rank,
            seed=seed,
            logger=logger,
        )
    except ClassificationError as e:
        click.echo(str(e), err=True)
        sys.exit(1)

    out_dir = ensure_output_dir(output_path)
    write_dataframe(pseudo.matrix, out_dir / "pseudobulk.csv", index=True)
    label_table = pd.DataFrame(
        {
            "profile": list(pseudo.matrix.columns),
            "n_cells": list(pseudo.n_cells),
            "label": list(pseudo.labels),
        }
    )
    write_dataframe(label_table, out_dir / "pseudobulk_labels.csv")
    click.echo(f"Aggregated {matrix.shape[1]} cells into {pseudo.n_profiles} profiles -> {out_dir}")


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
