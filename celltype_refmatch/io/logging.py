"""Run logging for classification jobs.

A classification run writes a human-readable log file, optionally a JSON-lines
record per reference and a YAML run summary next to its outputs.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

PathLike = Union[str, Path]

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def get_timestamped_log_path(log_path: PathLike, now: Optional[datetime] = None) -> Path:
    """Insert a timestamp before the suffix of ``log_path``.

    Example: classify.log -> classify_20260101_120000.log
    """
    log_path = Path(log_path)
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return log_path.with_name(f"{log_path.stem}_{stamp}{log_path.suffix or '.log'}")


def get_logger(
    name: str,
    log_path: PathLike,
    level: int = logging.INFO,
    timestamped: bool = True,
) -> Tuple[logging.Logger, Path]:
    """Return a logger writing to a run log file.

    Parameters
    ----------
    name : str
        Logger name.
    log_path : PathLike
        Base path of the log file.
    level : int
        Logging level (default: INFO).
    timestamped : bool
        Add a timestamp to the file name so earlier runs are kept; otherwise
        an existing file is replaced.

    Returns
    -------
    Tuple[logging.Logger, Path]
        The logger and the path it writes to.
    """
    path = get_timestamped_log_path(log_path) if timestamped else Path(log_path)
    if not timestamped:
        path.unlink(missing_ok=True)
    path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    logger.addHandler(handler)
    return logger, path


def log_json(log_path: PathLike, record: Dict[str, Any]) -> None:
    """Append ``record`` as one JSON line."""
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, default=str) + "\n")


def log_yaml(
    log_path: Optional[PathLike],
    record: Dict[str, Any],
    *,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Append ``record`` as a YAML document.

    When ``logger`` is given the document is logged instead of written.
    """
    document = yaml.safe_dump(record, sort_keys=False).rstrip("\n") + "\n---"
    if logger is not None:
        logger.info("%s", document)
        return
    if log_path is None:
        raise ValueError("log_path is required when no logger is given")

    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(document + "\n")
