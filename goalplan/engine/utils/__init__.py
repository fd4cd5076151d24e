"""Utility helpers for goalplan."""

from goalplan.engine.logging import configure_cli_logging, record_metrics, setup_logger

from .io import (
    compute_checksums,
    ensure_dir,
    read_yaml,
    safe_path_segment,
    sha256_file,
    write_json,
)
from .rand import (
    DEFAULT_SEED,
    DEFAULT_SEED_PATH,
    DEFAULT_STREAM,
    PLANNER_STREAM,
    generator_from_seed,
    load_seeds,
    save_seeds,
    seed_for_stream,
    spawn_seed_sequences,
)

__all__ = [
    "compute_checksums",
    "ensure_dir",
    "safe_path_segment",
    "read_yaml",
    "sha256_file",
    "write_json",
    "configure_cli_logging",
    "record_metrics",
    "setup_logger",
    "DEFAULT_SEED",
    "DEFAULT_SEED_PATH",
    "DEFAULT_STREAM",
    "PLANNER_STREAM",
    "generator_from_seed",
    "load_seeds",
    "save_seeds",
    "seed_for_stream",
    "spawn_seed_sequences",
]
