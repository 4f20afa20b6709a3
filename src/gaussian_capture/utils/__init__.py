"""Utility modules for gaussian_capture."""
from __future__ import annotations

from .logging import setup_logging, get_logger, ProgressTracker
from .io import (
    ensure_local_dir,
    compute_checksum,
    save_json,
    load_json,
    save_image,
    load_numpy,
    count_files,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "ProgressTracker",
    # I/O
    "ensure_local_dir",
    "compute_checksum",
    "save_json",
    "load_json",
    "save_image",
    "load_numpy",
    "count_files",
]
