"""
File Utilities
==============
Helper functions for file existence checks and model artefact naming.
"""
from __future__ import annotations

from pathlib import Path


def should_skip_file(file_path: Path, min_size_bytes: int = 1) -> bool:
    """
    Check if file exists and has content.

    Args:
        file_path: Path to check
        min_size_bytes: Minimum file size in bytes (default: 1)

    Returns:
        True if file exists and size >= min_size_bytes, False otherwise
    """
    return file_path.exists() and file_path.stat().st_size >= min_size_bytes


def artefact_path(
    models_dir: Path,
    purpose: str,
    predictor: str,
    family: str,
    suffix: str,
) -> Path:
    """
    Cache file for one (purpose, predictor, family) combination.

    The name encodes buffer width through the predictor column, e.g.
    ``fit_imd_500m_beta_binomial.nc`` or ``kfold_dist_centre_binomial.csv``.
    """
    return models_dir / f"{purpose}_{predictor}_{family}{suffix}"
