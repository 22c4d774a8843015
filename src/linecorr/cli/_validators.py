"""Shared argparse type validators for CLI parameter bounds checking.

These validators produce clear error messages when users pass invalid
values (e.g., ``--workers 0``).  They are intended to be used as the
``type=`` argument in ``add_argument()``.
"""

from __future__ import annotations

import argparse

from linecorr.core.categories import EstimatorKind


def _positive_int(value: str) -> int:
    """argparse type for positive integers (> 0)."""
    ivalue = int(value)
    if ivalue <= 0:
        raise argparse.ArgumentTypeError(f"{value} is not a positive integer")
    return ivalue


def _estimator(value: str) -> str:
    """argparse type for estimator names (pearson/spearman or linear/rank)."""
    try:
        return EstimatorKind.parse(value).value
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))
