"""
Wide-to-long conversion of a symmetric correlation matrix.

Each unordered pair {i, j}, i < j, becomes exactly one PairRecord taken
from the strict upper triangle, in row-major order. The diagonal is
never emitted.
"""

from __future__ import annotations

import logging
import math

import numpy as np
import pandas as pd

from linecorr.core.records import PairRecord
from linecorr.exceptions import MatrixShapeError
from linecorr.stats.correlation import CorrelationResult

__all__ = ['flatten_matrices', 'flatten_correlation']

logger = logging.getLogger(__name__)


def _as_optional(value: float):
    return None if math.isnan(value) else float(value)


def _validate(coefficients: pd.DataFrame, p_values: pd.DataFrame) -> None:
    if coefficients.shape[0] != coefficients.shape[1]:
        raise MatrixShapeError(f"Coefficient matrix must be square, got shape {coefficients.shape}")
    if p_values.shape != coefficients.shape:
        raise MatrixShapeError(
            f"p-value matrix shape {p_values.shape} does not match "
            f"coefficient matrix shape {coefficients.shape}"
        )
    if not coefficients.index.equals(coefficients.columns):
        raise MatrixShapeError("Coefficient matrix row and column identifiers are not in the same order")
    if not p_values.index.equals(p_values.columns):
        raise MatrixShapeError("p-value matrix row and column identifiers are not in the same order")
    if not coefficients.index.equals(p_values.index):
        mismatch = next(
            (
                (i, a, b)
                for i, (a, b) in enumerate(zip(coefficients.index, p_values.index))
                if a != b
            ),
            None,
        )
        detail = f" (first mismatch at position {mismatch[0]}: '{mismatch[1]}' vs '{mismatch[2]}')" if mismatch else ""
        raise MatrixShapeError(
            f"Coefficient and p-value matrices list samples in different orders{detail}"
        )
    if not coefficients.index.is_unique:
        duplicated = coefficients.index[coefficients.index.duplicated()].unique().tolist()
        raise MatrixShapeError(f"Matrix identifiers must be unique, duplicated: {duplicated[:5]}")


def flatten_matrices(coefficients: pd.DataFrame, p_values: pd.DataFrame) -> list[PairRecord]:
    """
    Convert a coefficient matrix and its p-value matrix into PairRecords.

    Args:
        coefficients: Symmetric n × n DataFrame, index == columns == sample IDs
        p_values: n × n DataFrame with the same identifiers in the same order

    Returns:
        n(n-1)/2 PairRecords, row-major over the strict upper triangle.
        NaN entries become None.

    Raises:
        MatrixShapeError: If shapes or identifier orderings disagree

    Examples:
        >>> ids = ["A", "B", "C"]
        >>> r = pd.DataFrame(np.eye(3), index=ids, columns=ids)
        >>> [(p.sample_a, p.sample_b) for p in flatten_matrices(r, r)]
        [('A', 'B'), ('A', 'C'), ('B', 'C')]
    """
    _validate(coefficients, p_values)

    sample_ids = [str(s) for s in coefficients.index]
    r_values = coefficients.to_numpy(dtype=np.float64)
    p_array = p_values.to_numpy(dtype=np.float64)

    rows, cols = np.triu_indices(len(sample_ids), k=1)
    upper_r = r_values[rows, cols].tolist()
    upper_p = p_array[rows, cols].tolist()

    pairs = [
        PairRecord(
            sample_a=sample_ids[i],
            sample_b=sample_ids[j],
            coefficient=_as_optional(r),
            p_value=_as_optional(p),
        )
        for i, j, r, p in zip(rows.tolist(), cols.tolist(), upper_r, upper_p)
    ]

    logger.debug(f"Flattened {len(sample_ids)} x {len(sample_ids)} matrix into {len(pairs):,} pairs")
    return pairs


def flatten_correlation(result: CorrelationResult) -> list[PairRecord]:
    """Flatten a CorrelationResult (see :func:`flatten_matrices`)."""
    return flatten_matrices(result.coefficient_frame(), result.p_value_frame())
