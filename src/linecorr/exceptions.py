"""
Exception hierarchy for linecorr.

Precondition violations (mismatched matrices, identifiers missing from the
label table) abort the run. Statistical gaps such as too few overlapping
features or missing labels are never raised; they propagate as nulls.
"""

from __future__ import annotations

__all__ = [
    'LinecorrError',
    'MatrixShapeError',
    'MissingSampleError',
    'CacheMismatchError',
]


class LinecorrError(Exception):
    """Base class for fatal linecorr errors."""


class MatrixShapeError(LinecorrError, ValueError):
    """Coefficient and p-value matrices disagree in shape or identifier order."""


class MissingSampleError(LinecorrError, KeyError):
    """A sample identifier is entirely absent from the label table."""

    def __init__(self, sample_id: str):
        self.sample_id = sample_id
        super().__init__(sample_id)

    def __str__(self) -> str:
        return f"Sample '{self.sample_id}' is not present in the label table"


class CacheMismatchError(LinecorrError, ValueError):
    """A persisted correlation result does not match the requested input."""
