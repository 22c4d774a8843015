"""Utility modules for persisting pipeline artifacts."""

from linecorr.utils.fileio import (
    atomic_write_frame,
    atomic_write_json,
    atomic_write_npz,
)

__all__ = [
    'atomic_write_json',
    'atomic_write_frame',
    'atomic_write_npz',
]
