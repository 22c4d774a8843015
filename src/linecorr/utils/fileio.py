"""
Atomic file-write utilities.

Every persisted artifact (correlation arrays, metadata, concordance
tables) is first written to a temporary file in the destination
directory and then moved into place with ``os.replace()``. A run that is
aborted mid-write therefore never leaves a truncated file that a later
resumed run would mistake for a complete cache entry.
"""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from typing import IO, Any, Iterator

import numpy as np
import pandas as pd

__all__ = [
    'atomic_write_json',
    'atomic_write_frame',
    'atomic_write_npz',
]


@contextmanager
def _atomic_target(path: str | os.PathLike, mode: str) -> Iterator[IO]:
    """Yield a temp file next to *path*; rename it onto *path* on success."""
    path = os.fspath(path)
    dir_path = os.path.dirname(path) or "."
    encoding = None if "b" in mode else "utf-8"
    tmp_path: str | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode=mode, dir=dir_path, suffix=".tmp", delete=False, encoding=encoding
        ) as tmp:
            tmp_path = tmp.name
            yield tmp
        os.replace(tmp_path, path)
    except BaseException:
        if tmp_path is not None and os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


def atomic_write_json(path: str | os.PathLike, data: Any, *, indent: int = 2) -> None:
    """Write *data* as JSON atomically via temp-file + rename.

    Parameters
    ----------
    path:
        Destination file path.
    data:
        JSON-serializable object.
    indent:
        JSON indentation (default 2).
    """
    with _atomic_target(path, "w") as tmp:
        json.dump(data, tmp, indent=indent)


def atomic_write_frame(path: str | os.PathLike, frame: pd.DataFrame, *, index: bool = False) -> None:
    """Write *frame* as UTF-8 CSV atomically."""
    with _atomic_target(path, "w") as tmp:
        frame.to_csv(tmp, index=index)


def atomic_write_npz(path: str | os.PathLike, **arrays: np.ndarray) -> None:
    """Write named arrays to a compressed ``.npz`` archive atomically."""
    with _atomic_target(path, "wb") as tmp:
        np.savez_compressed(tmp, **arrays)
