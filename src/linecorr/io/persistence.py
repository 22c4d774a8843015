"""
Persistence and caching of pipeline intermediates.

PROBLEM:
    The correlation stage is O(n² × m) and dominates a run (10-20 minutes
    for a full cell-line panel). Everything after it is cheap. Re-running
    the whole pipeline to try a different label table wastes that time.

SOLUTION:
    Persist each CorrelationResult as a compressed ``.npz`` archive plus a
    JSON metadata sidecar, keyed by a hash of the input matrix and the
    estimator. ``get_correlation_result`` loads from the cache when the
    key matches and otherwise computes and stores. Concordance tables are
    written as CSV and can be read back into ConcordanceTable objects.

CACHE STRUCTURE:
    Location: ~/.cache/linecorr/correlation/ (or --cache-dir)
    Format: corr_{estimator}_{cache_key}.npz (coefficients, p_values,
            n_obs, sample_ids)
    Metadata: corr_{estimator}_{cache_key}.meta.json (provenance)
    Cache key: SHA256(sample_ids + feature_ids + shape + data bytes)[:16]
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from linecorr.core.categories import EstimatorKind
from linecorr.core.expression import ExpressionMatrix
from linecorr.exceptions import CacheMismatchError
from linecorr.stats.binning import PercentileBoundaries
from linecorr.stats.concordance import ConcordanceTable
from linecorr.stats.correlation import CorrelationResult, compute_correlation
from linecorr.utils.fileio import atomic_write_frame, atomic_write_json, atomic_write_npz

__all__ = [
    'compute_cache_key',
    'save_correlation_result',
    'load_correlation_result',
    'get_correlation_result',
    'write_concordance_table',
    'read_concordance_table',
    'write_boundaries',
]

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def _get_default_cache_dir() -> Path:
    """Get default cache directory location."""
    return Path.home() / ".cache" / "linecorr" / "correlation"


def compute_cache_key(matrix: ExpressionMatrix) -> str:
    """
    Generate a cache key identifying an expression matrix.

    The key covers sample order, feature order, shape and every value, so
    a cache hit only occurs for identical input.

    Returns:
        16-character hexadecimal key
    """
    hasher = hashlib.sha256()

    for sample_id in matrix.sample_ids:
        hasher.update(str(sample_id).encode('utf-8'))
        hasher.update(b'|')
    hasher.update(b'#')
    for feature_id in matrix.feature_ids:
        hasher.update(str(feature_id).encode('utf-8'))
        hasher.update(b'|')

    hasher.update(str(matrix.shape).encode('utf-8'))
    hasher.update(np.ascontiguousarray(matrix.data).tobytes())

    return hasher.hexdigest()[:16]


def _cache_paths(cache_dir: Path, estimator: EstimatorKind, cache_key: str) -> Tuple[Path, Path]:
    cache_dir.mkdir(parents=True, exist_ok=True)
    stem = f"corr_{estimator.value}_{cache_key}"
    return cache_dir / f"{stem}.npz", cache_dir / f"{stem}.meta.json"


def _meta_path_for(data_path: Path) -> Path:
    return data_path.with_name(data_path.name[: -len(".npz")] + ".meta.json")


def save_correlation_result(
    result: CorrelationResult,
    path: Path,
    cache_key: Optional[str] = None,
    computation_time: Optional[float] = None,
) -> Path:
    """
    Write a CorrelationResult to ``path`` (``.npz``) plus a metadata sidecar.

    Args:
        result: Result to persist
        path: Destination ``.npz`` path (suffix added if missing)
        cache_key: Input-matrix key recorded in the metadata
        computation_time: Seconds spent computing, recorded for provenance

    Returns:
        Path of the written ``.npz`` archive
    """
    path = Path(path)
    if path.suffix != ".npz":
        path = path.with_name(path.name + ".npz")
    path.parent.mkdir(parents=True, exist_ok=True)

    atomic_write_npz(
        path,
        coefficients=result.coefficients,
        p_values=result.p_values,
        n_obs=result.n_obs,
        sample_ids=np.asarray(result.sample_ids, dtype=str),
    )

    metadata = {
        'format_version': FORMAT_VERSION,
        'estimator': result.estimator.value,
        'cache_key': cache_key,
        'created_at': datetime.now().isoformat(),
        'n_samples': result.n_samples,
        'n_pairs': result.n_pairs,
        'n_undefined': result.n_undefined,
        'sample_ids_sample': list(result.sample_ids[:5]),
        'computation_time_seconds': computation_time,
    }
    atomic_write_json(_meta_path_for(path), metadata)
    logger.debug(f"Saved {result.estimator.value} correlation result to {path}")
    return path


def load_correlation_result(path: Path) -> CorrelationResult:
    """
    Load a CorrelationResult written by :func:`save_correlation_result`.

    Raises:
        FileNotFoundError: If the archive or its metadata is missing
        CacheMismatchError: If the metadata and arrays disagree
    """
    path = Path(path)
    meta_path = _meta_path_for(path)
    if not path.exists():
        raise FileNotFoundError(f"Correlation archive not found: {path}")
    if not meta_path.exists():
        raise FileNotFoundError(f"Correlation metadata not found: {meta_path}")

    with open(meta_path, 'r') as f:
        metadata = json.load(f)

    if metadata.get('format_version') != FORMAT_VERSION:
        raise CacheMismatchError(
            f"{path} has format version {metadata.get('format_version')}, expected {FORMAT_VERSION}"
        )

    with np.load(path, allow_pickle=False) as archive:
        sample_ids = pd.Index(archive['sample_ids'].astype(str))
        coefficients = archive['coefficients']
        p_values = archive['p_values']
        n_obs = archive['n_obs']

    if len(sample_ids) != metadata['n_samples']:
        raise CacheMismatchError(
            f"{path} holds {len(sample_ids)} samples but metadata records {metadata['n_samples']}"
        )

    return CorrelationResult(
        estimator=EstimatorKind.parse(metadata['estimator']),
        sample_ids=sample_ids,
        coefficients=coefficients,
        p_values=p_values,
        n_obs=n_obs,
    )


def get_correlation_result(
    matrix: ExpressionMatrix,
    estimator: EstimatorKind | str,
    cache: bool = True,
    cache_dir: Optional[Path] = None,
    force_recompute: bool = False,
    workers: int = 1,
    block_size: int = 256,
    verbose: bool = False,
) -> CorrelationResult:
    """
    Get a correlation result, using the on-disk cache if available.

    First call computes and caches; later calls with the same matrix and
    estimator load from disk. A cache entry that cannot be read or does
    not match the matrix is recomputed with a warning.

    Args:
        matrix: Expression matrix
        estimator: LINEAR or RANK
        cache: Use caching (default: True)
        cache_dir: Cache directory (default: ~/.cache/linecorr/correlation/)
        force_recompute: Ignore an existing cache entry
        workers: Worker threads for the correlation engine
        block_size: Rows per correlation block
        verbose: Show progress bars
    """
    estimator = EstimatorKind.parse(estimator)

    if not cache:
        return compute_correlation(
            matrix, estimator, workers=workers, block_size=block_size, verbose=verbose
        )

    if cache_dir is None:
        cache_dir = _get_default_cache_dir()
    cache_dir = Path(cache_dir)

    cache_key = compute_cache_key(matrix)
    data_path, meta_path = _cache_paths(cache_dir, estimator, cache_key)

    if data_path.exists() and meta_path.exists() and not force_recompute:
        try:
            load_start = time.time()
            result = load_correlation_result(data_path)
            if not result.sample_ids.equals(matrix.sample_ids) or result.estimator is not estimator:
                raise CacheMismatchError(f"Cached result {data_path.name} does not match input")
            logger.info(
                f"Cache hit for {estimator.value} ({cache_key}): loaded in "
                f"{time.time() - load_start:.2f}s"
            )
            return result
        except (CacheMismatchError, OSError, KeyError, ValueError) as e:
            logger.warning(f"Failed to load cached correlation ({e}); recomputing")
    elif force_recompute:
        logger.info("Force recompute requested - ignoring cache")
    else:
        logger.info(f"Cache miss for {estimator.value} ({cache_key}) - computing")

    start_time = time.time()
    result = compute_correlation(
        matrix, estimator, workers=workers, block_size=block_size, verbose=verbose
    )
    save_correlation_result(
        result, data_path, cache_key=cache_key, computation_time=time.time() - start_time
    )
    return result


def write_concordance_table(table: ConcordanceTable, path: Path) -> Path:
    """Write a concordance table to CSV (atomic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write_frame(path, table.to_frame())
    logger.info(f"Wrote {len(table):,} {table.estimator.value} pairs to {path}")
    return path


def read_concordance_table(
    path: Path,
    schemes: Sequence[str],
    estimator: EstimatorKind | str,
) -> ConcordanceTable:
    """
    Read a CSV written by :func:`write_concordance_table`.

    Only empty cells are missing; labels spelled "NA" or "None" survive.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Concordance table not found: {path}")

    label_columns = {f"{s}_{side}": str for s in schemes for side in ("a", "b")}
    frame = pd.read_csv(
        path,
        dtype={'sample_a': str, 'sample_b': str, 'quartile_bin': str, 'decile_bin': str, **label_columns},
        keep_default_na=False,
        na_values=[""],
        encoding='utf-8',
    )
    return ConcordanceTable.from_frame(frame, schemes, EstimatorKind.parse(estimator))


def write_boundaries(boundaries: PercentileBoundaries, path: Path) -> Path:
    """Write the 0..100 percentile boundaries to CSV (atomic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write_frame(path, boundaries.to_frame())
    return path
