"""
Percentile boundaries and quartile/decile rank bins.

Boundaries are computed ONCE over the complete coefficient distribution
of one estimator and then reused for every pair; binning a subgroup
against its own percentiles would change the meaning of every bin.

Classification is a strict greater-than cascade:

    quartile = >75th     if r > p75
             = 50th–75th if r > p50
             = 25th–50th if r > p25
             = ≤25th     otherwise

so a coefficient exactly equal to a boundary falls into the LOWER bin.
Deciles use the same cascade at p10, p20, ..., p90.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from linecorr.core.categories import DecileBin, QuartileBin

__all__ = ['PercentileBoundaries', 'assign_bins']

logger = logging.getLogger(__name__)

PERCENTILE_GRID = np.arange(101)


def _to_array(values: Iterable[Optional[float]]) -> np.ndarray:
    return np.array(
        [np.nan if v is None else v for v in values],
        dtype=np.float64,
    )


@dataclass(frozen=True)
class PercentileBoundaries:
    """
    Empirical percentiles 0..100 of one coefficient distribution.

    Attributes:
        percentiles: 101 values, ``percentiles[k]`` is the k-th percentile,
            estimated with linear interpolation between order statistics.
            All NaN when the distribution has no defined values.
        n_values: Number of non-null values the percentiles were computed from
    """

    percentiles: np.ndarray
    n_values: int

    def __post_init__(self):
        if self.percentiles.shape != (101,):
            raise ValueError(f"percentiles must have 101 entries, got shape {self.percentiles.shape}")

    @classmethod
    def from_values(cls, values: Iterable[Optional[float]]) -> PercentileBoundaries:
        """
        Compute boundaries from a coefficient sequence.

        None and NaN are ignored. The result does not depend on input order.
        """
        array = _to_array(values)
        finite = array[~np.isnan(array)]
        if finite.size == 0:
            logger.warning("No defined coefficients; every rank bin will be null")
            percentiles = np.full(101, np.nan)
        else:
            percentiles = np.percentile(finite, PERCENTILE_GRID, method='linear')
        percentiles.setflags(write=False)
        return cls(percentiles=percentiles, n_values=int(finite.size))

    def percentile(self, k: int) -> float:
        return float(self.percentiles[k])

    @property
    def quartile_cuts(self) -> np.ndarray:
        """p25, p50, p75."""
        return self.percentiles[[25, 50, 75]]

    @property
    def decile_cuts(self) -> np.ndarray:
        """p10, p20, ..., p90."""
        return self.percentiles[10:100:10]

    @property
    def is_empty(self) -> bool:
        return self.n_values == 0

    def quartile_bin(self, value: Optional[float]) -> Optional[QuartileBin]:
        rank = _cascade(value, self.quartile_cuts)
        return None if rank is None else QuartileBin(rank)

    def decile_bin(self, value: Optional[float]) -> Optional[DecileBin]:
        rank = _cascade(value, self.decile_cuts)
        return None if rank is None else DecileBin(rank)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            'percentile': PERCENTILE_GRID,
            'value': self.percentiles,
        })


def _cascade(value: Optional[float], cuts: np.ndarray) -> Optional[int]:
    """1-based bin rank: 1 + number of cuts strictly below ``value``."""
    if value is None or np.isnan(value) or np.isnan(cuts).any():
        return None
    return 1 + int(np.sum(value > cuts))


def _ranks(values: np.ndarray, cuts: np.ndarray) -> np.ndarray:
    # searchsorted(side='left') counts cuts strictly less than each value
    ranks = np.searchsorted(cuts, values, side='left') + 1
    return np.where(np.isnan(values), 0, ranks)


def assign_bins(
    values: Iterable[Optional[float]],
    boundaries: PercentileBoundaries,
) -> tuple[list[Optional[QuartileBin]], list[Optional[DecileBin]]]:
    """
    Vectorized quartile and decile bins for a coefficient sequence.

    Args:
        values: Coefficients (None/NaN allowed)
        boundaries: Boundaries computed over the full distribution

    Returns:
        (quartile_bins, decile_bins), aligned with ``values``; None for
        null coefficients or when the boundaries are empty.
    """
    array = _to_array(values)
    if boundaries.is_empty:
        return [None] * array.size, [None] * array.size

    quartile_ranks = _ranks(array, boundaries.quartile_cuts)
    decile_ranks = _ranks(array, boundaries.decile_cuts)

    quartiles = [QuartileBin(q) if q else None for q in quartile_ranks.tolist()]
    deciles = [DecileBin(d) if d else None for d in decile_ranks.tolist()]
    return quartiles, deciles
