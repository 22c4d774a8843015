"""
Label concordance join for sample pairs.

This module provides:

* :func:`build_concordance` -- one enrichment pass over PairRecords that
  attaches rank bins, both samples' labels and the agreement flag for each
  of the three label schemes.
* :class:`ConcordanceTable` -- the immutable result, with a ``clean()``
  view restricted to pairs whose agreement is known under every scheme.

Agreement rules, per scheme:
    - unknown   if either sample's label is missing
    - agree     if both labels are present and textually identical
    - disagree  otherwise

A sample identifier that is absent from the label table is not an
unknown: it aborts the run with MissingSampleError.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional, Sequence

import numpy as np
import pandas as pd

from linecorr.core.categories import (
    AgreementFlag,
    BinGranularity,
    DecileBin,
    EstimatorKind,
    QuartileBin,
)
from linecorr.core.labels import LabelTable
from linecorr.core.records import ConcordanceRecord, PairRecord
from linecorr.stats.binning import PercentileBoundaries, assign_bins

__all__ = ['ConcordanceTable', 'build_concordance']

logger = logging.getLogger(__name__)


class ConcordanceTable:
    """
    Immutable sequence of ConcordanceRecords for one estimator.

    Attributes:
        estimator: Estimator that produced the coefficients
        schemes: Label scheme names, aligned with each record's label tuples
        records: The enriched records (tuple, never modified)
    """

    def __init__(
        self,
        estimator: EstimatorKind,
        schemes: Sequence[str],
        records: Sequence[ConcordanceRecord],
    ):
        self._estimator = estimator
        self._schemes = tuple(schemes)
        self._records = tuple(records)

        for record in self._records[:1]:
            if len(record.agreement) != len(self._schemes):
                raise ValueError(
                    f"Records carry {len(record.agreement)} agreement flags "
                    f"but {len(self._schemes)} schemes were given"
                )

    @property
    def estimator(self) -> EstimatorKind:
        return self._estimator

    @property
    def schemes(self) -> tuple[str, ...]:
        return self._schemes

    @property
    def records(self) -> tuple[ConcordanceRecord, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ConcordanceRecord]:
        return iter(self._records)

    def __getitem__(self, index: int) -> ConcordanceRecord:
        return self._records[index]

    def scheme_index(self, scheme: str) -> int:
        try:
            return self._schemes.index(scheme)
        except ValueError:
            raise ValueError(f"Unknown label scheme '{scheme}'. Available: {list(self._schemes)}") from None

    def clean(self) -> ConcordanceTable:
        """
        View of the records whose agreement is known under all schemes.

        The returned table shares record objects with this one and keeps
        their relative order.
        """
        return ConcordanceTable(
            self._estimator,
            self._schemes,
            [record for record in self._records if record.is_clean],
        )

    def known(self, scheme: str) -> ConcordanceTable:
        """View of the records whose agreement is known for one scheme."""
        idx = self.scheme_index(scheme)
        return ConcordanceTable(
            self._estimator,
            self._schemes,
            [record for record in self._records if record.agreement[idx].is_known],
        )

    def flag_counts(self, scheme: str) -> dict[AgreementFlag, int]:
        idx = self.scheme_index(scheme)
        counts = {flag: 0 for flag in AgreementFlag}
        for record in self._records:
            counts[record.agreement[idx]] += 1
        return counts

    def to_frame(self) -> pd.DataFrame:
        """
        Long-form DataFrame with one row per pair.

        Columns: sample_a, sample_b, coefficient, p_value, quartile_bin,
        decile_bin, then ``<scheme>_a``, ``<scheme>_b``, ``<scheme>_agreement``
        for every scheme. Bins are ordered categoricals (low -> high).
        """
        columns: dict[str, list] = {
            'sample_a': [r.sample_a for r in self._records],
            'sample_b': [r.sample_b for r in self._records],
            'coefficient': [np.nan if r.coefficient is None else r.coefficient for r in self._records],
            'p_value': [np.nan if r.p_value is None else r.p_value for r in self._records],
            'quartile_bin': [None if r.quartile_bin is None else r.quartile_bin.label for r in self._records],
            'decile_bin': [None if r.decile_bin is None else r.decile_bin.label for r in self._records],
        }
        for idx, scheme in enumerate(self._schemes):
            columns[f"{scheme}_a"] = [r.labels_a[idx] for r in self._records]
            columns[f"{scheme}_b"] = [r.labels_b[idx] for r in self._records]
            columns[f"{scheme}_agreement"] = [r.agreement[idx].value for r in self._records]

        frame = pd.DataFrame(columns)
        frame['coefficient'] = frame['coefficient'].astype(np.float64)
        frame['p_value'] = frame['p_value'].astype(np.float64)
        for granularity in BinGranularity:
            frame[granularity.column] = pd.Categorical(
                frame[granularity.column], categories=granularity.levels, ordered=True
            )
        return frame

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        schemes: Sequence[str],
        estimator: EstimatorKind,
    ) -> ConcordanceTable:
        """
        Rebuild a table from :meth:`to_frame` output (e.g. a saved CSV).

        Agreement flags are re-derived from the label columns rather than
        trusted from the file.
        """
        required = ['sample_a', 'sample_b', 'coefficient', 'p_value', 'quartile_bin', 'decile_bin']
        for scheme in schemes:
            required += [f"{scheme}_a", f"{scheme}_b"]
        missing = [c for c in required if c not in frame.columns]
        if missing:
            raise ValueError(f"Concordance table is missing columns: {missing}")

        def _opt_float(value) -> Optional[float]:
            return None if pd.isna(value) else float(value)

        def _opt_label(value) -> Optional[str]:
            return None if pd.isna(value) or str(value) == "" else str(value)

        records = []
        for row in frame.to_dict(orient='records'):
            labels_a = tuple(_opt_label(row[f"{s}_a"]) for s in schemes)
            labels_b = tuple(_opt_label(row[f"{s}_b"]) for s in schemes)
            quartile = row['quartile_bin']
            decile = row['decile_bin']
            records.append(ConcordanceRecord(
                pair=PairRecord(
                    sample_a=str(row['sample_a']),
                    sample_b=str(row['sample_b']),
                    coefficient=_opt_float(row['coefficient']),
                    p_value=_opt_float(row['p_value']),
                ),
                quartile_bin=None if pd.isna(quartile) else QuartileBin.from_label(str(quartile)),
                decile_bin=None if pd.isna(decile) else DecileBin.from_label(str(decile)),
                labels_a=labels_a,
                labels_b=labels_b,
                agreement=tuple(AgreementFlag.from_labels(a, b) for a, b in zip(labels_a, labels_b)),
            ))
        return cls(estimator, schemes, records)

    def __repr__(self) -> str:
        n_clean = sum(1 for r in self._records if r.is_clean)
        return (
            f"ConcordanceTable({self._estimator.value}, {len(self)} pairs, "
            f"{n_clean} fully labelled)"
        )


def build_concordance(
    pairs: Iterable[PairRecord],
    labels: LabelTable,
    boundaries: Optional[PercentileBoundaries] = None,
    estimator: EstimatorKind = EstimatorKind.LINEAR,
) -> ConcordanceTable:
    """
    Enrich every pair with bins, labels and agreement flags in one pass.

    Args:
        pairs: PairRecords of one estimator (typically from the flattener)
        labels: Label table covering every sample that appears in ``pairs``
        boundaries: Percentile boundaries over the FULL coefficient
            distribution. Computed from ``pairs`` when omitted.
        estimator: Estimator that produced the pairs

    Returns:
        ConcordanceTable in the same order as ``pairs``

    Raises:
        MissingSampleError: If a pair references a sample that is not in
            the label table. No partial table is returned.

    Examples:
        >>> table = build_concordance(pairs, labels)
        >>> clean = table.clean()
        >>> len(clean) <= len(table)
        True
    """
    pairs = list(pairs)
    if boundaries is None:
        boundaries = PercentileBoundaries.from_values(p.coefficient for p in pairs)

    quartiles, deciles = assign_bins((p.coefficient for p in pairs), boundaries)

    records = []
    for pair, quartile, decile in zip(pairs, quartiles, deciles):
        labels_a = labels.lookup(pair.sample_a)
        labels_b = labels.lookup(pair.sample_b)
        records.append(ConcordanceRecord(
            pair=pair,
            quartile_bin=quartile,
            decile_bin=decile,
            labels_a=labels_a,
            labels_b=labels_b,
            agreement=tuple(
                AgreementFlag.from_labels(a, b) for a, b in zip(labels_a, labels_b)
            ),
        ))

    table = ConcordanceTable(estimator, labels.schemes, records)
    logger.info(f"Concordance ({estimator.value}): {table!r}")
    for scheme in table.schemes:
        counts = table.flag_counts(scheme)
        logger.debug(
            f"  {scheme}: agree={counts[AgreementFlag.AGREE]:,} "
            f"disagree={counts[AgreementFlag.DISAGREE]:,} "
            f"unknown={counts[AgreementFlag.UNKNOWN]:,}"
        )
    return table
