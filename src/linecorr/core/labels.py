"""
Per-sample categorical labels under three independent labelling schemes.

A LabelTable answers one question for the concordance joiner: given a
sample identifier, what are its labels? Lookups are O(1) through a dict
built once at construction. A sample that is absent from the table is a
data-integrity problem and raises MissingSampleError; a sample that is
present with a null label is an ordinary "unknown".
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

import pandas as pd

from linecorr.exceptions import MissingSampleError

__all__ = ['LabelTable', 'N_SCHEMES']

logger = logging.getLogger(__name__)

N_SCHEMES = 3


def _normalize_label(value) -> Optional[str]:
    """Map NaN/None/blank to None, everything else to its string form."""
    if value is None:
        return None
    if isinstance(value, float) and value != value:
        return None
    if value is pd.NA or value is pd.NaT:
        return None
    text = str(value)
    if text.strip() == "":
        return None
    return text


class LabelTable:
    """
    Immutable sample -> (label, label, label) lookup.

    Attributes:
        schemes: Names of the three labelling schemes, in column order
        sample_ids: Samples known to the table

    Examples:
        >>> frame = pd.DataFrame(
        ...     {"tissue": ["lung", None], "subtype": ["a", "b"], "site": [None, None]},
        ...     index=["A", "B"],
        ... )
        >>> labels = LabelTable.from_frame(frame)
        >>> labels.lookup("A")
        ('lung', 'a', None)
    """

    def __init__(self, schemes: Sequence[str], rows: dict[str, tuple[Optional[str], ...]]):
        schemes = tuple(str(s) for s in schemes)
        if len(schemes) != N_SCHEMES:
            raise ValueError(
                f"Label table needs exactly {N_SCHEMES} label schemes, got {len(schemes)}: {list(schemes)}"
            )
        if len(set(schemes)) != N_SCHEMES:
            raise ValueError(f"Label scheme names must be distinct, got {list(schemes)}")

        for sample_id, labels in rows.items():
            if len(labels) != N_SCHEMES:
                raise ValueError(
                    f"Sample '{sample_id}' has {len(labels)} labels, expected {N_SCHEMES}"
                )

        self._schemes = schemes
        self._rows = dict(rows)

    @classmethod
    def from_frame(
        cls,
        frame: pd.DataFrame,
        columns: Optional[Sequence[str]] = None,
    ) -> LabelTable:
        """
        Build from a DataFrame indexed by sample identifier.

        Args:
            frame: One row per sample, index = sample identifiers
            columns: The three label columns to use. Defaults to all columns
                of ``frame``, which must then number exactly three.

        Raises:
            ValueError: If the index has duplicates or columns are missing
        """
        if columns is None:
            columns = list(frame.columns)
        columns = list(columns)

        missing = [c for c in columns if c not in frame.columns]
        if missing:
            raise ValueError(
                f"Label columns not found: {missing}. Available: {list(frame.columns)}"
            )

        index = frame.index.astype(str)
        if not index.is_unique:
            duplicated = index[index.duplicated()].unique().tolist()
            raise ValueError(f"Label table has duplicated sample identifiers: {duplicated[:5]}")

        rows = {}
        subset = frame[columns]
        for sample_id, values in zip(index, subset.itertuples(index=False, name=None)):
            rows[sample_id] = tuple(_normalize_label(v) for v in values)

        table = cls(columns, rows)
        logger.debug(f"Label table: {len(table)} samples, schemes={list(table.schemes)}")
        return table

    @property
    def schemes(self) -> tuple[str, ...]:
        return self._schemes

    @property
    def sample_ids(self) -> list[str]:
        return list(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, sample_id: object) -> bool:
        return sample_id in self._rows

    def lookup(self, sample_id: str) -> tuple[Optional[str], ...]:
        """
        Return the labels of one sample in scheme order.

        Raises:
            MissingSampleError: If the sample is not in the table at all
        """
        try:
            return self._rows[sample_id]
        except KeyError:
            raise MissingSampleError(sample_id) from None

    def require(self, sample_ids: Iterable[str]) -> None:
        """Raise MissingSampleError for the first identifier not in the table."""
        for sample_id in sample_ids:
            if sample_id not in self._rows:
                raise MissingSampleError(sample_id)

    def coverage(self) -> dict[str, int]:
        """Number of samples with a non-null label, per scheme."""
        counts = {scheme: 0 for scheme in self._schemes}
        for labels in self._rows.values():
            for scheme, label in zip(self._schemes, labels):
                if label is not None:
                    counts[scheme] += 1
        return counts

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame.from_dict(
            self._rows, orient='index', columns=list(self._schemes)
        )

    def __repr__(self) -> str:
        return f"LabelTable({len(self)} samples, schemes={list(self._schemes)})"
