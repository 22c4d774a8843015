"""
Ordered categorical levels used throughout the concordance pipeline.

Rank bins and agreement flags are enumerations rather than free-form
strings so that contingency tables always list their levels in the same
order and so that bins can be compared (``QuartileBin.Q4 > QuartileBin.Q1``).

Examples:
    >>> from linecorr.core.categories import QuartileBin, AgreementFlag
    >>> QuartileBin.Q4.label
    '>75th'
    >>> sorted([QuartileBin.Q3, QuartileBin.Q1])
    [<QuartileBin.Q1: 1>, <QuartileBin.Q3: 3>]
    >>> AgreementFlag.from_labels("lung", None)
    <AgreementFlag.UNKNOWN: 'unknown'>
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Optional

__all__ = [
    'EstimatorKind',
    'BinGranularity',
    'QuartileBin',
    'DecileBin',
    'AgreementFlag',
    'AGREEMENT_ORDER',
    'QUARTILE_LABELS',
    'DECILE_LABELS',
]


class EstimatorKind(Enum):
    """
    The two supported correlation estimators.

    Attributes:
        LINEAR: Pearson product-moment correlation on raw values
        RANK: Spearman correlation (Pearson on within-sample average ranks)
    """

    LINEAR = "pearson"
    RANK = "spearman"

    @classmethod
    def parse(cls, value: str | EstimatorKind) -> EstimatorKind:
        """Accept an enum member, its value, or its name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if text in (member.value, member.name.lower()):
                return member
        raise ValueError(
            f"Unknown estimator '{value}'. Use one of: "
            f"{', '.join(m.value for m in cls)}"
        )


class BinGranularity(Enum):
    """Rank-bin resolution used for cross-tabulation."""

    QUARTILE = "quartile"
    DECILE = "decile"

    @property
    def column(self) -> str:
        """Name of the concordance-table column holding this bin."""
        return f"{self.value}_bin"

    @property
    def levels(self) -> list[str]:
        """Bin labels in low -> high order."""
        return QUARTILE_LABELS if self is BinGranularity.QUARTILE else DECILE_LABELS


def _decile_label(rank: int) -> str:
    if rank == 1:
        return "≤10th"
    if rank == 10:
        return ">90th"
    return f"{(rank - 1) * 10}th–{rank * 10}th"


class _RankBin(IntEnum):
    """Shared behaviour for ordered percentile bins."""

    @property
    def label(self) -> str:
        raise NotImplementedError

    @classmethod
    def from_label(cls, label: str):
        for member in cls:
            if member.label == label:
                return member
        raise ValueError(f"'{label}' is not a valid {cls.__name__} label")


class QuartileBin(_RankBin):
    """
    Quartile of a coefficient within its estimator's distribution.

    Q1 is ``≤25th`` and is closed at the minimum; the others are
    right-closed intervals above the previous boundary.
    """

    Q1 = 1
    Q2 = 2
    Q3 = 3
    Q4 = 4

    @property
    def label(self) -> str:
        return QUARTILE_LABELS[self.value - 1]


class DecileBin(_RankBin):
    """Decile of a coefficient within its estimator's distribution."""

    D1 = 1
    D2 = 2
    D3 = 3
    D4 = 4
    D5 = 5
    D6 = 6
    D7 = 7
    D8 = 8
    D9 = 9
    D10 = 10

    @property
    def label(self) -> str:
        return DECILE_LABELS[self.value - 1]


QUARTILE_LABELS: list[str] = ["≤25th", "25th–50th", "50th–75th", ">75th"]
DECILE_LABELS: list[str] = [_decile_label(rank) for rank in range(1, 11)]


class AgreementFlag(Enum):
    """
    Whether two samples carry the same label under one labelling scheme.

    UNKNOWN is outside the tabulation order: it marks pairs where either
    side's label is missing and is filtered out before counting.
    """

    AGREE = "agree"
    DISAGREE = "disagree"
    UNKNOWN = "unknown"

    @property
    def is_known(self) -> bool:
        return self is not AgreementFlag.UNKNOWN

    @classmethod
    def from_labels(cls, label_a: Optional[str], label_b: Optional[str]) -> AgreementFlag:
        """Derive the flag for a pair of (possibly missing) labels."""
        if label_a is None or label_b is None:
            return cls.UNKNOWN
        return cls.AGREE if label_a == label_b else cls.DISAGREE


AGREEMENT_ORDER: list[str] = [AgreementFlag.AGREE.value, AgreementFlag.DISAGREE.value]
