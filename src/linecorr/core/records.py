"""
Fixed-schema row types flowing through the pipeline after the
correlation stage.

PairRecord is one unordered sample pair with its coefficient; a
ConcordanceRecord is a PairRecord enriched with rank bins and per-scheme
labels and agreement flags. Both are frozen: once derived, a record is
never modified, and filtered views share the same record objects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from linecorr.core.categories import AgreementFlag, DecileBin, QuartileBin

__all__ = ['PairRecord', 'ConcordanceRecord']


@dataclass(frozen=True)
class PairRecord:
    """
    One unordered pair of distinct samples.

    Attributes:
        sample_a: Identifier of the sample at the lower matrix index
        sample_b: Identifier of the sample at the higher matrix index
        coefficient: Correlation coefficient, None when undefined
        p_value: Two-sided p-value, None when undefined
    """

    sample_a: str
    sample_b: str
    coefficient: Optional[float]
    p_value: Optional[float]

    def __post_init__(self):
        if self.sample_a == self.sample_b:
            raise ValueError(f"Pair must join two distinct samples, got '{self.sample_a}' twice")

    @property
    def key(self) -> frozenset[str]:
        """Order-free identity of the pair."""
        return frozenset((self.sample_a, self.sample_b))


@dataclass(frozen=True)
class ConcordanceRecord:
    """
    A pair enriched with rank bins and label agreement.

    ``labels_a``, ``labels_b`` and ``agreement`` are aligned with the
    label table's scheme order.
    """

    pair: PairRecord
    quartile_bin: Optional[QuartileBin]
    decile_bin: Optional[DecileBin]
    labels_a: tuple[Optional[str], ...]
    labels_b: tuple[Optional[str], ...]
    agreement: tuple[AgreementFlag, ...]

    @property
    def sample_a(self) -> str:
        return self.pair.sample_a

    @property
    def sample_b(self) -> str:
        return self.pair.sample_b

    @property
    def coefficient(self) -> Optional[float]:
        return self.pair.coefficient

    @property
    def p_value(self) -> Optional[float]:
        return self.pair.p_value

    @property
    def is_clean(self) -> bool:
        """True when every scheme has a known agreement flag."""
        return all(flag.is_known for flag in self.agreement)
