"""
Core data structures for the cell-line concordance pipeline.

This module provides the foundational types that all other modules build upon:

1. ExpressionMatrix: Samples x features expression values with identifiers
2. LabelTable: Three categorical label schemes per sample
3. PairRecord / ConcordanceRecord: Immutable rows of the long-form pair tables
4. Ordered categories: EstimatorKind, QuartileBin, DecileBin, AgreementFlag

Design Philosophy:
    - Immutability: records are frozen, filtered views share objects
    - Ordered levels: bins and flags are enumerations, never free strings
"""

from linecorr.core.categories import (
    AGREEMENT_ORDER,
    DECILE_LABELS,
    QUARTILE_LABELS,
    AgreementFlag,
    BinGranularity,
    DecileBin,
    EstimatorKind,
    QuartileBin,
)
from linecorr.core.expression import ExpressionMatrix
from linecorr.core.labels import LabelTable
from linecorr.core.records import ConcordanceRecord, PairRecord

__all__ = [
    'ExpressionMatrix',
    'LabelTable',
    'PairRecord',
    'ConcordanceRecord',
    'EstimatorKind',
    'BinGranularity',
    'QuartileBin',
    'DecileBin',
    'AgreementFlag',
    'AGREEMENT_ORDER',
    'QUARTILE_LABELS',
    'DECILE_LABELS',
]
