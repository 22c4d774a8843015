"""
linecorr - Expression similarity vs. label concordance for cell lines

Computes pairwise correlations between cell lines from expression data,
ranks every pair within the full coefficient distribution, and tests
whether highly similar pairs are more likely to share independently
assigned labels.
"""

__version__ = "0.1.0"

from linecorr.core.categories import AgreementFlag, EstimatorKind
from linecorr.core.expression import ExpressionMatrix
from linecorr.core.labels import LabelTable
from linecorr.pipeline import run_analysis

__all__ = [
    "ExpressionMatrix",
    "LabelTable",
    "EstimatorKind",
    "AgreementFlag",
    "run_analysis",
]
