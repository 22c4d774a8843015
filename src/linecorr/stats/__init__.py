"""
Statistical core of the cell-line concordance pipeline.

Exports:
- All-pairs correlation with p-values (linear and rank-based)
- Matrix flattening into unique unordered pairs
- Percentile boundaries and quartile/decile binning
- Label concordance join
- Bin × agreement cross-tabulation with chi-square tests
"""

from .correlation import (
    CorrelationResult,
    compute_correlation,
    correlation_pvalues,
    rank_transform,
)
from .flatten import flatten_correlation, flatten_matrices
from .binning import PercentileBoundaries, assign_bins
from .concordance import ConcordanceTable, build_concordance
from .crosstab import CrossTabulation, cross_tabulate, run_crosstabs, summarize_crosstabs

__all__ = [
    "CorrelationResult",
    "compute_correlation",
    "correlation_pvalues",
    "rank_transform",
    "flatten_correlation",
    "flatten_matrices",
    "PercentileBoundaries",
    "assign_bins",
    "ConcordanceTable",
    "build_concordance",
    "CrossTabulation",
    "cross_tabulate",
    "run_crosstabs",
    "summarize_crosstabs",
]
