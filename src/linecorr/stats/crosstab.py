"""
Contingency tables of rank bin vs. label agreement.

For every (estimator, label scheme, bin granularity) combination the
reporter counts pairs by bin × agreement flag, expresses each bin's
counts as within-bin percentages, and runs a chi-square test of
independence. With two estimators, three schemes and two granularities
there are 12 tables per run.

Pairs with a null bin or an unknown agreement flag are excluded from
counts, percentages and tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

import numpy as np
import pandas as pd
from scipy import stats

from linecorr.core.categories import AGREEMENT_ORDER, BinGranularity, EstimatorKind
from linecorr.stats.concordance import ConcordanceTable

__all__ = ['CrossTabulation', 'cross_tabulate', 'run_crosstabs', 'summarize_crosstabs']

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrossTabulation:
    """
    One bin × agreement contingency table with its independence test.

    Attributes:
        estimator: Correlation estimator
        scheme: Label scheme name
        granularity: QUARTILE or DECILE
        counts: Rows = bin levels (low -> high), columns = agree, disagree
        percentages: Row-wise percentages (NaN for empty bins)
        chi2: Chi-square statistic (NaN when the test is undefined)
        p_value: Chi-square p-value (NaN when the test is undefined)
        dof: Degrees of freedom (0 when the test is undefined)
    """

    estimator: EstimatorKind
    scheme: str
    granularity: BinGranularity
    counts: pd.DataFrame
    percentages: pd.DataFrame
    chi2: float
    p_value: float
    dof: int

    @property
    def n_pairs(self) -> int:
        return int(self.counts.to_numpy().sum())

    @property
    def agreement_rate(self) -> float:
        """Overall fraction of counted pairs that agree."""
        n = self.n_pairs
        if n == 0:
            return float('nan')
        return float(self.counts[AGREEMENT_ORDER[0]].sum() / n)

    def to_long(self) -> pd.DataFrame:
        """Tidy form: one row per bin × flag with count and percentage."""
        counts = self.counts.rename_axis(columns=None).reset_index().melt(
            id_vars='bin', var_name='agreement', value_name='count'
        )
        pct = self.percentages.rename_axis(columns=None).reset_index().melt(
            id_vars='bin', var_name='agreement', value_name='percent'
        )
        frame = counts.merge(pct, on=['bin', 'agreement'], how='left')
        frame.insert(0, 'granularity', self.granularity.value)
        frame.insert(0, 'scheme', self.scheme)
        frame.insert(0, 'estimator', self.estimator.value)
        return frame


def _independence_test(counts: pd.DataFrame) -> tuple[float, float, int]:
    observed = counts.to_numpy()
    observed = observed[observed.sum(axis=1) > 0]
    if observed.size:
        observed = observed[:, observed.sum(axis=0) > 0]
    if observed.ndim != 2 or observed.shape[0] < 2 or observed.shape[1] < 2:
        return float('nan'), float('nan'), 0

    chi2, p_value, dof, _ = stats.chi2_contingency(observed)
    return float(chi2), float(p_value), int(dof)


def cross_tabulate(
    table: ConcordanceTable,
    scheme: str,
    granularity: BinGranularity | str,
    clean: bool = True,
) -> CrossTabulation:
    """
    Count pairs by rank bin × agreement flag and test independence.

    Args:
        table: Concordance table of one estimator
        scheme: Label scheme to tabulate
        granularity: QUARTILE or DECILE
        clean: Restrict to pairs known under ALL schemes (the clean view).
            When False, only this scheme's unknowns are dropped.

    Returns:
        CrossTabulation with every bin level present as a row, even if empty
    """
    granularity = BinGranularity(granularity)
    table.scheme_index(scheme)
    source = table.clean() if clean else table.known(scheme)

    frame = source.to_frame()
    bins = frame[granularity.column]
    flags = pd.Categorical(frame[f"{scheme}_agreement"], categories=AGREEMENT_ORDER, ordered=True)
    keep = bins.notna().to_numpy()

    if keep.any():
        counts = pd.crosstab(
            bins[keep].reset_index(drop=True).rename('bin'),
            pd.Series(flags[keep], name='agreement'),
            dropna=False,
        )
    else:
        counts = pd.DataFrame()
    counts = pd.DataFrame(
        counts.reindex(index=granularity.levels, columns=AGREEMENT_ORDER, fill_value=0).to_numpy(),
        index=pd.Index(granularity.levels, name='bin'),
        columns=pd.Index(AGREEMENT_ORDER, name='agreement'),
        dtype=np.int64,
    )

    row_totals = counts.sum(axis=1).replace(0, np.nan)
    percentages = counts.div(row_totals, axis=0) * 100.0

    chi2, p_value, dof = _independence_test(counts)
    logger.debug(
        f"{table.estimator.value}/{scheme}/{granularity.value}: "
        f"n={int(counts.to_numpy().sum()):,} chi2={chi2:.3f} p={p_value:.3g}"
    )

    return CrossTabulation(
        estimator=table.estimator,
        scheme=scheme,
        granularity=granularity,
        counts=counts,
        percentages=percentages,
        chi2=chi2,
        p_value=p_value,
        dof=dof,
    )


def run_crosstabs(
    tables: Mapping[EstimatorKind, ConcordanceTable],
    clean: bool = True,
) -> list[CrossTabulation]:
    """Cross-tabulate every estimator × scheme × granularity combination."""
    results = []
    for estimator, table in tables.items():
        for scheme in table.schemes:
            for granularity in BinGranularity:
                results.append(cross_tabulate(table, scheme, granularity, clean=clean))
    logger.info(f"Computed {len(results)} cross-tabulations")
    return results


def summarize_crosstabs(crosstabs: list[CrossTabulation]) -> pd.DataFrame:
    """One row per cross-tabulation with its test statistics."""
    return pd.DataFrame([
        {
            'estimator': ct.estimator.value,
            'scheme': ct.scheme,
            'granularity': ct.granularity.value,
            'n_pairs': ct.n_pairs,
            'agreement_rate': ct.agreement_rate,
            'chi2': ct.chi2,
            'dof': ct.dof,
            'p_value': ct.p_value,
        }
        for ct in crosstabs
    ])
