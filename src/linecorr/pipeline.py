"""
End-to-end concordance analysis.

    expression matrix ──> correlation (per estimator, cached)
                      ──> flatten to unique pairs
                      ──> percentile boundaries over ALL pairs
                      ──> one enrichment pass: bins + labels + agreement
                      ──> cross-tabulations (2 estimators × 3 schemes × 2 granularities)

Label coverage is checked before the correlation stage so that a sample
missing from the label table aborts the run before any expensive work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

import pandas as pd

from linecorr.core.categories import EstimatorKind
from linecorr.core.expression import ExpressionMatrix
from linecorr.core.labels import LabelTable
from linecorr.io.persistence import (
    get_correlation_result,
    write_boundaries,
    write_concordance_table,
)
from linecorr.stats.binning import PercentileBoundaries
from linecorr.stats.concordance import ConcordanceTable, build_concordance
from linecorr.stats.correlation import CorrelationResult
from linecorr.stats.crosstab import CrossTabulation, run_crosstabs, summarize_crosstabs
from linecorr.stats.flatten import flatten_correlation
from linecorr.utils.fileio import atomic_write_frame, atomic_write_json

__all__ = ['EstimatorRun', 'AnalysisResult', 'run_estimator', 'run_analysis', 'write_analysis']

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EstimatorRun:
    """Everything the pipeline derives for one estimator."""

    correlation: CorrelationResult
    boundaries: PercentileBoundaries
    concordance: ConcordanceTable

    @property
    def estimator(self) -> EstimatorKind:
        return self.correlation.estimator


@dataclass
class AnalysisResult:
    """Per-estimator runs plus the cross-tabulations over all of them."""

    runs: dict[EstimatorKind, EstimatorRun] = field(default_factory=dict)
    crosstabs: list[CrossTabulation] = field(default_factory=list)

    @property
    def tables(self) -> dict[EstimatorKind, ConcordanceTable]:
        return {estimator: run.concordance for estimator, run in self.runs.items()}

    def summary(self) -> pd.DataFrame:
        return summarize_crosstabs(self.crosstabs)


def run_estimator(
    correlation: CorrelationResult,
    labels: LabelTable,
) -> EstimatorRun:
    """Flatten, bin and label-join one correlation result."""
    pairs = flatten_correlation(correlation)

    # Boundaries need the complete distribution before any pair is binned.
    boundaries = PercentileBoundaries.from_values(p.coefficient for p in pairs)
    logger.info(
        f"{correlation.estimator.value} percentiles: "
        f"p25={boundaries.percentile(25):.4f} p50={boundaries.percentile(50):.4f} "
        f"p75={boundaries.percentile(75):.4f} (n={boundaries.n_values:,})"
    )

    concordance = build_concordance(pairs, labels, boundaries, correlation.estimator)
    return EstimatorRun(correlation=correlation, boundaries=boundaries, concordance=concordance)


def run_analysis(
    matrix: ExpressionMatrix,
    labels: LabelTable,
    estimators: Sequence[EstimatorKind | str] = (EstimatorKind.LINEAR, EstimatorKind.RANK),
    workers: int = 1,
    block_size: int = 256,
    cache: bool = False,
    cache_dir: Optional[Path] = None,
    force_recompute: bool = False,
    clean: bool = True,
    verbose: bool = False,
) -> AnalysisResult:
    """
    Run the full concordance analysis.

    Args:
        matrix: Samples × features expression matrix
        labels: Label table covering every sample in ``matrix``
        estimators: Estimators to run (default: both)
        workers: Worker threads for the correlation engine
        block_size: Rows per correlation block
        cache: Persist/reuse correlation results on disk
        cache_dir: Cache directory (see :func:`get_correlation_result`)
        force_recompute: Ignore cached correlation results
        clean: Cross-tabulate the fully labelled view only
        verbose: Show progress bars

    Raises:
        MissingSampleError: If a matrix sample is absent from ``labels``
    """
    labels.require(matrix.sample_ids)

    result = AnalysisResult()
    for estimator in estimators:
        estimator = EstimatorKind.parse(estimator)
        correlation = get_correlation_result(
            matrix,
            estimator,
            cache=cache,
            cache_dir=cache_dir,
            force_recompute=force_recompute,
            workers=workers,
            block_size=block_size,
            verbose=verbose,
        )
        result.runs[estimator] = run_estimator(correlation, labels)

    result.crosstabs = run_crosstabs(result.tables, clean=clean)
    return result


def write_analysis(result: AnalysisResult, output_dir: Path) -> dict[str, Path]:
    """
    Write concordance tables, percentiles and cross-tabulations.

    Files:
        concordance_<estimator>.csv        all pairs
        concordance_<estimator>.clean.csv  fully labelled pairs
        percentiles_<estimator>.csv        0..100 percentile boundaries
        crosstab_counts.csv                long-form counts and percentages
        crosstabs.csv                      one row per table with chi-square
        run_summary.json                   provenance and headline numbers

    Returns:
        Mapping of artifact name -> path
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written: dict[str, Path] = {}

    for estimator, run in result.runs.items():
        name = estimator.value
        written[f"concordance_{name}"] = write_concordance_table(
            run.concordance, output_dir / f"concordance_{name}.csv"
        )
        written[f"concordance_{name}_clean"] = write_concordance_table(
            run.concordance.clean(), output_dir / f"concordance_{name}.clean.csv"
        )
        written[f"percentiles_{name}"] = write_boundaries(
            run.boundaries, output_dir / f"percentiles_{name}.csv"
        )

    if result.crosstabs:
        counts = pd.concat([ct.to_long() for ct in result.crosstabs], ignore_index=True)
        written['crosstab_counts'] = output_dir / "crosstab_counts.csv"
        atomic_write_frame(written['crosstab_counts'], counts)

    written['crosstabs'] = output_dir / "crosstabs.csv"
    atomic_write_frame(written['crosstabs'], result.summary())

    summary = {
        'estimators': {
            estimator.value: {
                'n_samples': run.correlation.n_samples,
                'n_pairs': len(run.concordance),
                'n_undefined': run.correlation.n_undefined,
                'n_clean': len(run.concordance.clean()),
                'percentiles': {
                    str(k): run.boundaries.percentile(k) for k in (10, 25, 50, 75, 90)
                },
            }
            for estimator, run in result.runs.items()
        },
        'n_crosstabs': len(result.crosstabs),
    }
    written['run_summary'] = output_dir / "run_summary.json"
    atomic_write_json(written['run_summary'], summary)

    logger.info(f"Wrote {len(written)} artifacts to {output_dir}")
    return written
