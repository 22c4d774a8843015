"""
linecorr crosstab - recompute cross-tabulations from saved concordance tables.

Reads concordance CSVs written by ``linecorr run`` (the estimator is taken
from the ``concordance_<estimator>.csv`` file name unless --estimator is
given) and writes the bin × agreement summary without recomputing any
correlation.

Usage:
    linecorr crosstab --concordance results/concordance_pearson.csv \\
        results/concordance_spearman.csv --schemes tissue subtype site \\
        --output results/crosstabs_rerun.csv
"""

import argparse
import logging
from pathlib import Path

from linecorr.cli._validators import _estimator
from linecorr.exceptions import LinecorrError


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the crosstab subcommand."""
    parser = subparsers.add_parser(
        "crosstab",
        help="Cross-tabulate saved concordance tables",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--concordance", nargs="+", type=Path, required=True,
                        help="Concordance CSV(s) written by 'linecorr run'")
    parser.add_argument("--schemes", nargs=3, required=True,
                        metavar=("SCHEME1", "SCHEME2", "SCHEME3"),
                        help="Label scheme names used when the tables were written")
    parser.add_argument("--estimator", type=_estimator, default=None,
                        help="Estimator of a single input table (default: from file name)")
    parser.add_argument("--output", "-o", type=Path, required=True,
                        help="Output CSV for the cross-tabulation summary")
    parser.add_argument("--all-known", action="store_true",
                        help="Tabulate each scheme over pairs known for that scheme")
    parser.set_defaults(func=run_crosstab_command)


def _estimator_from_name(path: Path) -> str:
    stem = path.name.split(".")[0]
    if not stem.startswith("concordance_"):
        raise ValueError(
            f"Cannot infer estimator from '{path.name}'; pass --estimator"
        )
    return stem[len("concordance_"):]


def run_crosstab_command(args: argparse.Namespace) -> int:
    """Execute the crosstab command."""
    from linecorr.core.categories import EstimatorKind
    from linecorr.io.persistence import read_concordance_table
    from linecorr.stats.crosstab import run_crosstabs, summarize_crosstabs
    from linecorr.utils.fileio import atomic_write_frame

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger = logging.getLogger(__name__)

    try:
        if args.estimator is not None and len(args.concordance) > 1:
            raise ValueError("--estimator can only be used with a single --concordance file")

        tables = {}
        for path in args.concordance:
            estimator = EstimatorKind.parse(args.estimator or _estimator_from_name(path))
            if estimator in tables:
                raise ValueError(f"More than one concordance table for estimator '{estimator.value}'")
            tables[estimator] = read_concordance_table(path, args.schemes, estimator)
            logger.info(f"Loaded {path}: {tables[estimator]!r}")

        summary = summarize_crosstabs(run_crosstabs(tables, clean=not args.all_known))
        args.output.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_frame(args.output, summary)

    except (LinecorrError, FileNotFoundError, ValueError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    print(summary.to_string(index=False))
    logger.info(f"Saved: {args.output}")
    return 0
