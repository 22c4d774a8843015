"""
linecorr run - expression similarity vs. label concordance.

Computes Pearson and Spearman correlations between every pair of cell
lines, bins each pair by its percentile within the full distribution,
joins both samples' labels under three schemes, and cross-tabulates
rank bin against label agreement.

Usage:
    linecorr run --expression expression.csv --labels labels.csv \\
        --label-columns tissue subtype site --output results/ --workers 8
"""

import argparse
import logging
from pathlib import Path

from linecorr.cli._validators import _estimator, _positive_int
from linecorr.exceptions import LinecorrError


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the run subcommand."""
    parser = subparsers.add_parser(
        "run",
        help="Correlate samples and cross-tabulate against labels",
        description=__doc__,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--config", "-c", type=Path, default=None,
                        help="YAML/JSON config file (CLI arguments override it)")

    # Input/output
    parser.add_argument("--expression", "-e", type=Path, default=None,
                        help="Expression CSV (samples x features unless --features-as-rows)")
    parser.add_argument("--features-as-rows", action="store_true",
                        help="Expression CSV has features as rows and samples as columns")
    parser.add_argument("--labels", "-l", type=Path, default=None,
                        help="Label table CSV, one row per sample")
    parser.add_argument("--label-columns", nargs=3, metavar=("SCHEME1", "SCHEME2", "SCHEME3"),
                        default=None,
                        help="The three label columns (default: all non-identifier columns)")
    parser.add_argument("--id-column", type=str, default=None,
                        help="Sample identifier column of the label table (default: first column)")
    parser.add_argument("--output", "-o", type=Path, default=Path("results/concordance"),
                        help="Output directory (default: results/concordance)")

    # Estimators and performance
    parser.add_argument("--estimators", nargs="+", type=_estimator,
                        default=["pearson", "spearman"],
                        help="Estimators to run (default: pearson spearman)")
    parser.add_argument("--workers", "-j", type=_positive_int, default=1,
                        help="Worker threads for the correlation stage (default: 1)")
    parser.add_argument("--block-size", type=_positive_int, default=256,
                        help="Rows per correlation block (default: 256)")

    # Caching
    parser.add_argument("--cache-dir", type=Path, default=None,
                        help="Cache correlation results here and reuse them on later runs")
    parser.add_argument("--force-recompute", action="store_true",
                        help="Ignore cached correlation results")

    # Tabulation
    parser.add_argument("--all-known", action="store_true",
                        help="Tabulate each scheme over pairs known for that scheme, "
                             "instead of only pairs known under all three schemes")

    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Debug logging and progress bars")

    parser.set_defaults(func=run_analysis_command)


def run_analysis_command(args: argparse.Namespace) -> int:
    """Execute the run command."""
    from linecorr.cli.config import load_config, merge_config_with_args
    from linecorr.io.loaders import load_expression_csv, load_label_table
    from linecorr.pipeline import run_analysis, write_analysis

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    logger = logging.getLogger(__name__)

    try:
        if args.config is not None:
            config = load_config(args.config)
            args = merge_config_with_args(config, args, getattr(args, "raw_args", None))
            logger.info(f"Loaded config: {args.config}")

        if args.expression is None or args.labels is None:
            logger.error("--expression and --labels are required (on the command line or in --config)")
            return 1

        print(f"\n{'='*70}")
        print("  Cell-Line Expression Similarity vs. Label Concordance")
        print(f"{'='*70}\n")

        matrix = load_expression_csv(args.expression, samples_as_rows=not args.features_as_rows)
        labels = load_label_table(args.labels, columns=args.label_columns, id_column=args.id_column)

        result = run_analysis(
            matrix,
            labels,
            estimators=args.estimators,
            workers=args.workers,
            block_size=args.block_size,
            cache=args.cache_dir is not None,
            cache_dir=args.cache_dir,
            force_recompute=args.force_recompute,
            clean=not args.all_known,
            verbose=args.verbose,
        )
        write_analysis(result, args.output)

    except (LinecorrError, FileNotFoundError, ValueError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1

    summary = result.summary()
    print(f"\n{'='*70}")
    print("  Cross-tabulation summary")
    print(f"{'='*70}")
    print(summary.to_string(index=False))
    print(f"\nResults written to: {args.output}")
    return 0
