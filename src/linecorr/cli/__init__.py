"""
linecorr CLI - Command-line interface for cell-line concordance analysis.

Commands:
    linecorr run       - Correlate samples, bin pairs, join labels, cross-tabulate
    linecorr crosstab  - Recompute cross-tabulations from saved concordance tables
"""

import argparse
import sys
from typing import Optional, List


def main(args: Optional[List[str]] = None) -> int:
    """Main CLI dispatcher for linecorr."""
    parser = argparse.ArgumentParser(
        prog="linecorr",
        description="Does expression similarity between cell lines predict label agreement?",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  run        Correlate samples, bin pairs, join labels, cross-tabulate
  crosstab   Recompute cross-tabulations from saved concordance tables

Examples:
  linecorr run --expression expr.csv --labels labels.csv --output results/ --workers 8
  linecorr run --config analysis.yaml --cache-dir cache/
  linecorr crosstab --concordance results/concordance_pearson.csv --schemes tissue subtype site -o ct.csv
        """
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version="%(prog)s 0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    from linecorr.cli import run, crosstab
    run.register_parser(subparsers)
    crosstab.register_parser(subparsers)

    raw_args = list(args) if args is not None else sys.argv[1:]
    parsed_args = parser.parse_args(raw_args)

    if parsed_args.command is None:
        parser.print_help()
        return 0

    parsed_args.raw_args = raw_args
    return parsed_args.func(parsed_args)


if __name__ == "__main__":
    sys.exit(main())
