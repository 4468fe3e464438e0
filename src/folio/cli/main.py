#!/usr/bin/env python3
"""Main entry point for the folio CLI."""

import argparse
import sys

FOLIO_BANNER = " folio - personal investment portfolio tracker"


def build_parser():
    """Build the top-level parser with all subcommands registered.

    Returns:
        argparse.ArgumentParser: The configured parser.
    """
    parser = argparse.ArgumentParser(
        prog="folio",
        description="folio - personal investment portfolio tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  folio report portfolio.xlsx                 Display holdings and allocation
  folio report portfolio.xlsx --year 2024     Only count 2024 transactions
  folio symbol VNM portfolio.xlsx             Display the VNM position
  folio history portfolio.xlsx -m 24          Month-end value for two years
  folio performance portfolio.xlsx -p 6M      Profit made in the last 6 months
        """,
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        help="Available commands",
    )

    # Import subcommand modules and register them
    from .report import register_subcommand as register_report
    from .symbol import register_subcommand as register_symbol
    from .history import register_subcommand as register_history
    from .performance import register_subcommand as register_performance
    from .version import register_subcommand as register_version

    register_report(subparsers)
    register_symbol(subparsers)
    register_history(subparsers)
    register_performance(subparsers)
    register_version(subparsers)

    return parser


def main(argv=None):
    """Parse CLI arguments and dispatch to the appropriate subcommand.

    Returns:
        int: Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    print(FOLIO_BANNER)
    print()

    # If no command specified, show help
    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
