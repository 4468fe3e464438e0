"""Shared options and formatting for folio subcommands."""

import os
import warnings
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()

from ..store import ExcelRecordStore, JsonRecordStore, RecordStore


def add_store_arguments(parser):
    """Add the options every data-reading subcommand accepts.

    Args:
        parser: The subcommand's argparse parser.
    """
    parser.add_argument(
        "filename",
        nargs="?",
        default=os.getenv("FOLIO_FILE"),
        help="Path to the portfolio workbook (default: $FOLIO_FILE)",
    )
    parser.add_argument(
        "--user",
        "-u",
        default=os.getenv("FOLIO_USER_ID"),
        help="User whose records are shown (default: $FOLIO_USER_ID)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Read a JSON store instead of an Excel workbook",
    )
    parser.add_argument(
        "--create",
        action="store_true",
        help="Create an empty store if the file does not exist",
    )
    parser.add_argument(
        "--ignore-warnings",
        action="store_true",
        help="Suppress data quality warnings",
    )


def open_store(args) -> RecordStore:
    """Open the record store described by parsed CLI arguments.

    Raises:
        ValueError: If no file was given.
        FileNotFoundError: If the file is missing and --create was not given.
    """
    if args.ignore_warnings:
        warnings.filterwarnings("ignore", category=UserWarning)

    if not args.filename:
        raise ValueError("No portfolio file given. Pass a filename or set FOLIO_FILE.")

    if args.json:
        return JsonRecordStore(args.filename, user_id=args.user, create_if_missing=args.create)
    return ExcelRecordStore(args.filename, user_id=args.user, create_if_missing=args.create)


def format_money(value: Decimal) -> str:
    return f"{value:,.2f}"


def format_percent(value: Decimal) -> str:
    """Format a percentage with rich colour markup."""
    if value >= 0:
        return f"[green]+{value:.2f}%[/green]"
    return f"[red]{value:.2f}%[/red]"


def format_signed_money(value: Decimal) -> str:
    if value >= 0:
        return f"[green]+{value:,.2f}[/green]"
    return f"[red]{value:,.2f}[/red]"
