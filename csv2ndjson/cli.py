"""
Command-line entry point.

Usage:
    csv2ndjson data/orders.csv
    csv2ndjson data/orders.csv --truncate --overflow strict
    python -m csv2ndjson data/orders.csv --collect
"""

import asyncio
import sys

import click
from loguru import logger

from .config import get_settings
from .convert import ConversionError, convert_file
from .log import setup_logging
from .models import OverflowPolicy


@click.command()
@click.argument("path", required=False, type=click.Path(dir_okay=False))
@click.option(
    "--overflow",
    type=click.Choice([p.value for p in OverflowPolicy]),
    default=None,
    help="Policy for rows with more fields than the header (default: skip)",
)
@click.option("--truncate/--append", default=None, help="Truncate the destination instead of appending")
@click.option("--collect/--no-collect", default=None, help="Also write all records as one JSON array")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(path, overflow, truncate, collect, debug):
    """Convert the CSV file at PATH into PATH.ndjson."""
    settings = get_settings()
    setup_logging("DEBUG" if debug else settings.log_level)

    if not path:
        logger.error("Need file path.")
        sys.exit(2)

    options = settings.options(
        overflow=OverflowPolicy(overflow) if overflow else None,
        truncate=truncate,
        collect=collect,
    )

    try:
        report = asyncio.run(convert_file(path, options))
    except ConversionError as e:
        logger.error(f"Conversion aborted: {e}")
        sys.exit(1)
    except OSError as e:
        logger.error(f"{path}: {e}")
        sys.exit(1)

    summary = report.summary
    logger.info(
        f"{summary.records} records written to {report.destination} "
        f"({summary.errors} errors, {summary.warnings} warnings)"
    )
    logger.info("Process Complete.")

