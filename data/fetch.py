from pathlib import Path

import click

from data.loader import read_claims
from data.models import Claim

RAW_DATA_DIR = Path(__file__).parent / "raw"

# Preferred first: Parquet loads fastest, JSON slowest
DATASET_PATTERNS = ["*.parquet", "*.csv", "*.ndjson", "*.jsonl", "*.json"]


def find_dataset(data_dir: Path | None = None) -> Path:
    """Find the claims dataset in the raw data directory.

    Prefers Parquet files over CSV, and CSV over JSON.
    """
    if data_dir is None:
        data_dir = RAW_DATA_DIR

    if not data_dir.exists():
        raise click.ClickException(
            f"Data directory {data_dir} not found. "
            "Place your claims dataset in data/raw/ or run 'python cli.py generate-sample'."
        )

    data_files: list[Path] = []
    for pattern in DATASET_PATTERNS:
        data_files = list(data_dir.glob(pattern))
        if data_files:
            break

    if not data_files:
        raise click.ClickException(
            f"No Parquet, CSV or JSON files found in {data_dir}. "
            "Place your claims dataset in data/raw/ or run 'python cli.py generate-sample'."
        )

    # Return the largest file (most likely the main dataset)
    return max(data_files, key=lambda f: f.stat().st_size)


def fetch_claims(filepath: Path, tz: str | None = None) -> list[Claim]:
    """Materialize the claims batch handed to the fraud engine."""
    click.echo(f"Loading claims from {filepath}...")
    claims = read_claims(filepath, tz)
    click.echo(f"Loaded {len(claims):,} claims")
    return claims
