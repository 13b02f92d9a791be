"""Synthetic claims dataset for demos and local runs.

Auto claims draw their VIN from a small pool and claimant names from small
first/last name lists, so duplicate VINs and repeat claimants show up without
being planted explicitly.
"""

import random
from datetime import datetime, timedelta
from pathlib import Path

import click
import polars as pl

from data.models import ClaimType

REGIONS = [
    "Texas", "California", "Florida", "New York", "Illinois",
    "Ohio", "Georgia", "Pennsylvania", "Michigan", "North Carolina",
]
STATUSES = ["pending", "approved", "denied", "under_review"]
CHANNELS = ["phone", "online", "mobile", "agent"]
VIN_POOL = [
    "1HGBH41JXMN109186",
    "2T1BURHE0JC123456",
    "3VWDX7AJ5DM123456",
    "4T1B11HK5JU123456",
    "5NPE34AF5FH123456",
]
FIRST_NAMES = [
    "James", "Mary", "Robert", "Patricia", "John", "Jennifer", "Michael", "Linda",
    "David", "Elizabeth", "William", "Barbara", "Richard", "Susan", "Joseph", "Jessica",
    "Thomas", "Sarah", "Carlos", "Karen", "Daniel", "Lisa", "Matthew", "Nancy",
]
LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis",
    "Rodriguez", "Martinez", "Hernandez", "Lopez", "Gonzalez", "Wilson", "Anderson", "Thomas",
    "Taylor", "Moore", "Jackson", "Martin", "Lee", "Perez", "Thompson", "White",
]

MIN_AMOUNT = 1_000
MAX_AMOUNT = 100_000
LOOKBACK_DAYS = 90


def generate_claims(count: int = 1000, seed: int = 42, now: datetime | None = None) -> list[dict]:
    """Build synthetic claim records using the claims index field names.

    Output is reproducible for a given seed and reference time.
    """
    rng = random.Random(seed)
    if now is None:
        now = datetime.now().replace(microsecond=0)

    claim_types = [t.value for t in ClaimType]
    claims = []
    for i in range(count):
        claim_type = rng.choice(claim_types)
        incident = now - timedelta(seconds=rng.randrange(LOOKBACK_DAYS * 24 * 3600))
        claims.append({
            "claimId": f"CLM-{i + 1:06d}",
            "policyNumber": f"POL-{rng.randint(1_000_000, 9_999_999)}",
            "claimantName": f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}",
            "claimType": claim_type,
            "claimAmount": round(rng.uniform(MIN_AMOUNT, MAX_AMOUNT), 2),
            "incidentDate": incident.isoformat(),
            "region": rng.choice(REGIONS),
            "status": rng.choice(STATUSES),
            "channel": rng.choice(CHANNELS),
            "agentId": f"AGENT-{rng.randint(1000, 9999)}",
            "vin": rng.choice(VIN_POOL) if claim_type == ClaimType.AUTO.value else None,
        })

    return claims


def write_sample_dataset(
    path: Path,
    count: int = 1000,
    seed: int = 42,
    now: datetime | None = None,
) -> Path:
    """Write a synthetic dataset as CSV, Parquet or NDJSON depending on the suffix."""
    path.parent.mkdir(parents=True, exist_ok=True)
    df = pl.DataFrame(generate_claims(count, seed, now), schema_overrides={"vin": pl.Utf8},
                      infer_schema_length=None)

    suffix = path.suffix.lower()
    if suffix == ".parquet":
        df.write_parquet(path)
    elif suffix in (".ndjson", ".jsonl"):
        df.write_ndjson(path)
    elif suffix == ".json":
        df.write_json(path)
    else:
        df.write_csv(path)

    click.echo(f"  -> {path} ({len(df):,} claims)")
    return path
