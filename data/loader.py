import math
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import click
import polars as pl

from data.models import Claim, ClaimType

# Column name mapping: internal names -> claims index fields
# Claims index fields:
#   claimId, claimantName, claimType, claimAmount, incidentDate, region, vin
COLUMN_MAP = {
    "claim_id": "claimId",
    "claimant_name": "claimantName",
    "claim_type": "claimType",
    "claim_amount": "claimAmount",
    "incident_date": "incidentDate",
    "region": "region",
    "vehicle_id": "vin",
}

REVERSE_MAP = {v: k for k, v in COLUMN_MAP.items()}
REVERSE_MAP["vehicleId"] = "vehicle_id"

REQUIRED_COLUMNS = ["claim_id", "claimant_name", "claim_type", "claim_amount", "incident_date", "region"]
TEXT_COLUMNS = ["claim_id", "claimant_name", "claim_type", "region", "vehicle_id"]


class MalformedClaimError(ValueError):
    """A claim record is missing a required field or holds an unusable value."""


def _normalize(lf: pl.LazyFrame) -> pl.LazyFrame:
    """Rename index fields to internal names and cast text and amount columns."""
    existing_cols = lf.collect_schema().names()
    rename_map: dict[str, str] = {}
    for raw, internal in REVERSE_MAP.items():
        if raw not in existing_cols or raw == internal:
            continue
        # vin and vehicleId both map to vehicle_id; first one wins
        if internal in existing_cols or internal in rename_map.values():
            continue
        rename_map[raw] = internal

    if rename_map:
        lf = lf.rename(rename_map)

    names = lf.collect_schema().names()
    casts = [pl.col(col).cast(pl.Utf8) for col in TEXT_COLUMNS if col in names]
    if "claim_amount" in names:
        # Unparseable amounts become null and are rejected per record later
        casts.append(pl.col("claim_amount").cast(pl.Float64, strict=False))

    if casts:
        lf = lf.with_columns(casts)

    return lf


def load_claims(filepath: Path) -> pl.LazyFrame:
    """Load claims as a Polars LazyFrame.

    Supports CSV, Parquet, JSON (an array of objects) and newline-delimited JSON.
    """
    suffix = filepath.suffix.lower()
    if suffix == ".parquet":
        lf = pl.scan_parquet(filepath)
    elif suffix in (".ndjson", ".jsonl"):
        lf = pl.scan_ndjson(filepath)
    elif suffix == ".json":
        lf = pl.read_json(filepath).lazy()
    else:
        # Read every column as text so identifiers like "007" keep their leading zeros
        lf = pl.scan_csv(filepath, infer_schema=False)

    return _normalize(lf)


def _require_text(record: dict, key: str) -> str:
    value = record.get(key)
    if value is None or not str(value).strip():
        raise MalformedClaimError(f"missing {key}")
    return str(value)


def _parse_amount(value) -> float:
    if value is None or isinstance(value, bool):
        raise MalformedClaimError("missing claim_amount")
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise MalformedClaimError(f"claim_amount {value!r} is not a number") from exc
    if not math.isfinite(amount) or amount < 0:
        raise MalformedClaimError(f"claim_amount {value!r} must be a finite non-negative number")
    return amount


def _parse_incident_date(value, tz: str | None) -> datetime:
    """Return the incident date as naive local wall-clock time."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise MalformedClaimError(f"incident_date {value!r} is not ISO-8601") from exc
    else:
        raise MalformedClaimError("missing incident_date")

    if parsed.tzinfo is not None:
        # None converts to the system's local timezone
        parsed = parsed.astimezone(ZoneInfo(tz) if tz else None).replace(tzinfo=None)
    return parsed


def _normalize_record(record: dict) -> dict:
    normalized: dict = {}
    for key, value in record.items():
        internal = REVERSE_MAP.get(key, key)
        if value is None and normalized.get(internal) is not None:
            continue
        normalized[internal] = value
    return normalized


def claim_from_record(record: dict, tz: str | None = None) -> Claim:
    """Validate a raw record (camelCase or snake_case keys) and build a Claim.

    Raises MalformedClaimError when a required field is missing or invalid.
    """
    record = _normalize_record(record)

    raw_type = _require_text(record, "claim_type")
    try:
        claim_type = ClaimType(raw_type)
    except ValueError as exc:
        raise MalformedClaimError(f"claim_type {raw_type!r} is not one of "
                                  f"{', '.join(t.value for t in ClaimType)}") from exc

    vehicle_id = record.get("vehicle_id")
    if vehicle_id is not None and not str(vehicle_id).strip():
        vehicle_id = None

    return Claim(
        claim_id=_require_text(record, "claim_id"),
        claimant_name=_require_text(record, "claimant_name"),
        claim_type=claim_type,
        claim_amount=_parse_amount(record.get("claim_amount")),
        incident_date=_parse_incident_date(record.get("incident_date"), tz),
        region=_require_text(record, "region"),
        vehicle_id=str(vehicle_id) if vehicle_id is not None else None,
    )


def to_claims(rows: pl.DataFrame | Iterable[dict], tz: str | None = None) -> list[Claim]:
    """Convert rows to Claims, skipping malformed records with a warning."""
    if isinstance(rows, pl.DataFrame):
        rows = rows.iter_rows(named=True)

    claims = []
    skipped = 0
    for i, row in enumerate(rows, 1):
        try:
            claims.append(claim_from_record(row, tz))
        except MalformedClaimError as exc:
            skipped += 1
            claim_id = row.get("claim_id") or row.get("claimId") or "no id"
            click.echo(f"Skipping malformed claim #{i} ({claim_id}): {exc}", err=True)

    if skipped:
        click.echo(f"Skipped {skipped:,} malformed claims, kept {len(claims):,}", err=True)
    return claims


def read_claims(filepath: Path, tz: str | None = None) -> list[Claim]:
    """Load a claims file and return the valid records as Claims."""
    lf = load_claims(filepath)
    names = lf.collect_schema().names()
    missing = [col for col in REQUIRED_COLUMNS if col not in names]
    if missing:
        raise click.ClickException(
            f"{filepath.name} is missing required columns: {', '.join(COLUMN_MAP[c] for c in missing)}"
        )
    return to_claims(lf.collect(), tz)


def load_claims_for_claimant(filepath: Path, claimant_name: str) -> pl.DataFrame:
    """Load all rows for a specific claimant (collected, not lazy)."""
    lf = load_claims(filepath)
    return lf.filter(pl.col("claimant_name") == claimant_name).collect()


def get_all_claimants(filepath: Path) -> pl.DataFrame:
    """Get a unique list of claimant names from the dataset."""
    lf = load_claims(filepath)
    return lf.select("claimant_name").unique().collect()
