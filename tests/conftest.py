"""Shared fixtures: synthetic claims CSV matching the claims index fields."""

import csv
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

from data.loader import read_claims
from data.models import Claim, ClaimType

# Reference "now" for window filtering (a Friday)
NOW = datetime(2024, 3, 1, 12, 0)
WEEKDAY_NOON = datetime(2024, 2, 7, 12, 0)  # Wednesday

CLEAN_CLAIMANT = "Clean Claimant 00"
DUP_VIN = "1HGBH41JXMN109186"           # three auto claims, 10 days apart
REPEAT_CLAIMANT = "Jane Roe"            # four claims across three regions
WEEKEND_CLAIM = "CLM-WEEKEND"           # Saturday noon
NIGHT_CLAIM = "CLM-NIGHT"               # Tuesday 23:30
HIGH_AMOUNT_CLAIM = "CLM-HIGH"          # far above the batch average
ALL_FLAGS_CLAIM = "CLM-ALL"             # high amount, Saturday, 23:00
NO_VIN_CLAIM = "CLM-NOVIN"              # auto claim without a VIN, on a Saturday
STALE_CLAIM = "CLM-STALE"               # shares DUP_VIN but outside the 90-day window

# Claims inside the default window and valid
WINDOW_CLAIM_COUNT = 22


def make_claim(
    claim_id: str = "CLM-1",
    claimant_name: str = "Test Claimant",
    claim_type: ClaimType = ClaimType.HEALTH,
    claim_amount: float = 1000.0,
    incident_date: datetime = WEEKDAY_NOON,
    region: str = "Texas",
    vehicle_id: str | None = None,
) -> Claim:
    return Claim(
        claim_id=claim_id,
        claimant_name=claimant_name,
        claim_type=claim_type,
        claim_amount=claim_amount,
        incident_date=incident_date,
        region=region,
        vehicle_id=vehicle_id,
    )


def _generate_rows() -> list[dict]:
    """Build synthetic rows using the claims index field names."""
    rows = []

    def add(claim_id, claimant, claim_type, amount, incident, region, vin=""):
        rows.append({
            "claimId": claim_id,
            "policyNumber": f"POL-{len(rows) + 1000000}",
            "claimantName": claimant,
            "claimType": claim_type,
            "claimAmount": amount if isinstance(amount, str) else f"{amount:.2f}",
            "incidentDate": incident if isinstance(incident, str) else incident.isoformat(),
            "region": region,
            "vin": vin,
        })

    # --- Clean claimants: one weekday-noon claim each ---
    for p in range(10):
        day = date(2024, 2, 5) + timedelta(days=(p // 5) * 7 + p % 5)
        add(f"CLM-CLEAN-{p:02d}", f"Clean Claimant {p:02d}", "health", 5000.00,
            datetime(day.year, day.month, day.day, 12, 0), "California")

    # --- Duplicate VIN: three drivers, Mon 8th to Thu 18th ---
    add("CLM-VIN-1", "Driver A", "auto", 4000.00, datetime(2024, 1, 8, 12, 0), "Texas", DUP_VIN)
    add("CLM-VIN-2", "Driver B", "auto", 5000.00, datetime(2024, 1, 12, 12, 0), "Texas", DUP_VIN)
    add("CLM-VIN-3", "Driver C", "auto", 6000.00, datetime(2024, 1, 18, 12, 0), "Texas", DUP_VIN)

    # --- Repeat claimant: four weekday claims in three regions ---
    for i, (day, region) in enumerate([(13, "Texas"), (14, "Ohio"), (15, "Florida"), (20, "Texas")], 1):
        add(f"CLM-REPEAT-{i}", REPEAT_CLAIMANT, "home", 3000.00, datetime(2024, 2, day, 12, 0), region)

    # --- Outliers ---
    add(WEEKEND_CLAIM, "Weekend Walter", "health", 5000.00, datetime(2024, 2, 10, 12, 0), "Georgia")
    add(NIGHT_CLAIM, "Night Nora", "health", 5000.00, datetime(2024, 2, 6, 23, 30), "Georgia")
    add(HIGH_AMOUNT_CLAIM, "Big Spender", "business", 150000.00, datetime(2024, 2, 7, 12, 0), "Ohio")
    add(ALL_FLAGS_CLAIM, "Saturday Sam", "business", 150000.00, datetime(2024, 2, 17, 23, 0), "Ohio")
    add(NO_VIN_CLAIM, "No Vin Nick", "auto", 5000.00, datetime(2024, 2, 24, 12, 0), "Michigan")

    # --- Outside the window ---
    add(STALE_CLAIM, "Old Driver", "auto", 5000.00, datetime(2023, 6, 5, 12, 0), "Texas", DUP_VIN)

    # --- Malformed: missing amount, unparseable date ---
    add("CLM-BAD-AMOUNT", "Broken Record", "life", "", datetime(2024, 2, 8, 12, 0), "Ohio")
    add("CLM-BAD-DATE", "Broken Record", "life", 1000.00, "not-a-date", "Ohio")

    return rows


@pytest.fixture
def sample_rows() -> list[dict]:
    return _generate_rows()


@pytest.fixture
def sample_csv(tmp_path: Path) -> Path:
    """Write synthetic claims CSV and return its path."""
    filepath = tmp_path / "test_claims.csv"
    rows = _generate_rows()
    fieldnames = list(rows[0].keys())
    with open(filepath, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(rows)
    return filepath


@pytest.fixture
def sample_claims(sample_csv: Path) -> list[Claim]:
    """All valid claims from the synthetic CSV, stale claim included."""
    return read_claims(sample_csv)
