from datetime import datetime
from pathlib import Path

import click
import polars as pl

from data.loader import load_claims_for_claimant, read_claims
from data.models import Claim, Dossier, FraudReport, Pattern, PatternType, SuspiciousClaim
from scanner.fraud import filter_window


def build_dossier(
    filepath: Path,
    claimant_name: str,
    report: FraudReport | None = None,
    tz: str | None = None,
    days: int | None = None,
    now: datetime | None = None,
) -> Dossier:
    """Build a dossier for one claimant, attaching any flags from a detection run.

    Only valid claims count, for the claimant and for the peers alike. When
    ``days`` is given, both sides are limited to that trailing window.
    """
    click.echo(f"Building dossier for claimant {claimant_name}...")

    if load_claims_for_claimant(filepath, claimant_name).is_empty():
        raise click.ClickException(f"No claims found for claimant {claimant_name}")

    all_claims = read_claims(filepath, tz)
    if days is not None:
        all_claims = filter_window(all_claims, days, now or datetime.now())

    claims = [c for c in all_claims if c.claimant_name == claimant_name]
    if not claims:
        period = f" in the last {days} days" if days is not None else ""
        raise click.ClickException(f"No valid claims found for claimant {claimant_name}{period}")

    frame = _claims_frame(claims)
    flags, patterns = _collect_flags(report, claimant_name, claims)

    return Dossier(
        claimant_name=claimant_name,
        flags=flags,
        patterns=patterns,
        claims_summary=_summarize_claims(frame),
        peer_comparison=_compare_to_peers(_claims_frame(all_claims), frame),
        timeline=_build_timeline(frame),
    )


def _claims_frame(claims: list[Claim]) -> pl.DataFrame:
    return pl.DataFrame({
        "claim_id": [c.claim_id for c in claims],
        "claimant_name": [c.claimant_name for c in claims],
        "claim_type": [c.claim_type.value for c in claims],
        "claim_amount": [c.claim_amount for c in claims],
        "incident_date": [c.incident_date for c in claims],
        "region": [c.region for c in claims],
    })


def _summarize_claims(frame: pl.DataFrame) -> dict:
    """Totals, date range, regions and claim-type breakdown for the claimant."""
    dates = frame["incident_date"]
    by_type = (
        frame.group_by("claim_type")
        .agg([
            pl.len().alias("count"),
            pl.col("claim_amount").sum().alias("total_amount"),
        ])
        .sort(["count", "claim_type"], descending=[True, False])
    )

    return {
        "total_claims": frame.height,
        "total_amount": frame["claim_amount"].sum(),
        "avg_amount": frame["claim_amount"].mean(),
        "max_single_claim": frame["claim_amount"].max(),
        "date_range_start": dates.min().date().isoformat(),
        "date_range_end": dates.max().date().isoformat(),
        "regions": frame["region"].unique(maintain_order=True).to_list(),
        "claim_types": by_type.to_dicts(),
    }


def _compare_to_peers(all_claims: pl.DataFrame, frame: pl.DataFrame) -> dict:
    """Compare this claimant's total claimed amount to every other claimant's."""
    peers = (
        all_claims.group_by("claimant_name")
        .agg([
            pl.col("claim_amount").sum().alias("total_amount"),
            pl.len().alias("claim_count"),
        ])
    )

    if peers.height < 2:
        return {"note": "Peer comparison unavailable: only one claimant in the dataset"}

    claimant_total = frame["claim_amount"].sum()
    peer_mean = peers["total_amount"].mean()
    peer_median = peers["total_amount"].median()
    peer_std = peers["total_amount"].std()

    percentile_rank = (
        peers.filter(pl.col("total_amount") <= claimant_total).height / peers.height * 100
    )

    comparison = {
        "peer_count": peers.height,
        "claimant_total_amount": claimant_total,
        "peer_mean_amount": round(peer_mean, 2),
        "peer_median_amount": round(peer_median, 2),
        "claimant_percentile": round(percentile_rank, 1),
        "peer_mean_claims": round(peers["claim_count"].mean(), 2),
    }

    if peer_std and peer_std > 0:
        comparison["zscore"] = round((claimant_total - peer_mean) / peer_std, 2)

    return comparison


def _build_timeline(frame: pl.DataFrame) -> list[dict]:
    """Monthly claim counts and amounts."""
    monthly = (
        frame.with_columns(pl.col("incident_date").dt.truncate("1mo").alias("month"))
        .group_by("month")
        .agg([
            pl.len().alias("claim_count"),
            pl.col("claim_amount").sum().alias("total_amount"),
        ])
        .sort("month")
    )

    return [
        {
            "month": row["month"].date().isoformat(),
            "claim_count": row["claim_count"],
            "total_amount": row["total_amount"],
        }
        for row in monthly.iter_rows(named=True)
    ]


def _collect_flags(
    report: FraudReport | None,
    claimant_name: str,
    claims: list[Claim],
) -> tuple[list[SuspiciousClaim], list[Pattern]]:
    if report is None:
        return [], []

    vins = {c.vehicle_id for c in claims if c.vehicle_id}
    flags = [s for s in report.suspicious_claims if s.claim.claimant_name == claimant_name]
    patterns = [
        p for p in report.patterns
        if (p.pattern_type is PatternType.REPEATED_CLAIMANT and p.key == claimant_name)
        or (p.pattern_type is PatternType.DUPLICATE_IDENTIFIER and p.key in vins)
    ]
    return flags, patterns
