import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

import click

from data.models import (
    Claim,
    DetectorId,
    FraudReport,
    Pattern,
    PatternType,
    SuspiciousClaim,
)

# No detector emits a score above this
MAX_FRAUD_SCORE = 0.9

# Duplicate VIN: a pair scores 0.5 + 0.2, each further claim adds 0.2
DUPLICATE_VIN_BASE_SCORE = 0.5
DUPLICATE_VIN_STEP = 0.2

# Repeated claimant: flagged above 3 claims; each extra region weighs twice an extra claim
REPEAT_CLAIMANT_MIN_CLAIMS = 3
REPEAT_CLAIMANT_BASE_SCORE = 0.4
REPEAT_CLAIMANT_CLAIM_STEP = 0.1
REPEAT_CLAIMANT_REGION_STEP = 0.2

# Abnormal loss patterns
HIGH_AMOUNT_MULTIPLIER = 3  # vs the batch average
HIGH_AMOUNT_WEIGHT = 0.3
WEEKEND_WEIGHT = 0.2
LATE_NIGHT_WEIGHT = 0.1
LATE_NIGHT_START_HOUR = 22
LATE_NIGHT_END_HOUR = 6
WEEKEND_DAYS = (5, 6)  # Saturday, Sunday

DEFAULT_THRESHOLD = 0.8
DEFAULT_DAYS = 90

DetectorResult = tuple[list[SuspiciousClaim], list[Pattern]]


@dataclass(frozen=True)
class Detector:
    """One heuristic pass over a claims batch."""
    detector_id: DetectorId
    description: str
    run: Callable[[Sequence[Claim]], DetectorResult]


@dataclass(frozen=True)
class FraudEngine:
    """The configured set of detectors. Build once with build_engine()."""
    detectors: tuple[Detector, ...]
    threshold: float = DEFAULT_THRESHOLD
    days: int = DEFAULT_DAYS


def build_engine(threshold: float = DEFAULT_THRESHOLD, days: int = DEFAULT_DAYS) -> FraudEngine:
    """Create the engine handle holding every detector in run order."""
    _validate_options(threshold, days)
    detectors = (
        Detector(DetectorId.DUPLICATE_VIN, "Detect duplicate VIN patterns",
                 detect_duplicate_vins),
        Detector(DetectorId.REPEATED_CLAIMANT, "Detect claimants with multiple claims",
                 detect_repeated_claimants),
        Detector(DetectorId.ABNORMAL_LOSS_PATTERN, "Detect abnormal loss patterns",
                 detect_abnormal_patterns),
    )
    return FraudEngine(detectors=detectors, threshold=threshold, days=days)


def engine_status(engine: FraudEngine) -> dict:
    return {
        "initialized": True,
        "detectors": [d.detector_id.value for d in engine.detectors],
        "descriptions": {d.detector_id.value: d.description for d in engine.detectors},
        "total_detectors": len(engine.detectors),
        "threshold": engine.threshold,
        "days": engine.days,
    }


def _validate_options(threshold: float, days: int) -> None:
    if not 0.0 <= threshold <= 1.0:
        raise ValueError(f"threshold must be between 0 and 1, got {threshold}")
    if days < 0:
        raise ValueError(f"days must be non-negative, got {days}")


def filter_window(claims: Sequence[Claim], days: int, now: datetime) -> list[Claim]:
    """Keep claims whose incident falls within the trailing window."""
    cutoff = now - timedelta(days=days)
    return [c for c in claims if c.incident_date >= cutoff]


def run_fraud_detection(
    engine: FraudEngine,
    claims: Sequence[Claim],
    threshold: float | None = None,
    days: int | None = None,
    now: datetime | None = None,
) -> FraudReport:
    """Run every detector over the claims inside the window and merge the results.

    The threshold is reported back but does not filter flagged claims: every
    entry any detector produces is returned, whatever its score.
    """
    if threshold is None:
        threshold = engine.threshold
    if days is None:
        days = engine.days
    _validate_options(threshold, days)
    if now is None:
        now = datetime.now()

    batch = filter_window(claims, days, now)
    click.echo(f"Running fraud detection on {len(batch):,} claims from the last {days} days...")

    suspicious: list[SuspiciousClaim] = []
    patterns: list[Pattern] = []
    for detector in engine.detectors:
        flagged, found = detector.run(batch)
        suspicious.extend(flagged)
        patterns.extend(found)

    average = sum(s.fraud_score for s in suspicious) / len(suspicious) if suspicious else 0.0

    click.echo(f"Found {len(suspicious)} suspicious claim entries and {len(patterns)} patterns")
    return FraudReport(
        suspicious_claims=suspicious,
        total_analyzed=len(batch),
        average_fraud_score=average,
        patterns=patterns,
        threshold=threshold,
        days=days,
    )


def _group_by(claims: Sequence[Claim], key: Callable[[Claim], str | None]) -> dict[str, list[Claim]]:
    """Group claims by key in order of first appearance, dropping empty keys."""
    groups: dict[str, list[Claim]] = {}
    for claim in claims:
        value = key(claim)
        if value:
            groups.setdefault(value, []).append(claim)
    return groups


def _time_span_days(claims: Sequence[Claim]) -> int:
    """Whole days, rounded up, between the earliest and latest incident."""
    dates = [c.incident_date for c in claims]
    return math.ceil((max(dates) - min(dates)) / timedelta(days=1))


def detect_duplicate_vins(claims: Sequence[Claim]) -> DetectorResult:
    """Flag every claim sharing a VIN with another claim in the batch."""
    suspicious: list[SuspiciousClaim] = []
    patterns: list[Pattern] = []

    for vin, vin_claims in _group_by(claims, lambda c: c.vehicle_id).items():
        count = len(vin_claims)
        if count < 2:
            continue

        score = min(MAX_FRAUD_SCORE, DUPLICATE_VIN_BASE_SCORE + (count - 1) * DUPLICATE_VIN_STEP)
        for claim in vin_claims:
            suspicious.append(SuspiciousClaim(
                claim=claim,
                fraud_score=score,
                fraud_reason=f"Duplicate VIN detected ({count} claims)",
                detector_id=DetectorId.DUPLICATE_VIN,
            ))

        patterns.append(Pattern(
            pattern_type=PatternType.DUPLICATE_IDENTIFIER,
            key=vin,
            claim_count=count,
            total_amount=sum(c.claim_amount for c in vin_claims),
            time_span=_time_span_days(vin_claims),
        ))

    return suspicious, patterns


def detect_repeated_claimants(claims: Sequence[Claim]) -> DetectorResult:
    """Flag claimants with more than three claims, weighting spread across regions."""
    suspicious: list[SuspiciousClaim] = []
    patterns: list[Pattern] = []

    for claimant, claimant_claims in _group_by(claims, lambda c: c.claimant_name).items():
        count = len(claimant_claims)
        if count <= REPEAT_CLAIMANT_MIN_CLAIMS:
            continue

        regions = tuple(dict.fromkeys(c.region for c in claimant_claims))
        score = min(
            MAX_FRAUD_SCORE,
            REPEAT_CLAIMANT_BASE_SCORE
            + (count - REPEAT_CLAIMANT_MIN_CLAIMS) * REPEAT_CLAIMANT_CLAIM_STEP
            + (len(regions) - 1) * REPEAT_CLAIMANT_REGION_STEP,
        )
        for claim in claimant_claims:
            suspicious.append(SuspiciousClaim(
                claim=claim,
                fraud_score=score,
                fraud_reason=f"Repeated claimant ({count} claims, {len(regions)} regions)",
                detector_id=DetectorId.REPEATED_CLAIMANT,
            ))

        patterns.append(Pattern(
            pattern_type=PatternType.REPEATED_CLAIMANT,
            key=claimant,
            claim_count=count,
            total_amount=sum(c.claim_amount for c in claimant_claims),
            regions=regions,
        ))

    return suspicious, patterns


def detect_abnormal_patterns(claims: Sequence[Claim]) -> DetectorResult:
    """Score each claim on amount and timing; claims scoring zero are left out."""
    if not claims:
        return [], []

    avg_amount = sum(c.claim_amount for c in claims) / len(claims)

    suspicious: list[SuspiciousClaim] = []
    for claim in claims:
        score = 0.0
        reasons = []

        if claim.claim_amount > avg_amount * HIGH_AMOUNT_MULTIPLIER:
            score += HIGH_AMOUNT_WEIGHT
            reasons.append("Unusually high claim amount")

        if claim.incident_date.weekday() in WEEKEND_DAYS:
            score += WEEKEND_WEIGHT
            reasons.append("Claim filed on weekend")

        hour = claim.incident_date.hour
        if hour >= LATE_NIGHT_START_HOUR or hour <= LATE_NIGHT_END_HOUR:
            score += LATE_NIGHT_WEIGHT
            reasons.append("Claim filed late at night")

        if score > 0:
            suspicious.append(SuspiciousClaim(
                claim=claim,
                fraud_score=min(MAX_FRAUD_SCORE, score),
                fraud_reason=", ".join(reasons),
                detector_id=DetectorId.ABNORMAL_LOSS_PATTERN,
            ))

    # Per-claim detector: no cross-claim patterns
    return suspicious, []
