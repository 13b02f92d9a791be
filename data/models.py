from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ClaimType(Enum):
    AUTO = "auto"
    HOME = "home"
    HEALTH = "health"
    LIFE = "life"
    BUSINESS = "business"


class DetectorId(Enum):
    DUPLICATE_VIN = "duplicate-vin-detector"
    REPEATED_CLAIMANT = "repeated-claimant-detector"
    ABNORMAL_LOSS_PATTERN = "abnormal-loss-pattern-detector"


class PatternType(Enum):
    DUPLICATE_IDENTIFIER = "duplicate_identifier"
    REPEATED_CLAIMANT = "repeated_claimant"


@dataclass(frozen=True)
class Claim:
    """A single insurance claim record."""
    claim_id: str
    claimant_name: str
    claim_type: ClaimType
    claim_amount: float
    incident_date: datetime  # naive, local wall-clock time
    region: str
    vehicle_id: str | None = None


@dataclass(frozen=True)
class SuspiciousClaim:
    """A claim flagged by one detector."""
    claim: Claim
    fraud_score: float  # 0.0 to 0.9
    fraud_reason: str
    detector_id: DetectorId


@dataclass(frozen=True)
class Pattern:
    """A cross-claim grouping, e.g. several claims sharing one VIN."""
    pattern_type: PatternType
    key: str
    claim_count: int
    total_amount: float
    time_span: int | None = None  # days, duplicate identifiers only
    regions: tuple[str, ...] = ()  # repeated claimants only


@dataclass
class FraudReport:
    """Result of one fraud detection run."""
    suspicious_claims: list[SuspiciousClaim] = field(default_factory=list)
    total_analyzed: int = 0
    average_fraud_score: float = 0.0
    patterns: list[Pattern] = field(default_factory=list)
    threshold: float = 0.8  # advisory, never used to filter
    days: int = 90


@dataclass
class Dossier:
    """Everything known about one claimant."""
    claimant_name: str
    flags: list[SuspiciousClaim] = field(default_factory=list)
    patterns: list[Pattern] = field(default_factory=list)
    claims_summary: dict = field(default_factory=dict)
    peer_comparison: dict = field(default_factory=dict)
    timeline: list[dict] = field(default_factory=list)
