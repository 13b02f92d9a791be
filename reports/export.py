import csv
import json
from pathlib import Path

from data.models import Claim, FraudReport, Pattern, PatternType, SuspiciousClaim

RESULT_COLUMNS = [
    "rank", "claim_id", "claimant_name", "claim_type", "claim_amount",
    "incident_date", "region", "vin", "fraud_score", "fraud_reason", "detector",
]


def claim_to_dict(claim: Claim) -> dict:
    """Serialize a claim with the claims index field names."""
    data = {
        "claimId": claim.claim_id,
        "claimantName": claim.claimant_name,
        "claimType": claim.claim_type.value,
        "claimAmount": claim.claim_amount,
        "incidentDate": claim.incident_date.isoformat(),
        "region": claim.region,
    }
    if claim.vehicle_id is not None:
        data["vin"] = claim.vehicle_id
    return data


def suspicious_to_dict(entry: SuspiciousClaim) -> dict:
    return {
        **claim_to_dict(entry.claim),
        "fraudScore": entry.fraud_score,
        "fraudReason": entry.fraud_reason,
        "modelId": entry.detector_id.value,
    }


def pattern_to_dict(pattern: Pattern) -> dict:
    if pattern.pattern_type is PatternType.DUPLICATE_IDENTIFIER:
        return {
            "type": pattern.pattern_type.value,
            "vin": pattern.key,
            "claimCount": pattern.claim_count,
            "totalAmount": pattern.total_amount,
            "timeSpan": pattern.time_span,
        }
    return {
        "type": pattern.pattern_type.value,
        "claimant": pattern.key,
        "claimCount": pattern.claim_count,
        "regions": list(pattern.regions),
        "totalAmount": pattern.total_amount,
    }


def to_response(report: FraudReport) -> dict:
    """Build the fraud detection response body."""
    return {
        "suspiciousClaims": [suspicious_to_dict(s) for s in report.suspicious_claims],
        "totalAnalyzed": report.total_analyzed,
        "fraudScore": report.average_fraud_score,
        "patterns": [pattern_to_dict(p) for p in report.patterns],
        "threshold": report.threshold,
        "analysisPeriod": f"{report.days} days",
    }


def ranked(report: FraudReport) -> list[SuspiciousClaim]:
    """Suspicious entries by descending score; ties keep detector order."""
    return sorted(report.suspicious_claims, key=lambda s: s.fraud_score, reverse=True)


def write_results_csv(report: FraudReport, path: Path) -> Path:
    """Write one row per suspicious entry, highest score first."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(RESULT_COLUMNS)
        for i, entry in enumerate(ranked(report), 1):
            claim = entry.claim
            writer.writerow([
                i, claim.claim_id, claim.claimant_name, claim.claim_type.value,
                f"{claim.claim_amount:.2f}", claim.incident_date.isoformat(), claim.region,
                claim.vehicle_id or "", f"{entry.fraud_score:.3f}", entry.fraud_reason,
                entry.detector_id.value,
            ])
    return path


def write_response_json(report: FraudReport, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(to_response(report), f, indent=2)
    return path
