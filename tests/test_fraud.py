"""Tests for the fraud heuristics: each detector, the engine handle and the merged run."""

import dataclasses
from datetime import datetime, timedelta

import pytest

from data.loader import to_claims
from data.models import DetectorId, PatternType
from scanner.fraud import (
    build_engine,
    detect_abnormal_patterns,
    detect_duplicate_vins,
    detect_repeated_claimants,
    engine_status,
    filter_window,
    run_fraud_detection,
)
from tests.conftest import (
    ALL_FLAGS_CLAIM,
    CLEAN_CLAIMANT,
    DUP_VIN,
    HIGH_AMOUNT_CLAIM,
    NIGHT_CLAIM,
    NO_VIN_CLAIM,
    NOW,
    REPEAT_CLAIMANT,
    STALE_CLAIM,
    WEEKDAY_NOON,
    WEEKEND_CLAIM,
    WINDOW_CLAIM_COUNT,
    make_claim,
)

SATURDAY_NOON = datetime(2024, 2, 10, 12, 0)
SUNDAY_NOON = datetime(2024, 2, 11, 12, 0)


def _vin_claims(n: int, vin: str = "VIN1", start: datetime = WEEKDAY_NOON, step_days: int = 1):
    return [
        make_claim(claim_id=f"CLM-{i}", claimant_name=f"Driver {i}", vehicle_id=vin,
                   incident_date=start + timedelta(days=i * step_days))
        for i in range(n)
    ]


def _claimant_claims(n: int, regions: list[str], name: str = "Jane Roe"):
    return [
        make_claim(claim_id=f"CLM-{i}", claimant_name=name, region=regions[i % len(regions)])
        for i in range(n)
    ]


# --- Duplicate VIN ---

def test_duplicate_vin_pair_scores_point_seven():
    flagged, patterns = detect_duplicate_vins(_vin_claims(2))
    assert [s.fraud_score for s in flagged] == [0.7, 0.7]
    assert all(s.fraud_reason == "Duplicate VIN detected (2 claims)" for s in flagged)
    assert all(s.detector_id is DetectorId.DUPLICATE_VIN for s in flagged)
    assert len(patterns) == 1


def test_duplicate_vin_five_claims_capped():
    flagged, _ = detect_duplicate_vins(_vin_claims(5))
    assert [s.fraud_score for s in flagged] == [0.9] * 5


def test_duplicate_vin_single_claim_not_flagged():
    flagged, patterns = detect_duplicate_vins(_vin_claims(1))
    assert flagged == []
    assert patterns == []


def test_duplicate_vin_ignores_claims_without_vin():
    claims = [make_claim(claim_id="A"), make_claim(claim_id="B"), *_vin_claims(1)]
    flagged, patterns = detect_duplicate_vins(claims)
    assert flagged == []
    assert patterns == []


def test_duplicate_vin_three_claims_ten_days_apart():
    claims = [
        make_claim(claim_id="A", vehicle_id="VIN1", incident_date=WEEKDAY_NOON),
        make_claim(claim_id="B", vehicle_id="VIN1", incident_date=WEEKDAY_NOON + timedelta(days=4)),
        make_claim(claim_id="C", vehicle_id="VIN1", incident_date=WEEKDAY_NOON + timedelta(days=10)),
    ]
    flagged, patterns = detect_duplicate_vins(claims)
    assert len(flagged) == 3
    assert all(s.fraud_score == 0.9 for s in flagged)
    assert len(patterns) == 1
    pattern = patterns[0]
    assert pattern.pattern_type is PatternType.DUPLICATE_IDENTIFIER
    assert pattern.key == "VIN1"
    assert pattern.claim_count == 3
    assert pattern.time_span == 10
    assert pattern.total_amount == 3000.0


def test_duplicate_vin_same_day_span_is_zero():
    claims = _vin_claims(2, step_days=0)
    _, patterns = detect_duplicate_vins(claims)
    assert patterns[0].time_span == 0


def test_duplicate_vin_partial_day_rounds_up():
    claims = [
        make_claim(claim_id="A", vehicle_id="VIN1", incident_date=WEEKDAY_NOON),
        make_claim(claim_id="B", vehicle_id="VIN1", incident_date=WEEKDAY_NOON + timedelta(hours=30)),
    ]
    _, patterns = detect_duplicate_vins(claims)
    assert patterns[0].time_span == 2


def test_duplicate_vin_groups_in_first_seen_order():
    claims = _vin_claims(2, vin="VIN-B") + _vin_claims(2, vin="VIN-A")
    _, patterns = detect_duplicate_vins(claims)
    assert [p.key for p in patterns] == ["VIN-B", "VIN-A"]


# --- Repeated claimant ---

def test_repeated_claimant_three_claims_not_flagged():
    flagged, patterns = detect_repeated_claimants(_claimant_claims(3, ["Texas", "Ohio", "Utah"]))
    assert flagged == []
    assert patterns == []


def test_repeated_claimant_four_claims_one_region():
    flagged, patterns = detect_repeated_claimants(_claimant_claims(4, ["Texas"]))
    assert len(flagged) == 4
    assert all(s.fraud_score == pytest.approx(0.5) for s in flagged)
    assert flagged[0].fraud_reason == "Repeated claimant (4 claims, 1 regions)"
    assert patterns[0].regions == ("Texas",)


def test_repeated_claimant_four_claims_three_regions_capped():
    flagged, patterns = detect_repeated_claimants(_claimant_claims(4, ["Texas", "Ohio", "Utah"]))
    assert all(s.fraud_score == 0.9 for s in flagged)
    assert flagged[0].fraud_reason == "Repeated claimant (4 claims, 3 regions)"
    pattern = patterns[0]
    assert pattern.pattern_type is PatternType.REPEATED_CLAIMANT
    assert pattern.key == "Jane Roe"
    assert pattern.claim_count == 4
    assert pattern.regions == ("Texas", "Ohio", "Utah")
    assert pattern.total_amount == 4000.0
    assert pattern.time_span is None


def test_repeated_claimant_six_claims_two_regions():
    flagged, _ = detect_repeated_claimants(_claimant_claims(6, ["Texas", "Ohio"]))
    # 0.4 + 3 * 0.1 + 1 * 0.2 = 0.9
    assert flagged[0].fraud_score == pytest.approx(0.9)
    assert flagged[0].fraud_score <= 0.9


def test_repeated_claimant_exact_name_match_only():
    claims = _claimant_claims(2, ["Texas"], name="Jane Roe") + _claimant_claims(2, ["Texas"], name="jane roe")
    flagged, _ = detect_repeated_claimants(claims)
    assert flagged == []


# --- Abnormal loss patterns ---

def test_abnormal_high_amount():
    claims = [make_claim(claim_id=f"C{i}", claim_amount=1000.0) for i in range(9)]
    claims.append(make_claim(claim_id="BIG", claim_amount=50000.0))
    flagged, patterns = detect_abnormal_patterns(claims)
    assert [s.claim.claim_id for s in flagged] == ["BIG"]
    assert flagged[0].fraud_score == pytest.approx(0.3)
    assert flagged[0].fraud_reason == "Unusually high claim amount"
    assert patterns == []


@pytest.mark.parametrize("incident", [SATURDAY_NOON, SUNDAY_NOON])
def test_abnormal_weekend(incident):
    flagged, _ = detect_abnormal_patterns([make_claim(incident_date=incident)])
    assert flagged[0].fraud_score == pytest.approx(0.2)
    assert flagged[0].fraud_reason == "Claim filed on weekend"


@pytest.mark.parametrize("hour", [22, 23, 0, 3, 6])
def test_abnormal_late_night(hour):
    incident = WEEKDAY_NOON.replace(hour=hour)
    flagged, _ = detect_abnormal_patterns([make_claim(incident_date=incident)])
    assert flagged[0].fraud_score == pytest.approx(0.1)
    assert flagged[0].fraud_reason == "Claim filed late at night"


@pytest.mark.parametrize("hour", [7, 12, 21])
def test_abnormal_daytime_not_flagged(hour):
    flagged, _ = detect_abnormal_patterns([make_claim(incident_date=WEEKDAY_NOON.replace(hour=hour))])
    assert flagged == []


def test_abnormal_all_three_conditions():
    claims = [make_claim(claim_id=f"C{i}", claim_amount=1000.0) for i in range(9)]
    claims.append(make_claim(claim_id="ALL", claim_amount=50000.0,
                             incident_date=SATURDAY_NOON.replace(hour=23)))
    flagged, _ = detect_abnormal_patterns(claims)
    assert len(flagged) == 1
    assert flagged[0].fraud_score == 0.6
    assert flagged[0].fraud_reason == (
        "Unusually high claim amount, Claim filed on weekend, Claim filed late at night"
    )


def test_abnormal_single_claim_never_high_amount():
    # A claim cannot exceed three times an average that includes itself
    flagged, _ = detect_abnormal_patterns([make_claim(claim_amount=1_000_000.0)])
    assert flagged == []


def test_abnormal_empty_batch():
    assert detect_abnormal_patterns([]) == ([], [])


# --- Engine handle ---

def test_build_engine_registers_detectors_in_order():
    engine = build_engine()
    assert [d.detector_id for d in engine.detectors] == [
        DetectorId.DUPLICATE_VIN,
        DetectorId.REPEATED_CLAIMANT,
        DetectorId.ABNORMAL_LOSS_PATTERN,
    ]
    assert engine.threshold == 0.8
    assert engine.days == 90


def test_engine_is_immutable():
    engine = build_engine()
    with pytest.raises(dataclasses.FrozenInstanceError):
        engine.days = 30


@pytest.mark.parametrize("threshold, days", [(-0.1, 90), (1.5, 90), (0.8, -1)])
def test_build_engine_rejects_invalid_options(threshold, days):
    with pytest.raises(ValueError):
        build_engine(threshold=threshold, days=days)


def test_engine_status():
    status = engine_status(build_engine(days=30))
    assert status["initialized"] is True
    assert status["total_detectors"] == 3
    assert "repeated-claimant-detector" in status["detectors"]
    assert status["days"] == 30


# --- Merged run ---

def test_filter_window_excludes_stale_claims(sample_claims):
    batch = filter_window(sample_claims, 90, NOW)
    assert len(batch) == WINDOW_CLAIM_COUNT
    assert STALE_CLAIM not in {c.claim_id for c in batch}


def test_run_fraud_detection_end_to_end(sample_claims):
    report = run_fraud_detection(build_engine(), sample_claims, now=NOW)

    assert report.total_analyzed == WINDOW_CLAIM_COUNT
    # 3 duplicate VIN + 4 repeated claimant + 5 abnormal pattern entries
    assert len(report.suspicious_claims) == 12
    assert report.average_fraud_score == pytest.approx(7.7 / 12)

    by_type = {p.pattern_type: p for p in report.patterns}
    assert len(report.patterns) == 2
    assert by_type[PatternType.DUPLICATE_IDENTIFIER].key == DUP_VIN
    assert by_type[PatternType.DUPLICATE_IDENTIFIER].claim_count == 3
    assert by_type[PatternType.DUPLICATE_IDENTIFIER].time_span == 10
    assert by_type[PatternType.REPEATED_CLAIMANT].key == REPEAT_CLAIMANT
    assert by_type[PatternType.REPEATED_CLAIMANT].claim_count == 4


def test_run_fraud_detection_abnormal_scores(sample_claims):
    report = run_fraud_detection(build_engine(), sample_claims, now=NOW)
    scores = {
        s.claim.claim_id: s.fraud_score
        for s in report.suspicious_claims
        if s.detector_id is DetectorId.ABNORMAL_LOSS_PATTERN
    }
    assert scores == pytest.approx({
        WEEKEND_CLAIM: 0.2,
        NIGHT_CLAIM: 0.1,
        HIGH_AMOUNT_CLAIM: 0.3,
        ALL_FLAGS_CLAIM: 0.6,
        NO_VIN_CLAIM: 0.2,
    })


def test_run_fraud_detection_no_vin_claim_only_abnormal(sample_claims):
    report = run_fraud_detection(build_engine(), sample_claims, now=NOW)
    detectors = [s.detector_id for s in report.suspicious_claims if s.claim.claim_id == NO_VIN_CLAIM]
    assert detectors == [DetectorId.ABNORMAL_LOSS_PATTERN]


def test_run_fraud_detection_clean_claimant_not_flagged(sample_claims):
    report = run_fraud_detection(build_engine(), sample_claims, now=NOW)
    assert CLEAN_CLAIMANT not in {s.claim.claimant_name for s in report.suspicious_claims}


def test_run_fraud_detection_keeps_cross_detector_duplicates():
    # Same claim flagged by the duplicate VIN and abnormal pattern detectors
    claims = [
        make_claim(claim_id="A", vehicle_id="VIN1", incident_date=SATURDAY_NOON),
        make_claim(claim_id="B", vehicle_id="VIN1"),
    ]
    report = run_fraud_detection(build_engine(), claims, now=SATURDAY_NOON)
    entries = [s for s in report.suspicious_claims if s.claim.claim_id == "A"]
    assert [s.detector_id for s in entries] == [DetectorId.DUPLICATE_VIN, DetectorId.ABNORMAL_LOSS_PATTERN]
    assert [s.fraud_score for s in entries] == pytest.approx([0.7, 0.2])


def test_run_fraud_detection_threshold_does_not_filter(sample_claims):
    engine = build_engine()
    low = run_fraud_detection(engine, sample_claims, threshold=0.0, now=NOW)
    high = run_fraud_detection(engine, sample_claims, threshold=1.0, now=NOW)
    assert low.suspicious_claims == high.suspicious_claims
    assert high.threshold == 1.0
    assert any(s.fraud_score < 1.0 for s in high.suspicious_claims)


def test_run_fraud_detection_uses_engine_defaults(sample_claims):
    report = run_fraud_detection(build_engine(threshold=0.5, days=365), sample_claims, now=NOW)
    assert report.threshold == 0.5
    assert report.days == 365
    assert report.total_analyzed == WINDOW_CLAIM_COUNT + 1


def test_run_fraud_detection_days_override(sample_claims):
    # Only the last 14 days: Feb 16 onwards
    report = run_fraud_detection(build_engine(), sample_claims, days=14, now=NOW)
    assert report.total_analyzed == 4
    assert report.days == 14


def test_run_fraud_detection_rejects_invalid_threshold(sample_claims):
    with pytest.raises(ValueError):
        run_fraud_detection(build_engine(), sample_claims, threshold=2.0, now=NOW)


def test_run_fraud_detection_empty_batch():
    report = run_fraud_detection(build_engine(), [], now=NOW)
    assert report.total_analyzed == 0
    assert report.average_fraud_score == 0
    assert report.suspicious_claims == []
    assert report.patterns == []


def test_run_fraud_detection_is_deterministic(sample_rows):
    engine = build_engine()
    first = run_fraud_detection(engine, to_claims(sample_rows), now=NOW)
    second = run_fraud_detection(engine, to_claims(sample_rows), now=NOW)
    assert first == second


def test_scores_never_exceed_cap(sample_claims):
    report = run_fraud_detection(build_engine(), sample_claims, now=NOW)
    assert all(0 < s.fraud_score <= 0.9 for s in report.suspicious_claims)
