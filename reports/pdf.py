from datetime import datetime
from pathlib import Path
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import (
    Paragraph,
    SimpleDocTemplate,
    Spacer,
    Table,
    TableStyle,
)

from data.models import Dossier, FraudReport, Pattern, PatternType, SuspiciousClaim
from reports.export import ranked

OUTPUT_DIR = Path(__file__).parent.parent / "output" / "reports"
DOSSIER_DIR = OUTPUT_DIR.parent / "dossiers"

SEVERITY_COLORS = {
    "high": colors.Color(0.9, 0.2, 0.2),
    "medium": colors.Color(0.9, 0.6, 0.1),
    "low": colors.Color(0.9, 0.8, 0.2),
}

# Suspicious-claims table rows rendered in the run report
MAX_REPORT_ROWS = 200

DISCLAIMER = (
    "This report is generated for informational purposes to support claims investigation. "
    "Scores are rule-based heuristics, not calibrated probabilities. "
    "Flagged claims warrant further review and do not constitute proof of fraud."
)

KEY_VALUE_STYLE = TableStyle([
    ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
    ("FONTSIZE", (0, 0), (-1, -1), 10),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 4),
    ("TOPPADDING", (0, 0), (-1, -1), 4),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
])

HEADER_ROW_STYLE = TableStyle([
    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
    ("BACKGROUND", (0, 0), (-1, 0), colors.Color(0.9, 0.9, 0.95)),
    ("FONTSIZE", (0, 0), (-1, -1), 8),
    ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
    ("TOPPADDING", (0, 0), (-1, -1), 3),
    ("VALIGN", (0, 0), (-1, -1), "TOP"),
])


def _severity(score: float) -> str:
    return "high" if score >= 0.7 else "medium" if score >= 0.4 else "low"


def _styles() -> dict[str, ParagraphStyle]:
    styles = getSampleStyleSheet()
    body_style = styles["BodyText"]
    small_style = ParagraphStyle("Small", parent=body_style, fontSize=8, textColor=colors.grey)
    return {
        "title": ParagraphStyle("CustomTitle", parent=styles["Title"], fontSize=18, spaceAfter=12),
        "heading": ParagraphStyle("CustomHeading", parent=styles["Heading2"], fontSize=14,
                                  spaceBefore=16, spaceAfter=8,
                                  textColor=colors.Color(0.2, 0.2, 0.4)),
        "body": body_style,
        "small": small_style,
        "cell": ParagraphStyle("Cell", parent=body_style, fontSize=8, leading=10),
        "disclaimer": ParagraphStyle("Disclaimer", parent=small_style, fontSize=7,
                                     textColor=colors.grey),
    }


def _build(output_path: Path, elements: list) -> Path:
    doc = SimpleDocTemplate(str(output_path), pagesize=letter,
                            leftMargin=0.75 * inch, rightMargin=0.75 * inch,
                            topMargin=0.75 * inch, bottomMargin=0.75 * inch)
    doc.build(elements)
    return output_path


def _score_paragraph(label: str, score: float, s: dict) -> Paragraph:
    severity = _severity(score)
    return Paragraph(
        f"{label}: <b>{score:.0%}</b> ({severity.upper()})",
        ParagraphStyle("Score", parent=s["body"], fontSize=12,
                       textColor=SEVERITY_COLORS[severity]),
    )


def _patterns_table(patterns: list[Pattern], s: dict) -> Table:
    header = [["Type", "Key", "Claims", "Total Amount", "Detail"]]
    rows = []
    for p in patterns:
        if p.pattern_type is PatternType.DUPLICATE_IDENTIFIER:
            detail = f"{p.time_span} day span"
        else:
            detail = ", ".join(p.regions)
        rows.append([
            p.pattern_type.value.replace("_", " ").title(),
            Paragraph(escape(p.key), s["cell"]),
            str(p.claim_count),
            f"${p.total_amount:,.2f}",
            Paragraph(escape(detail), s["cell"]),
        ])
    table = Table(header + rows,
                  colWidths=[1.4 * inch, 1.6 * inch, 0.6 * inch, 1.2 * inch, 2.2 * inch])
    table.setStyle(HEADER_ROW_STYLE)
    return table


def _suspicious_table(entries: list[SuspiciousClaim], s: dict) -> Table:
    header = [["Claim", "Claimant", "Amount", "Incident", "Score", "Reason"]]
    rows = [
        [
            e.claim.claim_id,
            Paragraph(escape(e.claim.claimant_name), s["cell"]),
            f"${e.claim.claim_amount:,.2f}",
            e.claim.incident_date.strftime("%Y-%m-%d %H:%M"),
            f"{e.fraud_score:.0%}",
            Paragraph(escape(e.fraud_reason), s["cell"]),
        ]
        for e in entries
    ]
    table = Table(header + rows,
                  colWidths=[0.9 * inch, 1.2 * inch, 0.9 * inch, 1.1 * inch, 0.5 * inch, 2.4 * inch],
                  repeatRows=1)
    table.setStyle(HEADER_ROW_STYLE)
    return table


def generate_report_pdf(report: FraudReport, output_dir: Path | None = None) -> Path:
    """Generate a PDF summary of a fraud detection run."""
    if output_dir is None:
        output_dir = OUTPUT_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    output_path = output_dir / f"fraud_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}.pdf"
    s = _styles()
    elements = []

    # --- Title ---
    elements.append(Paragraph("Claims Fraud Detection Report", s["title"]))
    elements.append(Paragraph(f"Generated: {datetime.now().strftime('%B %d, %Y %I:%M %p')}", s["small"]))
    elements.append(Spacer(1, 12))

    # --- Run Summary ---
    elements.append(Paragraph("Run Summary", s["heading"]))
    summary_table = Table([
        ["Analysis Period", f"{report.days} days"],
        ["Claims Analyzed", f"{report.total_analyzed:,}"],
        ["Suspicious Entries", f"{len(report.suspicious_claims):,}"],
        ["Patterns", f"{len(report.patterns):,}"],
        ["Threshold (advisory)", f"{report.threshold:.2f}"],
    ], colWidths=[2 * inch, 4.5 * inch])
    summary_table.setStyle(KEY_VALUE_STYLE)
    elements.append(summary_table)
    elements.append(Spacer(1, 12))
    elements.append(_score_paragraph("Average Fraud Score", report.average_fraud_score, s))
    elements.append(Spacer(1, 12))

    # --- Patterns ---
    if report.patterns:
        elements.append(Paragraph("Detected Patterns", s["heading"]))
        elements.append(_patterns_table(report.patterns, s))
        elements.append(Spacer(1, 8))

    # --- Suspicious Claims ---
    if report.suspicious_claims:
        entries = ranked(report)
        elements.append(Paragraph("Suspicious Claims", s["heading"]))
        if len(entries) > MAX_REPORT_ROWS:
            elements.append(Paragraph(
                f"Showing the top {MAX_REPORT_ROWS} of {len(entries):,} entries by score.", s["small"]))
        elements.append(_suspicious_table(entries[:MAX_REPORT_ROWS], s))
    else:
        elements.append(Paragraph("No suspicious claims found.", s["body"]))

    # --- Disclaimer ---
    elements.append(Spacer(1, 24))
    elements.append(Paragraph(DISCLAIMER, s["disclaimer"]))

    return _build(output_path, elements)


def generate_dossier_pdf(dossier: Dossier, output_dir: Path | None = None) -> Path:
    """Generate a PDF dossier for one claimant."""
    if output_dir is None:
        output_dir = DOSSIER_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    slug = "".join(ch if ch.isalnum() else "_" for ch in dossier.claimant_name).strip("_") or "claimant"
    output_path = output_dir / f"dossier_{slug}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.pdf"
    s = _styles()
    elements = []

    # --- Title ---
    elements.append(Paragraph("Claimant Investigation Dossier", s["title"]))
    elements.append(Paragraph(f"Generated: {datetime.now().strftime('%B %d, %Y %I:%M %p')}", s["small"]))
    elements.append(Spacer(1, 12))
    elements.append(Paragraph(f"Claimant: <b>{escape(dossier.claimant_name)}</b>", s["body"]))
    elements.append(Spacer(1, 8))

    # --- Risk Score ---
    if dossier.flags:
        top_score = max(f.fraud_score for f in dossier.flags)
        elements.append(_score_paragraph("Highest Fraud Score", top_score, s))
        elements.append(Spacer(1, 12))

        elements.append(Paragraph("Flags", s["heading"]))
        for i, flag in enumerate(dossier.flags, 1):
            elements.append(Paragraph(
                f"<b>{i}. [{_severity(flag.fraud_score).upper()}] "
                f"{flag.detector_id.value.replace('-', ' ').title()}</b>",
                s["body"],
            ))
            elements.append(Paragraph(
                f"&nbsp;&nbsp;&nbsp;&nbsp;{flag.claim.claim_id}: {escape(flag.fraud_reason)}", s["body"]))
            elements.append(Spacer(1, 4))
        elements.append(Spacer(1, 8))

    if dossier.patterns:
        elements.append(Paragraph("Related Patterns", s["heading"]))
        elements.append(_patterns_table(dossier.patterns, s))
        elements.append(Spacer(1, 8))

    # --- Claims Summary ---
    summary = dossier.claims_summary
    if summary:
        elements.append(Paragraph("Claims Summary", s["heading"]))
        summary_data = []
        if "total_claims" in summary:
            summary_data.append(["Total Claims", f"{summary['total_claims']:,}"])
        if "total_amount" in summary:
            summary_data.append(["Total Claimed", f"${summary['total_amount']:,.2f}"])
        if "avg_amount" in summary:
            summary_data.append(["Avg per Claim", f"${summary['avg_amount']:,.2f}"])
        if "max_single_claim" in summary:
            summary_data.append(["Max Single Claim", f"${summary['max_single_claim']:,.2f}"])
        if "date_range_start" in summary:
            summary_data.append(["Date Range", f"{summary['date_range_start']} to {summary['date_range_end']}"])
        if summary.get("regions"):
            summary_data.append(["Regions", Paragraph(escape(", ".join(summary["regions"])), s["cell"])])

        if summary_data:
            summary_table = Table(summary_data, colWidths=[2 * inch, 4.5 * inch])
            summary_table.setStyle(KEY_VALUE_STYLE)
            elements.append(summary_table)
            elements.append(Spacer(1, 8))

        if summary.get("claim_types"):
            elements.append(Paragraph("Claims by Type", s["heading"]))
            type_rows = [
                [t["claim_type"], str(t["count"]), f"${t['total_amount']:,.2f}"]
                for t in summary["claim_types"]
            ]
            type_table = Table([["Claim Type", "Count", "Total Amount"]] + type_rows,
                               colWidths=[2.5 * inch, 1.5 * inch, 2.5 * inch])
            type_table.setStyle(HEADER_ROW_STYLE)
            elements.append(type_table)
            elements.append(Spacer(1, 8))

    # --- Peer Comparison ---
    pc = dossier.peer_comparison
    if pc and "note" not in pc:
        elements.append(Paragraph("Peer Comparison", s["heading"]))
        peer_data = [
            ["Claimants in Dataset", f"{pc.get('peer_count', 0):,}"],
            ["Claimant Total", f"${pc.get('claimant_total_amount', 0):,.2f}"],
            ["Peer Mean Total", f"${pc.get('peer_mean_amount', 0):,.2f}"],
            ["Peer Median Total", f"${pc.get('peer_median_amount', 0):,.2f}"],
            ["Claimant Percentile", f"{pc.get('claimant_percentile', 'N/A')}th"],
        ]
        if "zscore" in pc:
            peer_data.append(["Z-Score", f"{pc['zscore']}"])
        peer_table = Table(peer_data, colWidths=[2 * inch, 4.5 * inch])
        peer_table.setStyle(KEY_VALUE_STYLE)
        elements.append(peer_table)
        elements.append(Spacer(1, 8))

    # --- Monthly Timeline ---
    if dossier.timeline:
        elements.append(Paragraph("Monthly Claims Timeline", s["heading"]))
        timeline_rows = [
            [t["month"], str(t["claim_count"]), f"${t['total_amount']:,.2f}"]
            for t in dossier.timeline
        ]
        timeline_table = Table([["Month", "Claims", "Total Amount"]] + timeline_rows,
                               colWidths=[2.5 * inch, 1.5 * inch, 2.5 * inch])
        timeline_table.setStyle(HEADER_ROW_STYLE)
        elements.append(timeline_table)

    # --- Disclaimer ---
    elements.append(Spacer(1, 24))
    elements.append(Paragraph(DISCLAIMER, s["disclaimer"]))

    return _build(output_path, elements)
