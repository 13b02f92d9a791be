from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import click

from data.fetch import RAW_DATA_DIR, fetch_claims, find_dataset
from data.sample import write_sample_dataset
from profiler.dossier import build_dossier
from reports.export import ranked, write_response_json, write_results_csv
from reports.pdf import generate_dossier_pdf, generate_report_pdf
from scanner.fraud import (
    DEFAULT_DAYS,
    DEFAULT_THRESHOLD,
    build_engine,
    engine_status,
    run_fraud_detection,
)

OUTPUT_DIR = Path(__file__).parent / "output"
ENV_PREFIX = "CLAIMS_FRAUD"


def _check_tz(ctx, param, value: str | None) -> str | None:
    if value is None:
        return None
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise click.BadParameter(f"unknown timezone {value!r}") from exc
    return value


threshold_option = click.option(
    "--threshold", default=DEFAULT_THRESHOLD, show_default=True, type=click.FloatRange(0.0, 1.0),
    help="Fraud score threshold reported with the results (advisory, does not filter)")
days_option = click.option(
    "--days", default=DEFAULT_DAYS, show_default=True, type=click.IntRange(min=0),
    help="Analyze claims with incidents in the last N days")
data_path_option = click.option(
    "--data-path", default=None, type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to claims dataset (auto-detected if not specified)")
tz_option = click.option(
    "--tz", default=None, callback=_check_tz,
    help="IANA timezone for weekend/late-night checks on timezone-aware dates (default: system local)")


@click.group()
def cli():
    """Claims Fraud Heuristics: flag suspicious insurance claims and build claimant dossiers."""
    pass


@cli.command()
@threshold_option
@days_option
@data_path_option
@tz_option
@click.option("--top", default=50, type=int, help="Number of top results to display")
@click.option("--output-dir", default=OUTPUT_DIR, type=click.Path(file_okay=False, path_type=Path),
              help="Directory for result files")
@click.option("--json", "as_json", is_flag=True, help="Also write the response body as JSON")
@click.option("--pdf", is_flag=True, help="Also render a PDF report")
def detect(threshold: float, days: int, data_path: Path | None, tz: str | None, top: int,
           output_dir: Path, as_json: bool, pdf: bool):
    """Run the fraud heuristics over the claims dataset."""
    filepath = data_path or find_dataset()
    engine = build_engine(threshold=threshold, days=days)

    claims = fetch_claims(filepath, tz)
    report = run_fraud_detection(engine, claims)

    csv_path = write_results_csv(report, output_dir / "fraud_results.csv")
    click.echo(f"\nFull results saved to {csv_path}")
    if as_json:
        json_path = write_response_json(report, output_dir / "fraud_results.json")
        click.echo(f"Response body saved to {json_path}")
    if pdf:
        pdf_path = generate_report_pdf(report, output_dir=output_dir)
        click.echo(f"PDF report saved to {pdf_path}")

    click.echo(f"\nClaims analyzed: {report.total_analyzed:,} | "
               f"Average fraud score: {report.average_fraud_score:.0%} | "
               f"Threshold: {report.threshold:.2f} (advisory)")

    entries = ranked(report)
    click.echo(f"\nTop {min(top, len(entries))} suspicious claims:")
    click.echo("-" * 80)
    for i, entry in enumerate(entries[:top], 1):
        claim = entry.claim
        click.echo(f"  {i:3d}. {claim.claim_id} | {claim.claimant_name} | "
                   f"Score: {entry.fraud_score:.0%} | {entry.fraud_reason}")

    if report.patterns:
        click.echo(f"\nPatterns ({len(report.patterns)}):")
        for pattern in report.patterns:
            click.echo(f"  - {pattern.pattern_type.value}: {pattern.key} "
                       f"({pattern.claim_count} claims, ${pattern.total_amount:,.2f})")

    if entries:
        click.echo("\nTo investigate a claimant, run: python cli.py profile \"<NAME>\"")


@cli.command()
@click.argument("claimant")
@threshold_option
@days_option
@data_path_option
@tz_option
@click.option("--output-dir", default=OUTPUT_DIR / "dossiers",
              type=click.Path(file_okay=False, path_type=Path),
              help="Directory for the dossier PDF")
def profile(claimant: str, threshold: float, days: int, data_path: Path | None, tz: str | None,
            output_dir: Path):
    """Build an evidence dossier for a claimant's claims within the --days window."""
    filepath = data_path or find_dataset()
    engine = build_engine(threshold=threshold, days=days)

    report = run_fraud_detection(engine, fetch_claims(filepath, tz))
    dossier = build_dossier(filepath, claimant, report, tz, days=days)

    pdf_path = generate_dossier_pdf(dossier, output_dir=output_dir)
    click.echo(f"\nDossier generated: {pdf_path}")

    click.echo(f"\n{'=' * 60}")
    click.echo(f"Claimant: {claimant}")

    s = dossier.claims_summary
    click.echo(f"Total Claims: {s['total_claims']:,}")
    click.echo(f"Total Claimed: ${s['total_amount']:,.2f}")
    click.echo(f"Date Range: {s['date_range_start']} to {s['date_range_end']}")
    click.echo(f"Regions: {', '.join(s['regions'])}")

    if dossier.flags:
        click.echo(f"\nFlags ({len(dossier.flags)}):")
        for flag in dossier.flags:
            click.echo(f"  - [{flag.fraud_score:.0%}] {flag.claim.claim_id}: {flag.fraud_reason}")

    pc = dossier.peer_comparison
    if "claimant_percentile" in pc:
        click.echo(f"\nPeer Ranking: {pc['claimant_percentile']}th percentile by total claimed")

    click.echo(f"{'=' * 60}")


@cli.command()
def status():
    """Show the configured detectors."""
    info = engine_status(build_engine())
    click.echo(f"Detectors ({info['total_detectors']}):")
    for detector_id in info["detectors"]:
        click.echo(f"  - {detector_id}: {info['descriptions'][detector_id]}")
    click.echo(f"Default threshold: {info['threshold']} (advisory) | Default window: {info['days']} days")


@cli.command("generate-sample")
@click.option("--count", default=1000, show_default=True, type=click.IntRange(min=1),
              help="Number of claims to generate")
@click.option("--seed", default=42, show_default=True, type=int, help="Random seed")
@click.option("--output", default=RAW_DATA_DIR / "sample_claims.csv",
              type=click.Path(dir_okay=False, path_type=Path),
              help="Output file (.csv, .parquet, .ndjson or .json)")
def generate_sample(count: int, seed: int, output: Path):
    """Write a synthetic claims dataset for local runs."""
    click.echo(f"Generating {count:,} synthetic claims...")
    write_sample_dataset(output, count=count, seed=seed)
    click.echo("\nRun 'python cli.py detect' to analyze it.")


def main():
    cli(auto_envvar_prefix=ENV_PREFIX)


if __name__ == "__main__":
    main()
