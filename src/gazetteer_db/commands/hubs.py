"""Hub discovery commands — predict-hubs, hub-gaps, match-hubs, validate-hubs."""

import json
from pathlib import Path
from typing import Optional

import click

from ._common import _configure_logging, _is_verbose, _resolve_db_path

_KINDS = ["country", "region", "city", "topic"]


def _print_analysis(label: str, analysis) -> None:
    click.echo(
        f"{label:<8} {analysis.coverage_percent:>3}% covered  "
        f"(seeded {analysis.seeded:,}, visited {analysis.visited:,}, "
        f"missing {analysis.missing:,} of {analysis.total_eligible:,})"
    )


@click.command("predict-hubs")
@click.argument("domain")
@click.argument("name")
@click.option("--code", type=str, default=None, help="Country or admin code (e.g. FR)")
@click.option("--kind", type=click.Choice(_KINDS), default="country", help="Place kind")
@click.option("--limit", type=int, default=20, help="Number of predictions to show")
@click.option("--db", "db_path", type=click.Path(), help="Database path")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def db_predict_hubs(
    domain: str,
    name: str,
    code: Optional[str],
    kind: str,
    limit: int,
    db_path: Optional[str],
    verbose: bool,
):
    """
    Predict hub URLs for a place on a domain.

    Paths already used by linked hubs on the domain rank first, followed by
    common news-site layouts.

    \b
    Examples:
        gazetteer-db predict-hubs bbc.co.uk France --code FR
        gazetteer-db predict-hubs theguardian.com "New York" --kind city
    """
    _configure_logging(_is_verbose(verbose))

    from gazetteer_db.hubs.analyzer import get_hub_gap_analyzer
    from gazetteer_db.store import get_repository

    try:
        analyzer = get_hub_gap_analyzer(kind, get_repository(_resolve_db_path(db_path)))
        predictions = analyzer.predict_hub_urls(domain, name, code, limit=limit)
    except Exception as e:
        raise click.ClickException(f"Prediction failed: {e}")

    click.echo(f"\nHub predictions for {name} on {domain}")
    click.echo("=" * 40)
    for prediction in predictions:
        click.echo(f"{prediction.confidence:.2f}  {prediction.url}  [{prediction.pattern}]")


@click.command("hub-gaps")
@click.argument("domain")
@click.option("--kind", type=click.Choice(_KINDS), default="country", help="Place kind")
@click.option("--show-missing", type=int, default=0, help="List the N most important missing places")
@click.option("--db", "db_path", type=click.Path(), help="Database path")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def db_hub_gaps(domain: str, kind: str, show_missing: int, db_path: Optional[str], verbose: bool):
    """
    Show hub coverage of one place kind on a domain.

    \b
    Examples:
        gazetteer-db hub-gaps bbc.co.uk
        gazetteer-db hub-gaps bbc.co.uk --kind city --show-missing 20
    """
    _configure_logging(_is_verbose(verbose))

    from gazetteer_db.hubs.analyzer import get_hub_gap_analyzer
    from gazetteer_db.store import get_repository

    try:
        analyzer = get_hub_gap_analyzer(kind, get_repository(_resolve_db_path(db_path)))
        analysis = analyzer.analyze_gaps(domain)
        missing = analyzer.missing_entities(domain)[:show_missing] if show_missing > 0 else []
    except Exception as e:
        raise click.ClickException(f"Gap analysis failed: {e}")

    click.echo(f"\nHub Coverage: {analysis.domain} ({analysis.kind})")
    click.echo("=" * 40)
    click.echo(f"Eligible: {analysis.total_eligible:,}")
    click.echo(f"Seeded: {analysis.seeded:,}")
    click.echo(f"Visited: {analysis.visited:,}")
    click.echo(f"Missing: {analysis.missing:,}")
    click.echo(f"Coverage: {analysis.coverage_percent}%")
    click.echo(f"Complete: {'yes' if analysis.is_complete else 'no'}")

    if missing:
        click.echo(f"\n=== Top {len(missing)} Missing ===")
        for entity in missing:
            code = f" ({entity.code})" if entity.code else ""
            click.echo(f"  {entity.name}{code}")


@click.command("match-hubs")
@click.argument("domain")
@click.option("--fix", is_flag=True, help="Link the matched hubs (default: preview only)")
@click.option("--min-nav-links", type=int, default=12, help="Minimum navigation links for a hub")
@click.option("--min-article-links", type=int, default=0, help="Article-link fallback threshold (0 disables)")
@click.option("--db", "db_path", type=click.Path(), help="Database path")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def db_match_hubs(
    domain: str,
    fix: bool,
    min_nav_links: int,
    min_article_links: int,
    db_path: Optional[str],
    verbose: bool,
):
    """
    Link known, unlinked hub pages on a domain to missing countries.

    \b
    Examples:
        gazetteer-db match-hubs bbc.co.uk
        gazetteer-db match-hubs bbc.co.uk --fix --min-nav-links 20
    """
    _configure_logging(_is_verbose(verbose))

    from gazetteer_db.hubs.matcher import HubMatcher
    from gazetteer_db.models import MatchOptions
    from gazetteer_db.store import get_repository

    try:
        matcher = HubMatcher(get_repository(_resolve_db_path(db_path)))
        report = matcher.match_domain(
            domain,
            MatchOptions(dry_run=not fix, min_nav_links=min_nav_links, min_article_links=min_article_links),
        )
    except Exception as e:
        raise click.ClickException(f"Hub matching failed: {e}")

    click.echo(f"\nHub Matches: {report.domain}{' (dry run)' if report.dry_run else ''}")
    click.echo("=" * 40)
    for action in report.actions:
        click.echo(f"  {action.place_name:<30} {action.url}  nav={action.nav_links_count}")
    click.echo(f"{'Would link' if report.dry_run else 'Linked'}: {len(report.actions):,}")
    click.echo(f"Skipped: {len(report.skipped):,}")
    if _is_verbose(verbose):
        for item in report.skipped:
            click.echo(f"  - {item.url or item.place_name}: {item.reason}")
    _print_analysis("Before", report.analysis_before)
    _print_analysis("After", report.analysis_after)

    if report.dry_run:
        click.echo("\nDry run: no changes written. Re-run with --fix to apply.", err=True)


def _read_fetched(path: Path) -> list:
    from gazetteer_db.models import FetchedCandidate

    fetched = []
    with open(path, encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                fetched.append(FetchedCandidate.model_validate(json.loads(line)))
            except ValueError as e:
                raise click.ClickException(f"{path}:{line_no}: invalid candidate: {e}")
    return fetched


@click.command("validate-hubs")
@click.argument("domain")
@click.argument("evidence_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--fix", is_flag=True, help="Persist hubs, audit entries and the determination")
@click.option("--run-id", type=str, default=None, help="Crawl/run identifier stored on audit rows")
@click.option("--min-nav-links", type=int, default=12, help="Minimum navigation links for a hub")
@click.option("--min-article-links", type=int, default=0, help="Article-link fallback threshold (0 disables)")
@click.option("--db", "db_path", type=click.Path(), help="Database path")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def db_validate_hubs(
    domain: str,
    evidence_file: Path,
    fix: bool,
    run_id: Optional[str],
    min_nav_links: int,
    min_article_links: int,
    db_path: Optional[str],
    verbose: bool,
):
    """
    Validate fetched hub candidates and persist the ones that pass.

    EVIDENCE_FILE is JSON lines, one fetched candidate per line, e.g.
    {"url": "https://bbc.co.uk/world/france", "place_kind": "country",
    "place_slug": "france", "http_status": 200,
    "evidence": {"nav_links_count": 40, "article_links_count": 12}}

    \b
    Examples:
        gazetteer-db validate-hubs bbc.co.uk fetched.jsonl
        gazetteer-db validate-hubs bbc.co.uk fetched.jsonl --fix --run-id crawl-42
    """
    verbose = _is_verbose(verbose)
    _configure_logging(verbose)

    from gazetteer_db.hubs.pipeline import HubValidationPipeline
    from gazetteer_db.models import ValidationThresholds
    from gazetteer_db.store import get_repository

    fetched = _read_fetched(evidence_file)

    try:
        pipeline = HubValidationPipeline(get_repository(_resolve_db_path(db_path)), verbose=verbose)
        summary = pipeline.process_domain(
            domain,
            fetched,
            ValidationThresholds(min_nav_links=min_nav_links, min_article_links=min_article_links),
            apply=fix,
            run_id=run_id,
        )
    except Exception as e:
        raise click.ClickException(f"Hub validation failed: {e}")

    persisted = summary.persistence
    click.echo(f"\nHub Validation: {summary.domain}")
    click.echo("=" * 40)
    click.echo(f"Candidates read: {len(fetched):,}")
    click.echo(f"Accepted: {summary.accepted:,}")
    click.echo(f"Rejected: {summary.rejected:,}")
    if summary.rate_limited:
        click.echo("Rate limited: processing stopped early")
    if fix:
        click.echo(f"Hubs inserted: {persisted.inserted_hubs:,}")
        click.echo(f"Hubs updated: {persisted.updated_hubs:,}")
        click.echo(f"Hubs unchanged: {persisted.unchanged_hubs:,}")
        for outcome in persisted.diff_preview:
            click.echo(f"  {outcome.action:<9} {outcome.url}")
            for change in outcome.changes:
                click.echo(f"      {change.label}: {change.before!r} -> {change.after!r}")
        if summary.determination:
            click.echo(f"Determination: {summary.determination.determination} ({summary.determination.reason})")
    else:
        click.echo("\nDry run: no changes written. Re-run with --fix to apply.", err=True)
