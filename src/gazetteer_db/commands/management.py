"""Database management commands — status, merge-duplicates, backfill-qids."""

from typing import Optional

import click

from ._common import _configure_logging, _is_verbose, _resolve_db_path


@click.command("status")
@click.option("--db", "db_path", type=click.Path(), help="Database path")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def db_status(db_path: Optional[str], verbose: bool):
    """
    Show database status and statistics.

    \b
    Examples:
        gazetteer-db status
        gazetteer-db status --db /path/to/gazetteer.db
    """
    _configure_logging(_is_verbose(verbose))

    from gazetteer_db.store import get_repository

    try:
        repository = get_repository(_resolve_db_path(db_path))
        stats = repository.get_stats()
        runs = repository.list_runs(limit=5)
    except Exception as e:
        raise click.ClickException(f"Failed to read database: {e}")

    click.echo("\nGazetteer Database Status")
    click.echo("=" * 40)
    click.echo(f"Schema version: {stats.schema_version}")
    click.echo(f"Database size: {stats.database_size_bytes / 1024 / 1024:.2f} MB")
    click.echo(f"Total places: {stats.total_places:,}")
    click.echo(f"Total names: {stats.total_names:,}")
    click.echo(f"External ids: {stats.total_external_ids:,}")
    click.echo(f"Hierarchy edges: {stats.total_relations:,}")
    click.echo(f"Hubs: {stats.total_hubs:,} ({stats.linked_hubs:,} linked)")

    if stats.places_by_kind:
        click.echo("\n=== Places by Kind ===")
        click.echo(f"{'Kind':<20} {'Records':>15}")
        click.echo("-" * 36)
        for kind, count in sorted(stats.places_by_kind.items(), key=lambda x: -x[1]):
            click.echo(f"{kind:<20} {count:>15,}")

    if runs:
        click.echo("\n=== Recent Ingestion Runs ===")
        for run in runs:
            click.echo(
                f"#{run.id:<5} {run.source:<12} {run.source_version or '-':<12} {run.status:<10} "
                f"created={run.places_created:,} updated={run.places_updated:,}"
            )


def _format_coords(lat: Optional[float], lng: Optional[float]) -> str:
    if lat is None or lng is None:
        return "(no coordinates)"
    return f"({lat:.4f}, {lng:.4f})"


@click.command("merge-duplicates")
@click.option("--fix", is_flag=True, help="Apply the merges (default: preview only)")
@click.option("--dry-run", is_flag=True, help="Preview only, even when --fix is given")
@click.option("--country", type=str, default=None, help="Only places in this country (ISO alpha-2)")
@click.option("--kind", type=str, default=None, help="Only places of this kind (country/region/city/topic)")
@click.option("--role", type=str, default=None, help="Only places whose extra.role matches (e.g. capital)")
@click.option("--proximity", type=float, default=None, help="Max distance in degrees between duplicates (default: 0.05)")
@click.option("--metric", type=click.Choice(["planar", "haversine"]), default="planar", help="Distance metric")
@click.option("--db", "db_path", type=click.Path(), help="Database path")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def db_merge_duplicates(
    fix: bool,
    dry_run: bool,
    country: Optional[str],
    kind: Optional[str],
    role: Optional[str],
    proximity: Optional[float],
    metric: str,
    db_path: Optional[str],
    verbose: bool,
):
    """
    Find places that are the same real-world place and merge them.

    Places are grouped by country, kind and any shared normalized name.
    Groups whose coordinates lie further apart than --proximity are left
    alone. The best-scoring place survives (coordinates, QID, population,
    external ids, then oldest id); names, relations and ids move onto it.

    \b
    Examples:
        gazetteer-db merge-duplicates --kind city --country FR
        gazetteer-db merge-duplicates --kind city --role capital --fix
        gazetteer-db merge-duplicates --proximity 0.02 --metric haversine
    """
    _configure_logging(_is_verbose(verbose))

    from gazetteer_db.distance import get_metric
    from gazetteer_db.merge import DEFAULT_PROXIMITY_THRESHOLD, DuplicateMergeEngine, validate_merge_options
    from gazetteer_db.models import MergeOptions
    from gazetteer_db.store import get_repository

    apply = fix and not dry_run
    try:
        options = validate_merge_options(
            MergeOptions(
                country=country,
                kind=kind,
                role=role,
                proximity=proximity if proximity is not None else DEFAULT_PROXIMITY_THRESHOLD,
            )
        )
        engine = DuplicateMergeEngine(get_repository(_resolve_db_path(db_path)), metric=get_metric(metric))
        preview = engine.run(options, apply=False)
    except Exception as e:
        raise click.ClickException(f"Duplicate detection failed: {e}")

    click.echo("\nDuplicate Merge Preview")
    click.echo("=" * 40)
    for group in preview.groups:
        distance = f", max distance {group.max_distance:.4f}" if group.max_distance is not None else ""
        click.echo(f"[{group.country_code or '--'}] {group.kind} \"{group.example_name}\"{distance}")
        survivor = group.survivor
        click.echo(
            f"  keep   #{survivor.place_id:<8} score {survivor.score:<6} "
            f"{_format_coords(survivor.lat, survivor.lng)} {survivor.wikidata_qid or ''}"
        )
        for loser in group.losers:
            click.echo(
                f"  delete #{loser.place_id:<8} score {loser.score:<6} "
                f"{_format_coords(loser.lat, loser.lng)} {loser.wikidata_qid or ''}"
            )
    click.echo(f"\nGroups found: {preview.groups_found:,}")
    click.echo(f"Places that would be deleted: {preview.would_delete:,}")

    if not apply:
        click.echo("\nDry run: no changes written. Re-run with --fix to apply.", err=True)
        return

    try:
        report = engine.run(options, apply=True)
    except Exception as e:
        raise click.ClickException(f"Merge failed: {e}")

    click.echo("\nMerge Results")
    click.echo("=" * 40)
    click.echo(f"Passes: {report.passes}")
    click.echo(f"Groups merged: {report.merged:,} (previewed {preview.groups_found:,})")
    click.echo(f"Places deleted: {report.deleted:,} (previewed {preview.would_delete:,})")
    click.echo(f"Names moved: {sum(o.names_moved for o in report.outcomes):,}")
    minted = [o.minted_external_id for o in report.outcomes if o.minted_external_id]
    if minted:
        click.echo(f"Capital ids minted: {len(minted):,}")
    if report.failures:
        click.echo(f"Failures: {len(report.failures):,}")
        for failure in report.failures:
            click.echo(f"  #{failure.survivor_id} <- {failure.loser_ids}: {failure.error}")


@click.command("backfill-qids")
@click.option("--fix", is_flag=True, help="Write the QIDs (default: preview only)")
@click.option("--db", "db_path", type=click.Path(), help="Database path")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def db_backfill_qids(fix: bool, db_path: Optional[str], verbose: bool):
    """
    Fill places.wikidata_qid from wikidata external ids.

    \b
    Examples:
        gazetteer-db backfill-qids
        gazetteer-db backfill-qids --fix
    """
    _configure_logging(_is_verbose(verbose))

    from gazetteer_db.maintenance import backfill_wikidata_qids
    from gazetteer_db.store import get_repository

    try:
        result = backfill_wikidata_qids(get_repository(_resolve_db_path(db_path)), apply=fix)
    except Exception as e:
        raise click.ClickException(f"Backfill failed: {e}")

    click.echo("\nWikidata QID Backfill")
    click.echo("=" * 40)
    for place_id, qid in result["preview"][:20]:
        click.echo(f"  #{place_id:<8} {qid}")
    if result["candidates"] > 20:
        click.echo(f"  ... (showing first 20 of {result['candidates']:,})")
    click.echo(f"Places that would be updated: {result['candidates']:,}")
    click.echo(f"Places updated: {result['updated']:,}")
    if not fix:
        click.echo("\nDry run: no changes written. Re-run with --fix to apply.", err=True)
