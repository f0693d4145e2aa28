"""Database import commands — countries from pycountry."""

from typing import Optional

import click

from ._common import _configure_logging, _is_verbose, _resolve_db_path


@click.command("import-countries")
@click.option("--force", is_flag=True, help="Re-import even if this pycountry version was already imported")
@click.option("--limit", type=int, default=None, help="Import at most N countries")
@click.option("--db", "db_path", type=click.Path(), help="Database path")
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
def db_import_countries(force: bool, limit: Optional[int], db_path: Optional[str], verbose: bool):
    """
    Import ISO 3166 countries from pycountry.

    The import is recorded as an ingestion run keyed by the pycountry
    version; a completed run for the same version is skipped unless --force.

    \b
    Examples:
        gazetteer-db import-countries
        gazetteer-db import-countries --force
    """
    _configure_logging(_is_verbose(verbose))

    from gazetteer_db.ingest import ingest_countries_from_pycountry
    from gazetteer_db.store import get_repository

    repository = get_repository(_resolve_db_path(db_path))

    try:
        summary = ingest_countries_from_pycountry(repository, force=force, limit=limit)
    except Exception as e:
        raise click.ClickException(f"Import failed: {e}")

    if summary.skipped:
        last = summary.last_run
        click.echo(
            f"Skipped: pycountry {summary.source_version} already imported "
            f"(run {last.id} completed {last.completed_at}). Use --force to re-import."
        )
        return

    stats = summary.stats
    click.echo("\nCountry Import Results")
    click.echo("=" * 40)
    click.echo(f"Run id: {summary.run_id}")
    click.echo(f"Source version: pycountry {summary.source_version}")
    click.echo(f"Countries processed: {stats.countries_processed:,}")
    click.echo(f"Places created: {stats.places_created:,}")
    click.echo(f"Places updated: {stats.places_updated:,}")
    click.echo(f"Names added: {stats.names_added:,}")
