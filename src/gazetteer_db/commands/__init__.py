"""CLI commands package — main click group and command registration."""

import click

from gazetteer_db import __version__


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """
    Manage the gazetteer database and hub discovery.

    \b
    Commands:
        status             Show database status
        import-countries   Import countries from pycountry (tracked run)
        merge-duplicates   Find and merge duplicate places (preview by default)
        backfill-qids      Fill places.wikidata_qid from external ids
        predict-hubs       Predict hub URLs for a place on a domain
        hub-gaps           Show hub coverage for a domain
        match-hubs         Link known hub pages to missing places
        validate-hubs      Validate fetched hub candidates and persist them
        serve              Start the read-only API server

    \b
    Examples:
        gazetteer-db import-countries
        gazetteer-db merge-duplicates --kind city --country FR
        gazetteer-db merge-duplicates --kind city --role capital --fix
        gazetteer-db predict-hubs bbc.co.uk France --code FR
        gazetteer-db hub-gaps bbc.co.uk --kind country
        gazetteer-db match-hubs bbc.co.uk --fix
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


# Register all commands
from .imports import db_import_countries

main.add_command(db_import_countries)

from .management import db_status, db_merge_duplicates, db_backfill_qids

main.add_command(db_status)
main.add_command(db_merge_duplicates)
main.add_command(db_backfill_qids)

from .hubs import db_predict_hubs, db_hub_gaps, db_match_hubs, db_validate_hubs

main.add_command(db_predict_hubs)
main.add_command(db_hub_gaps)
main.add_command(db_match_hubs)
main.add_command(db_validate_hubs)

from .serve import serve_cmd

main.add_command(serve_cmd)
