"""Serve command - start the read-only gazetteer API server."""

from typing import Optional

import click

from ._common import _configure_logging, _is_verbose


@click.command("serve")
@click.option("--port", default=8223, help="Port to listen on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option("--db", "db_path", default=None, help="Path to database file.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def serve_cmd(port: int, host: str, db_path: Optional[str], verbose: bool):
    """Start the gazetteer database server."""
    from gazetteer_db.server import run_server

    verbose = _is_verbose(verbose)
    _configure_logging(verbose)

    run_server(
        host=host,
        port=port,
        db_path=db_path,
        verbose=verbose,
    )
