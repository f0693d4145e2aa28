"""
Read-only HTTP API over a gazetteer database.

Exposes identity resolution, hub URL prediction and gap analysis so crawlers
and ingestion workers can share one warm database handle.

Usage:
    gazetteer-db serve                    # Start on localhost:8223
    gazetteer-db serve --port 9000        # Custom port
"""

import logging
import time
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .errors import ConfigurationError
from .models import PlaceCandidate

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class PredictHubsRequest(BaseModel):
    domain: str
    name: str
    code: Optional[str] = None
    kind: str = "country"
    limit: Optional[int] = 20


class HubGapsRequest(BaseModel):
    domain: str
    kind: str = "country"


# ---------------------------------------------------------------------------
# Globals populated at startup
# ---------------------------------------------------------------------------

_repository = None
_db_path: Optional[str] = None


def _get_repository():
    global _repository
    if _repository is None:
        from .store import get_repository
        _repository = get_repository(db_path=_db_path, readonly=True)
    return _repository


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gazetteer DB Server",
    description="Read-only place resolution and hub discovery over a gazetteer database.",
)


@app.get("/")
def health():
    """Health check and status info."""
    result: dict[str, Any] = {"status": "ok", "db_path": _db_path}
    if _repository is not None:
        try:
            stats = _repository.get_stats()
            result["places"] = stats.total_places
            result["hubs"] = stats.total_hubs
        except Exception as e:
            logger.warning(f"Health check could not read stats: {e}")
            result["places"] = 0
    return result


@app.post("/resolve")
def resolve_place(req: PlaceCandidate):
    """Resolve a place candidate to an existing place id."""
    t0 = time.time()
    from .resolver import IdentityResolver

    try:
        result = IdentityResolver(_get_repository()).resolve(req)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    logger.info(f"Resolve completed in {time.time() - t0:.3f}s: {result.strategy if result else 'not found'}")
    return result.model_dump() if result else None


@app.post("/predict-hubs")
def predict_hubs(req: PredictHubsRequest):
    """Ranked hub URL predictions for one entity on a domain."""
    from .hubs.analyzer import get_hub_gap_analyzer

    try:
        analyzer = get_hub_gap_analyzer(req.kind, _get_repository())
        predictions = analyzer.predict_hub_urls(req.domain, req.name, req.code, limit=req.limit)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return [p.model_dump() for p in predictions]


@app.post("/hub-gaps")
def hub_gaps(req: HubGapsRequest):
    """Hub coverage of one place kind on a domain."""
    from .hubs.analyzer import get_hub_gap_analyzer

    try:
        analysis = get_hub_gap_analyzer(req.kind, _get_repository()).analyze_gaps(req.domain)
    except ConfigurationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return analysis.model_dump()


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------


def run_server(
    host: str = "127.0.0.1",
    port: int = 8223,
    db_path: Optional[str] = None,
    verbose: bool = False,
):
    """Run the server with uvicorn."""
    import uvicorn

    global _db_path
    if db_path:
        _db_path = db_path

    stats = _get_repository().get_stats()
    logger.info(f"Loaded gazetteer with {stats.total_places} places and {stats.total_hubs} hubs")

    log_level = "debug" if verbose else "info"
    logger.info(f"Starting gazetteer server on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=log_level)
