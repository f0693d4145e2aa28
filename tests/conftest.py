"""
Shared test fixtures for gazetteer-db.

Provides fresh temp databases, repository instances and small factories for
places and hubs. Resets module-level singletons between tests.
"""

from pathlib import Path
from typing import Optional

import pytest

from gazetteer_db.models import PlaceHubRecord, PlaceRecord
from gazetteer_db.store import GazetteerRepository, normalize_host, normalize_name


# ---------------------------------------------------------------------------
# Singleton reset (autouse) -- clears module-level caches every test
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_module_singletons():
    """Clear all module-level singletons/caches so tests are fully isolated."""
    import gazetteer_db.server as _server
    import gazetteer_db.store as _store

    yield

    # store.py singletons
    _store.close_repositories()
    _store._write_locks.clear()

    # server.py globals
    _server._repository = None
    _server._db_path = None


# ---------------------------------------------------------------------------
# Database path & repository
# ---------------------------------------------------------------------------

@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Return a path to a fresh temporary database file."""
    return tmp_path / "test_gazetteer.db"


@pytest.fixture
def repo(db_path: Path):
    """Writable GazetteerRepository backed by the temp DB."""
    repository = GazetteerRepository(db_path)
    yield repository
    repository.close()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_place(repo: GazetteerRepository):
    """Factory that inserts a place with one preferred name and returns its id."""

    def _make(
        name: Optional[str],
        kind: str = "city",
        country_code: Optional[str] = "FR",
        lat: Optional[float] = None,
        lng: Optional[float] = None,
        wikidata_qid: Optional[str] = None,
        population: Optional[int] = None,
        source: str = "test",
        extra: Optional[dict] = None,
        **fields,
    ) -> int:
        with repo.transaction():
            place_id = repo.insert_place(
                PlaceRecord(
                    kind=kind,
                    country_code=country_code,
                    lat=lat,
                    lng=lng,
                    wikidata_qid=wikidata_qid,
                    population=population,
                    source=source,
                    extra=extra or {},
                    **fields,
                )
            )
            if name:
                name_id, _ = repo.add_name(place_id, name, normalize_name(name), lang="en", is_preferred=True)
                repo.set_canonical_name(place_id, name_id)
        return place_id

    return _make


@pytest.fixture
def make_hub(repo: GazetteerRepository):
    """Factory that inserts a hub row and returns it."""

    def _make(url: str, host: Optional[str] = None, **fields) -> PlaceHubRecord:
        hub = PlaceHubRecord(host=host or normalize_host(url), url=url, **fields)
        with repo.transaction():
            repo.insert_hub(hub)
        return repo.get_hub_by_url(url)

    return _make
