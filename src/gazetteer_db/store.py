"""
Gazetteer storage layer.

Wraps a SQLite database behind ``GazetteerRepository``: one method per query,
JSON columns decoded into typed models at this boundary, and explicit
insert-or-ignore results returned as booleans instead of exceptions.

Writes go through ``GazetteerRepository.transaction()``, which serializes
writers per database file with a process-wide lock and ``BEGIN IMMEDIATE``.
"""

import json
import logging
import re
import sqlite3
import threading
import unicodedata
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, NamedTuple, Optional
from urllib.parse import urlsplit

from .models import (
    DomainDetermination,
    ExternalIdRecord,
    GazetteerStats,
    HierarchyEdge,
    HubAuditEntry,
    IngestionRunRecord,
    PlaceHubRecord,
    PlaceNameRecord,
    PlaceRecord,
    RunStats,
)
from .schema import create_all_tables

logger = logging.getLogger(__name__)

# Default database location
DEFAULT_DB_PATH = Path.home() / ".cache" / "gazetteer-db" / "gazetteer.db"

# Module-level write locks by database path (one logical writer per file)
_write_locks: dict[str, threading.RLock] = {}
_write_locks_guard = threading.Lock()

# Module-level repository singletons by (path, readonly)
_repository_instances: dict[tuple[str, bool], "GazetteerRepository"] = {}

# Columns update_place() is allowed to touch
_UPDATABLE_PLACE_COLUMNS = {
    "country_code",
    "adm1_code",
    "adm2_code",
    "population",
    "lat",
    "lng",
    "canonical_name_id",
    "wikidata_qid",
    "extra",
    "status",
}

_UPDATABLE_HUB_COLUMNS = {
    "place_slug",
    "place_kind",
    "topic_slug",
    "topic_label",
    "topic_kind",
    "title",
    "nav_links_count",
    "article_links_count",
    "evidence",
}


def _apply_pragmas(conn: sqlite3.Connection, readonly: bool) -> None:
    """Apply PRAGMAs to a SQLite connection.

    Foreign keys are enforced so deleting a place cascades to rows the merge
    engine did not already repoint. WAL lets readers run alongside the writer.
    """
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA busy_timeout = 5000")
    conn.execute("PRAGMA temp_store = MEMORY")
    if not readonly:
        conn.execute("PRAGMA journal_mode = WAL")
        logger.debug("Enabled WAL journal mode")


def _open_connection(db_path: Path, readonly: bool = False) -> sqlite3.Connection:
    """Open a connection in autocommit mode; transactions are managed explicitly."""
    if readonly:
        conn = sqlite3.connect(
            f"file:{db_path}?mode=ro", uri=True, isolation_level=None, check_same_thread=False
        )
    else:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(db_path), isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    _apply_pragmas(conn, readonly=readonly)
    if not readonly:
        create_all_tables(conn)
    logger.debug(f"Opened {'read-only ' if readonly else ''}connection to {db_path}")
    return conn


def _get_write_lock(db_path: Path) -> threading.RLock:
    """Get the shared write lock for a database file."""
    path_key = str(Path(db_path).resolve())
    with _write_locks_guard:
        if path_key not in _write_locks:
            _write_locks[path_key] = threading.RLock()
        return _write_locks[path_key]


def get_repository(db_path: Optional[str | Path] = None, readonly: bool = False) -> "GazetteerRepository":
    """Get or create a cached repository for the given database path."""
    path = Path(db_path) if db_path else DEFAULT_DB_PATH
    key = (str(path), readonly)
    if key not in _repository_instances:
        _repository_instances[key] = GazetteerRepository(path, readonly=readonly)
    return _repository_instances[key]


def close_repositories() -> None:
    """Close and forget every cached repository."""
    for repo in _repository_instances.values():
        repo.close()
    _repository_instances.clear()


# =============================================================================
# Text helpers
# =============================================================================

_WHITESPACE_PATTERN = re.compile(r"\s+")
_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def normalize_name(text: Optional[str]) -> str:
    """
    Normalize a place name for matching.

    Decomposes accents (NFD), drops combining marks, lowercases and
    collapses whitespace: "Saint-Étienne " -> "saint-etienne".
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WHITESPACE_PATTERN.sub(" ", stripped.lower()).strip()


def slugify(text: Optional[str]) -> str:
    """URL slug of a name: "Côte d'Ivoire" -> "cote-d-ivoire"."""
    return _SLUG_PATTERN.sub("-", normalize_name(text)).strip("-")


def normalize_host(domain: str) -> str:
    """Reduce a domain or URL to the bare host used as the hub key."""
    value = domain.strip().lower()
    if "://" in value:
        value = urlsplit(value).netloc
    value = value.split("/", 1)[0].split(":", 1)[0]
    if value.startswith("www."):
        value = value[4:]
    return value


def _json_dumps(value: Optional[dict[str, Any]]) -> str:
    return json.dumps(value or {}, sort_keys=True, ensure_ascii=False)


def _json_loads(value: Optional[str]) -> dict[str, Any]:
    if not value:
        return {}
    decoded = json.loads(value)
    return decoded if isinstance(decoded, dict) else {"value": decoded}


def _placeholders(values: Iterable[Any]) -> str:
    return ",".join("?" for _ in values)


# =============================================================================
# Row conversion
# =============================================================================


def _row_to_place(row: sqlite3.Row) -> PlaceRecord:
    keys = row.keys()
    return PlaceRecord(
        id=row["id"],
        kind=row["kind"],
        country_code=row["country_code"],
        adm1_code=row["adm1_code"],
        adm2_code=row["adm2_code"],
        lat=row["lat"],
        lng=row["lng"],
        population=row["population"],
        wikidata_qid=row["wikidata_qid"],
        source=row["source"],
        canonical_name_id=row["canonical_name_id"],
        extra=_json_loads(row["extra"]),
        status=row["status"],
        name=row["name"] if "name" in keys else None,
    )


def _row_to_name(row: sqlite3.Row) -> PlaceNameRecord:
    return PlaceNameRecord(
        id=row["id"],
        place_id=row["place_id"],
        name=row["name"],
        normalized=row["normalized"],
        lang=row["lang"],
        name_kind=row["name_kind"],
        is_preferred=bool(row["is_preferred"]),
        is_official=bool(row["is_official"]),
        source=row["source"],
    )


def _row_to_run(row: sqlite3.Row) -> IngestionRunRecord:
    return IngestionRunRecord(
        id=row["id"],
        source=row["source"],
        source_version=row["source_version"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        status=row["status"],
        places_created=row["places_created"],
        places_updated=row["places_updated"],
        names_added=row["names_added"],
        error_message=row["error_message"],
        metadata=_json_loads(row["metadata"]),
    )


def _row_to_hub(row: sqlite3.Row) -> PlaceHubRecord:
    return PlaceHubRecord(
        id=row["id"],
        host=row["host"],
        url=row["url"],
        place_slug=row["place_slug"],
        place_kind=row["place_kind"],
        topic_slug=row["topic_slug"],
        topic_label=row["topic_label"],
        topic_kind=row["topic_kind"],
        title=row["title"],
        nav_links_count=row["nav_links_count"],
        article_links_count=row["article_links_count"],
        evidence=_json_loads(row["evidence"]),
        first_seen_at=row["first_seen_at"],
        last_seen_at=row["last_seen_at"],
    )


# Canonical name, falling back to the first preferred name
_PLACE_NAME_SQL = """
    COALESCE(
        (SELECT pn.name FROM place_names pn WHERE pn.id = p.canonical_name_id),
        (SELECT pn.name FROM place_names pn WHERE pn.place_id = p.id
         ORDER BY pn.is_preferred DESC, pn.id LIMIT 1)
    ) AS name
"""


class NameGroup(NamedTuple):
    """Places sharing (country, kind, normalized name) via any of their names."""
    country_code: Optional[str]
    kind: str
    normalized: str
    example_name: str
    place_ids: list[int]


class GazetteerRepository:
    """
    Typed access to the gazetteer database.

    Each component receives a repository instance; nothing in the package
    holds a global connection. Readers should use their own repository so
    they never wait on the writer's lock.
    """

    def __init__(self, db_path: Optional[str | Path] = None, readonly: bool = False):
        """
        Initialize the repository.

        Args:
            db_path: Path to database file (created with the full schema if missing)
            readonly: Open in read-only mode (no schema creation, no writes)
        """
        self._db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self._readonly = readonly
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = _get_write_lock(self._db_path)
        self._tx_depth = 0

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._conn is None:
            self._conn = _open_connection(self._db_path, readonly=self._readonly)
        return self._conn

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block as one atomic write.

        Holds the per-database write lock, opens ``BEGIN IMMEDIATE`` (or a
        savepoint when nested), commits on success and rolls back on any
        exception before re-raising it.
        """
        with self._lock:
            conn = self._connect()
            depth = self._tx_depth
            savepoint = f"sp_{depth}"
            if depth == 0:
                conn.execute("BEGIN IMMEDIATE")
            else:
                conn.execute(f"SAVEPOINT {savepoint}")
            self._tx_depth += 1
            try:
                yield conn
            except BaseException:
                self._tx_depth = depth
                if depth == 0:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                else:
                    conn.execute(f"ROLLBACK TO {savepoint}")
                    conn.execute(f"RELEASE {savepoint}")
                raise
            self._tx_depth = depth
            if depth == 0:
                conn.execute("COMMIT")
            else:
                conn.execute(f"RELEASE {savepoint}")

    # -------------------------------------------------------------------------
    # Places
    # -------------------------------------------------------------------------

    def insert_place(self, place: PlaceRecord) -> int:
        """Insert a place and return its new id."""
        conn = self._connect()
        cursor = conn.execute(
            """
            INSERT INTO places
            (kind, country_code, adm1_code, adm2_code, population, lat, lng,
             canonical_name_id, source, extra, wikidata_qid, status)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                place.kind,
                place.country_code,
                place.adm1_code,
                place.adm2_code,
                place.population,
                place.lat,
                place.lng,
                place.canonical_name_id,
                place.source,
                _json_dumps(place.extra),
                place.wikidata_qid,
                place.status,
            ),
        )
        return cursor.lastrowid

    def get_place(self, place_id: int) -> Optional[PlaceRecord]:
        """Get a place with its display name, or None."""
        conn = self._connect()
        row = conn.execute(
            f"SELECT p.*, {_PLACE_NAME_SQL} FROM places p WHERE p.id = ?",
            (place_id,),
        ).fetchone()
        return _row_to_place(row) if row else None

    def get_places(self, place_ids: list[int]) -> list[PlaceRecord]:
        """Get several places ordered by id; missing ids are skipped."""
        if not place_ids:
            return []
        conn = self._connect()
        cursor = conn.execute(
            f"SELECT p.*, {_PLACE_NAME_SQL} FROM places p "
            f"WHERE p.id IN ({_placeholders(place_ids)}) ORDER BY p.id",
            list(place_ids),
        )
        return [_row_to_place(row) for row in cursor]

    def list_places_by_kind(self, kind: str, country_code: Optional[str] = None) -> list[PlaceRecord]:
        """All current places of a kind, with display names."""
        conn = self._connect()
        query = f"SELECT p.*, {_PLACE_NAME_SQL} FROM places p WHERE p.kind = ? AND p.status = 'current'"
        params: list[Any] = [kind]
        if country_code:
            query += " AND p.country_code = ?"
            params.append(country_code)
        query += " ORDER BY p.id"
        return [_row_to_place(row) for row in conn.execute(query, params)]

    def update_place(self, place_id: int, **fields: Any) -> int:
        """Update selected columns of a place. Returns the number of rows changed."""
        unknown = set(fields) - _UPDATABLE_PLACE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update place columns: {sorted(unknown)}")
        if not fields:
            return 0
        if "extra" in fields:
            fields["extra"] = _json_dumps(fields["extra"])
        assignments = ", ".join(f"{column} = ?" for column in fields)
        conn = self._connect()
        cursor = conn.execute(
            f"UPDATE places SET {assignments}, updated_at = datetime('now') WHERE id = ?",
            [*fields.values(), place_id],
        )
        return cursor.rowcount

    def delete_places(self, place_ids: list[int]) -> int:
        """Delete places by id. Only the merge engine calls this."""
        if not place_ids:
            return 0
        conn = self._connect()
        cursor = conn.execute(
            f"DELETE FROM places WHERE id IN ({_placeholders(place_ids)})",
            list(place_ids),
        )
        return cursor.rowcount

    def existing_place_ids(self, place_ids: Iterable[int]) -> set[int]:
        ids = list(place_ids)
        if not ids:
            return set()
        conn = self._connect()
        cursor = conn.execute(f"SELECT id FROM places WHERE id IN ({_placeholders(ids)})", ids)
        return {row["id"] for row in cursor}

    # -------------------------------------------------------------------------
    # Resolver lookups
    # -------------------------------------------------------------------------

    def find_place_id_by_wikidata_qid(self, qid: str) -> Optional[int]:
        conn = self._connect()
        row = conn.execute(
            "SELECT id FROM places WHERE wikidata_qid = ? ORDER BY id LIMIT 1", (qid,)
        ).fetchone()
        return row["id"] if row else None

    def find_place_id_by_external_id(self, source: str, ext_id: str) -> Optional[int]:
        conn = self._connect()
        row = conn.execute(
            "SELECT place_id FROM place_external_ids WHERE source = ? AND ext_id = ?",
            (source, ext_id),
        ).fetchone()
        return row["place_id"] if row else None

    def find_country_id(self, country_code: str) -> Optional[int]:
        conn = self._connect()
        row = conn.execute(
            "SELECT id FROM places WHERE kind = 'country' AND country_code = ? ORDER BY id LIMIT 1",
            (country_code,),
        ).fetchone()
        return row["id"] if row else None

    def find_region_id(self, country_code: str, adm1_code: str, adm2_code: Optional[str] = None) -> Optional[int]:
        """Region by admin codes; adm2 narrows the match when given."""
        conn = self._connect()
        if adm2_code:
            row = conn.execute(
                """
                SELECT id FROM places
                WHERE kind = 'region' AND country_code = ? AND adm1_code = ? AND adm2_code = ?
                ORDER BY id LIMIT 1
                """,
                (country_code, adm1_code, adm2_code),
            ).fetchone()
        else:
            row = conn.execute(
                """
                SELECT id FROM places
                WHERE kind = 'region' AND country_code = ? AND adm1_code = ?
                ORDER BY id LIMIT 1
                """,
                (country_code, adm1_code),
            ).fetchone()
        return row["id"] if row else None

    def find_cities_by_name(self, country_code: str, normalized: str) -> list[PlaceRecord]:
        """Cities in a country with any name matching ``normalized``, oldest first."""
        conn = self._connect()
        cursor = conn.execute(
            """
            SELECT p.* FROM places p
            WHERE p.kind = 'city' AND p.country_code = ?
              AND EXISTS (
                SELECT 1 FROM place_names pn
                WHERE pn.place_id = p.id AND pn.normalized = ?
              )
            ORDER BY p.id
            """,
            (country_code, normalized),
        )
        return [_row_to_place(row) for row in cursor]

    def find_places_with_coordinates_near(
        self,
        kind: str,
        country_code: str,
        lat: float,
        lat_window: float,
    ) -> list[PlaceRecord]:
        """
        Places of a kind/country with coordinates whose latitude is within
        ``lat_window`` of ``lat``. Callers apply the real distance metric.
        """
        conn = self._connect()
        cursor = conn.execute(
            """
            SELECT * FROM places
            WHERE kind = ? AND country_code = ?
              AND lat IS NOT NULL AND lng IS NOT NULL
              AND ABS(lat - ?) <= ?
            ORDER BY id
            """,
            (kind, country_code, lat, lat_window),
        )
        return [_row_to_place(row) for row in cursor]

    # -------------------------------------------------------------------------
    # Names
    # -------------------------------------------------------------------------

    def add_name(
        self,
        place_id: int,
        name: str,
        normalized: str,
        lang: Optional[str] = None,
        name_kind: str = "common",
        is_preferred: bool = False,
        is_official: bool = False,
        source: Optional[str] = None,
    ) -> tuple[int, bool]:
        """
        Add a name unless the place already has it under (normalized, lang, name_kind).

        Returns:
            Tuple of (name_id, inserted)
        """
        conn = self._connect()
        row = conn.execute(
            """
            SELECT id FROM place_names
            WHERE place_id = ? AND normalized = ? AND lang IS ? AND name_kind = ?
            ORDER BY id LIMIT 1
            """,
            (place_id, normalized, lang, name_kind),
        ).fetchone()
        if row:
            return row["id"], False
        cursor = conn.execute(
            """
            INSERT INTO place_names
            (place_id, name, normalized, lang, name_kind, is_preferred, is_official, source)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (place_id, name, normalized, lang, name_kind, int(is_preferred), int(is_official), source),
        )
        return cursor.lastrowid, True

    def get_names(self, place_id: int) -> list[PlaceNameRecord]:
        conn = self._connect()
        cursor = conn.execute(
            "SELECT * FROM place_names WHERE place_id = ? ORDER BY id", (place_id,)
        )
        return [_row_to_name(row) for row in cursor]

    def get_names_by_kind(self, kind: str) -> dict[int, list[str]]:
        """Map place id -> all raw names, for every place of a kind."""
        conn = self._connect()
        cursor = conn.execute(
            """
            SELECT pn.place_id, pn.name FROM place_names pn
            JOIN places p ON p.id = pn.place_id
            WHERE p.kind = ?
            ORDER BY pn.place_id, pn.id
            """,
            (kind,),
        )
        result: dict[int, list[str]] = {}
        for row in cursor:
            result.setdefault(row["place_id"], []).append(row["name"])
        return result

    def set_canonical_name(self, place_id: int, name_id: int) -> None:
        self.update_place(place_id, canonical_name_id=name_id)

    def find_unique_name_ids(self, loser_id: int, survivor_id: int) -> list[int]:
        """
        Names of ``loser_id`` the survivor lacks under (normalized, lang, name_kind).

        One id per tuple, so two copies of the same name on the loser move once.
        """
        conn = self._connect()
        cursor = conn.execute(
            """
            SELECT MIN(n.id) AS id FROM place_names n
            WHERE n.place_id = ?
              AND NOT EXISTS (
                SELECT 1 FROM place_names s
                WHERE s.place_id = ?
                  AND s.normalized = n.normalized
                  AND s.lang IS n.lang
                  AND s.name_kind = n.name_kind
              )
            GROUP BY n.normalized, n.lang, n.name_kind
            ORDER BY id
            """,
            (loser_id, survivor_id),
        )
        return [row["id"] for row in cursor]

    def move_names(self, name_ids: list[int], place_id: int) -> int:
        if not name_ids:
            return 0
        conn = self._connect()
        cursor = conn.execute(
            f"UPDATE place_names SET place_id = ? WHERE id IN ({_placeholders(name_ids)})",
            [place_id, *name_ids],
        )
        return cursor.rowcount

    def delete_names_of(self, place_id: int) -> int:
        conn = self._connect()
        return conn.execute("DELETE FROM place_names WHERE place_id = ?", (place_id,)).rowcount

    # -------------------------------------------------------------------------
    # External ids and attributes
    # -------------------------------------------------------------------------

    def add_external_id(self, source: str, ext_id: str, place_id: int) -> bool:
        """Insert-or-ignore an external id. Returns True if a row was added."""
        conn = self._connect()
        cursor = conn.execute(
            "INSERT OR IGNORE INTO place_external_ids (source, ext_id, place_id) VALUES (?, ?, ?)",
            (source, ext_id, place_id),
        )
        return cursor.rowcount > 0

    def get_external_ids(self, place_id: int) -> list[ExternalIdRecord]:
        conn = self._connect()
        cursor = conn.execute(
            "SELECT source, ext_id, place_id FROM place_external_ids WHERE place_id = ? ORDER BY source, ext_id",
            (place_id,),
        )
        return [ExternalIdRecord(source=r["source"], ext_id=r["ext_id"], place_id=r["place_id"]) for r in cursor]

    def count_external_ids(self, place_ids: list[int]) -> dict[int, int]:
        """Map place id -> number of external ids (0 for places with none)."""
        counts = {pid: 0 for pid in place_ids}
        if not place_ids:
            return counts
        conn = self._connect()
        cursor = conn.execute(
            f"""
            SELECT place_id, COUNT(*) AS n FROM place_external_ids
            WHERE place_id IN ({_placeholders(place_ids)})
            GROUP BY place_id
            """,
            list(place_ids),
        )
        for row in cursor:
            counts[row["place_id"]] = row["n"]
        return counts

    def repoint_external_ids(self, from_id: int, to_id: int) -> int:
        """Move external ids to another place; leftovers that would collide are deleted."""
        conn = self._connect()
        moved = conn.execute(
            "UPDATE OR IGNORE place_external_ids SET place_id = ? WHERE place_id = ?",
            (to_id, from_id),
        ).rowcount
        conn.execute("DELETE FROM place_external_ids WHERE place_id = ?", (from_id,))
        return moved

    def set_attribute(self, place_id: int, attr: str, value: Any, source: str) -> bool:
        """Insert-or-ignore an attribute value. Returns True if a row was added."""
        conn = self._connect()
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO place_attribute_values (place_id, attr, value_json, source)
            VALUES (?, ?, ?, ?)
            """,
            (place_id, attr, json.dumps(value, ensure_ascii=False), source),
        )
        return cursor.rowcount > 0

    def get_attributes(self, place_id: int) -> dict[tuple[str, str], Any]:
        """Map (attr, source) -> decoded value."""
        conn = self._connect()
        cursor = conn.execute(
            "SELECT attr, source, value_json FROM place_attribute_values WHERE place_id = ?",
            (place_id,),
        )
        return {(row["attr"], row["source"]): json.loads(row["value_json"]) for row in cursor}

    def repoint_attributes(self, from_id: int, to_id: int) -> int:
        conn = self._connect()
        moved = conn.execute(
            "UPDATE OR IGNORE place_attribute_values SET place_id = ? WHERE place_id = ?",
            (to_id, from_id),
        ).rowcount
        conn.execute("DELETE FROM place_attribute_values WHERE place_id = ?", (from_id,))
        return moved

    # -------------------------------------------------------------------------
    # Hierarchy
    # -------------------------------------------------------------------------

    def insert_relation(
        self,
        parent_id: int,
        child_id: int,
        relation: str,
        depth: Optional[int] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Insert-or-ignore on (parent_id, child_id, relation). Returns True if added."""
        conn = self._connect()
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO place_hierarchy (parent_id, child_id, relation, depth, metadata)
            VALUES (?, ?, ?, ?, ?)
            """,
            (parent_id, child_id, relation, depth, _json_dumps(metadata)),
        )
        return cursor.rowcount > 0

    def get_parent_ids(self, child_id: int, relation: Optional[str] = None) -> list[int]:
        conn = self._connect()
        if relation:
            cursor = conn.execute(
                "SELECT parent_id FROM place_hierarchy WHERE child_id = ? AND relation = ? ORDER BY parent_id",
                (child_id, relation),
            )
        else:
            cursor = conn.execute(
                "SELECT DISTINCT parent_id FROM place_hierarchy WHERE child_id = ? ORDER BY parent_id",
                (child_id,),
            )
        return [row["parent_id"] for row in cursor]

    def get_child_ids(self, parent_id: int, relation: Optional[str] = None) -> list[int]:
        conn = self._connect()
        if relation:
            cursor = conn.execute(
                "SELECT child_id FROM place_hierarchy WHERE parent_id = ? AND relation = ? ORDER BY child_id",
                (parent_id, relation),
            )
        else:
            cursor = conn.execute(
                "SELECT DISTINCT child_id FROM place_hierarchy WHERE parent_id = ? ORDER BY child_id",
                (parent_id,),
            )
        return [row["child_id"] for row in cursor]

    def get_relations(self, place_id: int) -> list[HierarchyEdge]:
        """Every edge where the place is parent or child."""
        conn = self._connect()
        cursor = conn.execute(
            """
            SELECT parent_id, child_id, relation, depth, metadata FROM place_hierarchy
            WHERE parent_id = ? OR child_id = ?
            ORDER BY relation, parent_id, child_id
            """,
            (place_id, place_id),
        )
        return [
            HierarchyEdge(
                parent_id=row["parent_id"],
                child_id=row["child_id"],
                relation=row["relation"],
                depth=row["depth"],
                metadata=_json_loads(row["metadata"]),
            )
            for row in cursor
        ]

    def repoint_relations(self, from_id: int, to_id: int) -> int:
        """
        Move hierarchy edges from one place to another.

        Edges that would duplicate an existing edge of ``to_id`` are dropped,
        as are self-loops created by merging a parent with its child.
        """
        conn = self._connect()
        moved = conn.execute(
            "UPDATE OR IGNORE place_hierarchy SET child_id = ? WHERE child_id = ?",
            (to_id, from_id),
        ).rowcount
        moved += conn.execute(
            "UPDATE OR IGNORE place_hierarchy SET parent_id = ? WHERE parent_id = ?",
            (to_id, from_id),
        ).rowcount
        conn.execute(
            "DELETE FROM place_hierarchy WHERE child_id = ? OR parent_id = ?",
            (from_id, from_id),
        )
        conn.execute(
            "DELETE FROM place_hierarchy WHERE parent_id = ? AND child_id = ?",
            (to_id, to_id),
        )
        return moved

    # -------------------------------------------------------------------------
    # Duplicate detection
    # -------------------------------------------------------------------------

    def find_duplicate_name_groups(
        self,
        country_code: Optional[str] = None,
        kind: Optional[str] = None,
        role: Optional[str] = None,
    ) -> list[NameGroup]:
        """
        Group places by (country_code, kind, normalized) over any of their names.

        Only groups with two or more distinct places are returned.
        """
        conditions = ["pn.normalized != ''", "p.status = 'current'"]
        params: list[Any] = []
        if country_code:
            conditions.append("p.country_code = ?")
            params.append(country_code)
        if kind:
            conditions.append("p.kind = ?")
            params.append(kind)
        if role:
            conditions.append("json_extract(p.extra, '$.role') = ?")
            params.append(role)

        conn = self._connect()
        cursor = conn.execute(
            f"""
            SELECT p.country_code, p.kind, pn.normalized,
                   MIN(pn.name) AS example_name,
                   GROUP_CONCAT(DISTINCT p.id) AS ids
            FROM places p
            JOIN place_names pn ON pn.place_id = p.id
            WHERE {' AND '.join(conditions)}
            GROUP BY p.country_code, p.kind, pn.normalized
            HAVING COUNT(DISTINCT p.id) > 1
            ORDER BY p.country_code, p.kind, pn.normalized
            """,
            params,
        )
        return [
            NameGroup(
                country_code=row["country_code"],
                kind=row["kind"],
                normalized=row["normalized"],
                example_name=row["example_name"],
                place_ids=sorted(int(pid) for pid in row["ids"].split(",")),
            )
            for row in cursor
        ]

    def find_qid_backfill_candidates(self) -> list[tuple[int, str]]:
        """Places without a wikidata_qid that carry a wikidata external id."""
        conn = self._connect()
        cursor = conn.execute(
            """
            SELECT p.id, MIN(e.ext_id) AS qid
            FROM places p
            JOIN place_external_ids e ON e.place_id = p.id AND e.source = 'wikidata'
            WHERE p.wikidata_qid IS NULL
            GROUP BY p.id
            ORDER BY p.id
            """
        )
        return [(row["id"], row["qid"]) for row in cursor]

    # -------------------------------------------------------------------------
    # Ingestion runs
    # -------------------------------------------------------------------------

    def get_last_completed_run(self, source: str, source_version: Optional[str]) -> Optional[IngestionRunRecord]:
        conn = self._connect()
        row = conn.execute(
            """
            SELECT * FROM ingestion_runs
            WHERE source = ? AND source_version IS ? AND status = 'completed'
            ORDER BY completed_at DESC, id DESC
            LIMIT 1
            """,
            (source, source_version),
        ).fetchone()
        return _row_to_run(row) if row else None

    def insert_running_run(
        self,
        source: str,
        source_version: Optional[str],
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[int]:
        """
        Insert a ``running`` row.

        Returns None when another run for the same key is already running
        (the partial unique index turns the insert into a no-op).
        """
        conn = self._connect()
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO ingestion_runs (source, source_version, status, metadata)
            VALUES (?, ?, 'running', ?)
            """,
            (source, source_version, _json_dumps(metadata)),
        )
        return cursor.lastrowid if cursor.rowcount > 0 else None

    def finish_run(
        self,
        run_id: int,
        status: str,
        stats: RunStats,
        error_message: Optional[str] = None,
    ) -> bool:
        """Move a running run to a terminal status. Returns False if it was not running."""
        conn = self._connect()
        cursor = conn.execute(
            """
            UPDATE ingestion_runs
            SET status = ?, completed_at = datetime('now'),
                places_created = ?, places_updated = ?, names_added = ?,
                error_message = ?
            WHERE id = ? AND status = 'running'
            """,
            (
                status,
                stats.places_created,
                stats.places_updated,
                stats.names_added,
                error_message,
                run_id,
            ),
        )
        return cursor.rowcount > 0

    def get_run(self, run_id: int) -> Optional[IngestionRunRecord]:
        conn = self._connect()
        row = conn.execute("SELECT * FROM ingestion_runs WHERE id = ?", (run_id,)).fetchone()
        return _row_to_run(row) if row else None

    def list_runs(self, limit: int = 20) -> list[IngestionRunRecord]:
        conn = self._connect()
        cursor = conn.execute("SELECT * FROM ingestion_runs ORDER BY id DESC LIMIT ?", (limit,))
        return [_row_to_run(row) for row in cursor]

    # -------------------------------------------------------------------------
    # Hubs
    # -------------------------------------------------------------------------

    def get_hub_by_url(self, url: str) -> Optional[PlaceHubRecord]:
        conn = self._connect()
        row = conn.execute("SELECT * FROM place_hubs WHERE url = ?", (url,)).fetchone()
        return _row_to_hub(row) if row else None

    def insert_hub(self, hub: PlaceHubRecord) -> bool:
        """Insert-or-ignore a hub keyed by URL. Returns True if added."""
        conn = self._connect()
        cursor = conn.execute(
            """
            INSERT OR IGNORE INTO place_hubs
            (host, url, place_slug, place_kind, topic_slug, topic_label, topic_kind,
             title, nav_links_count, article_links_count, evidence)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                hub.host,
                hub.url,
                hub.place_slug,
                hub.place_kind,
                hub.topic_slug,
                hub.topic_label,
                hub.topic_kind,
                hub.title,
                hub.nav_links_count,
                hub.article_links_count,
                _json_dumps(hub.evidence),
            ),
        )
        return cursor.rowcount > 0

    def update_hub(self, url: str, **fields: Any) -> int:
        """Update selected hub columns and bump last_seen_at. Returns rows changed."""
        unknown = set(fields) - _UPDATABLE_HUB_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update hub columns: {sorted(unknown)}")
        if not fields:
            return 0
        if "evidence" in fields:
            fields["evidence"] = _json_dumps(fields["evidence"])
        assignments = ", ".join(f"{column} = ?" for column in fields)
        conn = self._connect()
        cursor = conn.execute(
            f"UPDATE place_hubs SET {assignments}, last_seen_at = datetime('now') WHERE url = ?",
            [*fields.values(), url],
        )
        return cursor.rowcount

    def link_hub(self, url: str, place_slug: str, place_kind: str) -> bool:
        """Attach an unlinked hub to a place. Returns False if it was already linked."""
        conn = self._connect()
        cursor = conn.execute(
            """
            UPDATE place_hubs
            SET place_slug = ?, place_kind = ?, last_seen_at = datetime('now')
            WHERE url = ? AND place_slug IS NULL AND topic_slug IS NULL
            """,
            (place_slug, place_kind, url),
        )
        return cursor.rowcount > 0

    def list_hubs(
        self,
        host: str,
        linked: Optional[bool] = None,
        place_kind: Optional[str] = None,
    ) -> list[PlaceHubRecord]:
        """Hubs on a host, optionally only linked/unlinked or of one place kind."""
        query = "SELECT * FROM place_hubs WHERE host = ?"
        params: list[Any] = [host]
        if linked is True:
            query += " AND (place_slug IS NOT NULL OR topic_slug IS NOT NULL)"
        elif linked is False:
            query += " AND place_slug IS NULL AND topic_slug IS NULL"
        if place_kind:
            query += " AND place_kind = ?"
            params.append(place_kind)
        query += " ORDER BY id"
        conn = self._connect()
        return [_row_to_hub(row) for row in conn.execute(query, params)]

    def insert_audit_entry(self, entry: HubAuditEntry) -> int:
        conn = self._connect()
        cursor = conn.execute(
            """
            INSERT INTO place_hub_audit
            (domain, url, place_kind, place_name, decision, validation_metrics_json, attempt_id, run_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.domain,
                entry.url,
                entry.place_kind,
                entry.place_name,
                entry.decision,
                _json_dumps(entry.validation_metrics),
                entry.attempt_id,
                entry.run_id,
            ),
        )
        return cursor.lastrowid

    def list_audit_entries(self, domain: str, limit: int = 50) -> list[HubAuditEntry]:
        conn = self._connect()
        cursor = conn.execute(
            "SELECT * FROM place_hub_audit WHERE domain = ? ORDER BY id DESC LIMIT ?",
            (domain, limit),
        )
        return [
            HubAuditEntry(
                id=row["id"],
                domain=row["domain"],
                url=row["url"],
                place_kind=row["place_kind"],
                place_name=row["place_name"],
                decision=row["decision"],
                validation_metrics=_json_loads(row["validation_metrics_json"]),
                attempt_id=row["attempt_id"],
                run_id=row["run_id"],
                created_at=row["created_at"],
            )
            for row in cursor
        ]

    def insert_determination(self, determination: DomainDetermination) -> int:
        conn = self._connect()
        cursor = conn.execute(
            """
            INSERT INTO place_hub_determinations (domain, determination, reason, details_json)
            VALUES (?, ?, ?, ?)
            """,
            (
                determination.domain,
                determination.determination,
                determination.reason,
                _json_dumps(determination.details),
            ),
        )
        return cursor.lastrowid

    def get_latest_determination(self, domain: str) -> Optional[DomainDetermination]:
        conn = self._connect()
        row = conn.execute(
            "SELECT * FROM place_hub_determinations WHERE domain = ? ORDER BY id DESC LIMIT 1",
            (domain,),
        ).fetchone()
        if not row:
            return None
        return DomainDetermination(
            id=row["id"],
            domain=row["domain"],
            determination=row["determination"],
            reason=row["reason"],
            details=_json_loads(row["details_json"]),
            created_at=row["created_at"],
        )

    # -------------------------------------------------------------------------
    # Stats
    # -------------------------------------------------------------------------

    def get_stats(self) -> GazetteerStats:
        """Summary counts for the whole database."""
        conn = self._connect()
        by_kind = {
            row["kind"]: row["n"]
            for row in conn.execute("SELECT kind, COUNT(*) AS n FROM places GROUP BY kind")
        }

        def _count(sql: str) -> int:
            return conn.execute(sql).fetchone()[0]

        version_row = conn.execute("SELECT value FROM db_info WHERE key = 'schema_version'").fetchone()
        size = self._db_path.stat().st_size if self._db_path.exists() else 0
        return GazetteerStats(
            total_places=sum(by_kind.values()),
            places_by_kind=by_kind,
            total_names=_count("SELECT COUNT(*) FROM place_names"),
            total_external_ids=_count("SELECT COUNT(*) FROM place_external_ids"),
            total_relations=_count("SELECT COUNT(*) FROM place_hierarchy"),
            total_hubs=_count("SELECT COUNT(*) FROM place_hubs"),
            linked_hubs=_count(
                "SELECT COUNT(*) FROM place_hubs WHERE place_slug IS NOT NULL OR topic_slug IS NOT NULL"
            ),
            total_runs=_count("SELECT COUNT(*) FROM ingestion_runs"),
            schema_version=version_row["value"] if version_row else None,
            database_size_bytes=size,
        )
