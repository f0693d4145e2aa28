"""
Gazetteer schema DDL.

All statements use IF NOT EXISTS so create_all_tables() is idempotent and
safe to call on every writable connection.
"""

import logging
import sqlite3

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1"

# =============================================================================
# Places, names, hierarchy
# =============================================================================

CREATE_PLACES = """
CREATE TABLE IF NOT EXISTS places (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL CHECK (kind IN ('country', 'region', 'city', 'topic')),
    country_code TEXT,
    adm1_code TEXT,
    adm2_code TEXT,
    population INTEGER,
    lat REAL,
    lng REAL,
    canonical_name_id INTEGER,
    source TEXT NOT NULL DEFAULT 'manual',
    extra TEXT NOT NULL DEFAULT '{}',
    wikidata_qid TEXT,
    status TEXT NOT NULL DEFAULT 'current',
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

CREATE_PLACE_NAMES = """
CREATE TABLE IF NOT EXISTS place_names (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    place_id INTEGER NOT NULL REFERENCES places(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    normalized TEXT NOT NULL,
    lang TEXT,
    name_kind TEXT NOT NULL DEFAULT 'common'
        CHECK (name_kind IN ('common', 'official', 'alias', 'endonym', 'exonym')),
    is_preferred INTEGER NOT NULL DEFAULT 0,
    is_official INTEGER NOT NULL DEFAULT 0,
    source TEXT
)
"""

CREATE_PLACE_HIERARCHY = """
CREATE TABLE IF NOT EXISTS place_hierarchy (
    parent_id INTEGER NOT NULL REFERENCES places(id) ON DELETE CASCADE,
    child_id INTEGER NOT NULL REFERENCES places(id) ON DELETE CASCADE,
    relation TEXT NOT NULL,
    depth INTEGER,
    metadata TEXT NOT NULL DEFAULT '{}',
    UNIQUE(parent_id, child_id, relation)
)
"""

CREATE_PLACE_EXTERNAL_IDS = """
CREATE TABLE IF NOT EXISTS place_external_ids (
    source TEXT NOT NULL,
    ext_id TEXT NOT NULL,
    place_id INTEGER NOT NULL REFERENCES places(id) ON DELETE CASCADE,
    UNIQUE(source, ext_id)
)
"""

CREATE_PLACE_ATTRIBUTE_VALUES = """
CREATE TABLE IF NOT EXISTS place_attribute_values (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    place_id INTEGER NOT NULL REFERENCES places(id) ON DELETE CASCADE,
    attr TEXT NOT NULL,
    value_json TEXT NOT NULL,
    source TEXT NOT NULL,
    fetched_at TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE(place_id, attr, source)
)
"""

# =============================================================================
# Ingestion runs
# =============================================================================

CREATE_INGESTION_RUNS = """
CREATE TABLE IF NOT EXISTS ingestion_runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    source TEXT NOT NULL,
    source_version TEXT,
    started_at TEXT NOT NULL DEFAULT (datetime('now')),
    completed_at TEXT,
    status TEXT NOT NULL DEFAULT 'running'
        CHECK (status IN ('running', 'completed', 'failed')),
    places_created INTEGER NOT NULL DEFAULT 0,
    places_updated INTEGER NOT NULL DEFAULT 0,
    names_added INTEGER NOT NULL DEFAULT 0,
    error_message TEXT,
    metadata TEXT NOT NULL DEFAULT '{}'
)
"""

# =============================================================================
# Hub discovery
# =============================================================================

CREATE_PLACE_HUBS = """
CREATE TABLE IF NOT EXISTS place_hubs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    host TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    place_slug TEXT,
    place_kind TEXT,
    topic_slug TEXT,
    topic_label TEXT,
    topic_kind TEXT,
    title TEXT,
    first_seen_at TEXT NOT NULL DEFAULT (datetime('now')),
    last_seen_at TEXT NOT NULL DEFAULT (datetime('now')),
    nav_links_count INTEGER,
    article_links_count INTEGER,
    evidence TEXT NOT NULL DEFAULT '{}'
)
"""

CREATE_PLACE_HUB_AUDIT = """
CREATE TABLE IF NOT EXISTS place_hub_audit (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    domain TEXT NOT NULL,
    url TEXT NOT NULL,
    place_kind TEXT,
    place_name TEXT,
    decision TEXT NOT NULL CHECK (decision IN ('accepted', 'rejected')),
    validation_metrics_json TEXT NOT NULL DEFAULT '{}',
    attempt_id TEXT,
    run_id TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

CREATE_PLACE_HUB_DETERMINATIONS = """
CREATE TABLE IF NOT EXISTS place_hub_determinations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    domain TEXT NOT NULL,
    determination TEXT NOT NULL,
    reason TEXT NOT NULL,
    details_json TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

CREATE_DB_INFO = """
CREATE TABLE IF NOT EXISTS db_info (
    key TEXT PRIMARY KEY,
    value TEXT
)
"""

# =============================================================================
# Views
# =============================================================================

CREATE_PLACES_VIEW = """
CREATE VIEW IF NOT EXISTS places_view AS
SELECT
    p.id,
    p.kind,
    p.country_code,
    p.adm1_code,
    p.adm2_code,
    COALESCE(
        (SELECT pn.name FROM place_names pn WHERE pn.id = p.canonical_name_id),
        (SELECT pn.name FROM place_names pn WHERE pn.place_id = p.id
         ORDER BY pn.is_preferred DESC, pn.id LIMIT 1)
    ) AS name,
    p.population,
    p.lat,
    p.lng,
    p.wikidata_qid,
    p.source,
    p.status
FROM places p
"""

CREATE_HUB_COVERAGE_VIEW = """
CREATE VIEW IF NOT EXISTS hub_coverage_view AS
SELECT
    host,
    place_kind,
    COUNT(*) AS hubs,
    SUM(CASE WHEN nav_links_count IS NULL THEN 1 ELSE 0 END) AS seeded,
    SUM(CASE WHEN nav_links_count IS NOT NULL THEN 1 ELSE 0 END) AS visited
FROM place_hubs
WHERE place_slug IS NOT NULL
GROUP BY host, place_kind
"""

ALL_TABLES = [
    CREATE_PLACES,
    CREATE_PLACE_NAMES,
    CREATE_PLACE_HIERARCHY,
    CREATE_PLACE_EXTERNAL_IDS,
    CREATE_PLACE_ATTRIBUTE_VALUES,
    CREATE_INGESTION_RUNS,
    CREATE_PLACE_HUBS,
    CREATE_PLACE_HUB_AUDIT,
    CREATE_PLACE_HUB_DETERMINATIONS,
    CREATE_DB_INFO,
]

ALL_VIEWS = [
    CREATE_PLACES_VIEW,
    CREATE_HUB_COVERAGE_VIEW,
]

ALL_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_places_kind_country ON places(kind, country_code)",
    "CREATE INDEX IF NOT EXISTS idx_places_admin ON places(country_code, adm1_code, adm2_code)",
    "CREATE INDEX IF NOT EXISTS idx_places_wikidata_qid ON places(wikidata_qid)",
    "CREATE INDEX IF NOT EXISTS idx_places_coords ON places(kind, country_code, lat, lng)",
    "CREATE INDEX IF NOT EXISTS idx_place_names_place ON place_names(place_id)",
    "CREATE INDEX IF NOT EXISTS idx_place_names_normalized ON place_names(normalized)",
    "CREATE INDEX IF NOT EXISTS idx_place_hierarchy_child ON place_hierarchy(child_id, relation)",
    "CREATE INDEX IF NOT EXISTS idx_place_external_ids_place ON place_external_ids(place_id)",
    "CREATE INDEX IF NOT EXISTS idx_ingestion_runs_key ON ingestion_runs(source, source_version, status)",
    # At most one running row per (source, version): closes the check-then-insert race
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_ingestion_runs_running "
    "ON ingestion_runs(source, source_version) WHERE status = 'running'",
    "CREATE INDEX IF NOT EXISTS idx_place_hubs_host ON place_hubs(host)",
    "CREATE INDEX IF NOT EXISTS idx_place_hub_audit_domain ON place_hub_audit(domain, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_place_hub_determinations_domain ON place_hub_determinations(domain, created_at)",
]


def create_all_tables(conn: sqlite3.Connection) -> None:
    """Create every gazetteer table, index and view, and record the schema version."""
    for ddl in ALL_TABLES:
        conn.execute(ddl)
    for ddl in ALL_INDEXES:
        conn.execute(ddl)
    for ddl in ALL_VIEWS:
        conn.execute(ddl)
    conn.execute(
        "INSERT OR REPLACE INTO db_info (key, value) VALUES ('schema_version', ?)",
        (SCHEMA_VERSION,),
    )
    conn.commit()
    logger.debug(f"Ensured gazetteer schema v{SCHEMA_VERSION}")
