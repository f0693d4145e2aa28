"""
Pydantic models for gazetteer records, resolver results, merge reports
and hub discovery.

JSON columns (``extra``, ``metadata``, ``evidence``) are decoded into dicts
by the repository, so every model here holds typed values only.
"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PlaceKind(str, Enum):
    """Kinds of place stored in the gazetteer."""
    COUNTRY = "country"
    REGION = "region"
    CITY = "city"
    TOPIC = "topic"


class NameKind(str, Enum):
    """Kinds of name attached to a place."""
    COMMON = "common"
    OFFICIAL = "official"
    ALIAS = "alias"
    ENDONYM = "endonym"
    EXONYM = "exonym"


class RunStatus(str, Enum):
    """Lifecycle states of an ingestion run."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


PLACE_KINDS: tuple[str, ...] = tuple(k.value for k in PlaceKind)


class _Record(BaseModel):
    model_config = ConfigDict(use_enum_values=True, validate_default=True)


# =============================================================================
# Gazetteer records
# =============================================================================


class PlaceRecord(_Record):
    """A row of the places table."""
    id: Optional[int] = None
    kind: PlaceKind
    country_code: Optional[str] = None
    adm1_code: Optional[str] = None
    adm2_code: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    population: Optional[int] = None
    wikidata_qid: Optional[str] = None
    source: str = "manual"
    canonical_name_id: Optional[int] = None
    extra: dict[str, Any] = Field(default_factory=dict)
    status: str = "current"
    # Populated when loaded together with the canonical name
    name: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


class PlaceNameRecord(_Record):
    """A row of the place_names table."""
    id: Optional[int] = None
    place_id: int
    name: str
    normalized: str
    lang: Optional[str] = None
    name_kind: NameKind = NameKind.COMMON
    is_preferred: bool = False
    is_official: bool = False
    source: Optional[str] = None

    @property
    def logical_key(self) -> tuple[str, Optional[str], str]:
        """Key under which two names of the same place count as duplicates."""
        return (self.normalized, self.lang, self.name_kind)


class HierarchyEdge(_Record):
    """A parent/child relation between two places."""
    parent_id: int
    child_id: int
    relation: str
    depth: Optional[int] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ExternalIdRecord(_Record):
    source: str
    ext_id: str
    place_id: int


class GazetteerStats(BaseModel):
    """Summary counts for the status command and the health endpoint."""
    total_places: int = 0
    places_by_kind: dict[str, int] = Field(default_factory=dict)
    total_names: int = 0
    total_external_ids: int = 0
    total_relations: int = 0
    total_hubs: int = 0
    linked_hubs: int = 0
    total_runs: int = 0
    schema_version: Optional[str] = None
    database_size_bytes: int = 0


# =============================================================================
# Identity resolution
# =============================================================================


MatchStrategy = Literal[
    "wikidata_qid",
    "osm_id",
    "geonames_id",
    "country_code",
    "adm1_code",
    "adm2_code",
    "name_and_coords",
    "normalized_name",
    "coordinate_proximity",
]


class PlaceCandidate(_Record):
    """An incoming place description to resolve against the gazetteer."""
    kind: Optional[PlaceKind] = None
    wikidata_qid: Optional[str] = None
    osm_type: str = "relation"
    osm_id: Optional[int | str] = None
    geonames_id: Optional[int | str] = None
    country_code: Optional[str] = None
    adm1_code: Optional[str] = None
    adm2_code: Optional[str] = None
    name: Optional[str] = None
    normalized_name: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    coordinate_threshold: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None


class MatchResult(BaseModel):
    """Existing place an incoming candidate resolved to."""
    place_id: int
    strategy: MatchStrategy
    distance: Optional[float] = None


# =============================================================================
# Ingestion runs
# =============================================================================


class IngestionRunRecord(_Record):
    id: int
    source: str
    source_version: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    status: RunStatus
    places_created: int = 0
    places_updated: int = 0
    names_added: int = 0
    error_message: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status != RunStatus.RUNNING


class RunCheck(BaseModel):
    """Outcome of the skip-vs-run gate."""
    should_skip: bool
    last_run: Optional[IngestionRunRecord] = None


class RunStats(BaseModel):
    countries_processed: int = 0
    places_created: int = 0
    places_updated: int = 0
    names_added: int = 0


# =============================================================================
# Ingestion
# =============================================================================


class NameInput(_Record):
    name: str
    lang: Optional[str] = None
    name_kind: NameKind = NameKind.COMMON
    is_preferred: bool = False
    is_official: bool = False


class PlaceInput(_Record):
    """A place as delivered by an ingestion source."""
    kind: PlaceKind
    source: str
    names: list[NameInput] = Field(default_factory=list)
    country_code: Optional[str] = None
    adm1_code: Optional[str] = None
    adm2_code: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    population: Optional[int] = None
    wikidata_qid: Optional[str] = None
    osm_type: str = "relation"
    osm_id: Optional[int | str] = None
    geonames_id: Optional[int | str] = None
    external_ids: dict[str, str] = Field(default_factory=dict)
    extra: dict[str, Any] = Field(default_factory=dict)


class IngestOutcome(BaseModel):
    place_id: int
    created: bool
    strategy: Optional[str] = None
    names_added: int = 0


# =============================================================================
# Duplicate merging
# =============================================================================


class MergeOptions(_Record):
    """Filters and tuning for a duplicate merge pass."""
    country: Optional[str] = None
    kind: Optional[str] = None
    role: Optional[str] = None
    proximity: float = 0.05
    mint_capital_ids: Optional[bool] = None


class MergeMember(BaseModel):
    place_id: int
    score: int
    lat: Optional[float] = None
    lng: Optional[float] = None
    wikidata_qid: Optional[str] = None
    population: Optional[int] = None
    external_id_count: int = 0


class DuplicateGroup(BaseModel):
    """Places that share (country, kind, normalized name) and pass the distance check."""
    country_code: Optional[str] = None
    kind: str
    normalized: str
    example_name: str
    survivor: MergeMember
    losers: list[MergeMember]
    max_distance: Optional[float] = None

    @property
    def loser_ids(self) -> list[int]:
        return [m.place_id for m in self.losers]


class MergeOutcome(BaseModel):
    survivor_id: int
    deleted_ids: list[int]
    names_moved: int = 0
    names_dropped: int = 0
    relations_repointed: int = 0
    external_ids_repointed: int = 0
    attributes_repointed: int = 0
    minted_external_id: Optional[str] = None


class MergeFailure(BaseModel):
    survivor_id: int
    loser_ids: list[int]
    error: str


class MergeReport(BaseModel):
    """Counts-would-change vs counts-changed for one merge run."""
    applied: bool
    passes: int = 0
    groups: list[DuplicateGroup] = Field(default_factory=list)
    outcomes: list[MergeOutcome] = Field(default_factory=list)
    failures: list[MergeFailure] = Field(default_factory=list)

    @property
    def groups_found(self) -> int:
        return len(self.groups)

    @property
    def would_delete(self) -> int:
        return sum(len(g.losers) for g in self.groups)

    @property
    def merged(self) -> int:
        return len(self.outcomes)

    @property
    def deleted(self) -> int:
        return sum(len(o.deleted_ids) for o in self.outcomes)


# =============================================================================
# Hub discovery
# =============================================================================


class HubEntity(BaseModel):
    """An eligible entity for hub coverage on a domain."""
    place_id: int
    kind: str
    name: str
    slug: str
    code: Optional[str] = None
    importance: Optional[float] = None
    population: Optional[int] = None


class HubPrediction(BaseModel):
    url: str
    confidence: float
    pattern: str


class CoverageStats(BaseModel):
    seeded: int = 0
    visited: int = 0
    total_eligible: int = 0


class GapAnalysis(BaseModel):
    domain: str
    kind: str
    seeded: int
    visited: int
    total_eligible: int
    missing: int
    coverage_percent: int
    is_complete: bool


class PageEvidence(BaseModel):
    """Link-count evidence for a fetched candidate page."""
    nav_links_count: Optional[int] = None
    article_links_count: Optional[int] = None
    title: Optional[str] = None
    body: Optional[str] = None


class ValidationThresholds(BaseModel):
    min_nav_links: int = 12
    min_article_links: int = 0


class ValidationResult(BaseModel):
    passed: bool
    reason: str
    nav_links_count: Optional[int] = None
    article_links_count: Optional[int] = None


class PlaceHubRecord(_Record):
    """A row of the place_hubs table."""
    id: Optional[int] = None
    host: str
    url: str
    place_slug: Optional[str] = None
    place_kind: Optional[str] = None
    topic_slug: Optional[str] = None
    topic_label: Optional[str] = None
    topic_kind: Optional[str] = None
    title: Optional[str] = None
    nav_links_count: Optional[int] = None
    article_links_count: Optional[int] = None
    evidence: dict[str, Any] = Field(default_factory=dict)
    first_seen_at: Optional[str] = None
    last_seen_at: Optional[str] = None

    @property
    def is_linked(self) -> bool:
        return bool(self.place_slug or self.topic_slug)


class HubCandidate(_Record):
    """A validated hub page ready to be persisted."""
    domain: str
    url: str
    place_slug: Optional[str] = None
    place_kind: Optional[str] = None
    place_name: Optional[str] = None
    topic_slug: Optional[str] = None
    topic_label: Optional[str] = None
    topic_kind: Optional[str] = None
    title: Optional[str] = None
    nav_links_count: Optional[int] = None
    article_links_count: Optional[int] = None
    evidence: dict[str, Any] = Field(default_factory=dict)


class HubChange(BaseModel):
    field: str
    label: str
    before: Any = None
    after: Any = None


class PersistOutcome(BaseModel):
    action: Literal["inserted", "updated", "unchanged"]
    url: str
    changes: list[HubChange] = Field(default_factory=list)


class PersistenceSummary(BaseModel):
    """Running counts kept by the persistence manager for one domain pass."""
    total_places: int = 0
    total_topics: int = 0
    inserted_hubs: int = 0
    updated_hubs: int = 0
    unchanged_hubs: int = 0
    diff_preview: list[PersistOutcome] = Field(default_factory=list)


class HubAuditEntry(_Record):
    id: Optional[int] = None
    domain: str
    url: str
    place_kind: Optional[str] = None
    place_name: Optional[str] = None
    decision: Literal["accepted", "rejected"]
    validation_metrics: dict[str, Any] = Field(default_factory=dict)
    attempt_id: Optional[str] = None
    run_id: Optional[str] = None
    created_at: Optional[str] = None


class DomainDetermination(_Record):
    id: Optional[int] = None
    domain: str
    determination: Literal["processed", "rate-limited"]
    reason: str
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None


class MatchOptions(BaseModel):
    dry_run: bool = True
    min_nav_links: int = 12
    min_article_links: int = 0


class MatchAction(BaseModel):
    url: str
    place_id: int
    place_name: str
    place_slug: str
    applied: bool
    nav_links_count: Optional[int] = None
    article_links_count: Optional[int] = None


class SkippedCandidate(BaseModel):
    url: Optional[str] = None
    place_name: Optional[str] = None
    reason: str


class HubMatchReport(BaseModel):
    domain: str
    dry_run: bool
    actions: list[MatchAction] = Field(default_factory=list)
    skipped: list[SkippedCandidate] = Field(default_factory=list)
    analysis_before: GapAnalysis
    analysis_after: GapAnalysis


class FetchedCandidate(BaseModel):
    """A predicted hub URL after the external fetcher has visited it."""
    url: str
    place_kind: Optional[str] = None
    place_name: Optional[str] = None
    place_slug: Optional[str] = None
    topic_slug: Optional[str] = None
    topic_label: Optional[str] = None
    http_status: Optional[int] = None
    evidence: PageEvidence = Field(default_factory=PageEvidence)
    attempt_id: Optional[str] = None


class DomainProcessingSummary(BaseModel):
    domain: str
    applied: bool
    rate_limited: bool = False
    accepted: int = 0
    rejected: int = 0
    persistence: PersistenceSummary = Field(default_factory=PersistenceSummary)
    determination: Optional[DomainDetermination] = None


class ImportSummary(BaseModel):
    """Result of a tracked ingestion."""
    source: str
    source_version: Optional[str] = None
    skipped: bool = False
    run_id: Optional[int] = None
    last_run: Optional[IngestionRunRecord] = None
    stats: RunStats = Field(default_factory=RunStats)
