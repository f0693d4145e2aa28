"""
Gazetteer database for places and their hub pages.

Resolves incoming place records against existing identities, merges
duplicates, and discovers, validates and links hub pages on crawled
domains. Backed by a single SQLite file.
"""

__version__ = "0.1.0"

from gazetteer_db.store import (
    GazetteerRepository,
    get_repository,
    normalize_name,
    slugify,
)

from gazetteer_db.models import (
    PlaceRecord,
    PlaceNameRecord,
    PlaceCandidate,
    PlaceInput,
    MatchResult,
    MergeOptions,
    MergeReport,
    PlaceKind,
    NameKind,
    RunStatus,
)

from gazetteer_db.errors import (
    GazetteerError,
    ConfigurationError,
    RunStateError,
    RunAlreadyInProgressError,
    MergeGroupError,
)
from gazetteer_db.resolver import IdentityResolver
from gazetteer_db.runs import IngestionRunTracker
from gazetteer_db.hierarchy import HierarchyStore
from gazetteer_db.merge import DuplicateMergeEngine, canonical_score
from gazetteer_db.ingest import PlaceIngestor, ingest_countries_from_pycountry
from gazetteer_db.hubs import (
    HubCandidateValidator,
    HubGapAnalyzer,
    HubMatcher,
    HubValidationPipeline,
    PersistenceManager,
    get_hub_gap_analyzer,
)

__all__ = [
    # Storage
    "GazetteerRepository",
    "get_repository",
    "normalize_name",
    "slugify",
    # Models
    "PlaceRecord",
    "PlaceNameRecord",
    "PlaceCandidate",
    "PlaceInput",
    "MatchResult",
    "MergeOptions",
    "MergeReport",
    "PlaceKind",
    "NameKind",
    "RunStatus",
    # Errors
    "GazetteerError",
    "ConfigurationError",
    "RunStateError",
    "RunAlreadyInProgressError",
    "MergeGroupError",
    # Gazetteer
    "IdentityResolver",
    "IngestionRunTracker",
    "HierarchyStore",
    "DuplicateMergeEngine",
    "canonical_score",
    "PlaceIngestor",
    "ingest_countries_from_pycountry",
    # Hubs
    "HubGapAnalyzer",
    "get_hub_gap_analyzer",
    "HubCandidateValidator",
    "HubMatcher",
    "PersistenceManager",
    "HubValidationPipeline",
]
