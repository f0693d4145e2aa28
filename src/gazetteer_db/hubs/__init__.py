"""Hub discovery: gap analysis, validation, matching and persistence."""

from .analyzer import (
    CityHubGapAnalyzer,
    CountryHubGapAnalyzer,
    HubGapAnalyzer,
    RegionHubGapAnalyzer,
    TopicHubGapAnalyzer,
    get_hub_gap_analyzer,
)
from .matcher import HubMatcher
from .persistence import PersistenceManager
from .pipeline import HubValidationPipeline
from .validator import HubCandidateValidator

__all__ = [
    "HubGapAnalyzer",
    "CountryHubGapAnalyzer",
    "RegionHubGapAnalyzer",
    "CityHubGapAnalyzer",
    "TopicHubGapAnalyzer",
    "get_hub_gap_analyzer",
    "HubCandidateValidator",
    "HubMatcher",
    "PersistenceManager",
    "HubValidationPipeline",
]
