"""
Hub gap analysis and URL prediction, one analyzer per place kind.

An analyzer lists the gazetteer entities of its kind that deserve a hub on
every news domain, predicts where that hub probably lives, and measures how
many of those entities already have a hub seeded (known URL, not yet
fetched) or visited (fetched and measured) on a given domain.
"""

import logging
import math
from collections import Counter
from typing import Optional
from urllib.parse import quote, urlsplit

from ..errors import ConfigurationError
from ..models import CoverageStats, GapAnalysis, HubEntity, HubPrediction, PlaceHubRecord, PlaceRecord
from ..store import GazetteerRepository, normalize_host, normalize_name, slugify

logger = logging.getLogger(__name__)

# Confidence of a path template learned from the domain's own linked hubs
LEARNED_PATTERN_CONFIDENCE = 0.9

# Confidence multipliers for slug spellings: "united-kingdom", "unitedkingdom", "united_kingdom"
_SLUG_VARIANT_WEIGHTS = (("dashed", 1.0), ("compact", 0.8), ("underscore", 0.7))


def _base_url(domain: str) -> str:
    value = domain.strip().rstrip("/")
    if "://" not in value:
        value = f"https://{value}"
    parts = urlsplit(value)
    return f"{parts.scheme}://{parts.netloc.lower()}"


def _slug_variants(name: str) -> dict[str, str]:
    """Slug spellings of a name keyed by variant label."""
    slug = slugify(name)
    if not slug:
        # Non-Latin names: keep the characters, percent-encoded
        slug = quote(normalize_name(name).replace(" ", "-"), safe="-")
    variants = {"dashed": slug}
    if "-" in slug:
        variants["compact"] = slug.replace("-", "")
        variants["underscore"] = slug.replace("-", "_")
    return variants


class HubGapAnalyzer:
    """
    Base analyzer. Subclasses set ``kind`` and ``patterns``.

    ``patterns`` are (path template, base confidence) pairs; templates use
    ``{slug}`` and optionally ``{code}``.
    """

    kind: str = ""
    patterns: tuple[tuple[str, float], ...] = ()

    def __init__(self, repository: GazetteerRepository):
        self._repo = repository

    # -------------------------------------------------------------------------
    # Entities
    # -------------------------------------------------------------------------

    def _entity_code(self, place: PlaceRecord) -> Optional[str]:
        return None

    def eligible_entities(self) -> list[HubEntity]:
        """All named entities of this kind, most important first."""
        entities = []
        for place in self._repo.list_places_by_kind(self.kind):
            if not place.name:
                continue
            slug = slugify(place.name)
            if not slug:
                continue
            importance = place.extra.get("importance")
            entities.append(
                HubEntity(
                    place_id=place.id,
                    kind=self.kind,
                    name=place.name,
                    slug=slug,
                    code=self._entity_code(place),
                    importance=float(importance) if isinstance(importance, (int, float)) else None,
                    population=place.population,
                )
            )
        entities.sort(
            key=lambda e: (
                e.importance is None,
                -(e.importance or 0.0),
                e.population is None,
                -(e.population or 0),
                e.place_id,
            )
        )
        return entities

    def get_top_entities(self, n: Optional[int] = None) -> list[HubEntity]:
        """Entities ranked by importance, then population."""
        entities = self.eligible_entities()
        return entities if n is None else entities[:n]

    # -------------------------------------------------------------------------
    # Prediction
    # -------------------------------------------------------------------------

    def _linked_slug(self, hub: PlaceHubRecord) -> Optional[str]:
        return hub.place_slug if hub.place_kind == self.kind else None

    def _learned_templates(self, domain: str) -> Counter:
        """Path templates observed on the domain's linked hubs of this kind."""
        templates: Counter = Counter()
        for hub in self._repo.list_hubs(normalize_host(domain), linked=True):
            slug = self._linked_slug(hub)
            if not slug:
                continue
            segments = urlsplit(hub.url).path.strip("/").split("/")
            if slug not in segments:
                continue
            templated = ["{slug}" if segment == slug else segment for segment in segments]
            templates["/" + "/".join(templated)] += 1
        return templates

    def predict_hub_urls(
        self,
        domain: str,
        entity_name: str,
        entity_code: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[HubPrediction]:
        """
        Predict likely hub URLs for an entity on a domain.

        Args:
            domain: Host name or base URL (e.g. "bbc.co.uk")
            entity_name: Entity display name (e.g. "France")
            entity_code: Country or admin code (e.g. "FR"), if any
            limit: Maximum number of predictions

        Returns:
            Predictions sorted by confidence (highest first), never empty

        Raises:
            ConfigurationError: Empty domain or name
        """
        if not domain or not domain.strip():
            raise ConfigurationError("Domain is required for hub prediction")
        if not entity_name or not normalize_name(entity_name):
            raise ConfigurationError("Entity name is required for hub prediction")

        base = _base_url(domain)
        variants = _slug_variants(entity_name)
        code = entity_code.strip().lower() if entity_code and entity_code.strip() else None
        best: dict[str, HubPrediction] = {}

        def _add(path: str, confidence: float, pattern: str) -> None:
            url = f"{base}{path}"
            confidence = round(min(confidence, 0.99), 3)
            if url not in best or best[url].confidence < confidence:
                best[url] = HubPrediction(url=url, confidence=confidence, pattern=pattern)

        for template, count in self._learned_templates(domain).items():
            confidence = LEARNED_PATTERN_CONFIDENCE + 0.01 * min(count, 9)
            _add(template.format(slug=variants["dashed"]), confidence, f"learned:{template}")

        for template, base_confidence in self.patterns:
            if "{code}" in template:
                if code:
                    _add(template.format(code=code), base_confidence, template)
                continue
            for label, weight in _SLUG_VARIANT_WEIGHTS:
                if label in variants:
                    _add(template.format(slug=variants[label]), base_confidence * weight, template)

        predictions = sorted(best.values(), key=lambda p: (-p.confidence, p.url))
        return predictions if limit is None else predictions[:limit]

    # -------------------------------------------------------------------------
    # Coverage
    # -------------------------------------------------------------------------

    def _hub_states(self, domain: str) -> dict[str, bool]:
        """Map linked slug -> visited (True) or only seeded (False)."""
        states: dict[str, bool] = {}
        for hub in self._repo.list_hubs(normalize_host(domain), linked=True):
            slug = self._linked_slug(hub)
            if slug:
                states[slug] = states.get(slug, False) or hub.nav_links_count is not None
        return states

    def coverage_stats(self, domain: str) -> CoverageStats:
        """Seeded/visited/eligible counts for this kind on a domain."""
        entities = self.eligible_entities()
        states = self._hub_states(domain)
        seeded = visited = 0
        for entity in entities:
            if entity.slug in states:
                if states[entity.slug]:
                    visited += 1
                else:
                    seeded += 1
        return CoverageStats(seeded=seeded, visited=visited, total_eligible=len(entities))

    def missing_entities(self, domain: str) -> list[HubEntity]:
        """Eligible entities with no linked hub on the domain, most important first."""
        states = self._hub_states(domain)
        return [e for e in self.eligible_entities() if e.slug not in states]

    def analyze_gaps(self, domain: str, stats: Optional[CoverageStats] = None) -> GapAnalysis:
        """
        Coverage of this kind on a domain.

        Args:
            domain: Domain to analyze
            stats: Counts to use instead of reading them from the database

        Returns:
            GapAnalysis; missing is never negative and coverage is a whole percent
        """
        stats = stats or self.coverage_stats(domain)
        covered = stats.seeded + stats.visited
        total = stats.total_eligible
        missing = max(0, total - covered)
        if total <= 0:
            coverage = 100
        else:
            # Half-up rounding, capped for over-counted inputs
            coverage = min(100, int(math.floor(100 * covered / total + 0.5)))
        return GapAnalysis(
            domain=normalize_host(domain),
            kind=self.kind,
            seeded=stats.seeded,
            visited=stats.visited,
            total_eligible=total,
            missing=missing,
            coverage_percent=coverage,
            is_complete=missing == 0,
        )


class CountryHubGapAnalyzer(HubGapAnalyzer):
    kind = "country"
    patterns = (
        ("/world/{slug}", 0.85),
        ("/news/world/{slug}", 0.8),
        ("/international/{slug}", 0.65),
        ("/world/{code}", 0.55),
        ("/{slug}", 0.5),
        ("/topics/{slug}", 0.45),
        ("/tag/{slug}", 0.4),
        ("/{code}", 0.35),
    )

    def _entity_code(self, place: PlaceRecord) -> Optional[str]:
        return place.country_code


class RegionHubGapAnalyzer(HubGapAnalyzer):
    kind = "region"
    patterns = (
        ("/news/{slug}", 0.7),
        ("/region/{slug}", 0.65),
        ("/regions/{slug}", 0.6),
        ("/{slug}", 0.5),
        ("/local/{slug}", 0.45),
        ("/news/{code}", 0.35),
    )

    def _entity_code(self, place: PlaceRecord) -> Optional[str]:
        return place.adm1_code


class CityHubGapAnalyzer(HubGapAnalyzer):
    kind = "city"
    patterns = (
        ("/news/{slug}", 0.65),
        ("/city/{slug}", 0.6),
        ("/local/{slug}", 0.55),
        ("/{slug}", 0.5),
        ("/tag/{slug}", 0.4),
    )


class TopicHubGapAnalyzer(HubGapAnalyzer):
    kind = "topic"
    patterns = (
        ("/topics/{slug}", 0.8),
        ("/topic/{slug}", 0.75),
        ("/news/{slug}", 0.65),
        ("/{slug}", 0.55),
        ("/tag/{slug}", 0.5),
        ("/section/{slug}", 0.4),
    )

    def _linked_slug(self, hub: PlaceHubRecord) -> Optional[str]:
        return hub.topic_slug


_ANALYZERS: dict[str, type[HubGapAnalyzer]] = {
    "country": CountryHubGapAnalyzer,
    "region": RegionHubGapAnalyzer,
    "city": CityHubGapAnalyzer,
    "topic": TopicHubGapAnalyzer,
}


def get_hub_gap_analyzer(kind: str, repository: GazetteerRepository) -> HubGapAnalyzer:
    """Create the analyzer for a place kind."""
    try:
        return _ANALYZERS[kind](repository)
    except KeyError:
        raise ConfigurationError(f"Unknown kind '{kind}'. Choose from: {', '.join(_ANALYZERS)}")
