"""
Link known, unlinked hub pages on a domain to the countries they cover.

Hub rows can be recorded before anyone knows which place they belong to.
For every country still missing a hub on the domain, the matcher looks for
such rows whose URL path or title names the country, validates them, and
links the best one.
"""

import logging
from typing import Optional
from urllib.parse import unquote, urlsplit

from ..errors import ConfigurationError
from ..models import (
    HubEntity,
    HubMatchReport,
    MatchAction,
    MatchOptions,
    PageEvidence,
    PlaceHubRecord,
    SkippedCandidate,
    ValidationThresholds,
)
from ..store import GazetteerRepository, normalize_host, slugify
from .analyzer import CountryHubGapAnalyzer, HubGapAnalyzer
from .validator import HubCandidateValidator

logger = logging.getLogger(__name__)


def _path_segments(url: str) -> list[str]:
    path = unquote(urlsplit(url).path)
    return [s for s in (slugify(segment) for segment in path.split("/") if segment) if s]


def _code_prefixes(patterns: tuple[tuple[str, float], ...]) -> list[tuple[str, ...]]:
    """Section prefixes under which a bare place code names a place, e.g. ("world",) from "/world/{code}"."""
    prefixes = []
    for template, _ in patterns:
        segments = [s for s in template.split("/") if s]
        if len(segments) > 1 and segments[-1] == "{code}" and "{slug}" not in segments:
            prefixes.append(tuple(segments[:-1]))
    return prefixes


def _code_in_section(segments: list[str], code: str, prefixes: list[tuple[str, ...]]) -> bool:
    for prefix in prefixes:
        window = list(prefix) + [code]
        for start in range(len(segments) - len(window) + 1):
            if segments[start:start + len(window)] == window:
                return True
    return False


def _title_matches(title: Optional[str], name_slugs: set[str]) -> bool:
    if not title:
        return False
    padded = f"-{slugify(title)}-"
    return any(f"-{slug}-" in padded for slug in name_slugs if slug)


class HubMatcher:
    """Match unlinked hub rows to missing places."""

    def __init__(
        self,
        repository: GazetteerRepository,
        analyzer: Optional[HubGapAnalyzer] = None,
        validator: Optional[HubCandidateValidator] = None,
    ):
        self._repo = repository
        self._analyzer = analyzer or CountryHubGapAnalyzer(repository)
        self._validator = validator or HubCandidateValidator()

    def _entity_slugs(self, entity: HubEntity, names: list[str]) -> set[str]:
        slugs = {entity.slug}
        slugs.update(s for s in (slugify(n) for n in names) if s)
        return slugs

    def _hub_matches(
        self,
        hub: PlaceHubRecord,
        entity: HubEntity,
        slugs: set[str],
        code_prefixes: list[tuple[str, ...]],
    ) -> bool:
        """A hub names an entity by a name slug in its path or title, or by its code under a section prefix."""
        segments = _path_segments(hub.url)
        if slugs.intersection(segments) or _title_matches(hub.title, slugs):
            return True
        # Two-letter codes collide with ordinary path words ("ai", "tv", "in")
        if entity.code and code_prefixes:
            return _code_in_section(segments, entity.code.lower(), code_prefixes)
        return False

    def match_domain(self, domain: str, options: Optional[MatchOptions] = None) -> HubMatchReport:
        """
        Link validated hub candidates on a domain to missing places.

        Args:
            domain: Domain to process
            options: dry_run (default True) and validation thresholds

        Returns:
            HubMatchReport with actions, skipped candidates and gap analysis
            before and after
        """
        if not domain or not domain.strip():
            raise ConfigurationError("Domain is required for hub matching")
        options = options or MatchOptions()
        thresholds = ValidationThresholds(
            min_nav_links=options.min_nav_links, min_article_links=options.min_article_links
        )
        host = normalize_host(domain)
        kind = self._analyzer.kind

        analysis_before = self._analyzer.analyze_gaps(host)
        candidates = self._repo.list_hubs(host, linked=False)
        missing = self._analyzer.missing_entities(host)
        names_by_place = self._repo.get_names_by_kind(kind)
        logger.info(f"{host}: {len(missing)} missing {kind} hubs, {len(candidates)} unlinked candidates")

        actions: list[MatchAction] = []
        # First reason per URL; entity-level errors carry no URL
        skipped_by_url: dict[str, SkippedCandidate] = {}
        errors: list[SkippedCandidate] = []
        code_prefixes = _code_prefixes(self._analyzer.patterns)
        matched_urls: set[str] = set()
        used_urls: set[str] = set()

        for entity in missing:
            try:
                slugs = self._entity_slugs(entity, names_by_place.get(entity.place_id, []))
                matching = [
                    hub for hub in candidates
                    if hub.url not in used_urls and self._hub_matches(hub, entity, slugs, code_prefixes)
                ]
                if not matching:
                    continue
                matching.sort(key=lambda h: (-(h.nav_links_count or 0), h.id or 0))
                matched_urls.update(h.url for h in matching)

                chosen: Optional[PlaceHubRecord] = None
                for hub in matching:
                    if chosen is not None:
                        skipped_by_url.setdefault(hub.url, SkippedCandidate(
                            url=hub.url, place_name=entity.name, reason="place-already-matched"
                        ))
                        continue
                    result = self._validator.validate(
                        PageEvidence(
                            nav_links_count=hub.nav_links_count,
                            article_links_count=hub.article_links_count,
                            title=hub.title,
                        ),
                        thresholds,
                    )
                    if not result.passed:
                        skipped_by_url.setdefault(
                            hub.url, SkippedCandidate(url=hub.url, place_name=entity.name, reason=result.reason)
                        )
                        continue
                    chosen = hub

                if chosen is None:
                    continue

                applied = False
                if not options.dry_run:
                    with self._repo.transaction():
                        applied = self._repo.link_hub(chosen.url, entity.slug, kind)
                    if not applied:
                        skipped_by_url.setdefault(chosen.url, SkippedCandidate(
                            url=chosen.url, place_name=entity.name, reason="hub-already-linked"
                        ))
                        continue
                used_urls.add(chosen.url)
                actions.append(MatchAction(
                    url=chosen.url,
                    place_id=entity.place_id,
                    place_name=entity.name,
                    place_slug=entity.slug,
                    applied=applied,
                    nav_links_count=chosen.nav_links_count,
                    article_links_count=chosen.article_links_count,
                ))
            except Exception as e:
                logger.warning(f"{host}: matching {entity.name} failed: {e}")
                errors.append(SkippedCandidate(place_name=entity.name, reason=f"error: {e}"))

        for hub in candidates:
            if hub.url not in matched_urls:
                skipped_by_url[hub.url] = SkippedCandidate(url=hub.url, reason="no-matching-place")
        skipped = [s for url, s in skipped_by_url.items() if url not in used_urls] + errors

        if options.dry_run:
            stats = self._analyzer.coverage_stats(host)
            stats.visited += len(actions)
            analysis_after = self._analyzer.analyze_gaps(host, stats)
        else:
            analysis_after = self._analyzer.analyze_gaps(host)

        logger.info(
            f"{host}: {len(actions)} {'previewed' if options.dry_run else 'applied'} matches, "
            f"coverage {analysis_before.coverage_percent}% -> {analysis_after.coverage_percent}%"
        )
        return HubMatchReport(
            domain=host,
            dry_run=options.dry_run,
            actions=actions,
            skipped=skipped,
            analysis_before=analysis_before,
            analysis_after=analysis_after,
        )
