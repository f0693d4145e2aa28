"""
Duplicate place detection and merging.

Places that share (country, kind, normalized name) through any of their
names, and whose coordinates all lie within the proximity threshold of each
other, are treated as one real-world place. The best-scoring member survives;
the others have their names, relations, attributes and external ids moved
onto it and are then deleted. Each group merges in its own transaction, and a
failing group is logged and skipped without stopping the batch.
"""

import logging
import math
import re
from typing import Callable, Optional

import pycountry

from .distance import DistanceMetric, max_pairwise_distance, planar_distance
from .errors import ConfigurationError, MergeGroupError
from .models import (
    PLACE_KINDS,
    DuplicateGroup,
    MergeFailure,
    MergeMember,
    MergeOptions,
    MergeOutcome,
    MergeReport,
    PlaceRecord,
)
from .store import GazetteerRepository, normalize_name

logger = logging.getLogger(__name__)

DEFAULT_PROXIMITY_THRESHOLD = 0.05

# Source of minted capital ids, matching the countries API that supplies capitals
CAPITAL_ID_SOURCE = "restcountries"

# Upper bound on repeated passes in apply mode
MAX_PASSES = 10

_COUNTRY_CODE_PATTERN = re.compile(r"^[A-Z]{2}$")

ScoringPolicy = Callable[[PlaceRecord, int], int]


def canonical_score(place: PlaceRecord, external_id_count: int) -> int:
    """
    Score a duplicate for survival; the highest score is kept.

    1000 for coordinates, +500 for a wikidata QID, +100 for a population,
    +50 for any external id, plus (10000 - id) so older rows win ties.
    """
    score = 0
    if place.has_coordinates:
        score += 1000
    if place.wikidata_qid:
        score += 500
    if place.population:
        score += 100
    if external_id_count > 0:
        score += 50
    score += 10000 - (place.id or 0)
    return score


def capital_external_id(country_code: str, name: str, source: str = CAPITAL_ID_SOURCE) -> str:
    """Stable id for a capital city: "restcountries:capital:FR:paris"."""
    return f"{source}:capital:{country_code.upper()}:{normalize_name(name)}"


def validate_merge_options(options: Optional[MergeOptions] = None) -> MergeOptions:
    """
    Check merge filters before any write.

    Returns:
        A normalized copy (upper-case country, lower-case kind)

    Raises:
        ConfigurationError: Unknown kind, malformed country code or bad threshold
    """
    options = options or MergeOptions()
    updates: dict = {}

    if options.kind is not None:
        kind = options.kind.strip().lower()
        if kind not in PLACE_KINDS:
            raise ConfigurationError(f"Unknown kind '{options.kind}'. Choose from: {', '.join(PLACE_KINDS)}")
        updates["kind"] = kind

    if options.country is not None:
        country = options.country.strip().upper()
        if not _COUNTRY_CODE_PATTERN.match(country):
            raise ConfigurationError(f"Country filter must be a 2-letter code, got '{options.country}'")
        if pycountry.countries.get(alpha_2=country) is None:
            logger.warning(f"Country code {country} is not an ISO 3166 code; filtering on it anyway")
        updates["country"] = country

    proximity = options.proximity
    if not isinstance(proximity, (int, float)) or not math.isfinite(proximity) or proximity <= 0:
        raise ConfigurationError(f"Proximity threshold must be a positive number, got {proximity!r}")

    return options.model_copy(update=updates)


class DuplicateMergeEngine:
    """Find and merge duplicate places."""

    def __init__(
        self,
        repository: GazetteerRepository,
        metric: DistanceMetric = planar_distance,
        scoring: ScoringPolicy = canonical_score,
    ):
        self._repo = repository
        self._metric = metric
        self._scoring = scoring

    def find_duplicate_groups(self, options: Optional[MergeOptions] = None) -> list[DuplicateGroup]:
        """
        Find groups of places to merge. Read-only.

        A place joins at most one group per call; overlapping groups are
        picked up by the next pass once the first has merged.

        Args:
            options: Filters and proximity threshold

        Returns:
            Accepted groups with survivor and losers already chosen
        """
        options = validate_merge_options(options)
        name_groups = self._repo.find_duplicate_name_groups(options.country, options.kind, options.role)
        logger.info(f"Found {len(name_groups)} candidate name groups")

        claimed: set[int] = set()
        groups: list[DuplicateGroup] = []
        for name_group in name_groups:
            ids = [pid for pid in name_group.place_ids if pid not in claimed]
            if len(ids) < 2:
                continue
            places = self._repo.get_places(ids)
            if len(places) < 2:
                continue

            located = [p for p in places if p.has_coordinates]
            max_distance: Optional[float] = None
            if len(located) >= 2:
                max_distance = max_pairwise_distance(
                    [p.lat for p in located], [p.lng for p in located], self._metric
                )
                if max_distance > options.proximity:
                    logger.debug(
                        f"Rejected group '{name_group.normalized}' ({name_group.country_code}): "
                        f"max distance {max_distance:.4f} > {options.proximity}"
                    )
                    continue

            ext_counts = self._repo.count_external_ids([p.id for p in places])
            members = sorted(
                (
                    MergeMember(
                        place_id=p.id,
                        score=self._scoring(p, ext_counts.get(p.id, 0)),
                        lat=p.lat,
                        lng=p.lng,
                        wikidata_qid=p.wikidata_qid,
                        population=p.population,
                        external_id_count=ext_counts.get(p.id, 0),
                    )
                    for p in places
                ),
                key=lambda m: m.score,
                reverse=True,
            )
            groups.append(
                DuplicateGroup(
                    country_code=name_group.country_code,
                    kind=name_group.kind,
                    normalized=name_group.normalized,
                    example_name=name_group.example_name,
                    survivor=members[0],
                    losers=members[1:],
                    max_distance=max_distance,
                )
            )
            claimed.update(p.id for p in places)

        logger.info(f"Accepted {len(groups)} duplicate groups")
        return groups

    def merge_group(self, group: DuplicateGroup, options: Optional[MergeOptions] = None) -> MergeOutcome:
        """
        Merge one group atomically.

        Raises:
            MergeGroupError: Any failure; nothing from this group was committed
        """
        options = options or MergeOptions()
        survivor_id = group.survivor.place_id
        loser_ids = group.loser_ids
        repo = self._repo
        outcome = MergeOutcome(survivor_id=survivor_id, deleted_ids=loser_ids)

        try:
            with repo.transaction():
                survivor = repo.get_place(survivor_id)
                losers = {p.id: p for p in repo.get_places(loser_ids)}
                if survivor is None or len(losers) != len(loser_ids):
                    raise LookupError("group members changed since the group was built")

                moved_name_ids: set[int] = set()
                for loser_id in loser_ids:
                    unique_ids = repo.find_unique_name_ids(loser_id, survivor_id)
                    outcome.names_moved += repo.move_names(unique_ids, survivor_id)
                    moved_name_ids.update(unique_ids)
                    outcome.names_dropped += repo.delete_names_of(loser_id)
                    outcome.relations_repointed += repo.repoint_relations(loser_id, survivor_id)
                    outcome.attributes_repointed += repo.repoint_attributes(loser_id, survivor_id)
                    outcome.external_ids_repointed += repo.repoint_external_ids(loser_id, survivor_id)

                updates = _adopted_fields(survivor, [losers[i] for i in loser_ids], moved_name_ids)
                if updates:
                    repo.update_place(survivor_id, **updates)

                if self._should_mint(options) and group.country_code:
                    ext_id = capital_external_id(group.country_code, group.normalized)
                    if repo.add_external_id(CAPITAL_ID_SOURCE, ext_id, survivor_id):
                        outcome.minted_external_id = ext_id

                repo.delete_places(loser_ids)
        except Exception as e:
            raise MergeGroupError(survivor_id, loser_ids, e) from e

        logger.debug(
            f"Merged {loser_ids} into {survivor_id}: {outcome.names_moved} names moved, "
            f"{outcome.relations_repointed} relations repointed"
        )
        return outcome

    def run(self, options: Optional[MergeOptions] = None, apply: bool = False) -> MergeReport:
        """
        Run a merge pass.

        Without ``apply`` this only previews. With ``apply`` it repeats passes
        until a pass finds no mergeable group, so a following run finds none.

        Args:
            options: Filters and proximity threshold
            apply: Write the merges (default is preview only)

        Returns:
            MergeReport with groups found, outcomes and failures
        """
        options = validate_merge_options(options)
        report = MergeReport(applied=apply)

        if not apply:
            report.groups = self.find_duplicate_groups(options)
            report.passes = 1
            logger.info(f"Preview: {report.groups_found} groups, {report.would_delete} places would be deleted")
            return report

        failed: set[frozenset[int]] = set()
        while report.passes < MAX_PASSES:
            groups = [
                g for g in self.find_duplicate_groups(options)
                if frozenset([g.survivor.place_id, *g.loser_ids]) not in failed
            ]
            report.passes += 1
            if not groups:
                break
            report.groups.extend(groups)
            for group in groups:
                try:
                    report.outcomes.append(self.merge_group(group, options))
                except MergeGroupError as e:
                    logger.warning(str(e))
                    failed.add(frozenset([group.survivor.place_id, *group.loser_ids]))
                    report.failures.append(
                        MergeFailure(survivor_id=e.survivor_id, loser_ids=e.loser_ids, error=str(e.cause))
                    )
        else:
            logger.warning(f"Stopped after {MAX_PASSES} merge passes")

        logger.info(
            f"Merged {report.merged} groups, deleted {report.deleted} places, "
            f"{len(report.failures)} failures in {report.passes} passes"
        )
        return report

    @staticmethod
    def _should_mint(options: MergeOptions) -> bool:
        if options.mint_capital_ids is not None:
            return options.mint_capital_ids
        return options.role == "capital"


def _adopted_fields(survivor: PlaceRecord, losers: list[PlaceRecord], moved_name_ids: set[int]) -> dict:
    """Fields the survivor lacks, taken from the best-scoring loser that has them."""
    updates: dict = {}
    has_coordinates = survivor.has_coordinates
    for loser in losers:
        if not survivor.wikidata_qid and "wikidata_qid" not in updates and loser.wikidata_qid:
            updates["wikidata_qid"] = loser.wikidata_qid
        if survivor.population is None and "population" not in updates and loser.population is not None:
            updates["population"] = loser.population
        if not has_coordinates and loser.has_coordinates:
            updates["lat"], updates["lng"] = loser.lat, loser.lng
            has_coordinates = True
        if (
            survivor.canonical_name_id is None
            and "canonical_name_id" not in updates
            and loser.canonical_name_id in moved_name_ids
        ):
            updates["canonical_name_id"] = loser.canonical_name_id
    return updates
