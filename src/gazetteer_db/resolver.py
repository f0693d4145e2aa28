"""
Identity resolution for incoming place records.

Decides whether a place delivered by an ingestion source already exists in
the gazetteer under another source's identity. Strategies are tried from
strongest to weakest anchor and the first hit wins:

    wikidata QID > OSM id > GeoNames id > country code > admin codes
    > city name (+ coordinates) > coordinate proximity

No match is not an error: the caller inserts a new place.
"""

import logging
import math
from typing import Optional

from .distance import DistanceMetric, planar_distance
from .errors import ConfigurationError
from .models import MatchResult, PlaceCandidate
from .store import GazetteerRepository, normalize_name

logger = logging.getLogger(__name__)

# ~5.5 km at the equator under the planar metric
DEFAULT_COORDINATE_THRESHOLD = 0.05


class IdentityResolver:
    """Resolve place candidates to existing place ids."""

    def __init__(
        self,
        repository: GazetteerRepository,
        metric: DistanceMetric = planar_distance,
        coordinate_threshold: float = DEFAULT_COORDINATE_THRESHOLD,
    ):
        """
        Initialize the resolver.

        Args:
            repository: Gazetteer repository used for lookups (read-only use)
            metric: Distance function for coordinate checks, planar by default
            coordinate_threshold: Default threshold in degrees when the
                candidate does not carry its own
        """
        _check_threshold(coordinate_threshold)
        self._repo = repository
        self._metric = metric
        self._threshold = coordinate_threshold

    def resolve(self, candidate: PlaceCandidate) -> Optional[MatchResult]:
        """
        Resolve a candidate to an existing place.

        Args:
            candidate: Incoming place description

        Returns:
            MatchResult with the place id and the strategy that matched,
            or None when every strategy is exhausted
        """
        threshold = candidate.coordinate_threshold
        if threshold is None:
            threshold = self._threshold
        _check_threshold(threshold)

        result = self._resolve(candidate, threshold)
        if result:
            logger.debug(f"Resolved candidate to place {result.place_id} via {result.strategy}")
        else:
            logger.debug(f"No match for candidate kind={candidate.kind} country={candidate.country_code}")
        return result

    def _resolve(self, candidate: PlaceCandidate, threshold: float) -> Optional[MatchResult]:
        repo = self._repo
        country_code = candidate.country_code.upper() if candidate.country_code else None
        kind = candidate.kind

        # 1. Wikidata QID: dedicated column first, then external ids
        if candidate.wikidata_qid:
            place_id = repo.find_place_id_by_wikidata_qid(candidate.wikidata_qid)
            if place_id is None:
                place_id = repo.find_place_id_by_external_id("wikidata", candidate.wikidata_qid)
            if place_id is not None:
                return MatchResult(place_id=place_id, strategy="wikidata_qid")

        # 2. OSM id
        if candidate.osm_id is not None and str(candidate.osm_id) != "":
            osm_type = candidate.osm_type or "relation"
            place_id = repo.find_place_id_by_external_id("osm", f"{osm_type}/{candidate.osm_id}")
            if place_id is not None:
                return MatchResult(place_id=place_id, strategy="osm_id")

        # 3. GeoNames id
        if candidate.geonames_id is not None and str(candidate.geonames_id) != "":
            place_id = repo.find_place_id_by_external_id("geonames", str(candidate.geonames_id))
            if place_id is not None:
                return MatchResult(place_id=place_id, strategy="geonames_id")

        # 4. Countries by ISO code
        if kind == "country" and country_code:
            place_id = repo.find_country_id(country_code)
            if place_id is not None:
                return MatchResult(place_id=place_id, strategy="country_code")

        # 5. Regions by admin codes
        if kind == "region" and country_code and candidate.adm1_code:
            place_id = repo.find_region_id(country_code, candidate.adm1_code, candidate.adm2_code)
            if place_id is not None:
                strategy = "adm2_code" if candidate.adm2_code else "adm1_code"
                return MatchResult(place_id=place_id, strategy=strategy)

        # 6. Cities by name, confirmed by coordinates when both sides have them
        normalized = candidate.normalized_name or normalize_name(candidate.name)
        if kind == "city" and country_code and normalized:
            for place in repo.find_cities_by_name(country_code, normalized):
                if not (candidate.has_coordinates and place.has_coordinates):
                    return MatchResult(place_id=place.id, strategy="normalized_name")
                distance = float(self._metric(candidate.lat, candidate.lng, place.lat, place.lng))
                if distance < threshold:
                    return MatchResult(place_id=place.id, strategy="name_and_coords", distance=distance)
                # Same name, different city: keep looking

        # 7. Nearest place of the same kind and country
        if kind and country_code and candidate.has_coordinates:
            nearby = repo.find_places_with_coordinates_near(kind, country_code, candidate.lat, threshold)
            best_id: Optional[int] = None
            best_distance = math.inf
            for place in nearby:
                distance = float(self._metric(candidate.lat, candidate.lng, place.lat, place.lng))
                if distance < best_distance:
                    best_id, best_distance = place.id, distance
            if best_id is not None and best_distance < threshold:
                return MatchResult(place_id=best_id, strategy="coordinate_proximity", distance=best_distance)

        return None


def _check_threshold(threshold: float) -> None:
    if not isinstance(threshold, (int, float)) or not math.isfinite(threshold) or threshold <= 0:
        raise ConfigurationError(f"Coordinate threshold must be a positive number, got {threshold!r}")
