"""
Place ingestion: resolve-or-insert, names, external ids.

``PlaceIngestor`` is the entry point for every source. It consults the
identity resolver inside the write transaction so two writers cannot both
insert the same place. ``ingest_countries_from_pycountry`` is the built-in
source, gated by the ingestion run ledger.
"""

import logging
from importlib.metadata import PackageNotFoundError, version
from typing import Iterator, Optional

import pycountry

from .models import (
    ImportSummary,
    IngestOutcome,
    NameInput,
    NameKind,
    PlaceCandidate,
    PlaceInput,
    PlaceKind,
    PlaceRecord,
    RunStats,
)
from .resolver import IdentityResolver
from .runs import IngestionRunTracker
from .store import GazetteerRepository, normalize_name

logger = logging.getLogger(__name__)

PYCOUNTRY_SOURCE = "pycountry"

# Fields copied onto an existing place only when it has no value yet
_FILLABLE_FIELDS = ("country_code", "adm1_code", "adm2_code", "population", "wikidata_qid")


class PlaceIngestor:
    """Resolve incoming places against the gazetteer and write them."""

    def __init__(self, repository: GazetteerRepository, resolver: Optional[IdentityResolver] = None):
        self._repo = repository
        self._resolver = resolver or IdentityResolver(repository)

    def ingest_place(self, place: PlaceInput) -> IngestOutcome:
        """
        Insert a place or enrich the existing one it resolves to.

        Args:
            place: Place from an ingestion source

        Returns:
            IngestOutcome with the place id, whether it was created, the
            matching strategy and the number of names added
        """
        repo = self._repo
        first_name = place.names[0].name if place.names else None
        candidate = PlaceCandidate(
            kind=place.kind,
            wikidata_qid=place.wikidata_qid,
            osm_type=place.osm_type,
            osm_id=place.osm_id,
            geonames_id=place.geonames_id,
            country_code=place.country_code,
            adm1_code=place.adm1_code,
            adm2_code=place.adm2_code,
            name=first_name,
            lat=place.lat,
            lng=place.lng,
        )

        with repo.transaction():
            match = self._resolver.resolve(candidate)
            if match:
                place_id = match.place_id
                existing = repo.get_place(place_id)
                self._fill_missing(existing, place)
            else:
                place_id = repo.insert_place(
                    PlaceRecord(
                        kind=place.kind,
                        country_code=place.country_code.upper() if place.country_code else None,
                        adm1_code=place.adm1_code,
                        adm2_code=place.adm2_code,
                        lat=place.lat,
                        lng=place.lng,
                        population=place.population,
                        wikidata_qid=place.wikidata_qid,
                        source=place.source,
                        extra=place.extra,
                    )
                )
                existing = None

            names_added = self._add_names(place_id, place.names, place.source, existing)
            self._add_external_ids(place_id, place)

        logger.debug(
            f"Ingested {first_name!r} as place {place_id} "
            f"({'matched via ' + match.strategy if match else 'created'}, {names_added} names)"
        )
        return IngestOutcome(
            place_id=place_id,
            created=match is None,
            strategy=match.strategy if match else None,
            names_added=names_added,
        )

    def _fill_missing(self, existing: Optional[PlaceRecord], place: PlaceInput) -> None:
        if existing is None:
            return
        updates = {}
        for field in _FILLABLE_FIELDS:
            value = getattr(place, field)
            if value is not None and getattr(existing, field) is None:
                updates[field] = value
        if not existing.has_coordinates and place.lat is not None and place.lng is not None:
            updates["lat"], updates["lng"] = place.lat, place.lng
        if updates:
            self._repo.update_place(existing.id, **updates)

    def _add_names(
        self,
        place_id: int,
        names: list[NameInput],
        source: str,
        existing: Optional[PlaceRecord],
    ) -> int:
        added = 0
        canonical_id = existing.canonical_name_id if existing else None
        first_id: Optional[int] = None
        preferred_id: Optional[int] = None
        for name in names:
            normalized = normalize_name(name.name)
            if not normalized:
                continue
            name_id, inserted = self._repo.add_name(
                place_id,
                name.name,
                normalized,
                lang=name.lang,
                name_kind=name.name_kind,
                is_preferred=name.is_preferred,
                is_official=name.is_official,
                source=source,
            )
            added += int(inserted)
            first_id = first_id or name_id
            if name.is_preferred and preferred_id is None:
                preferred_id = name_id
        if canonical_id is None and (preferred_id or first_id):
            self._repo.set_canonical_name(place_id, preferred_id or first_id)
        return added

    def _add_external_ids(self, place_id: int, place: PlaceInput) -> None:
        ids = dict(place.external_ids)
        if place.wikidata_qid:
            ids["wikidata"] = place.wikidata_qid
        if place.osm_id is not None and str(place.osm_id) != "":
            ids["osm"] = f"{place.osm_type or 'relation'}/{place.osm_id}"
        if place.geonames_id is not None and str(place.geonames_id) != "":
            ids["geonames"] = str(place.geonames_id)
        for source, ext_id in ids.items():
            if not self._repo.add_external_id(source, ext_id, place_id):
                owner = self._repo.find_place_id_by_external_id(source, ext_id)
                if owner != place_id:
                    logger.warning(f"External id {source}:{ext_id} already belongs to place {owner}, not {place_id}")


# =============================================================================
# pycountry source
# =============================================================================


def pycountry_version() -> str:
    """Installed pycountry version, used as the source version of a run."""
    try:
        return version("pycountry")
    except PackageNotFoundError:
        return "unknown"


def iter_pycountry_places() -> Iterator[PlaceInput]:
    """Yield one PlaceInput per ISO 3166-1 country."""
    for country in pycountry.countries:
        names = [NameInput(name=country.name, lang="en", name_kind=NameKind.COMMON, is_preferred=True)]
        official_name = getattr(country, "official_name", None)
        if official_name and official_name != country.name:
            names.append(NameInput(name=official_name, lang="en", name_kind=NameKind.OFFICIAL, is_official=True))
        common_name = getattr(country, "common_name", None)
        if common_name and common_name != country.name:
            names.append(NameInput(name=common_name, lang="en", name_kind=NameKind.ALIAS))

        external_ids = {"iso3166-alpha3": country.alpha_3}
        numeric = getattr(country, "numeric", None)
        if numeric:
            external_ids["iso3166-numeric"] = numeric

        yield PlaceInput(
            kind=PlaceKind.COUNTRY,
            source=PYCOUNTRY_SOURCE,
            country_code=country.alpha_2,
            names=names,
            external_ids=external_ids,
        )


def ingest_countries_from_pycountry(
    repository: GazetteerRepository,
    force: bool = False,
    limit: Optional[int] = None,
) -> ImportSummary:
    """
    Import every pycountry country, tracked as one ingestion run.

    Args:
        repository: Writable gazetteer repository
        force: Re-import even if this pycountry version was already imported
        limit: Stop after this many countries

    Returns:
        ImportSummary; ``skipped`` is True when a completed run exists
    """
    source_version = pycountry_version()
    tracker = IngestionRunTracker(repository)
    check, run_id = tracker.begin_run(
        PYCOUNTRY_SOURCE, source_version, force=force, metadata={"limit": limit}
    )
    summary = ImportSummary(source=PYCOUNTRY_SOURCE, source_version=source_version, last_run=check.last_run)
    if run_id is None:
        summary.skipped = True
        return summary

    summary.run_id = run_id
    stats = RunStats()
    ingestor = PlaceIngestor(repository)
    try:
        for place in iter_pycountry_places():
            if limit is not None and stats.countries_processed >= limit:
                break
            outcome = ingestor.ingest_place(place)
            stats.countries_processed += 1
            if outcome.created:
                stats.places_created += 1
            else:
                stats.places_updated += 1
            stats.names_added += outcome.names_added
    except Exception as e:
        tracker.fail_run(run_id, str(e))
        raise

    tracker.complete_run(run_id, stats)
    summary.stats = stats
    logger.info(
        f"Imported {stats.countries_processed} countries from pycountry {source_version}: "
        f"{stats.places_created} created, {stats.places_updated} updated"
    )
    return summary
