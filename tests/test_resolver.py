"""Tests for gazetteer_db.resolver — IdentityResolver cascade."""

import pytest

from gazetteer_db.distance import haversine_distance
from gazetteer_db.errors import ConfigurationError
from gazetteer_db.models import PlaceCandidate
from gazetteer_db.resolver import IdentityResolver


@pytest.fixture
def resolver(repo):
    return IdentityResolver(repo)


class TestExternalIdentifiers:
    def test_wikidata_qid_column(self, resolver, make_place):
        place_id = make_place("Paris", wikidata_qid="Q90")
        result = resolver.resolve(PlaceCandidate(kind="city", wikidata_qid="Q90"))
        assert result.place_id == place_id
        assert result.strategy == "wikidata_qid"

    def test_wikidata_qid_external_id(self, repo, resolver, make_place):
        place_id = make_place("Paris")
        with repo.transaction():
            repo.add_external_id("wikidata", "Q90", place_id)
        result = resolver.resolve(PlaceCandidate(wikidata_qid="Q90"))
        assert result.place_id == place_id
        assert result.strategy == "wikidata_qid"

    def test_osm_id_uses_type_prefix(self, repo, resolver, make_place):
        place_id = make_place("Paris")
        with repo.transaction():
            repo.add_external_id("osm", "relation/7444", place_id)

        assert resolver.resolve(PlaceCandidate(osm_id=7444)).strategy == "osm_id"
        assert resolver.resolve(PlaceCandidate(osm_id=7444, osm_type="node")) is None

    def test_geonames_id(self, repo, resolver, make_place):
        place_id = make_place("Paris")
        with repo.transaction():
            repo.add_external_id("geonames", "2988507", place_id)
        result = resolver.resolve(PlaceCandidate(geonames_id=2988507))
        assert result.place_id == place_id
        assert result.strategy == "geonames_id"

    def test_qid_beats_proximity(self, resolver, make_place):
        near_id = make_place("Paris", lat=48.8566, lng=2.3522)
        qid_id = make_place("Paris", lat=10.0, lng=10.0, wikidata_qid="Q90")

        result = resolver.resolve(
            PlaceCandidate(kind="city", country_code="FR", name="Paris", wikidata_qid="Q90", lat=48.8566, lng=2.3522)
        )
        assert result.place_id == qid_id
        assert result.place_id != near_id
        assert result.strategy == "wikidata_qid"

    def test_unknown_qid_falls_through(self, resolver, make_place):
        place_id = make_place("France", kind="country")
        result = resolver.resolve(PlaceCandidate(kind="country", country_code="FR", wikidata_qid="Q142"))
        assert result.place_id == place_id
        assert result.strategy == "country_code"


class TestCodes:
    def test_country_code_case_insensitive(self, resolver, make_place):
        place_id = make_place("France", kind="country")
        result = resolver.resolve(PlaceCandidate(kind="country", country_code="fr"))
        assert result.place_id == place_id

    def test_country_code_only_for_countries(self, resolver, make_place):
        make_place("France", kind="country")
        assert resolver.resolve(PlaceCandidate(kind="city", country_code="FR")) is None

    def test_adm1_code(self, resolver, make_place):
        place_id = make_place("Île-de-France", kind="region", adm1_code="11")
        result = resolver.resolve(PlaceCandidate(kind="region", country_code="FR", adm1_code="11"))
        assert result.place_id == place_id
        assert result.strategy == "adm1_code"

    def test_adm2_code_narrows(self, resolver, make_place):
        make_place("Île-de-France", kind="region", adm1_code="11")
        paris_dept = make_place("Paris", kind="region", adm1_code="11", adm2_code="75")

        result = resolver.resolve(PlaceCandidate(kind="region", country_code="FR", adm1_code="11", adm2_code="75"))
        assert result.place_id == paris_dept
        assert result.strategy == "adm2_code"

    def test_adm2_code_does_not_fall_back_to_adm1(self, resolver, make_place):
        make_place("Île-de-France", kind="region", adm1_code="11")
        assert resolver.resolve(
            PlaceCandidate(kind="region", country_code="FR", adm1_code="11", adm2_code="99")
        ) is None


class TestCityName:
    def test_name_without_coordinates(self, resolver, make_place):
        place_id = make_place("Saint-Étienne")
        result = resolver.resolve(PlaceCandidate(kind="city", country_code="FR", name="saint-etienne"))
        assert result.place_id == place_id
        assert result.strategy == "normalized_name"

    def test_name_and_coords(self, resolver, make_place):
        place_id = make_place("Paris", lat=48.8566, lng=2.3522)
        result = resolver.resolve(
            PlaceCandidate(kind="city", country_code="FR", name="Paris", lat=48.857, lng=2.3525)
        )
        assert result.place_id == place_id
        assert result.strategy == "name_and_coords"
        assert result.distance == pytest.approx(0.0007)

    def test_same_name_far_away_is_skipped(self, resolver, make_place):
        make_place("Paris", lat=48.8566, lng=2.3522)
        texas = make_place("Paris", lat=33.66, lng=-95.55)

        result = resolver.resolve(
            PlaceCandidate(kind="city", country_code="FR", name="Paris", lat=33.661, lng=-95.551)
        )
        assert result.place_id == texas
        assert result.strategy == "name_and_coords"

    def test_name_in_other_country_is_not_matched(self, resolver, make_place):
        make_place("Paris", country_code="US")
        assert resolver.resolve(PlaceCandidate(kind="city", country_code="FR", name="Paris")) is None


class TestCoordinateProximity:
    def test_nearest_wins(self, resolver, make_place):
        make_place("A", lat=10.0, lng=10.0)
        closer = make_place("B", lat=10.01, lng=10.0)

        result = resolver.resolve(PlaceCandidate(kind="city", country_code="FR", lat=10.009, lng=10.0))
        assert result.place_id == closer
        assert result.strategy == "coordinate_proximity"

    def test_exact_threshold_does_not_match(self, repo, make_place):
        make_place("A", lat=10.0, lng=20.0)
        resolver = IdentityResolver(repo, coordinate_threshold=0.5)
        assert resolver.resolve(PlaceCandidate(kind="city", country_code="FR", lat=10.25, lng=20.25)) is None

    def test_just_inside_threshold_matches(self, repo, make_place):
        place_id = make_place("A", lat=10.0, lng=20.0)
        resolver = IdentityResolver(repo, coordinate_threshold=0.5)
        result = resolver.resolve(PlaceCandidate(kind="city", country_code="FR", lat=10.25, lng=20.2499))
        assert result.place_id == place_id

    def test_candidate_threshold_overrides_default(self, resolver, make_place):
        place_id = make_place("A", lat=10.0, lng=20.0)
        candidate = PlaceCandidate(kind="city", country_code="FR", lat=10.2, lng=20.0, coordinate_threshold=0.3)
        assert resolver.resolve(candidate).place_id == place_id

    def test_requires_kind_and_country(self, resolver, make_place):
        make_place("A", lat=10.0, lng=20.0)
        assert resolver.resolve(PlaceCandidate(lat=10.0, lng=20.0)) is None

    def test_haversine_metric(self, repo, make_place):
        place_id = make_place("A", lat=60.0, lng=20.0)
        resolver = IdentityResolver(repo, metric=haversine_distance, coordinate_threshold=0.06)
        # 0.1 degrees of longitude at 60N is ~0.05 degrees of arc
        result = resolver.resolve(PlaceCandidate(kind="city", country_code="FR", lat=60.0, lng=20.1))
        assert result.place_id == place_id


class TestNoMatchAndErrors:
    def test_empty_database(self, resolver):
        assert resolver.resolve(PlaceCandidate(kind="city", country_code="FR", name="Paris")) is None

    @pytest.mark.parametrize("threshold", [0, -1.0, float("nan"), float("inf")])
    def test_invalid_default_threshold(self, repo, threshold):
        with pytest.raises(ConfigurationError):
            IdentityResolver(repo, coordinate_threshold=threshold)

    def test_invalid_candidate_threshold(self, resolver):
        with pytest.raises(ConfigurationError):
            resolver.resolve(PlaceCandidate(kind="city", country_code="FR", lat=1.0, lng=1.0, coordinate_threshold=-0.1))
