"""Tests for GazetteerRepository (transactions, places, names, ids, relations, hubs)."""

import threading

import pytest

from gazetteer_db.models import DomainDetermination, HubAuditEntry, PlaceHubRecord, PlaceRecord, RunStats
from gazetteer_db.store import GazetteerRepository, get_repository


# ---------------------------------------------------------------------------
# Repository cache
# ---------------------------------------------------------------------------


class TestGetRepository:
    def test_same_instance_per_path(self, db_path):
        assert get_repository(db_path) is get_repository(db_path)

    def test_readonly_is_separate_instance(self, db_path):
        writable = get_repository(db_path)
        writable.get_stats()
        assert get_repository(db_path, readonly=True) is not writable


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TestTransaction:
    def test_commit(self, repo, db_path):
        with repo.transaction():
            repo.insert_place(PlaceRecord(kind="country", country_code="FR"))

        other = GazetteerRepository(db_path)
        assert other.find_country_id("FR") is not None
        other.close()

    def test_rollback_on_error(self, repo):
        with pytest.raises(RuntimeError):
            with repo.transaction():
                repo.insert_place(PlaceRecord(kind="country", country_code="FR"))
                raise RuntimeError("boom")

        assert repo.find_country_id("FR") is None

    def test_nested_rollback_keeps_outer_work(self, repo):
        with repo.transaction():
            repo.insert_place(PlaceRecord(kind="country", country_code="FR"))
            with pytest.raises(RuntimeError):
                with repo.transaction():
                    repo.insert_place(PlaceRecord(kind="country", country_code="DE"))
                    raise RuntimeError("inner")

        assert repo.find_country_id("FR") is not None
        assert repo.find_country_id("DE") is None

    def test_concurrent_writers_are_serialized(self, db_path):
        GazetteerRepository(db_path).get_stats()
        errors = []

        def _writer(code: str):
            repository = GazetteerRepository(db_path)
            try:
                for i in range(20):
                    with repository.transaction():
                        repository.insert_place(PlaceRecord(kind="city", country_code=code, population=i))
            except Exception as e:
                errors.append(e)
            finally:
                repository.close()

        threads = [threading.Thread(target=_writer, args=(code,)) for code in ("FR", "DE", "ES")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        stats = GazetteerRepository(db_path).get_stats()
        assert stats.places_by_kind["city"] == 60


# ---------------------------------------------------------------------------
# Places
# ---------------------------------------------------------------------------


class TestPlaces:
    def test_insert_and_get(self, repo, make_place):
        place_id = make_place("Paris", lat=48.8566, lng=2.3522, extra={"role": "capital"})

        place = repo.get_place(place_id)
        assert place.name == "Paris"
        assert place.kind == "city"
        assert place.has_coordinates
        assert place.extra == {"role": "capital"}

    def test_get_missing(self, repo):
        assert repo.get_place(999) is None

    def test_update_place_rejects_unknown_columns(self, repo, make_place):
        place_id = make_place("Paris")
        with pytest.raises(ValueError, match="Cannot update place columns"):
            repo.update_place(place_id, kind="country")

    def test_update_place(self, repo, make_place):
        place_id = make_place("Paris")
        with repo.transaction():
            assert repo.update_place(place_id, population=2_100_000, extra={"role": "capital"}) == 1
        place = repo.get_place(place_id)
        assert place.population == 2_100_000
        assert place.extra == {"role": "capital"}

    def test_list_places_by_kind(self, repo, make_place):
        make_place("Paris")
        make_place("France", kind="country")
        make_place("Berlin", country_code="DE")

        assert [p.name for p in repo.list_places_by_kind("city")] == ["Paris", "Berlin"]
        assert [p.name for p in repo.list_places_by_kind("city", "DE")] == ["Berlin"]

    def test_delete_cascades_names(self, repo, make_place):
        place_id = make_place("Paris")
        with repo.transaction():
            repo.delete_places([place_id])
        assert repo.get_names(place_id) == []


# ---------------------------------------------------------------------------
# Names
# ---------------------------------------------------------------------------


class TestNames:
    def test_add_name_is_idempotent(self, repo, make_place):
        place_id = make_place("Paris")
        with repo.transaction():
            first = repo.add_name(place_id, "Paris", "paris", lang="fr")
            second = repo.add_name(place_id, "PARIS", "paris", lang="fr")
        assert first[1] is True
        assert second == (first[0], False)

    def test_null_lang_is_a_distinct_key(self, repo, make_place):
        place_id = make_place("Paris")
        with repo.transaction():
            _, inserted_null = repo.add_name(place_id, "Paris", "paris", lang=None)
            _, inserted_again = repo.add_name(place_id, "Paris", "paris", lang=None)
        assert inserted_null is True
        assert inserted_again is False

    def test_find_unique_name_ids(self, repo, make_place):
        survivor = make_place("Paris")
        loser = make_place("Paris")
        with repo.transaction():
            lutece_id, _ = repo.add_name(loser, "Lutèce", "lutece", lang="fr")

        assert repo.find_unique_name_ids(loser, survivor) == [lutece_id]

    def test_get_names_by_kind(self, repo, make_place):
        place_id = make_place("France", kind="country")
        with repo.transaction():
            repo.add_name(place_id, "République française", "republique francaise", lang="fr")
        assert repo.get_names_by_kind("country") == {place_id: ["France", "République française"]}


# ---------------------------------------------------------------------------
# External ids, attributes, relations
# ---------------------------------------------------------------------------


class TestExternalIds:
    def test_insert_or_ignore(self, repo, make_place):
        a = make_place("Paris")
        b = make_place("Lyon")
        with repo.transaction():
            assert repo.add_external_id("wikidata", "Q90", a) is True
            assert repo.add_external_id("wikidata", "Q90", b) is False
        assert repo.find_place_id_by_external_id("wikidata", "Q90") == a

    def test_repoint_drops_collisions(self, repo, make_place):
        a = make_place("Paris")
        b = make_place("Paris")
        with repo.transaction():
            repo.add_external_id("geonames", "2988507", b)
            repo.add_external_id("osm", "relation/7444", b)
            moved = repo.repoint_external_ids(b, a)
        assert moved == 2
        assert {e.source for e in repo.get_external_ids(a)} == {"geonames", "osm"}
        assert repo.get_external_ids(b) == []

    def test_count_external_ids(self, repo, make_place):
        a = make_place("Paris")
        b = make_place("Lyon")
        with repo.transaction():
            repo.add_external_id("wikidata", "Q90", a)
            repo.add_external_id("geonames", "2988507", a)
        assert repo.count_external_ids([a, b]) == {a: 2, b: 0}


class TestAttributes:
    def test_set_and_repoint(self, repo, make_place):
        a = make_place("Paris")
        b = make_place("Paris")
        with repo.transaction():
            assert repo.set_attribute(b, "elevation", 35, "wikidata") is True
            assert repo.set_attribute(b, "elevation", 40, "wikidata") is False
            repo.repoint_attributes(b, a)
        assert repo.get_attributes(a) == {("elevation", "wikidata"): 35}


class TestRelations:
    def test_repoint_drops_self_loops(self, repo, make_place):
        parent = make_place("Île-de-France", kind="region")
        child = make_place("Paris")
        with repo.transaction():
            repo.insert_relation(parent, child, "contains")
            repo.repoint_relations(child, parent)
        assert repo.get_relations(parent) == []


# ---------------------------------------------------------------------------
# Runs
# ---------------------------------------------------------------------------


class TestRuns:
    def test_insert_running_run_conflict(self, repo):
        with repo.transaction():
            first = repo.insert_running_run("osm", "2024-01")
            second = repo.insert_running_run("osm", "2024-01")
        assert first is not None
        assert second is None

    def test_finish_only_running(self, repo):
        with repo.transaction():
            run_id = repo.insert_running_run("osm", "2024-01")
            assert repo.finish_run(run_id, "completed", RunStats(places_created=3)) is True
            assert repo.finish_run(run_id, "failed", RunStats()) is False
        run = repo.get_run(run_id)
        assert run.status == "completed"
        assert run.places_created == 3
        assert run.completed_at is not None


# ---------------------------------------------------------------------------
# Hubs
# ---------------------------------------------------------------------------


class TestHubs:
    def test_insert_or_ignore_by_url(self, repo):
        hub = PlaceHubRecord(host="bbc.co.uk", url="https://bbc.co.uk/world/france")
        with repo.transaction():
            assert repo.insert_hub(hub) is True
            assert repo.insert_hub(hub) is False

    def test_link_hub_only_once(self, repo, make_hub):
        make_hub("https://bbc.co.uk/world/france")
        with repo.transaction():
            assert repo.link_hub("https://bbc.co.uk/world/france", "france", "country") is True
            assert repo.link_hub("https://bbc.co.uk/world/france", "spain", "country") is False
        assert repo.get_hub_by_url("https://bbc.co.uk/world/france").place_slug == "france"

    def test_list_hubs_linked_filter(self, repo, make_hub):
        make_hub("https://bbc.co.uk/world/france", place_slug="france", place_kind="country")
        make_hub("https://bbc.co.uk/news/12345")

        assert len(repo.list_hubs("bbc.co.uk")) == 2
        assert [h.url for h in repo.list_hubs("bbc.co.uk", linked=True)] == ["https://bbc.co.uk/world/france"]
        assert [h.url for h in repo.list_hubs("bbc.co.uk", linked=False)] == ["https://bbc.co.uk/news/12345"]

    def test_update_hub_rejects_unknown_columns(self, repo, make_hub):
        make_hub("https://bbc.co.uk/world/france")
        with pytest.raises(ValueError, match="Cannot update hub columns"):
            repo.update_hub("https://bbc.co.uk/world/france", host="evil.com")

    def test_audit_and_determinations(self, repo):
        with repo.transaction():
            repo.insert_audit_entry(
                HubAuditEntry(domain="bbc.co.uk", url="https://bbc.co.uk/world/france", decision="accepted",
                              validation_metrics={"nav_links_count": 40})
            )
            repo.insert_determination(
                DomainDetermination(domain="bbc.co.uk", determination="processed", reason="ok")
            )
            repo.insert_determination(
                DomainDetermination(domain="bbc.co.uk", determination="rate-limited", reason="429")
            )

        entries = repo.list_audit_entries("bbc.co.uk")
        assert len(entries) == 1
        assert entries[0].validation_metrics == {"nav_links_count": 40}
        assert repo.get_latest_determination("bbc.co.uk").determination == "rate-limited"
        assert repo.get_latest_determination("cnn.com") is None


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


class TestStats:
    def test_counts(self, repo, make_place, make_hub):
        make_place("France", kind="country")
        make_place("Paris")
        make_hub("https://bbc.co.uk/world/france", place_slug="france", place_kind="country")
        make_hub("https://bbc.co.uk/news/1")

        stats = repo.get_stats()
        assert stats.total_places == 2
        assert stats.places_by_kind == {"country": 1, "city": 1}
        assert stats.total_names == 2
        assert stats.total_hubs == 2
        assert stats.linked_hubs == 1
        assert stats.schema_version == "1"
