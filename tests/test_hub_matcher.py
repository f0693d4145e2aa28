"""Tests for HubMatcher."""

from unittest.mock import patch

import pytest

from gazetteer_db.errors import ConfigurationError
from gazetteer_db.hubs.matcher import HubMatcher
from gazetteer_db.models import MatchOptions


@pytest.fixture
def seeded(repo, make_place, make_hub):
    """Three countries and a handful of unlinked hub rows on bbc.co.uk."""
    ids = {
        "France": make_place("France", kind="country", country_code="FR"),
        "Spain": make_place("Spain", kind="country", country_code="ES"),
        "Germany": make_place("Germany", kind="country", country_code="DE"),
    }
    make_hub("https://www.bbc.co.uk/news/world/europe/france", nav_links_count=40)
    make_hub("https://www.bbc.co.uk/topics/france", nav_links_count=20)
    make_hub("https://www.bbc.co.uk/spain", nav_links_count=5)
    make_hub("https://www.bbc.co.uk/news/c123", title="Germany | BBC News", nav_links_count=30)
    make_hub("https://www.bbc.co.uk/news/technology", nav_links_count=40)
    return ids


def _reasons(report) -> dict:
    return {s.url: s.reason for s in report.skipped if s.url}


class TestDryRun:
    def test_previews_matches(self, repo, seeded):
        report = HubMatcher(repo).match_domain("bbc.co.uk")

        assert report.dry_run is True
        assert [(a.place_name, a.url) for a in report.actions] == [
            ("France", "https://www.bbc.co.uk/news/world/europe/france"),
            ("Germany", "https://www.bbc.co.uk/news/c123"),
        ]
        assert all(a.applied is False for a in report.actions)
        assert repo.list_hubs("bbc.co.uk", linked=True) == []

    def test_skip_reasons(self, repo, seeded):
        reasons = _reasons(HubMatcher(repo).match_domain("bbc.co.uk"))

        assert reasons["https://www.bbc.co.uk/topics/france"] == "place-already-matched"
        assert reasons["https://www.bbc.co.uk/spain"] == "nav-links-below-threshold"
        assert reasons["https://www.bbc.co.uk/news/technology"] == "no-matching-place"

    def test_analysis_after_projects_matches(self, repo, seeded):
        report = HubMatcher(repo).match_domain("bbc.co.uk")

        assert report.analysis_before.coverage_percent == 0
        assert report.analysis_before.missing == 3
        assert report.analysis_after.visited == 2
        assert report.analysis_after.coverage_percent == 67


class TestApply:
    def test_links_hubs(self, repo, seeded):
        report = HubMatcher(repo).match_domain("bbc.co.uk", MatchOptions(dry_run=False))

        assert all(a.applied for a in report.actions)
        linked = {h.url: h.place_slug for h in repo.list_hubs("bbc.co.uk", linked=True)}
        assert linked == {
            "https://www.bbc.co.uk/news/world/europe/france": "france",
            "https://www.bbc.co.uk/news/c123": "germany",
        }
        assert report.analysis_after.visited == 2
        assert report.analysis_after.missing == 1

    def test_second_apply_finds_nothing_new(self, repo, seeded):
        matcher = HubMatcher(repo)
        matcher.match_domain("bbc.co.uk", MatchOptions(dry_run=False))
        report = matcher.match_domain("bbc.co.uk", MatchOptions(dry_run=False))

        assert report.actions == []
        assert report.analysis_before.coverage_percent == report.analysis_after.coverage_percent == 67

    def test_lower_threshold_admits_sparse_hub(self, repo, seeded):
        report = HubMatcher(repo).match_domain("bbc.co.uk", MatchOptions(dry_run=False, min_nav_links=5))
        assert {a.place_name for a in report.actions} == {"France", "Spain", "Germany"}
        assert report.analysis_after.is_complete is True

    def test_hub_linked_concurrently(self, repo, seeded):
        with patch.object(repo, "link_hub", return_value=False):
            report = HubMatcher(repo).match_domain("bbc.co.uk", MatchOptions(dry_run=False))

        assert report.actions == []
        reasons = _reasons(report)
        assert reasons["https://www.bbc.co.uk/news/world/europe/france"] == "hub-already-linked"


class TestMatching:
    def test_country_code_under_world_section(self, repo, make_place, make_hub):
        make_place("Spain", kind="country", country_code="ES")
        make_hub("https://elpais.com/world/es", nav_links_count=20)

        report = HubMatcher(repo).match_domain("elpais.com")
        assert [a.url for a in report.actions] == ["https://elpais.com/world/es"]

    def test_bare_country_code_segment_is_not_a_match(self, repo, make_place, make_hub):
        make_place("Anguilla", kind="country", country_code="AI")
        make_place("Tuvalu", kind="country", country_code="TV")
        make_hub("https://www.bbc.co.uk/news/technology/ai", nav_links_count=40)
        make_hub("https://www.bbc.co.uk/entertainment/tv", nav_links_count=40)
        make_hub("https://www.bbc.co.uk/es", nav_links_count=40)

        report = HubMatcher(repo).match_domain("bbc.co.uk", MatchOptions(dry_run=False))

        assert report.actions == []
        reasons = _reasons(report)
        assert reasons["https://www.bbc.co.uk/news/technology/ai"] == "no-matching-place"
        assert reasons["https://www.bbc.co.uk/entertainment/tv"] == "no-matching-place"
        assert repo.list_hubs("bbc.co.uk", linked=True) == []
        assert report.analysis_after.coverage_percent == 0

    def test_code_in_title_is_not_a_match(self, repo, make_place, make_hub):
        make_place("India", kind="country", country_code="IN")
        make_hub("https://www.bbc.co.uk/news/c999", title="News in brief", nav_links_count=40)

        report = HubMatcher(repo).match_domain("bbc.co.uk")
        assert report.actions == []

    def test_applied_hub_is_not_reported_as_skipped(self, repo, make_place, make_hub):
        make_place("France", kind="country", country_code="FR", population=100)
        make_place("Germany", kind="country", country_code="DE")
        make_hub("https://www.bbc.co.uk/world/france", nav_links_count=50)
        make_hub("https://www.bbc.co.uk/world/germany", title="France Germany relations", nav_links_count=30)

        report = HubMatcher(repo).match_domain("bbc.co.uk", MatchOptions(dry_run=False))

        applied = {a.url for a in report.actions}
        assert applied == {"https://www.bbc.co.uk/world/france", "https://www.bbc.co.uk/world/germany"}
        assert not applied & {s.url for s in report.skipped}

    def test_each_skipped_url_reported_once(self, repo, make_place, make_hub):
        make_place("France", kind="country", country_code="FR", population=100)
        make_place("Germany", kind="country", country_code="DE", population=50)
        make_hub("https://www.bbc.co.uk/world/france", nav_links_count=50)
        make_hub("https://www.bbc.co.uk/world/germany", nav_links_count=50)
        make_hub("https://www.bbc.co.uk/news/c555", title="France v Germany", nav_links_count=5)

        report = HubMatcher(repo).match_domain("bbc.co.uk")

        urls = [s.url for s in report.skipped]
        assert urls == ["https://www.bbc.co.uk/news/c555"]
        assert report.skipped[0].reason == "place-already-matched"
        assert report.skipped[0].place_name == "France"

    def test_alternate_names(self, repo, make_place, make_hub):
        place_id = make_place("Côte d'Ivoire", kind="country", country_code="CI")
        with repo.transaction():
            repo.add_name(place_id, "Ivory Coast", "ivory coast", lang="en", name_kind="exonym")
        make_hub("https://bbc.co.uk/news/world/africa/ivory-coast", nav_links_count=20)

        report = HubMatcher(repo).match_domain("bbc.co.uk")
        assert report.actions[0].place_slug == "cote-d-ivoire"

    def test_error_isolated_per_entity(self, repo, seeded):
        matcher = HubMatcher(repo)
        original = matcher._entity_slugs

        def _flaky(entity, names):
            if entity.name == "France":
                raise RuntimeError("bad names")
            return original(entity, names)

        with patch.object(matcher, "_entity_slugs", side_effect=_flaky):
            report = matcher.match_domain("bbc.co.uk")

        assert [a.place_name for a in report.actions] == ["Germany"]
        errors = [s for s in report.skipped if s.reason.startswith("error:")]
        assert errors[0].place_name == "France"

    def test_empty_domain(self, repo):
        with pytest.raises(ConfigurationError):
            HubMatcher(repo).match_domain("  ")
