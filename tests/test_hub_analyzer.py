"""Tests for hub gap analysis and URL prediction."""

import pytest

from gazetteer_db.errors import ConfigurationError
from gazetteer_db.hubs.analyzer import (
    CityHubGapAnalyzer,
    CountryHubGapAnalyzer,
    TopicHubGapAnalyzer,
    get_hub_gap_analyzer,
)
from gazetteer_db.models import CoverageStats


@pytest.fixture
def analyzer(repo):
    return CountryHubGapAnalyzer(repo)


# ---------------------------------------------------------------------------
# Prediction
# ---------------------------------------------------------------------------


class TestPredictHubUrls:
    def test_bbc_france(self, analyzer):
        predictions = analyzer.predict_hub_urls("bbc.co.uk", "France", "FR")

        assert predictions
        confidences = [p.confidence for p in predictions]
        assert confidences == sorted(confidences, reverse=True)
        assert predictions[0].url == "https://bbc.co.uk/world/france"
        urls = {p.url for p in predictions}
        assert "https://bbc.co.uk/world/fr" in urls
        assert "https://bbc.co.uk/fr" in urls

    def test_without_code_skips_code_patterns(self, analyzer):
        urls = {p.url for p in analyzer.predict_hub_urls("bbc.co.uk", "France")}
        assert "https://bbc.co.uk/world/fr" not in urls
        assert "https://bbc.co.uk/world/france" in urls

    def test_limit(self, analyzer):
        assert len(analyzer.predict_hub_urls("bbc.co.uk", "France", "FR", limit=3)) == 3

    def test_base_url_kept_from_full_url(self, analyzer):
        predictions = analyzer.predict_hub_urls("http://www.example.com/some/page", "France")
        assert predictions[0].url == "http://www.example.com/world/france"

    def test_multi_word_slug_variants(self, analyzer):
        predictions = analyzer.predict_hub_urls("bbc.co.uk", "United Kingdom")
        by_url = {p.url: p.confidence for p in predictions}

        dashed = by_url["https://bbc.co.uk/world/united-kingdom"]
        compact = by_url["https://bbc.co.uk/world/unitedkingdom"]
        underscore = by_url["https://bbc.co.uk/world/united_kingdom"]
        assert dashed > compact > underscore

    def test_non_latin_name(self, analyzer):
        predictions = analyzer.predict_hub_urls("example.ru", "Россия")
        assert predictions
        assert all("%D1%80" in p.url for p in predictions)

    def test_learned_template_ranks_first(self, analyzer, make_hub):
        make_hub("https://bbc.co.uk/news/world/europe/spain", place_slug="spain", place_kind="country")
        make_hub("https://bbc.co.uk/news/world/europe/italy", place_slug="italy", place_kind="country")

        predictions = analyzer.predict_hub_urls("bbc.co.uk", "France", "FR")

        assert predictions[0].url == "https://bbc.co.uk/news/world/europe/france"
        assert predictions[0].pattern == "learned:/news/world/europe/{slug}"
        assert predictions[0].confidence == pytest.approx(0.92)

    def test_learned_template_confidence_is_capped(self, analyzer, make_hub):
        for name in ("spain", "italy", "germany", "poland", "greece", "austria",
                     "belgium", "portugal", "sweden", "norway", "denmark", "finland"):
            make_hub(f"https://bbc.co.uk/news/world/europe/{name}", place_slug=name, place_kind="country")

        predictions = analyzer.predict_hub_urls("bbc.co.uk", "France", "FR")

        assert predictions[0].pattern == "learned:/news/world/europe/{slug}"
        assert predictions[0].confidence == pytest.approx(0.99)

    def test_learned_template_ignores_other_kinds(self, analyzer, make_hub):
        make_hub("https://bbc.co.uk/news/england/london", place_slug="london", place_kind="city")
        predictions = analyzer.predict_hub_urls("bbc.co.uk", "France")
        assert not any(p.pattern.startswith("learned:") for p in predictions)

    @pytest.mark.parametrize("domain,name", [("", "France"), ("bbc.co.uk", ""), ("bbc.co.uk", "   ")])
    def test_missing_input(self, analyzer, domain, name):
        with pytest.raises(ConfigurationError):
            analyzer.predict_hub_urls(domain, name)


# ---------------------------------------------------------------------------
# Gap analysis
# ---------------------------------------------------------------------------


class TestAnalyzeGaps:
    def test_given_counts(self, analyzer):
        analysis = analyzer.analyze_gaps("bbc.co.uk", CoverageStats(seeded=3, visited=2, total_eligible=10))

        assert analysis.missing == 5
        assert analysis.coverage_percent == 50
        assert analysis.is_complete is False
        assert analysis.kind == "country"

    @pytest.mark.parametrize(
        "covered,total,expected",
        [(1, 3, 33), (2, 3, 67), (1, 8, 13), (0, 7, 0), (7, 7, 100)],
    )
    def test_coverage_rounds_half_up(self, analyzer, covered, total, expected):
        analysis = analyzer.analyze_gaps("x.com", CoverageStats(visited=covered, total_eligible=total))
        assert analysis.coverage_percent == expected

    def test_over_counted_inputs_are_clamped(self, analyzer):
        analysis = analyzer.analyze_gaps("x.com", CoverageStats(seeded=8, visited=5, total_eligible=10))
        assert analysis.missing == 0
        assert analysis.coverage_percent == 100
        assert analysis.is_complete is True

    def test_no_eligible_entities(self, analyzer):
        analysis = analyzer.analyze_gaps("x.com", CoverageStats())
        assert analysis.coverage_percent == 100
        assert analysis.is_complete is True

    def test_counts_from_database(self, analyzer, make_place, make_hub):
        make_place("France", kind="country", country_code="FR")
        make_place("Spain", kind="country", country_code="ES")
        make_place("Germany", kind="country", country_code="DE")
        make_hub("https://www.bbc.co.uk/world/france", place_slug="france", place_kind="country")
        make_hub("https://www.bbc.co.uk/world/spain", place_slug="spain", place_kind="country", nav_links_count=30)
        make_hub("https://www.bbc.co.uk/news/123")

        analysis = analyzer.analyze_gaps("https://www.bbc.co.uk/")

        assert analysis.domain == "bbc.co.uk"
        assert (analysis.seeded, analysis.visited, analysis.total_eligible) == (1, 1, 3)
        assert analysis.missing == 1
        assert analysis.coverage_percent == 67
        assert [e.name for e in analyzer.missing_entities("bbc.co.uk")] == ["Germany"]


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class TestEntities:
    def test_ranked_by_importance_then_population(self, analyzer, make_place):
        make_place("Monaco", kind="country", country_code="MC", population=39_000)
        make_place("India", kind="country", country_code="IN", population=1_400_000_000)
        make_place("France", kind="country", country_code="FR", population=68_000_000, extra={"importance": 0.9})

        names = [e.name for e in analyzer.get_top_entities()]
        assert names == ["France", "India", "Monaco"]
        assert [e.name for e in analyzer.get_top_entities(1)] == ["France"]

    def test_entity_code_is_country_code(self, analyzer, make_place):
        make_place("France", kind="country", country_code="FR")
        assert analyzer.eligible_entities()[0].code == "FR"

    def test_unnamed_places_are_not_eligible(self, analyzer, make_place):
        make_place(None, kind="country", country_code="FR")
        assert analyzer.eligible_entities() == []

    def test_city_analyzer_only_sees_cities(self, repo, make_place):
        make_place("France", kind="country")
        make_place("Paris")
        assert [e.name for e in CityHubGapAnalyzer(repo).eligible_entities()] == ["Paris"]


class TestTopicAnalyzer:
    def test_topic_hubs_linked_by_topic_slug(self, repo, make_place, make_hub):
        make_place("Climate Change", kind="topic", country_code=None)
        make_place("Elections", kind="topic", country_code=None)
        make_hub("https://bbc.co.uk/topics/climate-change", topic_slug="climate-change", topic_kind="topic",
                 nav_links_count=25)

        stats = TopicHubGapAnalyzer(repo).coverage_stats("bbc.co.uk")
        assert (stats.seeded, stats.visited, stats.total_eligible) == (0, 1, 2)


class TestFactory:
    @pytest.mark.parametrize("kind,cls", [("country", CountryHubGapAnalyzer), ("city", CityHubGapAnalyzer)])
    def test_known(self, repo, kind, cls):
        assert isinstance(get_hub_gap_analyzer(kind, repo), cls)

    def test_unknown(self, repo):
        with pytest.raises(ConfigurationError, match="Unknown kind"):
            get_hub_gap_analyzer("planet", repo)
