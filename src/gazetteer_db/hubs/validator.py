"""Structural validation of fetched hub candidate pages."""

import logging
from typing import Optional

from ..errors import ConfigurationError
from ..models import PageEvidence, ValidationResult, ValidationThresholds

logger = logging.getLogger(__name__)

DEFAULT_MIN_NAV_LINKS = 12
DEFAULT_MIN_ARTICLE_LINKS = 0


def validate_thresholds(thresholds: ValidationThresholds) -> ValidationThresholds:
    """Reject negative thresholds before any candidate is judged."""
    if thresholds.min_nav_links < 0:
        raise ConfigurationError(f"min_nav_links must be >= 0, got {thresholds.min_nav_links}")
    if thresholds.min_article_links < 0:
        raise ConfigurationError(f"min_article_links must be >= 0, got {thresholds.min_article_links}")
    return thresholds


class HubCandidateValidator:
    """
    Decide whether a fetched page is a hub.

    A page passes with at least ``min_nav_links`` navigation links, or with
    at least ``min_article_links`` article links (for content-dense hubs with
    little navigation). A ``min_article_links`` of 0 turns the article-link
    fallback off, since every page has at least zero article links.
    """

    def __init__(self, thresholds: Optional[ValidationThresholds] = None):
        self.thresholds = validate_thresholds(
            thresholds
            or ValidationThresholds(min_nav_links=DEFAULT_MIN_NAV_LINKS, min_article_links=DEFAULT_MIN_ARTICLE_LINKS)
        )

    def validate(self, evidence: PageEvidence, thresholds: Optional[ValidationThresholds] = None) -> ValidationResult:
        """
        Judge one page.

        Args:
            evidence: Link counts produced by the fetcher
            thresholds: Override the validator's thresholds for this call

        Returns:
            ValidationResult with ``passed`` and a reason string
        """
        limits = validate_thresholds(thresholds) if thresholds else self.thresholds
        nav = evidence.nav_links_count
        articles = evidence.article_links_count

        def _result(passed: bool, reason: str) -> ValidationResult:
            return ValidationResult(
                passed=passed, reason=reason, nav_links_count=nav, article_links_count=articles
            )

        if nav is None and articles is None:
            return _result(False, "missing-link-counts")

        if nav is not None and nav >= limits.min_nav_links:
            return _result(True, "nav-links-ok")

        fallback_enabled = limits.min_article_links > 0
        if fallback_enabled and articles is not None and articles >= limits.min_article_links:
            return _result(True, "article-links-fallback")

        reason = "nav-and-article-links-below-threshold" if fallback_enabled else "nav-links-below-threshold"
        logger.debug(f"Rejected candidate: {reason} (nav={nav}, articles={articles})")
        return _result(False, reason)
