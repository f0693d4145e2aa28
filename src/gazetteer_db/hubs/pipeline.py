"""
Validation-to-persistence pipeline for one domain pass.

Fetched candidates are validated, audited as accepted or rejected, persisted
when accepted, and the pass ends with one determination row. A 429 response
stops the pass and marks the domain as rate-limited.
"""

import logging
from typing import Optional

from ..errors import ConfigurationError
from ..models import DomainProcessingSummary, FetchedCandidate, HubCandidate, ValidationThresholds
from ..store import GazetteerRepository, normalize_host
from .persistence import PersistenceManager
from .validator import HubCandidateValidator

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429


class HubValidationPipeline:
    """Run fetched hub candidates through validation, audit and persistence."""

    def __init__(
        self,
        repository: GazetteerRepository,
        validator: Optional[HubCandidateValidator] = None,
        persistence: Optional[PersistenceManager] = None,
        verbose: bool = False,
    ):
        self._validator = validator or HubCandidateValidator()
        self._persistence = persistence or PersistenceManager(repository, verbose=verbose)

    def process_domain(
        self,
        domain: str,
        fetched: list[FetchedCandidate],
        thresholds: Optional[ValidationThresholds] = None,
        apply: bool = False,
        run_id: Optional[str] = None,
    ) -> DomainProcessingSummary:
        """
        Process one domain's fetched candidates.

        Args:
            domain: Domain the candidates belong to
            fetched: Candidates in fetch order
            thresholds: Validation thresholds (validator defaults otherwise)
            apply: Persist hubs, audit entries and the determination
            run_id: Identifier of the enclosing crawl/run, stored on audit rows

        Returns:
            DomainProcessingSummary with accepted/rejected counts and persistence outcomes
        """
        if not domain or not domain.strip():
            raise ConfigurationError("Domain is required")
        host = normalize_host(domain)
        persistence = self._persistence
        persistence.reset_summary()
        summary = DomainProcessingSummary(domain=host, applied=apply)

        for item in fetched:
            if item.http_status == RATE_LIMIT_STATUS:
                logger.warning(f"{host}: rate limited at {item.url}, stopping")
                summary.rate_limited = True
                break

            if item.topic_slug:
                persistence.summary.total_topics += 1
            else:
                persistence.summary.total_places += 1

            result = self._validator.validate(item.evidence, thresholds)
            decision = "accepted" if result.passed else "rejected"
            if result.passed:
                summary.accepted += 1
            else:
                summary.rejected += 1

            if not apply:
                continue

            persistence.record_audit_entry(
                host,
                item.url,
                decision,
                place_kind=item.place_kind,
                place_name=item.place_name or item.topic_label,
                validation_metrics=result.model_dump(),
                attempt_id=item.attempt_id,
                run_id=run_id,
            )
            if result.passed:
                persistence.persist_validated_hub(
                    HubCandidate(
                        domain=host,
                        url=item.url,
                        place_slug=item.place_slug,
                        place_kind=item.place_kind if not item.topic_slug else None,
                        place_name=item.place_name,
                        topic_slug=item.topic_slug,
                        topic_label=item.topic_label,
                        topic_kind=item.place_kind if item.topic_slug else None,
                        title=item.evidence.title,
                        nav_links_count=item.evidence.nav_links_count,
                        article_links_count=item.evidence.article_links_count,
                        evidence={"validation_reason": result.reason, "http_status": item.http_status},
                    )
                )

        if apply:
            summary.determination = persistence.record_final_determination(
                host, summary.rate_limited, persistence.summary
            )
        summary.persistence = persistence.summary.model_copy(deep=True)
        return summary
