"""
Hub persistence: diff-aware upserts, audit trail, per-domain determinations.

An existing hub row is only written when a field actually changed. Audit
entries are best-effort and never fail the caller.
"""

import logging
from typing import Any, Callable, Optional

from ..models import (
    DomainDetermination,
    HubAuditEntry,
    HubCandidate,
    HubChange,
    PersistenceSummary,
    PersistOutcome,
    PlaceHubRecord,
)
from ..store import GazetteerRepository, normalize_host

logger = logging.getLogger(__name__)

# Compared fields and their labels in change previews
HUB_DIFF_FIELDS: tuple[tuple[str, str], ...] = (
    ("place_slug", "Place slug"),
    ("place_kind", "Place kind"),
    ("topic_slug", "Topic slug"),
    ("topic_label", "Topic label"),
    ("title", "Title"),
    ("nav_links_count", "Nav links"),
    ("article_links_count", "Article links"),
    ("evidence", "Evidence"),
)

# Keep change previews bounded on large domains
MAX_DIFF_PREVIEW = 50

HubLookup = Callable[[str], Optional[PlaceHubRecord]]


def build_hub_snapshot(candidate: HubCandidate) -> PlaceHubRecord:
    """The row a validated candidate should be stored as."""
    return PlaceHubRecord(
        host=normalize_host(candidate.domain),
        url=candidate.url,
        place_slug=candidate.place_slug,
        place_kind=candidate.place_kind,
        topic_slug=candidate.topic_slug,
        topic_label=candidate.topic_label,
        topic_kind=candidate.topic_kind,
        title=candidate.title,
        nav_links_count=candidate.nav_links_count,
        article_links_count=candidate.article_links_count,
        evidence=candidate.evidence,
    )


def collect_hub_changes(existing: PlaceHubRecord, snapshot: PlaceHubRecord) -> list[HubChange]:
    """Field-level diff. Empty values in the snapshot never replace stored ones."""
    changes = []
    for field, label in HUB_DIFF_FIELDS:
        after = getattr(snapshot, field)
        if after is None or after == {}:
            continue
        before = getattr(existing, field)
        if before != after:
            changes.append(HubChange(field=field, label=label, before=before, after=after))
    return changes


class PersistenceManager:
    """Write validated hubs, audit entries and final determinations for a domain pass."""

    def __init__(self, repository: GazetteerRepository, verbose: bool = False):
        """
        Initialize the manager.

        Args:
            repository: Writable gazetteer repository
            verbose: Log audit write failures as warnings instead of debug
        """
        self._repo = repository
        self.verbose = verbose
        self.summary = PersistenceSummary()

    def reset_summary(self) -> None:
        self.summary = PersistenceSummary()

    def persist_validated_hub(
        self,
        candidate: HubCandidate,
        existing_hub_lookup: Optional[HubLookup] = None,
    ) -> PersistOutcome:
        """
        Insert a new hub, update a changed one, or leave an unchanged one alone.

        Args:
            candidate: Validated hub candidate
            existing_hub_lookup: Callable url -> existing row; defaults to the repository

        Returns:
            PersistOutcome with action "inserted", "updated" or "unchanged"
        """
        repo = self._repo
        lookup = existing_hub_lookup or repo.get_hub_by_url
        snapshot = build_hub_snapshot(candidate)

        with repo.transaction():
            existing = lookup(snapshot.url)
            if existing is None:
                if repo.insert_hub(snapshot):
                    outcome = PersistOutcome(action="inserted", url=snapshot.url)
                    self._record(outcome)
                    return outcome
                # Lookup missed a row that exists; diff against the stored one
                existing = repo.get_hub_by_url(snapshot.url)

            changes = collect_hub_changes(existing, snapshot)
            if not changes:
                outcome = PersistOutcome(action="unchanged", url=snapshot.url)
                self._record(outcome)
                return outcome

            repo.update_hub(snapshot.url, **{change.field: change.after for change in changes})

        outcome = PersistOutcome(action="updated", url=snapshot.url, changes=changes)
        self._record(outcome)
        logger.debug(f"Updated hub {snapshot.url}: {', '.join(c.label for c in changes)}")
        return outcome

    def _record(self, outcome: PersistOutcome) -> None:
        if outcome.action == "inserted":
            self.summary.inserted_hubs += 1
        elif outcome.action == "updated":
            self.summary.updated_hubs += 1
        else:
            self.summary.unchanged_hubs += 1
        if outcome.action != "unchanged" and len(self.summary.diff_preview) < MAX_DIFF_PREVIEW:
            self.summary.diff_preview.append(outcome)

    def record_audit_entry(
        self,
        domain: str,
        url: str,
        decision: str,
        place_kind: Optional[str] = None,
        place_name: Optional[str] = None,
        validation_metrics: Optional[dict[str, Any]] = None,
        attempt_id: Optional[str] = None,
        run_id: Optional[str] = None,
    ) -> bool:
        """
        Append an audit entry. Never raises.

        Returns:
            True if the entry was written
        """
        try:
            entry = HubAuditEntry(
                domain=normalize_host(domain),
                url=url,
                place_kind=place_kind,
                place_name=place_name,
                decision=decision,
                validation_metrics=validation_metrics or {},
                attempt_id=attempt_id,
                run_id=run_id,
            )
            with self._repo.transaction():
                self._repo.insert_audit_entry(entry)
            return True
        except Exception as e:
            message = f"Failed to record audit entry for {url}: {e}"
            if self.verbose:
                logger.warning(message)
            else:
                logger.debug(message)
            return False

    def record_final_determination(
        self,
        domain: str,
        rate_limit_triggered: bool,
        summary: Optional[PersistenceSummary] = None,
    ) -> DomainDetermination:
        """Write the one-row summary of this pass over a domain."""
        summary = summary or self.summary
        if rate_limit_triggered:
            determination = "rate-limited"
            reason = "Processing aborted due to rate limiting"
        else:
            determination = "processed"
            reason = f"Processed {summary.total_places} places"
            if summary.total_topics:
                reason += f", {summary.total_topics} topics"
            reason += f", {summary.inserted_hubs} hubs inserted, {summary.updated_hubs} updated"

        record = DomainDetermination(
            domain=normalize_host(domain),
            determination=determination,
            reason=reason,
            details={
                "total_places": summary.total_places,
                "total_topics": summary.total_topics,
                "inserted_hubs": summary.inserted_hubs,
                "updated_hubs": summary.updated_hubs,
                "unchanged_hubs": summary.unchanged_hubs,
                "rate_limited": rate_limit_triggered,
            },
        )
        with self._repo.transaction():
            record.id = self._repo.insert_determination(record)
        logger.info(f"{record.domain}: {reason}")
        return record

    def load_audit_trail(self, domain: str, limit: int = 50) -> list[HubAuditEntry]:
        return self._repo.list_audit_entries(normalize_host(domain), limit)

    def latest_determination(self, domain: str) -> Optional[DomainDetermination]:
        return self._repo.get_latest_determination(normalize_host(domain))
