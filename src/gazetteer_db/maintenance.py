"""Small maintenance passes over the gazetteer."""

import logging
from typing import Any

from .store import GazetteerRepository

logger = logging.getLogger(__name__)


def backfill_wikidata_qids(repository: GazetteerRepository, apply: bool = False) -> dict[str, Any]:
    """
    Copy wikidata external ids into places.wikidata_qid where it is empty.

    The resolver checks the column before the external id table, so a filled
    column makes QID lookups hit on the first query.

    Args:
        repository: Gazetteer repository
        apply: Write the changes (default is preview only)

    Returns:
        Dict with candidates, updated and a preview list of (place_id, qid)
    """
    candidates = repository.find_qid_backfill_candidates()
    updated = 0
    if apply and candidates:
        with repository.transaction():
            for place_id, qid in candidates:
                updated += repository.update_place(place_id, wikidata_qid=qid)
        logger.info(f"Backfilled wikidata_qid on {updated} places")
    return {
        "candidates": len(candidates),
        "updated": updated,
        "preview": candidates,
    }
