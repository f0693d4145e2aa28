"""Parent/child relations between places (multi-parent, idempotent inserts)."""

import logging
from typing import Any, Optional

from .models import HierarchyEdge
from .store import GazetteerRepository

logger = logging.getLogger(__name__)

CAPITAL_OF = "capital_of"


class HierarchyStore:
    """
    Manage place_hierarchy edges.

    Edges are unique on (parent, child, relation) only, so a child may have
    any number of parents for the same relation: a city can be the capital
    of more than one entity.
    """

    def __init__(self, repository: GazetteerRepository):
        self._repo = repository

    def add_relation(
        self,
        parent_id: int,
        child_id: int,
        relation: str,
        metadata: Optional[dict[str, Any]] = None,
        depth: Optional[int] = 1,
    ) -> bool:
        """
        Add an edge; re-adding an existing edge is a no-op.

        Returns:
            True if the edge was inserted, False if it already existed
        """
        with self._repo.transaction():
            inserted = self._repo.insert_relation(parent_id, child_id, relation, depth, metadata)
        if inserted:
            logger.debug(f"Added {relation}: {child_id} -> {parent_id}")
        return inserted

    def add_capital_relation(self, country_id: int, city_id: int, metadata: Optional[dict[str, Any]] = None) -> bool:
        return self.add_relation(country_id, city_id, CAPITAL_OF, metadata, depth=1)

    def get_parents(self, child_id: int, relation: Optional[str] = None) -> list[int]:
        return self._repo.get_parent_ids(child_id, relation)

    def get_children(self, parent_id: int, relation: Optional[str] = None) -> list[int]:
        return self._repo.get_child_ids(parent_id, relation)

    def get_relations(self, place_id: int) -> list[HierarchyEdge]:
        return self._repo.get_relations(place_id)
