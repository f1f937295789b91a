"""
Delta sync over the ``server_knowledge`` cursor.

List endpoints return a ``server_knowledge`` value alongside the collection.
Passing it back as ``last_knowledge_of_server`` asks the server for only the
entities created, modified or deleted since then. Deleted entities come back
as tombstones (``deleted: true``) so a local copy can be reconciled without
a separate deletion feed.

The client never stores cursors. ``DeltaCache`` is a helper for callers that
want to keep a local copy of a collection.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .models import ApiResponse

logger = logging.getLogger(__name__)

LAST_KNOWLEDGE_PARAM = "last_knowledge_of_server"


def build_query(since_cursor: Optional[int] = None, **filters: Any) -> Dict[str, Any]:
    """
    Build query parameters for a list request.

    ``None`` filters are dropped. The cursor is passed through as given; a
    value the server never issued is left to the server to interpret.
    """
    params = {key: value for key, value in filters.items() if value is not None}
    if since_cursor is not None:
        params[LAST_KNOWLEDGE_PARAM] = since_cursor
    return params


def is_tombstone(entity: Dict[str, Any]) -> bool:
    return entity.get("deleted") is True


@dataclass(frozen=True)
class DeltaPage:
    """One list response: the entities plus the cursor to use next time."""

    resource_key: str
    items: List[Dict[str, Any]]
    server_knowledge: int
    since_cursor: Optional[int] = None

    @property
    def is_delta(self) -> bool:
        """True when this page only holds changes since ``since_cursor``."""
        return self.since_cursor is not None

    @property
    def changed(self) -> List[Dict[str, Any]]:
        """Entities that were created or updated."""
        return [item for item in self.items if not is_tombstone(item)]

    @property
    def tombstones(self) -> List[Dict[str, Any]]:
        """Entities that were deleted."""
        return [item for item in self.items if is_tombstone(item)]

    @classmethod
    def from_response(
        cls,
        response: ApiResponse,
        resource_key: str,
        since_cursor: Optional[int] = None,
    ) -> "DeltaPage":
        """
        Build a page from a response the dispatcher decoded with
        ``collection=resource_key``, which guarantees the list and the cursor.
        """
        items = response.data[resource_key]
        if since_cursor is not None and response.server_knowledge < since_cursor:
            logger.warning(
                f"server_knowledge for {resource_key} went backwards: "
                f"{since_cursor} -> {response.server_knowledge}"
            )
        return cls(
            resource_key=resource_key,
            items=list(items),
            server_knowledge=response.server_knowledge,
            since_cursor=since_cursor,
        )


@dataclass
class DeltaCache:
    """
    Caller-owned local copy of one collection, kept current with delta pages.

    Example:
        ```python
        cache = DeltaCache("payees")
        cache.apply(await client.get_payees(budget_id))
        ...
        cache.apply(await client.get_payees(budget_id, since_cursor=cache.cursor))
        ```
    """

    resource_key: str
    id_field: str = "id"
    cursor: Optional[int] = None
    entities: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def apply(self, page: DeltaPage) -> None:
        """Merge ``page`` into the cache and advance the cursor."""
        if page.resource_key != self.resource_key:
            raise ValueError(
                f"Cannot apply {page.resource_key!r} page to {self.resource_key!r} cache"
            )

        if not page.is_delta:
            self.entities = {}

        for item in page.items:
            key = item.get(self.id_field)
            if key is None:
                continue
            if is_tombstone(item):
                self.entities.pop(key, None)
            else:
                self.entities[key] = item

        if not page.is_delta or self.cursor is None or page.server_knowledge > self.cursor:
            self.cursor = page.server_knowledge
        logger.debug(
            f"Applied {len(page.items)} {self.resource_key} entities, "
            f"cache size {len(self.entities)}, cursor {self.cursor}"
        )

    def values(self) -> List[Dict[str, Any]]:
        return list(self.entities.values())

    def __len__(self) -> int:
        return len(self.entities)

    def __contains__(self, key: object) -> bool:
        return key in self.entities
