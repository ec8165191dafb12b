"""Storage interface shared by every backing store.

Services only ever talk to ``DocumentStore``. A store holds one collection
of JSON-like documents keyed by a string ``_id``.

Queries are plain dicts, a small subset of the MongoDB query language:

- ``{"field": value}``: equality (a None value also matches a missing field)
- ``{"field": {"$regex": "text", "$options": "i"}}``: regex search
- ``{"field": {"$in": [a, b]}}``: set membership
- ``{"field": {"$exists": True, "$ne": ""}}``: presence / inequality
- ``{"$or": [query, query]}``: any sub-query matches

Sorts are lists of ``(field, 1 | -1)`` pairs.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

from booklog.utils.sorting import sort_key

Document = Dict[str, Any]
Query = Dict[str, Any]
Sort = List[Tuple[str, int]]


class DocumentStore(ABC):
    """CRUD contract every backing store implements."""

    collection: str

    @abstractmethod
    async def find(
        self,
        query: Optional[Query] = None,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> List[Document]:
        """Return matching documents, sorted, at most ``limit`` of them."""

    async def find_one(self, query: Query) -> Optional[Document]:
        found = await self.find(query, limit=1)
        return found[0] if found else None

    @abstractmethod
    async def find_by_id(self, doc_id: str) -> Optional[Document]:
        """Return the document with ``doc_id`` or None."""

    @abstractmethod
    async def insert(self, doc: Document) -> Document:
        """Store a new document and return it with its generated ``_id``."""

    @abstractmethod
    async def update_by_id(self, doc_id: str, patch: Document) -> Optional[Document]:
        """Set every field in ``patch`` and return the new state (None if absent)."""

    @abstractmethod
    async def remove_by_id(self, doc_id: str) -> bool:
        """Delete a document; returns False when it did not exist."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every document in the collection."""


def _match_operators(value: Any, present: bool, condition: Dict[str, Any]) -> bool:
    for operator, argument in condition.items():
        if operator == "$options":
            continue
        if operator == "$in":
            ok = value in argument
        elif operator == "$ne":
            ok = value != argument
        elif operator == "$exists":
            ok = (present and value is not None) == bool(argument)
        elif operator == "$regex":
            flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
            ok = isinstance(value, str) and re.search(argument, value, flags) is not None
        else:
            raise ValueError(f"Unsupported query operator: {operator}")
        if not ok:
            return False
    return True


def matches(doc: Document, query: Optional[Query]) -> bool:
    """Check whether ``doc`` satisfies ``query``."""
    if not query:
        return True

    for field, condition in query.items():
        if field == "$or":
            if not any(matches(doc, sub_query) for sub_query in condition):
                return False
            continue

        value = doc.get(field)
        if isinstance(condition, dict) and any(k.startswith("$") for k in condition):
            if not _match_operators(value, field in doc, condition):
                return False
        elif isinstance(condition, re.Pattern):
            if not (isinstance(value, str) and condition.search(value)):
                return False
        elif value != condition:
            return False
    return True


def apply_query(
    docs: Iterable[Document],
    query: Optional[Query] = None,
    sort: Optional[Sort] = None,
    limit: Optional[int] = None,
) -> List[Document]:
    """Filter, sort and limit documents in memory."""
    results = [doc for doc in docs if matches(doc, query)]

    # Stable sorts applied from the least significant key upwards
    for field, direction in reversed(sort or []):
        results.sort(key=lambda d: sort_key(d.get(field)), reverse=direction < 0)

    if limit is not None:
        results = results[: max(limit, 0)]
    return results
