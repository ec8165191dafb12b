"""Per-scope lists capped to the most recent few entries."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from booklog import config
from booklog.services.document_store import Document, DocumentStore
from booklog.utils.clock import utc_now

logger = logging.getLogger("booklog")


class RecencyCappedStore:
    """A deduplicated, capped, most-recent-first list per scope.

    ``scope_field`` holds the owner (usually a username; None is the global
    scope) and ``key_field``, when set, deduplicates entries within a scope.

    Trimming is read-then-delete with no lock. Two writers racing on the same
    scope each trim after their own write, so a scope can briefly hold more
    than ``capacity`` entries until the later trim lands; the final order of
    simultaneous inserts is whatever the timestamps say.
    """

    def __init__(
        self,
        store: DocumentStore,
        scope_field: str = "username",
        key_field: Optional[str] = None,
        capacity: int = config.RECENT_LIMIT,
    ) -> None:
        self.store = store
        self.scope_field = scope_field
        self.key_field = key_field
        self.capacity = capacity

    async def upsert(
        self, scope: Optional[str], dedup_key: Optional[str], payload: Dict[str, Any]
    ) -> Document:
        """Insert ``payload`` as the newest entry of ``scope``.

        An existing entry with the same dedup key is overwritten and moved to
        the front instead of being duplicated. Raises ``StoreUnavailable``.
        """
        doc = dict(payload)
        doc[self.scope_field] = scope
        doc["createdAt"] = utc_now()

        existing = None
        if self.key_field and dedup_key is not None:
            doc[self.key_field] = dedup_key
            existing = await self.store.find_one(
                {self.scope_field: scope, self.key_field: dedup_key}
            )

        if existing:
            saved = await self.store.update_by_id(existing["_id"], doc)
        else:
            saved = None
        if saved is None:
            # Also covers an entry trimmed away between our lookup and update
            saved = await self.store.insert(doc)

        await self.trim(scope)
        return saved

    async def trim(self, scope: Optional[str]) -> int:
        """Delete the oldest entries beyond capacity; returns how many went."""
        entries = await self.store.find(
            {self.scope_field: scope}, sort=[("createdAt", -1)]
        )
        stale = entries[self.capacity :]
        if not stale:
            return 0
        await asyncio.gather(*(self.store.remove_by_id(e["_id"]) for e in stale))
        logger.debug(f"Trimmed {len(stale)} old entries from '{self.store.collection}'")
        return len(stale)

    async def list(self, scope: Optional[str], limit: Optional[int] = None) -> List[Document]:
        """Entries of ``scope``, newest first, at most ``limit`` (default capacity)."""
        return await self.store.find(
            {self.scope_field: scope},
            sort=[("createdAt", -1)],
            limit=self.capacity if limit is None else limit,
        )
