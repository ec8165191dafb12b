"""The two bounded histories: books a user picked and terms a user searched."""

import logging
from typing import Any, Dict, List

from booklog.errors import StoreUnavailable, Unauthenticated
from booklog.models import RecentSearchEntry, RecentSelectionEntry, RequestContext
from booklog.services.document_store import DocumentStore
from booklog.services.recency import RecencyCappedStore
from booklog.utils.books import normalize_work_key
from booklog.utils.validation import validate_recent_selection, validate_search_term

logger = logging.getLogger("booklog")


class RecentSelections:
    """The last five books each user opened, one entry per work."""

    def __init__(self, store: DocumentStore) -> None:
        self.recency = RecencyCappedStore(store, key_field="openLibraryWorkKey")

    async def add(self, ctx: RequestContext, data: Dict[str, Any]) -> RecentSelectionEntry:
        if not ctx.is_authenticated:
            raise Unauthenticated("Authentication required")
        cleaned = validate_recent_selection(data)
        entry = RecentSelectionEntry(
            username=ctx.username or "",
            work_key=normalize_work_key(cleaned["work_key"]) or "",
            title=cleaned["title"],
            author=cleaned["author"],
            publish_year=cleaned["publish_year"],
            cover_id=cleaned["cover_id"],
            cover_image=cleaned["cover_image"],
            cover_mime_type=cleaned["cover_mime_type"],
        )
        # Store failures propagate: the user asked for this explicitly
        doc = await self.recency.upsert(ctx.username, entry.work_key, entry.payload())
        return RecentSelectionEntry.from_document(doc)

    async def list(self, ctx: RequestContext) -> List[RecentSelectionEntry]:
        if not ctx.is_authenticated:
            raise Unauthenticated("Authentication required")
        docs = await self.recency.list(ctx.username)
        return [RecentSelectionEntry.from_document(doc) for doc in docs]


class SearchHistory:
    """Recent search terms per user, or globally for anonymous searches.

    Every search is a new entry; repeating a term does not replace the
    earlier one.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.recency = RecencyCappedStore(store)

    async def record(self, ctx: RequestContext, term: str) -> RecentSearchEntry:
        term = validate_search_term(term)
        doc = await self.recency.upsert(ctx.username, None, {"term": term})
        return RecentSearchEntry.from_document(doc)

    async def last(self, ctx: RequestContext) -> List[RecentSearchEntry]:
        try:
            docs = await self.recency.list(ctx.username)
        except StoreUnavailable as e:
            logger.warning(f"Could not read search history: {e}")
            return []
        return [RecentSearchEntry.from_document(doc) for doc in docs]
