"""Provider search merged with the caller's saved books.

The provider decides which works match and in what order; we only annotate
each hit with whether the caller already has it in their library and where
its cover can be loaded from.
"""

import logging
from typing import Any, Dict, List

from booklog import config
from booklog.errors import StoreUnavailable
from booklog.models import BookRecord, RecentSearchEntry, RequestContext, SearchResultView
from booklog.services.document_store import DocumentStore
from booklog.services.metadata_provider import MetadataProvider
from booklog.services.recents import SearchHistory
from booklog.utils.books import cover_url
from booklog.utils.validation import validate_search_term

logger = logging.getLogger("booklog")


class SearchAggregator:
    def __init__(
        self,
        provider: MetadataProvider,
        books: DocumentStore,
        history: SearchHistory,
        limit: int = config.SEARCH_LIMIT,
    ) -> None:
        self.provider = provider
        self.books = books
        self.history = history
        self.limit = limit

    async def search(self, ctx: RequestContext, term: str) -> List[SearchResultView]:
        """Search for ``term`` and remember it in the caller's history.

        Failing to record the term is logged and otherwise ignored.
        """
        term = validate_search_term(term)
        try:
            await self.history.record(ctx, term)
        except StoreUnavailable as e:
            logger.warning(f"Could not save search '{term}': {e}")
        return await self.build_results(ctx, term)

    async def home(self, ctx: RequestContext) -> List[SearchResultView]:
        """Replay the caller's latest search without adding it to history again."""
        recent = await self.history.last(ctx)
        if not recent:
            return []
        return await self.build_results(ctx, recent[0].term)

    async def last_searches(self, ctx: RequestContext) -> List[RecentSearchEntry]:
        return await self.history.last(ctx)

    async def _saved_by_work_key(
        self, ctx: RequestContext, work_keys: List[str]
    ) -> Dict[str, BookRecord]:
        query: Dict[str, Any] = {"openLibraryWorkKey": {"$in": work_keys}}
        # Anonymous searches are unscoped, as legacy records were globally visible
        if ctx.is_authenticated:
            query["username"] = ctx.username
        docs = await self.books.find(query, sort=[("updatedAt", -1)])
        saved: Dict[str, BookRecord] = {}
        for doc in docs:
            record = BookRecord.from_document(doc)
            if record.work_key:
                saved.setdefault(record.work_key, record)
        return saved

    async def build_results(self, ctx: RequestContext, term: str) -> List[SearchResultView]:
        docs = (await self.provider.search_by_term(term, self.limit))[: self.limit]

        work_keys = list(dict.fromkeys(d.work_key for d in docs if d.work_key))
        saved = await self._saved_by_work_key(ctx, work_keys) if work_keys else {}

        results = []
        for doc in docs:
            book = saved.get(doc.work_key) if doc.work_key else None
            if book is not None and book.cover_image:
                url = cover_url(book.id, True, None)
            else:
                url = cover_url(None, False, doc.cover_id)
            results.append(
                SearchResultView(
                    work_key=doc.work_key,
                    title=doc.title,
                    author=doc.author,
                    publish_year=doc.publish_year,
                    cover_url=url,
                    saved=book is not None,
                    saved_id=str(book.id) if book is not None else None,
                )
            )
        logger.debug(
            f"Search '{term}': {len(results)} results, {len(saved)} already saved"
        )
        return results
