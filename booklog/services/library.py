"""The caller's personal library: create, read, update, delete and list books.

Books belong to the user who saved them. A book owned by someone else is
reported as missing rather than forbidden, so callers cannot probe for the
existence of other users' records. Ownership is always settled before any
enrichment touches the metadata provider.
"""

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Union

from booklog.errors import NotFound, Unauthenticated
from booklog.models import BookRecord, CoverImage, RequestContext
from booklog.services.covers import CoverImageResolver
from booklog.services.document_store import DocumentStore, Query
from booklog.services.events import EventBus
from booklog.services.publish_year import PublishYearResolver
from booklog.utils.books import normalize_work_key
from booklog.utils.clock import utc_now
from booklog.utils.sorting import parse_sort_spec
from booklog.utils.validation import validate_book_update, validate_new_book

logger = logging.getLogger("booklog")

BOOK_UPDATED = "books.updated"


def _contains(text: str) -> Dict[str, str]:
    """Case-insensitive literal substring match."""
    return {"$regex": re.escape(text), "$options": "i"}


def _is_truthy(value: Union[str, bool, None]) -> bool:
    if isinstance(value, bool):
        return value
    return isinstance(value, str) and value.strip().lower() in ("true", "1", "yes")


class LibraryCatalog:
    def __init__(
        self,
        books: DocumentStore,
        covers: CoverImageResolver,
        years: PublishYearResolver,
        events: Optional[EventBus] = None,
    ) -> None:
        self.books = books
        self.covers = covers
        self.years = years
        self.events = events or EventBus()

    async def _load_owned(self, ctx: RequestContext, book_id: str) -> BookRecord:
        doc = await self.books.find_by_id(book_id) if book_id else None
        if doc is None:
            raise NotFound("Book not found")
        owner = doc.get("username")
        if ctx.is_authenticated and owner and owner != ctx.username:
            raise NotFound("Book not found")
        return BookRecord.from_document(doc)

    async def _enrich_new(self, record: BookRecord) -> None:
        """Fetch a missing cover and year side by side before the first insert."""

        async def no_cover() -> Optional[CoverImage]:
            return None

        async def no_year() -> Optional[int]:
            return None

        want_cover = record.cover_image is None and record.cover_id
        want_year = record.publish_year is None and record.work_key

        image, year = await asyncio.gather(
            self.covers.fetch(record.cover_id) if want_cover else no_cover(),
            self.years.lookup_by_work(record.work_key) if want_year else no_year(),
        )
        if image is not None:
            record.cover_image = image.data
            record.cover_mime_type = image.mime_type
        if year is not None:
            record.publish_year = year

    async def create(self, ctx: RequestContext, data: Dict[str, Any]) -> BookRecord:
        """Save a book to the caller's library.

        A cover id without bytes triggers a cover download and a work key
        without a year triggers a year lookup; both are best effort.
        """
        if not ctx.is_authenticated:
            raise Unauthenticated("Authentication required")

        cleaned = validate_new_book(data)
        record = BookRecord(**cleaned)
        record.username = ctx.username
        record.work_key = normalize_work_key(record.work_key)
        if record.cover_image and not record.cover_mime_type:
            record.cover_mime_type = "image/jpeg"

        await self._enrich_new(record)

        now = utc_now()
        record.created_at = now
        record.updated_at = now
        doc = await self.books.insert(record.to_document())
        logger.info(f"Saved '{record.title}' to {ctx.username}'s library")
        return BookRecord.from_document(doc)

    async def get(self, ctx: RequestContext, book_id: str) -> BookRecord:
        record = await self._load_owned(ctx, book_id)
        return await self.years.ensure(record)

    async def update(
        self, ctx: RequestContext, book_id: str, data: Dict[str, Any]
    ) -> BookRecord:
        """Change the review and/or rating; every other field is ignored."""
        patch = validate_book_update(data)
        await self._load_owned(ctx, book_id)

        patch["updatedAt"] = utc_now()
        doc = await self.books.update_by_id(book_id, patch)
        if doc is None:
            # Deleted between the ownership check and the write
            raise NotFound("Book not found")

        record = BookRecord.from_document(doc)
        self.events.emit(BOOK_UPDATED, record.to_detail_dict())
        return record

    async def delete(self, ctx: RequestContext, book_id: str) -> None:
        await self._load_owned(ctx, book_id)
        if not await self.books.remove_by_id(book_id):
            raise NotFound("Book not found")
        logger.info(f"Removed book {book_id}")

    def _list_query(
        self,
        ctx: RequestContext,
        q: Optional[str],
        author: Optional[str],
        has_review: Union[str, bool, None],
    ) -> Query:
        query: Query = {"username": ctx.username if ctx.is_authenticated else None}
        if q and q.strip():
            query["$or"] = [{"title": _contains(q.strip())}, {"author": _contains(q.strip())}]
        if author and author.strip():
            query["author"] = _contains(author.strip())
        if _is_truthy(has_review):
            query["review"] = {"$exists": True, "$ne": ""}
        return query

    async def list(
        self,
        ctx: RequestContext,
        q: Optional[str] = None,
        author: Optional[str] = None,
        has_review: Union[str, bool, None] = None,
        sort: Optional[str] = None,
    ) -> List[BookRecord]:
        """List the caller's books with optional filters and ordering.

        Args:
            ctx: Caller; anonymous callers see only legacy books without owner.
            q: Substring matched against title or author, case-insensitively.
            author: Substring matched against author only.
            has_review: Keep only books with a non-empty review when truthy.
            sort: ``field:asc|desc``; defaults to ``updatedAt:desc``.
        """
        query = self._list_query(ctx, q, author, has_review)
        docs = await self.books.find(query, sort=parse_sort_spec(sort))
        records = [BookRecord.from_document(doc) for doc in docs]
        return list(await asyncio.gather(*(self.years.ensure(r) for r in records)))

    async def front_cover(self, book_id: str) -> CoverImage:
        """Cover bytes for any existing book; NotFound only if it doesn't exist."""
        doc = await self.books.find_by_id(book_id) if book_id else None
        if doc is None:
            raise NotFound("Book not found")
        return await self.covers.resolve(BookRecord.from_document(doc))
