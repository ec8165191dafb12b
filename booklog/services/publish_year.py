import logging
from typing import Optional

from booklog.errors import ProviderUnavailable, StoreUnavailable
from booklog.models import BookRecord
from booklog.services.document_store import DocumentStore
from booklog.services.metadata_provider import MetadataProvider
from booklog.utils.books import coerce_year, normalize_work_key, parse_publication_year
from booklog.utils.clock import utc_now

logger = logging.getLogger("booklog")


class PublishYearResolver:
    """Fill in a missing publish year with progressive provider fallbacks.

    Tiers, first hit wins:

    1. the work's ``first_publish_year``
    2. a year parsed from the work's ``first_publish_date`` text
    3. a year parsed from the first edition's ``publish_date``
    4. the first search hit for ``"<title> author:<author>"``

    A failing or empty tier just moves on to the next one; nothing here
    raises.
    """

    def __init__(self, provider: MetadataProvider, store: DocumentStore) -> None:
        self.provider = provider
        self.store = store

    async def lookup_by_work(self, work_key: Optional[str]) -> Optional[int]:
        """Tiers 1-3, all keyed on the work."""
        key = normalize_work_key(work_key)
        if not key:
            return None

        try:
            detail = await self.provider.get_work_detail(key)
        except ProviderUnavailable as e:
            logger.debug(f"Work detail lookup failed for {key}: {e}")
            detail = None

        if detail is not None:
            if detail.first_publish_year:
                year = coerce_year(detail.first_publish_year)
                if year:
                    return year
            year = parse_publication_year(detail.first_publish_date_text)
            if year:
                logger.debug(f"Parsed year {year} from first publish date of {key}")
                return year

        try:
            edition = await self.provider.get_first_edition(key)
        except ProviderUnavailable as e:
            logger.debug(f"Edition lookup failed for {key}: {e}")
            return None

        if edition is not None:
            year = parse_publication_year(edition.publish_date_text)
            if year:
                logger.debug(f"Parsed year {year} from first edition of {key}")
                return year
        return None

    async def lookup_by_search(
        self, title: Optional[str], author: Optional[str]
    ) -> Optional[int]:
        """Tier 4: ask the search endpoint about title and author."""
        parts = []
        if title and title.strip():
            parts.append(title.strip())
        if author and author.strip():
            parts.append(f"author:{author.strip()}")
        if not parts:
            return None

        query = " ".join(parts)
        try:
            docs = await self.provider.search_by_term(query, 1)
        except ProviderUnavailable as e:
            logger.debug(f"Year search failed for '{query}': {e}")
            return None
        if not docs:
            return None
        return coerce_year(docs[0].publish_year)

    async def lookup(
        self,
        work_key: Optional[str] = None,
        title: Optional[str] = None,
        author: Optional[str] = None,
    ) -> Optional[int]:
        year = await self.lookup_by_work(work_key)
        if year is None:
            year = await self.lookup_by_search(title, author)
        return year

    async def ensure(self, record: BookRecord) -> BookRecord:
        """Return ``record`` with its publish year filled in when possible.

        A resolved year is written back to the store; if that write fails the
        returned record still carries the year.
        """
        if record.publish_year is not None:
            return record

        year = await self.lookup(record.work_key, record.title, record.author)
        if year is None:
            logger.debug(f"No publish year found for '{record.title}'")
            return record

        record.publish_year = year
        record.updated_at = utc_now()
        if record.id is not None:
            try:
                await self.store.update_by_id(
                    record.id, {"publishYear": year, "updatedAt": record.updated_at}
                )
            except StoreUnavailable as e:
                logger.warning(f"Could not persist publish year for {record.id}: {e}")
        return record
