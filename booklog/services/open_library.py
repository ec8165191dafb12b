import asyncio
import html
import logging
from typing import Any, Dict, List, Optional

import httpx

from booklog import config
from booklog.errors import ProviderUnavailable
from booklog.models import CoverImage, Edition, ProviderDoc, WorkDetail
from booklog.services.metadata_provider import MetadataProvider
from booklog.utils.books import coerce_year, normalize_work_key

logger = logging.getLogger("booklog")

USER_AGENT = "Booklog/1.0 (personal reading tracker)"
SEARCH_FIELDS = "key,title,author_name,cover_i,first_publish_year"


def _clean_text(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    return html.unescape(value.strip())


def _cover_id(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return value
    return None


def _parse_search_doc(doc: Dict[str, Any]) -> ProviderDoc:
    """Project one search.json hit onto the fields we display."""
    authors = doc.get("author_name") or []
    author = None
    if isinstance(authors, list) and authors:
        author = _clean_text(authors[0])

    return ProviderDoc(
        work_key=doc.get("key") or None,
        title=_clean_text(doc.get("title")),
        author=author,
        publish_year=coerce_year(doc.get("first_publish_year")),
        cover_id=_cover_id(doc.get("cover_i")),
    )


class OpenLibraryProvider(MetadataProvider):
    """Async Open Library client.

    Every request is bounded by ``timeout`` seconds end to end; a slow
    response is reported exactly like a failed one.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        covers_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = (base_url or config.OPEN_LIBRARY_URL).rstrip("/")
        self.covers_url = (covers_url or config.OPEN_LIBRARY_COVERS_URL).rstrip("/")
        self.timeout = timeout or config.PROVIDER_TIMEOUT
        self._owns_client = client is None
        # Open Library grants a higher rate limit to clients sending a User-Agent
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT},
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            response = await asyncio.wait_for(
                self._client.get(url, params=params), timeout=self.timeout
            )
            response.raise_for_status()
        except asyncio.TimeoutError as e:
            logger.debug(f"Open Library request timed out after {self.timeout}s: {url}")
            raise ProviderUnavailable(f"Timed out fetching {url}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # InvalidURL is not an HTTPError
            logger.debug(f"Open Library request failed for {url}: {e}")
            raise ProviderUnavailable(f"Failed to fetch {url}: {e}") from e
        return response

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self._get(url, params)
        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderUnavailable(f"Invalid JSON from {url}") from e
        if not isinstance(payload, dict):
            raise ProviderUnavailable(f"Unexpected payload from {url}")
        return payload

    def _work_url(self, work_key: str, suffix: str = "") -> str:
        key = normalize_work_key(work_key)
        if not key:
            raise ProviderUnavailable("Missing work key")
        return f"{self.base_url}{key}{suffix}.json"

    async def search_by_term(self, term: str, limit: int) -> List[ProviderDoc]:
        payload = await self._get_json(
            f"{self.base_url}/search.json",
            {"q": term, "limit": str(limit), "fields": SEARCH_FIELDS},
        )
        docs = payload.get("docs") or []
        if not isinstance(docs, list):
            return []
        logger.debug(f"Open Library search '{term}' returned {len(docs)} docs")
        return [_parse_search_doc(doc) for doc in docs[:limit] if isinstance(doc, dict)]

    async def get_work_detail(self, work_key: str) -> WorkDetail:
        payload = await self._get_json(self._work_url(work_key))
        first_date = payload.get("first_publish_date")
        return WorkDetail(
            first_publish_year=coerce_year(payload.get("first_publish_year")),
            first_publish_date_text=str(first_date) if first_date else None,
        )

    async def get_first_edition(self, work_key: str) -> Optional[Edition]:
        payload = await self._get_json(
            self._work_url(work_key, "/editions"), {"limit": "1"}
        )
        entries = payload.get("entries") or []
        if not isinstance(entries, list) or not entries:
            return None
        first = entries[0] if isinstance(entries[0], dict) else {}
        publish_date = first.get("publish_date")
        return Edition(publish_date_text=str(publish_date) if publish_date else None)

    async def fetch_cover_image(self, cover_id: int, size: str = "L") -> CoverImage:
        # default=false makes missing covers a 404 instead of a blank gif
        url = f"{self.covers_url}/b/id/{cover_id}-{size}.jpg"
        response = await self._get(url, {"default": "false"})
        if not response.content:
            raise ProviderUnavailable(f"Empty cover image for {cover_id}")
        mime_type = response.headers.get("Content-Type", "").split(";")[0].strip()
        return CoverImage(data=response.content, mime_type=mime_type or "image/jpeg")
