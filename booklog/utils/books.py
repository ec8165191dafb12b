import re
from typing import Any, Optional

from booklog import config

_YEAR_RUN = re.compile(r"\d{4}")

MIN_YEAR = 1000
MAX_YEAR = 9999


def coerce_year(value: Any) -> Optional[int]:
    """Return ``value`` as a year if it is a 4-digit integer, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if MIN_YEAR <= value <= MAX_YEAR else None
    if isinstance(value, str) and value.strip().isdigit():
        return coerce_year(int(value.strip()))
    return None


def parse_publication_year(publish_date: Optional[str]) -> Optional[int]:
    """
    Extract a 4-digit year from free-text date strings.
    Examples: '2023', 'May 2023', '2023-05-01', 'c1998'
    Runs starting with 0 ('0042') are skipped in favour of the next run.
    """
    if not publish_date:
        return None
    if isinstance(publish_date, int):
        return coerce_year(publish_date)

    for match in _YEAR_RUN.finditer(str(publish_date)):
        year = coerce_year(int(match.group()))
        if year is not None:
            return year
    return None


def normalize_work_key(work_key: Optional[str]) -> Optional[str]:
    """Return the canonical '/works/OL...W' form of an Open Library work key."""
    if not work_key:
        return None
    key = work_key.strip()
    if not key:
        return None
    if key.startswith("/works/"):
        return key
    if key.startswith("works/"):
        return "/" + key
    return f"/works/{key.strip('/')}"


def provider_cover_url(cover_id: int, size: str = "M") -> str:
    return f"{config.OPEN_LIBRARY_COVERS_URL}/b/id/{cover_id}-{size}.jpg"


def local_cover_path(book_id: str) -> str:
    return f"/api/books/front-cover/{book_id}"


def cover_url(
    book_id: Optional[str], has_cover_bytes: bool, cover_id: Optional[int]
) -> Optional[str]:
    """Pick the URL a client should load a cover from.

    Stored bytes win (served by us), then the provider's medium cover,
    otherwise there is nothing to show.
    """
    if has_cover_bytes and book_id:
        return local_cover_path(book_id)
    if cover_id:
        return provider_cover_url(cover_id)
    return None
