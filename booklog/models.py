"""Entities and their externally visible representations.

Documents in the store use the camelCase field names of the public API;
the dataclasses below convert to and from them. Every ``to_*`` method
enumerates exactly the fields a client is allowed to see.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from booklog.utils.books import cover_url

logger = logging.getLogger("booklog")

DEFAULT_COVER_MIME = "image/jpeg"


def _encode_cover(data: Optional[bytes]) -> Optional[str]:
    return base64.b64encode(data).decode("ascii") if data else None


def _decode_cover(value: Optional[str]) -> Optional[bytes]:
    if not value:
        return None
    try:
        return base64.b64decode(value)
    except (binascii.Error, ValueError):
        logger.warning("Ignoring undecodable stored cover image")
        return None


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class RequestContext:
    """Who is calling. ``username`` is None for unauthenticated callers."""

    username: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.username)


@dataclass
class BookRecord:
    title: str
    id: Optional[str] = None
    username: Optional[str] = None
    author: Optional[str] = None
    publish_year: Optional[int] = None
    work_key: Optional[str] = None
    cover_id: Optional[int] = None
    cover_image: Optional[bytes] = None
    cover_mime_type: Optional[str] = None
    review: Optional[str] = None
    rating: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "BookRecord":
        return cls(
            id=doc.get("_id"),
            username=doc.get("username"),
            title=doc.get("title") or "",
            author=doc.get("author"),
            publish_year=doc.get("publishYear"),
            work_key=doc.get("openLibraryWorkKey"),
            cover_id=doc.get("coverId"),
            cover_image=_decode_cover(doc.get("coverImageBase64")),
            cover_mime_type=doc.get("coverMimeType"),
            review=doc.get("review"),
            rating=doc.get("rating"),
            created_at=doc.get("createdAt"),
            updated_at=doc.get("updatedAt"),
        )

    def to_document(self) -> Dict[str, Any]:
        """Fields persisted for this record (``_id`` is owned by the store)."""
        return {
            "username": self.username,
            "title": self.title,
            "author": self.author,
            "publishYear": self.publish_year,
            "openLibraryWorkKey": self.work_key,
            "coverId": self.cover_id,
            "coverImageBase64": _encode_cover(self.cover_image),
            "coverMimeType": self.cover_mime_type,
            "review": self.review,
            "rating": self.rating,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @property
    def cover_url(self) -> Optional[str]:
        return cover_url(self.id, bool(self.cover_image), self.cover_id)

    def to_detail_dict(self) -> Dict[str, Any]:
        return {
            "_id": str(self.id) if self.id is not None else None,
            "username": self.username,
            "title": self.title,
            "author": self.author,
            "publishYear": self.publish_year,
            "openLibraryWorkKey": self.work_key,
            "coverId": self.cover_id,
            "coverImageBase64": _encode_cover(self.cover_image),
            "coverMimeType": self.cover_mime_type or DEFAULT_COVER_MIME,
            "review": self.review,
            "rating": self.rating,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
            "coverUrl": self.cover_url,
        }

    def to_library_row(self) -> Dict[str, Any]:
        return {
            "_id": str(self.id) if self.id is not None else None,
            "title": self.title,
            "author": self.author,
            "publishYear": self.publish_year,
            "rating": self.rating,
            "review": self.review,
            "coverImageBase64": _encode_cover(self.cover_image),
            "coverMimeType": self.cover_mime_type or DEFAULT_COVER_MIME,
            "coverUrl": self.cover_url,
        }


@dataclass
class RecentSelectionEntry:
    username: str
    work_key: str
    title: str
    id: Optional[str] = None
    author: Optional[str] = None
    publish_year: Optional[int] = None
    cover_id: Optional[int] = None
    cover_image: Optional[bytes] = None
    cover_mime_type: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "RecentSelectionEntry":
        return cls(
            id=doc.get("_id"),
            username=doc.get("username") or "",
            work_key=doc.get("openLibraryWorkKey") or "",
            title=doc.get("title") or "",
            author=doc.get("author"),
            publish_year=doc.get("publishYear"),
            cover_id=doc.get("coverId"),
            cover_image=_decode_cover(doc.get("coverImageBase64")),
            cover_mime_type=doc.get("coverMimeType"),
            created_at=doc.get("createdAt"),
        )

    def payload(self) -> Dict[str, Any]:
        """Replaceable fields; scope, dedup key and timestamp are added by the list."""
        return {
            "title": self.title,
            "author": self.author,
            "publishYear": self.publish_year,
            "coverId": self.cover_id,
            "coverImageBase64": _encode_cover(self.cover_image),
            "coverMimeType": self.cover_mime_type,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id) if self.id is not None else None,
            "openLibraryWorkKey": self.work_key,
            "title": self.title,
            "author": self.author,
            "publishYear": self.publish_year,
            "coverId": self.cover_id,
            "coverImageBase64": _encode_cover(self.cover_image),
            "coverMimeType": self.cover_mime_type,
            "createdAt": _isoformat(self.created_at),
        }


@dataclass
class RecentSearchEntry:
    term: str
    id: Optional[str] = None
    username: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "RecentSearchEntry":
        return cls(
            id=doc.get("_id"),
            username=doc.get("username"),
            term=doc.get("term") or "",
            created_at=doc.get("createdAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id) if self.id is not None else None,
            "term": self.term,
            "createdAt": _isoformat(self.created_at),
        }


@dataclass
class SearchResultView:
    work_key: Optional[str]
    title: Optional[str]
    author: Optional[str] = None
    publish_year: Optional[int] = None
    cover_url: Optional[str] = None
    saved: bool = False
    saved_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.work_key,
            "title": self.title,
            "author": self.author,
            "publishYear": self.publish_year,
            "coverUrl": self.cover_url,
            "saved": self.saved,
            "savedId": self.saved_id,
        }


@dataclass(frozen=True)
class CoverImage:
    data: bytes
    mime_type: str


@dataclass
class ProviderDoc:
    """One search hit from the metadata provider."""

    work_key: Optional[str]
    title: Optional[str]
    author: Optional[str] = None
    publish_year: Optional[int] = None
    cover_id: Optional[int] = None


@dataclass
class WorkDetail:
    first_publish_year: Optional[int] = None
    first_publish_date_text: Optional[str] = None


@dataclass
class Edition:
    publish_date_text: Optional[str] = None


def serialize_all(items: List[Any]) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in items]
