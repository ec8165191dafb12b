import base64
import logging
from typing import Optional

from booklog.errors import ProviderUnavailable, StoreUnavailable
from booklog.models import DEFAULT_COVER_MIME, BookRecord, CoverImage
from booklog.services.document_store import DocumentStore
from booklog.services.metadata_provider import MetadataProvider
from booklog.utils.clock import utc_now

logger = logging.getLogger("booklog")

# 1x1 transparent PNG served when no real cover can be found
PLACEHOLDER_COVER = CoverImage(
    data=base64.b64decode(
        "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR4nGNgYAAAAAMAASsJTYQAAAAASUVORK5CYII="
    ),
    mime_type="image/png",
)

COVER_SIZE = "L"


class CoverImageResolver:
    """Produce cover bytes for a book: stored, then fetched, then placeholder."""

    def __init__(self, provider: MetadataProvider, store: DocumentStore) -> None:
        self.provider = provider
        self.store = store

    async def fetch(self, cover_id: Optional[int]) -> Optional[CoverImage]:
        """Download a cover from the provider; None on any failure."""
        if not cover_id:
            return None
        try:
            image = await self.provider.fetch_cover_image(cover_id, COVER_SIZE)
        except ProviderUnavailable as e:
            logger.warning(f"Could not download cover {cover_id}: {e}")
            return None
        if not image.data:
            return None
        return image

    async def resolve(self, record: BookRecord) -> CoverImage:
        """Always returns displayable bytes and a mime type."""
        if record.cover_image:
            return CoverImage(
                data=record.cover_image,
                mime_type=record.cover_mime_type or DEFAULT_COVER_MIME,
            )

        image = await self.fetch(record.cover_id)
        if image is None:
            return PLACEHOLDER_COVER

        record.cover_image = image.data
        record.cover_mime_type = image.mime_type
        record.updated_at = utc_now()
        if record.id is not None:
            try:
                await self.store.update_by_id(
                    record.id,
                    {
                        "coverImageBase64": base64.b64encode(image.data).decode("ascii"),
                        "coverMimeType": image.mime_type,
                        "updatedAt": record.updated_at,
                    },
                )
            except StoreUnavailable as e:
                logger.warning(f"Could not persist cover for {record.id}: {e}")
        return image
