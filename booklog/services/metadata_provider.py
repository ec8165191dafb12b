"""Interface to an external bibliographic metadata source.

Every method raises ``ProviderUnavailable`` on network failure, timeout or an
unusable response. Callers decide whether that is fatal; the enrichment
fallback chains treat it as "no value from this tier".
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from booklog.models import CoverImage, Edition, ProviderDoc, WorkDetail


class MetadataProvider(ABC):
    async def __aenter__(self) -> "MetadataProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Release network resources (no-op by default)."""

    @abstractmethod
    async def search_by_term(self, term: str, limit: int) -> List[ProviderDoc]:
        ...

    @abstractmethod
    async def get_work_detail(self, work_key: str) -> WorkDetail:
        ...

    @abstractmethod
    async def get_first_edition(self, work_key: str) -> Optional[Edition]:
        ...

    @abstractmethod
    async def fetch_cover_image(self, cover_id: int, size: str = "L") -> CoverImage:
        ...
