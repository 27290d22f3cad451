from abc import ABC, abstractmethod
from typing import Optional

from ..domain.models import CatalogPage


class MarketCatalogPort(ABC):
    """Paginated source of binary markets and their outcome-token mints."""

    @abstractmethod
    async def fetch_events_page(
        self,
        limit: int,
        cursor: Optional[int] = None,
        status: Optional[str] = None,
    ) -> CatalogPage:
        ...
