from abc import ABC, abstractmethod
from typing import Optional


class DocumentGenerator(ABC):
    """Abstract base class for style-guide generators."""

    @abstractmethod
    async def generate(self, analysis_snapshot: Optional[dict], user_id: str, order_id: str) -> str:
        """Produce the guide and return an opaque reference (usually a URL)."""
        pass
