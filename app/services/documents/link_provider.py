import re
from typing import Optional

from app.logging_config import get_logger
from app.services.documents.base import DocumentGenerator

logger = get_logger("documents.link")


class GuideLinkProvider(DocumentGenerator):
    """Points at the guide served by the public site; rendering happens there."""

    def __init__(self, public_base_url: str):
        self.public_base_url = public_base_url.rstrip("/")

    async def generate(self, analysis_snapshot: Optional[dict], user_id: str, order_id: str) -> str:
        season = ((analysis_snapshot or {}).get("personal_profile") or {}).get("season") or "guide"
        slug = re.sub(r"[^a-z0-9]+", "-", season.lower()).strip("-")
        ref = f"{self.public_base_url}/guides/{order_id}/korean-color-analysis-{slug}.pdf"
        logger.info("Guide link generated", extra={"context": {"order_id": order_id, "user_id": user_id}})
        return ref
