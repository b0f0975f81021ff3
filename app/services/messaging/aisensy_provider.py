import re

import httpx

from app.logging_config import get_logger
from app.schemas.events import OutboundCommand
from app.services.messaging.base import MediaPayload, MessagingGateway, render_options_as_text
from app.services.upstream import check_response, upstream_errors

logger = get_logger("messaging.aisensy")


class AisensyProvider(MessagingGateway):
    """Aisensy WhatsApp campaign API provider."""

    def __init__(self, api_key: str, base_url: str, campaign_name: str, timeout_seconds: float = 30.0):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.campaign_name = campaign_name
        self.timeout_seconds = timeout_seconds

    @staticmethod
    def _destination(user_id: str) -> str:
        return re.sub(r"[\s+]", "", user_id)

    async def send(self, command: OutboundCommand) -> None:
        payload = {
            "apiKey": self.api_key,
            "campaignName": self.campaign_name,
            "destination": self._destination(command.user_id),
            "userName": "ColorBot",
            "templateParams": [],
            "source": "whatsapp-bot",
            "media": {},
            "attributes": {"name": "User"},
            "message": render_options_as_text(command),
        }
        logger.debug(f"Aisensy send: destination={payload['destination']}, kind={command.kind}")

        async with upstream_errors("aisensy"):
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"{self.base_url}/send",
                    json=payload,
                    headers={"X-AiSensy-API-KEY": self.api_key},
                )
        check_response(response, "aisensy")

    async def download_media(self, image_ref: str) -> MediaPayload:
        if image_ref.startswith("http://") or image_ref.startswith("https://"):
            url, headers = image_ref, {}
        else:
            url, headers = f"{self.base_url}/media/{image_ref}", {"X-AiSensy-API-KEY": self.api_key}

        async with upstream_errors("aisensy"):
            async with httpx.AsyncClient(timeout=self.timeout_seconds, follow_redirects=True) as client:
                response = await client.get(url, headers=headers)
        check_response(response, "aisensy")
        return MediaPayload(
            data=response.content,
            mime_type=response.headers.get("content-type", "image/jpeg").split(";")[0],
        )
