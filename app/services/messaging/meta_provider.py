import httpx

from app.logging_config import get_logger
from app.schemas.events import OutboundCommand
from app.services.messaging.base import MediaPayload, MessagingGateway, render_options_as_text
from app.services.upstream import check_response, upstream_errors

logger = get_logger("messaging.meta")

GRAPH_URL = "https://graph.facebook.com/v19.0"
MAX_BUTTONS = 3
MAX_BUTTON_TITLE = 20


class MetaCloudProvider(MessagingGateway):
    """WhatsApp Cloud API provider."""

    def __init__(self, access_token: str, phone_number_id: str, timeout_seconds: float = 30.0):
        self.access_token = access_token
        self.phone_number_id = phone_number_id
        self.timeout_seconds = timeout_seconds

    @property
    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.access_token}"}

    def _build_payload(self, command: OutboundCommand) -> dict:
        payload = {"messaging_product": "whatsapp", "to": command.user_id.lstrip("+")}
        if command.kind == "options" and 0 < len(command.options) <= MAX_BUTTONS:
            payload["type"] = "interactive"
            payload["interactive"] = {
                "type": "button",
                "body": {"text": command.text},
                "action": {
                    "buttons": [
                        {"type": "reply", "reply": {"id": option.id, "title": option.title[:MAX_BUTTON_TITLE]}}
                        for option in command.options
                    ]
                },
            }
            return payload
        payload["type"] = "text"
        payload["text"] = {"body": render_options_as_text(command)}
        return payload

    async def send(self, command: OutboundCommand) -> None:
        async with upstream_errors("meta"):
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    f"{GRAPH_URL}/{self.phone_number_id}/messages",
                    json=self._build_payload(command),
                    headers=self._headers,
                )
        check_response(response, "meta")

    async def download_media(self, image_ref: str) -> MediaPayload:
        async with upstream_errors("meta"):
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                meta = check_response(await client.get(f"{GRAPH_URL}/{image_ref}", headers=self._headers), "meta")
                info = meta.json()
                response = await client.get(info["url"], headers=self._headers)
        check_response(response, "meta")
        return MediaPayload(data=response.content, mime_type=info.get("mime_type") or "image/jpeg")
