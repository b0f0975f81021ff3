from abc import ABC, abstractmethod
from dataclasses import dataclass

from app.schemas.events import OutboundCommand


@dataclass
class MediaPayload:
    data: bytes
    mime_type: str = "image/jpeg"


class MessagingGateway(ABC):
    """Abstract base class for messaging providers."""

    @abstractmethod
    async def send(self, command: OutboundCommand) -> None:
        """Deliver one outbound command. Raises UpstreamError on failure."""
        pass

    @abstractmethod
    async def download_media(self, image_ref: str) -> MediaPayload:
        """Fetch an inbound media item by URL or gateway media id."""
        pass


def render_options_as_text(command: OutboundCommand) -> str:
    """Numbered-menu fallback for gateways without interactive messages."""
    if not command.options:
        return command.text
    lines = []
    for index, option in enumerate(command.options, start=1):
        line = f"{index}. {option.title}"
        if option.description:
            line += f" ({option.description})"
        lines.append(line)
    return f"{command.text}\n\n" + "\n".join(lines) + "\n\nReply with the number of your choice."
