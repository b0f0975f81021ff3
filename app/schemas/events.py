from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class InboundEvent(BaseModel):
    """Canonical inbound event, independent of the messaging gateway."""

    id: str
    user_id: str = Field(min_length=1)
    timestamp: datetime
    kind: Literal["text", "image", "interactive"]
    text: Optional[str] = None
    image_ref: Optional[str] = None
    reply_id: Optional[str] = None
    profile_name: Optional[str] = None

    @model_validator(mode="after")
    def check_payload(self) -> "InboundEvent":
        if self.kind == "text" and self.text is None:
            raise ValueError("text event without text")
        if self.kind == "image" and not self.image_ref:
            raise ValueError("image event without image_ref")
        if self.kind == "interactive" and not self.reply_id:
            raise ValueError("interactive event without reply_id")
        return self


class MenuOption(BaseModel):
    id: str
    title: str
    description: Optional[str] = None


class OutboundCommand(BaseModel):
    kind: Literal["text", "options"]
    user_id: str
    text: str
    options: list[MenuOption] = []


def send_text(user_id: str, text: str) -> OutboundCommand:
    return OutboundCommand(kind="text", user_id=user_id, text=text)


def send_options(user_id: str, text: str, options: list[MenuOption]) -> OutboundCommand:
    return OutboundCommand(kind="options", user_id=user_id, text=text, options=options)
