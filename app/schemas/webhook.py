from typing import Optional

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    success: bool
    message: str
    event_id: Optional[str] = None
    state: Optional[str] = None
