import asyncio
import copy
import hashlib
import hmac
import json
from datetime import datetime, timezone
from typing import Optional

import pytest

from app.config import Settings
from app.dependencies import build_services
from app.entities import OrderStatus
from app.errors import UpstreamError
from app.schemas.events import InboundEvent
from app.services.analysis.base import ImageAnalyzer
from app.services.documents.base import DocumentGenerator
from app.services.messaging.base import MediaPayload, MessagingGateway
from app.services.payments.base import GatewayStatus, PaymentGateway
from app.services.payments.razorpay_provider import RazorpayProvider
from app.stores.memory import MemoryOrderStore, MemorySessionStore

WEBHOOK_SECRET = "whsec_test"
KEY_SECRET = "key_secret_test"
ADMIN_TOKEN = "admin-test-token"

SAMPLE_ANALYSIS = {
    "personal_profile": {
        "season": "Soft Autumn",
        "undertone": "Warm with golden hues",
        "summary": "Muted, warm colours bring out your natural glow.",
    },
    "color_palettes": {
        "key_colors": [{"name": "Olive", "hex": "#808000"}, {"name": "Terracotta", "hex": "#E2725B"}],
        "neutrals": [{"name": "Camel", "hex": "#C19A6B"}],
        "accent_colors": [{"name": "Teal", "hex": "#008080"}],
    },
    "recommendations": {
        "makeup": {"vibe": "Soft and warm", "lipstick": "Brick rose"},
        "hair_colors": ["Chestnut", "Honey brown", "Caramel"],
        "style": {"jewelry": "Gold and bronze"},
    },
    "colors_to_avoid": [{"name": "Icy pink", "hex": "#F8C8DC"}],
}


class FakeMessaging(MessagingGateway):
    def __init__(self):
        self.sent = []
        self.downloads = []
        self.fail_send = False

    async def send(self, command):
        if self.fail_send:
            raise UpstreamError("gateway down", service="fake")
        self.sent.append(command)

    async def download_media(self, image_ref):
        self.downloads.append(image_ref)
        return MediaPayload(data=b"\xff\xd8selfie", mime_type="image/jpeg")

    def texts(self):
        return [command.text for command in self.sent]


class FakeAnalyzer(ImageAnalyzer):
    def __init__(self, result=None, error=None, delay: float = 0):
        self.result = result if result is not None else SAMPLE_ANALYSIS
        self.error = error
        self.delay = delay
        self.calls = 0

    async def analyze(self, image_bytes, mime_type="image/jpeg"):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return copy.deepcopy(self.result)


class FakePaymentGateway(PaymentGateway):
    def __init__(self):
        self.created = []
        self.statuses = {}
        self.polls = 0
        self.fail_create = False
        self.fail_fetch = False
        self._parser = RazorpayProvider("key_id", KEY_SECRET)

    async def create_order(self, amount, currency, receipt, notes=None):
        if self.fail_create:
            raise UpstreamError("razorpay unavailable", service="razorpay")
        order_id = f"order_{len(self.created) + 1:04d}"
        self.created.append({"order_id": order_id, "amount": amount, "currency": currency, "receipt": receipt, "notes": notes})
        return order_id

    async def fetch_order_status(self, order_id):
        self.polls += 1
        if self.fail_fetch:
            raise UpstreamError("razorpay timeout", service="razorpay")
        return self.statuses.get(order_id, GatewayStatus(status=OrderStatus.CREATED))

    def parse_webhook(self, payload):
        return self._parser.parse_webhook(payload)


class FakeDocuments(DocumentGenerator):
    def __init__(self):
        self.calls = []
        self.fail = False

    async def generate(self, analysis_snapshot, user_id, order_id):
        self.calls.append(order_id)
        if self.fail:
            raise UpstreamError("renderer down", service="documents")
        return f"https://colorbot.test/guides/{order_id}.pdf"


async def _no_alert(level, message, context=None):
    return False


def make_settings(**overrides) -> Settings:
    values = {
        "store_backend": "memory",
        "razorpay_webhook_secret": WEBHOOK_SECRET,
        "razorpay_key_secret": KEY_SECRET,
        "public_base_url": "https://colorbot.test",
        "admin_token": ADMIN_TOKEN,
        "meta_verify_token": "meta-verify",
        "analysis_timeout_seconds": 1.0,
        "background_tasks_enabled": False,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def messaging():
    return FakeMessaging()


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def gateway():
    return FakePaymentGateway()


@pytest.fixture
def documents():
    return FakeDocuments()


@pytest.fixture
def settings():
    return make_settings()


def make_services(settings=None, messaging=None, analyzer=None, gateway=None, documents=None):
    built = build_services(
        settings or make_settings(),
        sessions=MemorySessionStore(),
        orders=MemoryOrderStore(),
        messaging=messaging or FakeMessaging(),
        analyzer=analyzer or FakeAnalyzer(),
        gateway=gateway or FakePaymentGateway(),
        documents=documents or FakeDocuments(),
    )
    built.conversations._alert = _no_alert
    return built


@pytest.fixture
def services(settings, messaging, analyzer, gateway, documents):
    return make_services(settings, messaging, analyzer, gateway, documents)


def text_event(user_id: str, text: str, event_id: Optional[str] = None) -> InboundEvent:
    return InboundEvent(
        id=event_id or f"evt-{user_id}-{text}",
        user_id=user_id,
        timestamp=datetime.now(timezone.utc),
        kind="text",
        text=text,
    )


def image_event(user_id: str, image_ref: str = "media-1") -> InboundEvent:
    return InboundEvent(
        id=f"img-{user_id}-{image_ref}",
        user_id=user_id,
        timestamp=datetime.now(timezone.utc),
        kind="image",
        image_ref=image_ref,
    )


def reply_event(user_id: str, reply_id: str) -> InboundEvent:
    return InboundEvent(
        id=f"reply-{user_id}-{reply_id}",
        user_id=user_id,
        timestamp=datetime.now(timezone.utc),
        kind="interactive",
        reply_id=reply_id,
    )


def sign(raw: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), raw, hashlib.sha256).hexdigest()


def razorpay_webhook(event: str, order_id: str, payment_id: str = "pay_001", **payment_fields) -> bytes:
    payment = {"id": payment_id, "order_id": order_id, "status": "captured", **payment_fields}
    body = {"event": event, "payload": {"payment": {"entity": payment}}}
    return json.dumps(body).encode()


async def drive_to_results(service, user_id: str):
    """Walk a new user up to results_shown."""
    await service.handle_event(text_event(user_id, "hi"))
    await service.handle_event(text_event(user_id, "ready"))
    await service.handle_event(image_event(user_id))
    await service.wait_idle()


async def drive_to_payment(service, user_id: str):
    await drive_to_results(service, user_id)
    await service.handle_event(text_event(user_id, "buy"))
