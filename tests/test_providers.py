import asyncio
import json
from unittest.mock import patch

import httpx
import pytest

from app.entities import OrderStatus
from app.errors import AnalysisErrorKind, AnalysisFailure, UpstreamError, UpstreamTimeout
from app.schemas.events import MenuOption, send_options, send_text
from app.services.analysis.base import validate_analysis
from app.services.analysis.gemini_provider import GeminiProvider
from app.services.documents.link_provider import GuideLinkProvider
from app.services.messaging.aisensy_provider import AisensyProvider
from app.services.messaging.base import render_options_as_text
from app.services.messaging.meta_provider import MetaCloudProvider
from app.services.payments.razorpay_provider import RazorpayProvider
from conftest import SAMPLE_ANALYSIS

REAL_ASYNC_CLIENT = httpx.AsyncClient


def mock_http(module: str, handler):
    """Patch a provider module's httpx.AsyncClient with one backed by a mock transport."""
    requests = []

    def record(request):
        requests.append(request)
        return handler(request)

    def factory(**kwargs):
        return REAL_ASYNC_CLIENT(transport=httpx.MockTransport(record), **kwargs)

    return patch(f"{module}.httpx.AsyncClient", side_effect=factory), requests


def _gemini_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class TestRenderOptions:
    def test_plain_text_unchanged(self):
        assert render_options_as_text(send_text("1", "hello")) == "hello"

    def test_numbered_menu(self):
        command = send_options(
            "1",
            "Pick one",
            [MenuOption(id="a", title="First"), MenuOption(id="b", title="Second", description="more")],
        )

        assert render_options_as_text(command) == (
            "Pick one\n\n1. First\n2. Second (more)\n\nReply with the number of your choice."
        )


class TestMetaProvider:
    def test_few_options_become_buttons(self):
        provider = MetaCloudProvider("token", "phone-1")
        command = send_options("+919876543210", "Ready?", [MenuOption(id="start_analysis", title="I'm Ready! 📸 Let's go now")])

        payload = provider._build_payload(command)

        assert payload["to"] == "919876543210"
        assert payload["type"] == "interactive"
        button = payload["interactive"]["action"]["buttons"][0]["reply"]
        assert button["id"] == "start_analysis"
        assert len(button["title"]) == 20

    def test_many_options_fall_back_to_text(self):
        provider = MetaCloudProvider("token", "phone-1")
        options = [MenuOption(id=str(i), title=f"Option {i}") for i in range(4)]

        payload = provider._build_payload(send_options("1", "Choose", options))

        assert payload["type"] == "text"
        assert "4. Option 3" in payload["text"]["body"]

    def test_send_error_raises_upstream_error(self):
        patcher, requests = mock_http(
            "app.services.messaging.meta_provider", lambda request: httpx.Response(401, json={"error": "bad token"})
        )
        provider = MetaCloudProvider("token", "phone-1")

        with patcher, pytest.raises(UpstreamError):
            asyncio.run(provider.send(send_text("1", "hi")))

        assert requests[0].headers["Authorization"] == "Bearer token"

    def test_download_media(self):
        def handler(request):
            if request.url.path.endswith("/media-9"):
                return httpx.Response(200, json={"url": "https://lookaside.test/img", "mime_type": "image/png"})
            return httpx.Response(200, content=b"png-bytes")

        patcher, requests = mock_http("app.services.messaging.meta_provider", handler)

        with patcher:
            media = asyncio.run(MetaCloudProvider("token", "phone-1").download_media("media-9"))

        assert media.data == b"png-bytes"
        assert media.mime_type == "image/png"
        assert len(requests) == 2


class TestAisensyProvider:
    def test_send_posts_rendered_text(self):
        patcher, requests = mock_http(
            "app.services.messaging.aisensy_provider", lambda request: httpx.Response(200, json={"success": True})
        )
        provider = AisensyProvider("api-key", "https://aisensy.test/api/", "campaign")

        with patcher:
            asyncio.run(provider.send(send_options("+91 98765 43210", "Pick", [MenuOption(id="a", title="A")])))

        body = json.loads(requests[0].content)
        assert str(requests[0].url) == "https://aisensy.test/api/send"
        assert body["destination"] == "919876543210"
        assert body["message"].endswith("Reply with the number of your choice.")

    def test_timeout_becomes_upstream_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        patcher, _ = mock_http("app.services.messaging.aisensy_provider", handler)

        with patcher, pytest.raises(UpstreamTimeout):
            asyncio.run(AisensyProvider("k", "https://aisensy.test", "c").send(send_text("1", "hi")))

    def test_download_by_media_id(self):
        patcher, requests = mock_http(
            "app.services.messaging.aisensy_provider",
            lambda request: httpx.Response(200, content=b"jpeg", headers={"content-type": "image/jpeg; q=1"}),
        )

        with patcher:
            media = asyncio.run(AisensyProvider("k", "https://aisensy.test", "c").download_media("abc"))

        assert str(requests[0].url) == "https://aisensy.test/media/abc"
        assert media.mime_type == "image/jpeg"


class TestGeminiProvider:
    def test_parses_analysis(self):
        assert GeminiProvider._parse(_gemini_body(json.dumps(SAMPLE_ANALYSIS))) == SAMPLE_ANALYSIS

    def test_non_json_text(self):
        with pytest.raises(AnalysisFailure) as exc:
            GeminiProvider._parse(_gemini_body("I think you're an autumn"))

        assert exc.value.kind == AnalysisErrorKind.UNKNOWN

    def test_missing_candidates(self):
        with pytest.raises(AnalysisFailure):
            GeminiProvider._parse({"promptFeedback": {}})

    def test_incomplete_analysis(self):
        with pytest.raises(AnalysisFailure):
            GeminiProvider._parse(_gemini_body(json.dumps({"personal_profile": {"season": "Winter"}})))

    def test_missing_key(self):
        with pytest.raises(AnalysisFailure) as exc:
            asyncio.run(GeminiProvider("").analyze(b"img"))

        assert exc.value.kind == AnalysisErrorKind.UNKNOWN

    @pytest.mark.parametrize(
        "status,kind",
        [
            (429, AnalysisErrorKind.RATE_LIMITED),
            (400, AnalysisErrorKind.INVALID_FORMAT),
            (500, AnalysisErrorKind.UNKNOWN),
        ],
    )
    def test_status_mapping(self, status, kind):
        patcher, _ = mock_http("app.services.analysis.gemini_provider", lambda request: httpx.Response(status))

        with patcher, pytest.raises(AnalysisFailure) as exc:
            asyncio.run(GeminiProvider("key").analyze(b"img"))

        assert exc.value.kind == kind

    def test_non_json_response_body(self):
        patcher, _ = mock_http(
            "app.services.analysis.gemini_provider",
            lambda request: httpx.Response(200, content=b"<html>gateway error</html>"),
        )

        with patcher, pytest.raises(AnalysisFailure) as exc:
            asyncio.run(GeminiProvider("key").analyze(b"img"))

        assert exc.value.kind == AnalysisErrorKind.UNKNOWN

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        patcher, _ = mock_http("app.services.analysis.gemini_provider", handler)

        with patcher, pytest.raises(AnalysisFailure) as exc:
            asyncio.run(GeminiProvider("key").analyze(b"img"))

        assert exc.value.kind == AnalysisErrorKind.TIMEOUT

    def test_successful_request(self):
        patcher, requests = mock_http(
            "app.services.analysis.gemini_provider",
            lambda request: httpx.Response(200, json=_gemini_body(json.dumps(SAMPLE_ANALYSIS))),
        )

        with patcher:
            analysis = asyncio.run(GeminiProvider("key").analyze(b"img", "image/png"))

        assert analysis["personal_profile"]["season"] == "Soft Autumn"
        body = json.loads(requests[0].content)
        assert body["contents"][0]["parts"][1]["inline_data"]["mime_type"] == "image/png"
        assert requests[0].url.params["key"] == "key"


class TestValidateAnalysis:
    def test_sample_is_valid(self):
        assert validate_analysis(SAMPLE_ANALYSIS) is True

    def test_missing_palette(self):
        broken = dict(SAMPLE_ANALYSIS, color_palettes={"key_colors": []})

        assert validate_analysis(broken) is False

    def test_not_a_dict(self):
        assert validate_analysis(["Soft Autumn"]) is False


class TestRazorpayProvider:
    def test_parse_captured(self):
        event = RazorpayProvider("id", "secret").parse_webhook(
            {"event": "payment.captured", "payload": {"payment": {"entity": {"id": "pay_1", "order_id": "order_1"}}}}
        )

        assert event.status == OrderStatus.COMPLETED
        assert event.order_id == "order_1"
        assert event.payment_id == "pay_1"

    def test_parse_order_paid(self):
        event = RazorpayProvider("id", "secret").parse_webhook(
            {"event": "order.paid", "payload": {"order": {"entity": {"id": "order_2"}}}}
        )

        assert event.status == OrderStatus.COMPLETED
        assert event.order_id == "order_2"

    def test_parse_failed(self):
        event = RazorpayProvider("id", "secret").parse_webhook(
            {
                "event": "payment.failed",
                "payload": {"payment": {"entity": {"id": "pay_3", "order_id": "order_3", "error_reason": "bank_declined"}}},
            }
        )

        assert event.status == OrderStatus.FAILED
        assert event.failure_reason == "bank_declined"

    def test_parse_ignored(self):
        provider = RazorpayProvider("id", "secret")

        assert provider.parse_webhook({"event": "refund.created", "payload": {"order": {"entity": {"id": "o"}}}}) is None
        assert provider.parse_webhook({"event": "payment.captured", "payload": {}}) is None

    def test_create_order(self):
        patcher, requests = mock_http(
            "app.services.payments.razorpay_provider", lambda request: httpx.Response(200, json={"id": "order_new"})
        )

        with patcher:
            order_id = asyncio.run(RazorpayProvider("id", "secret").create_order(69900, "INR", "r" * 60, {"a": "b"}))

        assert order_id == "order_new"
        body = json.loads(requests[0].content)
        assert len(body["receipt"]) == 40
        assert body["amount"] == 69900
        assert requests[0].headers["Authorization"].startswith("Basic ")

    def test_fetch_paid_order(self):
        def handler(request):
            if request.url.path.endswith("/payments"):
                return httpx.Response(200, json={"items": [{"id": "pay_1", "status": "failed"}, {"id": "pay_2", "status": "captured"}]})
            return httpx.Response(200, json={"id": "order_1", "status": "paid"})

        patcher, _ = mock_http("app.services.payments.razorpay_provider", handler)

        with patcher:
            status = asyncio.run(RazorpayProvider("id", "secret").fetch_order_status("order_1"))

        assert status.status == OrderStatus.COMPLETED
        assert status.payment_id == "pay_2"

    def test_fetch_unpaid_order(self):
        patcher, requests = mock_http(
            "app.services.payments.razorpay_provider",
            lambda request: httpx.Response(200, json={"id": "order_1", "status": "attempted"}),
        )

        with patcher:
            status = asyncio.run(RazorpayProvider("id", "secret").fetch_order_status("order_1"))

        assert status.status == OrderStatus.CREATED
        assert len(requests) == 1

    def test_gateway_error(self):
        patcher, _ = mock_http("app.services.payments.razorpay_provider", lambda request: httpx.Response(502))

        with patcher, pytest.raises(UpstreamError):
            asyncio.run(RazorpayProvider("id", "secret").fetch_order_status("order_1"))


class TestGuideLinkProvider:
    def test_link_uses_season_slug(self):
        provider = GuideLinkProvider("https://colorbot.test/")

        ref = asyncio.run(provider.generate(SAMPLE_ANALYSIS, "919876543210", "order_1"))

        assert ref == "https://colorbot.test/guides/order_1/korean-color-analysis-soft-autumn.pdf"

    def test_link_without_analysis(self):
        ref = asyncio.run(GuideLinkProvider("https://colorbot.test").generate(None, "1", "order_2"))

        assert ref.endswith("/korean-color-analysis-guide.pdf")
