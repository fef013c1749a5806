"""
Lumina Tests - Gemini Vision Client

Uses httpx.MockTransport, no network access.
"""

import asyncio
import base64
import json

import httpx
import pytest

from lumina.models import DetectionRegion
from lumina.vision.client import (
    GeminiVisionClient,
    VisionAPIError,
    VisionConfigError,
    VisionResponseError,
)
from lumina.vision.resilience import is_quota_error


def text_reply(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def make_client(handler, api_key="test-key"):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiVisionClient(
        api_key=api_key,
        model="gemini-test",
        base_url="https://vision.test/",
        http_client=http_client,
    )


def run(coro_factory, handler, **kwargs):
    async def scenario():
        async with make_client(handler, **kwargs) as client:
            return await coro_factory(client)

    return asyncio.run(scenario())


class TestRequestShape:
    def test_posts_inline_image_and_prompt(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=text_reply('{"boxes": []}'))

        run(lambda c: c.detect_privacy_regions(b"jpeg-bytes"), handler)

        assert seen["url"] == "https://vision.test/v1beta/models/gemini-test:generateContent"
        assert seen["key"] == "test-key"
        parts = seen["body"]["contents"][0]["parts"]
        assert parts[0]["inline_data"]["data"] == base64.b64encode(b"jpeg-bytes").decode()
        assert parts[0]["inline_data"]["mime_type"] == "image/jpeg"
        assert "boxes" in parts[1]["text"]

    def test_missing_api_key(self):
        def handler(request):
            raise AssertionError("no request expected")

        with pytest.raises(VisionConfigError):
            run(lambda c: c.detect_privacy_regions(b"x"), handler, api_key="")


class TestDetectPrivacyRegions:
    def test_parses_fenced_json(self):
        reply = '```json\n{"boxes": [[100, 200, 300, 400]]}\n```'
        handler = lambda request: httpx.Response(200, json=text_reply(reply))

        regions = run(lambda c: c.detect_privacy_regions(b"x"), handler)

        assert regions == [DetectionRegion(ymin=100, xmin=200, ymax=300, xmax=400)]

    def test_empty_boxes_is_valid(self):
        handler = lambda request: httpx.Response(200, json=text_reply('{"boxes": []}'))

        assert run(lambda c: c.detect_privacy_regions(b"x"), handler) == []

    def test_clamps_orders_and_skips_bad_boxes(self):
        reply = json.dumps({"boxes": [[1200, 50, -10, 20.6], [1, 2, 3], "nope"]})
        handler = lambda request: httpx.Response(200, json=text_reply(reply))

        regions = run(lambda c: c.detect_privacy_regions(b"x"), handler)

        assert regions == [DetectionRegion(ymin=0, xmin=21, ymax=1000, xmax=50)]

    def test_malformed_json_raises(self):
        handler = lambda request: httpx.Response(200, json=text_reply("I see two faces"))

        with pytest.raises(VisionResponseError):
            run(lambda c: c.detect_privacy_regions(b"x"), handler)


class TestSuggestEnhancement:
    def test_reads_numeric_fields(self):
        reply = '{"brightness": 110, "contrast": 105.4, "saturation": "high"}'
        handler = lambda request: httpx.Response(200, json=text_reply(reply))

        suggestion = run(lambda c: c.suggest_enhancement(b"x"), handler)

        assert suggestion.brightness == 110
        assert suggestion.contrast == 105
        assert suggestion.saturation is None
        assert suggestion.warmth is None

    def test_unparseable_reply_returns_none(self):
        handler = lambda request: httpx.Response(200, json=text_reply("Looks great already!"))

        assert run(lambda c: c.suggest_enhancement(b"x"), handler) is None

    def test_non_object_reply_returns_none(self):
        handler = lambda request: httpx.Response(200, json=text_reply("[1, 2]"))

        assert run(lambda c: c.suggest_enhancement(b"x"), handler) is None


class TestRemoveBackground:
    def test_returns_inline_image(self):
        png = b"\x89PNG-cutout"
        body = {
            "candidates": [
                {
                    "content": {
                        "parts": [
                            {"text": "Here you go"},
                            {"inlineData": {"mimeType": "image/png", "data": base64.b64encode(png).decode()}},
                        ]
                    }
                }
            ]
        }
        handler = lambda request: httpx.Response(200, json=body)

        assert run(lambda c: c.remove_background(b"logo"), handler) == png

    def test_text_only_reply_raises(self):
        handler = lambda request: httpx.Response(200, json=text_reply("I cannot do that"))

        with pytest.raises(VisionResponseError):
            run(lambda c: c.remove_background(b"logo"), handler)


class TestErrors:
    def test_rate_limit_is_classified_as_quota(self):
        body = {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
        handler = lambda request: httpx.Response(429, json=body)

        with pytest.raises(VisionAPIError) as exc_info:
            run(lambda c: c.detect_privacy_regions(b"x"), handler)

        assert exc_info.value.status_code == 429
        assert exc_info.value.code == 429
        assert "RESOURCE_EXHAUSTED" in str(exc_info.value)
        assert is_quota_error(exc_info.value)

    def test_server_error_is_not_quota(self):
        handler = lambda request: httpx.Response(500, text="boom")

        with pytest.raises(VisionAPIError) as exc_info:
            run(lambda c: c.suggest_enhancement(b"x"), handler)

        assert exc_info.value.status_code == 500
        assert not is_quota_error(exc_info.value)

    def test_transport_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(VisionAPIError):
            run(lambda c: c.detect_privacy_regions(b"x"), handler)
