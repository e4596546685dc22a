"""
Tests for the analysis boundary: response parsing, the HTTP client and
the Gemini service.
"""

import base64
import json

import httpx
import pytest

from kakeibo_lens.services.analysis import (
    AnalysisParseError,
    AnalysisTransportError,
    GeminiVisionService,
    HttpAnalysisService,
    extract_json_text,
    parse_analysis_response,
)


SAMPLE_BODY = {
    "entries": [
        {"date": "2026-01-04", "itemName": "スーパーで買い物", "amount": 3500, "suggestedCategory": "食費"},
        {"date": "2026-01-04", "itemName": "電車代", "amount": "500円", "suggestedCategory": "交通費"},
    ],
    "confidence": 0.85,
}


class TestParseAnalysisResponse:

    def test_plain_json(self):
        result = parse_analysis_response(json.dumps(SAMPLE_BODY, ensure_ascii=False))
        assert len(result.entries) == 2
        assert result.entries[1].amount == 500.0
        assert result.entries[0].suggested_category == "食費"
        assert result.confidence == 0.85

    def test_fenced_json(self):
        text = "解析結果です:\n```json\n" + json.dumps(SAMPLE_BODY) + "\n```\n以上"
        assert extract_json_text(text).startswith("{")
        assert len(parse_analysis_response(text).entries) == 2

    def test_fence_without_language(self):
        text = "```\n{\"entries\": []}\n```"
        assert parse_analysis_response(text).entries == []

    def test_confidence_is_clamped(self):
        result = parse_analysis_response('{"entries": [], "confidence": 1.7}')
        assert result.confidence == 1.0

    @pytest.mark.parametrize("text", ["", "   ", "not json", "[1, 2]", '{"confidence": 0.5}'])
    def test_unusable_text_raises_parse_error(self, text):
        with pytest.raises(AnalysisParseError):
            parse_analysis_response(text)

    def test_wrong_entries_shape_raises_parse_error(self):
        with pytest.raises(AnalysisParseError):
            parse_analysis_response('{"entries": "none"}')


def mock_transport(handler):
    return httpx.MockTransport(handler)


class TestHttpAnalysisService:

    def test_posts_base64_image_and_parses_entries(self, run):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=SAMPLE_BODY)

        service = HttpAnalysisService(
            base_url="http://ledger.test/",
            transport=mock_transport(handler),
        )
        result = run(service.analyze(b"\xff\xd8jpeg"))

        assert seen["url"] == "http://ledger.test/api/analyze-kakeibo"
        assert base64.b64decode(seen["body"]["image"]) == b"\xff\xd8jpeg"
        assert [line.item_name for line in result.entries] == ["スーパーで買い物", "電車代"]

    def test_error_status_raises_transport_error(self, run):
        def handler(request):
            return httpx.Response(500, json={"error": "Failed to analyze image", "details": "quota"})

        service = HttpAnalysisService(base_url="http://ledger.test", transport=mock_transport(handler))
        with pytest.raises(AnalysisTransportError) as exc_info:
            run(service.analyze(b"img"))

        assert exc_info.value.status_code == 500
        assert "quota" in str(exc_info.value)

    def test_error_status_is_not_retried(self, run):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": "Image data is required"})

        service = HttpAnalysisService(
            base_url="http://ledger.test",
            max_retries=3,
            transport=mock_transport(handler),
        )
        with pytest.raises(AnalysisTransportError):
            run(service.analyze(b"img"))
        assert len(calls) == 1

    def test_non_json_body_raises_parse_error(self, run):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        service = HttpAnalysisService(base_url="http://ledger.test", transport=mock_transport(handler))
        with pytest.raises(AnalysisParseError):
            run(service.analyze(b"img"))

    def test_connection_error_raises_transport_error(self, run):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        service = HttpAnalysisService(
            base_url="http://ledger.test",
            max_retries=1,
            transport=mock_transport(handler),
        )
        with pytest.raises(AnalysisTransportError) as exc_info:
            run(service.analyze(b"img"))
        assert exc_info.value.status_code is None

    def test_endpoint_uses_settings_default(self, monkeypatch):
        monkeypatch.setenv("ANALYSIS_API_BASE_URL", "http://configured.test/")
        from kakeibo_lens.config import get_settings
        get_settings.cache_clear()

        assert HttpAnalysisService().endpoint == "http://configured.test/api/analyze-kakeibo"


class FakeGeminiResponse:
    def __init__(self, text=None, blocked=False):
        self._text = text
        self._blocked = blocked

    @property
    def text(self):
        if self._blocked:
            raise ValueError("response was blocked")
        return self._text


class FakeGeminiModel:
    def __init__(self, responses):
        self._responses = list(responses)
        self.requests = []

    async def generate_content_async(self, content):
        self.requests.append(content)
        outcome = self._responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class TestGeminiVisionService:

    def test_sends_prompt_and_image(self, run):
        model = FakeGeminiModel([FakeGeminiResponse("```json\n" + json.dumps(SAMPLE_BODY) + "\n```")])
        service = GeminiVisionService(model=model, mime_type="image/png")

        result = run(service.analyze(b"png-bytes"))

        prompt, image_part = model.requests[0]
        assert "家計簿" in prompt
        assert image_part == {"mime_type": "image/png", "data": b"png-bytes"}
        assert len(result.entries) == 2

    def test_api_failure_raises_transport_error(self, run):
        model = FakeGeminiModel([RuntimeError("503 unavailable")])
        service = GeminiVisionService(model=model, max_retries=1)

        with pytest.raises(AnalysisTransportError, match="503"):
            run(service.analyze(b"img"))

    def test_blocked_response_raises_parse_error(self, run):
        model = FakeGeminiModel([FakeGeminiResponse(blocked=True)])
        service = GeminiVisionService(model=model)

        with pytest.raises(AnalysisParseError):
            run(service.analyze(b"img"))

    def test_prose_answer_raises_parse_error(self, run):
        model = FakeGeminiModel([FakeGeminiResponse("画像が読み取れませんでした")])
        service = GeminiVisionService(model=model)

        with pytest.raises(AnalysisParseError):
            run(service.analyze(b"img"))
