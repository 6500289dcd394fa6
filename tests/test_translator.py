"""Unit tests for Ollama address translation with a mocked HTTP transport."""

import asyncio
import json
import sys
from pathlib import Path

# Add parent directory to path to import project modules
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx
import pytest

from llm.translator import OllamaTranslator

ADDRESS = "新潟県新潟市中央区女池1丁目2-3"
ENGLISH = "1-2-3 Memeike, Chuo-ku, Niigata-shi, Niigata"


def make_transport(models=("qwen3:8b",), generate_status=200, response_text=None, calls=None):
    """MockTransport answering /api/tags and /api/generate."""
    calls = calls if calls is not None else []
    if response_text is None:
        response_text = json.dumps({"english_address": ENGLISH})

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path))
        if request.url.path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": m} for m in models]})
        if request.url.path == "/api/generate":
            body = json.loads(request.content)
            assert body["model"] == "qwen3:8b"
            assert ADDRESS in body["prompt"]
            return httpx.Response(generate_status, json={"response": response_text})
        return httpx.Response(404)

    return httpx.MockTransport(handler)


class TestTranslateAddress:
    """Address translation requests."""

    def test_translation_returned(self):
        calls = []
        translator = OllamaTranslator(transport=make_transport(calls=calls))

        assert asyncio.run(translator.translate_address(ADDRESS)) == ENGLISH
        assert calls == [("GET", "/api/tags"), ("POST", "/api/generate")]

    def test_availability_checked_once(self):
        calls = []
        translator = OllamaTranslator(transport=make_transport(calls=calls))

        async def run():
            await translator.translate_address(ADDRESS)
            await translator.translate_address(ADDRESS)

        asyncio.run(run())
        assert calls.count(("GET", "/api/tags")) == 1
        assert calls.count(("POST", "/api/generate")) == 2

    def test_missing_model_skips_translation(self):
        calls = []
        translator = OllamaTranslator(transport=make_transport(models=("llama3:8b",), calls=calls))

        assert asyncio.run(translator.translate_address(ADDRESS)) is None
        assert ("POST", "/api/generate") not in calls

    def test_server_errors_retry_then_give_up(self):
        calls = []
        translator = OllamaTranslator(transport=make_transport(generate_status=500, calls=calls))

        assert asyncio.run(translator.translate_address(ADDRESS)) is None
        assert calls.count(("POST", "/api/generate")) == OllamaTranslator.MAX_RETRIES

    def test_connection_failure_is_not_fatal(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        translator = OllamaTranslator(transport=httpx.MockTransport(handler))
        assert asyncio.run(translator.check_availability()) is False
        assert asyncio.run(translator.translate_address(ADDRESS)) is None

    def test_empty_address(self):
        translator = OllamaTranslator(transport=make_transport())
        assert asyncio.run(translator.translate_address("")) is None


class TestParseResponse:
    """Lenient JSON extraction from model output."""

    @pytest.fixture
    def translator(self):
        return OllamaTranslator()

    def test_plain_json(self, translator):
        assert translator._parse_response('{"english_address": "Niigata"}') == "Niigata"

    def test_code_block(self, translator):
        text = 'Here you go:\n```json\n{"english_address": "Niigata"}\n```'
        assert translator._parse_response(text) == "Niigata"

    def test_embedded_object(self, translator):
        assert translator._parse_response('Result: {"english_address": " Niigata "} done') == "Niigata"

    @pytest.mark.parametrize("text", ["", "no json here", '{"other": "x"}', '{"english_address": ""}'])
    def test_unusable_output(self, translator, text):
        assert translator._parse_response(text) is None
