"""Tests for best-effort deal scoring."""
import json

import httpx
import pytest

from listingsync.config import Settings
from listingsync.services.scoring import GeminiScorer, NullScorer, get_scorer

LISTING = {
    "item_id": 7,
    "title": "Level 40 account",
    "price": 25.0,
    "currency": "usd",
    "extension_data": {"steam_level": 40, "steam_region": "eu"},
}


def answer(text):
    def handler(request):
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})
    return handler


def scorer_for(handler) -> GeminiScorer:
    return GeminiScorer("gemini-key", transport=httpx.MockTransport(handler))


class TestGeminiScorer:
    async def test_parses_integer_answer(self, source):
        assert await scorer_for(answer("87\n")).score(LISTING, source) == 87

    @pytest.mark.parametrize("text", ["abc", "0", "150", "about 80"])
    async def test_rejects_unusable_answers(self, source, text):
        assert await scorer_for(answer(text)).score(LISTING, source) is None

    async def test_http_failure_yields_none(self, source):
        scorer = scorer_for(lambda request: httpx.Response(500))
        assert await scorer.score(LISTING, source) is None

    async def test_malformed_body_yields_none(self, source):
        scorer = scorer_for(lambda request: httpx.Response(200, json={"candidates": []}))
        assert await scorer.score(LISTING, source) is None

    async def test_sends_numeric_details_in_prompt(self, source):
        seen = {}

        def handler(request):
            seen["key"] = request.url.params["key"]
            seen["body"] = json.loads(request.content)
            return answer("50")(request)

        await scorer_for(handler).score(LISTING, source)

        prompt = seen["body"]["contents"][0]["parts"][0]["text"]
        assert seen["key"] == "gemini-key"
        assert "- Price: 25.0 usd" in prompt
        assert "- Level: 40" in prompt
        # Non-numeric extension columns are left out
        assert "Region" not in prompt


class TestGetScorer:
    async def test_disabled_scoring_uses_null_scorer(self, source):
        scorer = get_scorer(Settings(scoring_enabled=False, gemini_api_key="k"))
        assert isinstance(scorer, NullScorer)
        assert await scorer.score(LISTING, source) is None

    def test_missing_key_uses_null_scorer(self):
        assert isinstance(get_scorer(Settings(scoring_enabled=True, gemini_api_key="")), NullScorer)

    def test_enabled_with_key_uses_gemini(self):
        scorer = get_scorer(Settings(scoring_enabled=True, gemini_api_key="k", gemini_model="m"))
        assert isinstance(scorer, GeminiScorer)
        assert scorer.model == "m"
