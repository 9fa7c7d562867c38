"""
Optional deal scoring for freshly ingested listings.

Best-effort only: a disabled scorer, a missing key, an HTTP failure or an
unparseable answer all yield None and never abort ingestion.
"""
import logging
import re
from typing import Optional, Protocol

import httpx

from listingsync.config import Settings, get_settings
from listingsync.schemas.source import SourceSchema

logger = logging.getLogger(__name__)

SCORE_PROMPT = """Analyze the following {source_name} account listing and provide a 'deal score' from 1 to 100, where 100 is an amazing deal and 1 is a very bad deal.
Consider all available numeric factors, especially the price in relation to the account's assets.

Account Details:
- Price: {price} {currency}
{details}

Respond with only a single integer number between 1 and 100 and nothing else."""


class ListingScorer(Protocol):
    async def score(self, listing: dict, source) -> Optional[int]:
        ...


class NullScorer:
    async def score(self, listing: dict, source) -> Optional[int]:
        return None


class GeminiScorer:
    def __init__(self, api_key: str, model: str = "gemini-2.5-flash", transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = api_key
        self.model = model
        self._transport = transport

    def build_prompt(self, listing: dict, source) -> str:
        schema = SourceSchema.from_source(source)
        extension = listing.get("extension_data") or {}
        lines = []
        for column in schema.columns:
            if not (column.is_numeric or column.id in ("price", "currency")):
                continue
            value = listing.get(column.id, extension.get(column.id))
            lines.append(f"- {column.label}: {value}")
        return SCORE_PROMPT.format(
            source_name=source.name,
            price=listing.get("price"),
            currency=listing.get("currency") or "",
            details="\n".join(lines),
        )

    async def score(self, listing: dict, source) -> Optional[int]:
        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                response = await client.post(
                    f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent",
                    params={"key": self.api_key},
                    headers={"Content-Type": "application/json"},
                    json={
                        "contents": [{"parts": [{"text": self.build_prompt(listing, source)}]}],
                        "generationConfig": {"temperature": 0, "maxOutputTokens": 10},
                    },
                )
                response.raise_for_status()
                data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Deal scoring failed for item {listing.get('item_id')}: {e}")
            return None

        match = re.fullmatch(r"\s*(\d{1,3})\s*", text)
        score = int(match.group(1)) if match else None
        if score is None or not 1 <= score <= 100:
            logger.warning(f"Scorer returned a non-numeric or out-of-range score: {text!r}")
            return None
        return score


def get_scorer(settings: Optional[Settings] = None) -> ListingScorer:
    settings = settings or get_settings()
    if settings.scoring_enabled and settings.gemini_api_key:
        return GeminiScorer(settings.gemini_api_key, model=settings.gemini_model)
    return NullScorer()
