"""
Client for the upstream marketplace API.

Two calls: a paginated listing search and a per-item status check.
Rate limit: ~120 requests/minute general, stricter for search categories.
HTTP 429 is retried with exponential backoff (honoring Retry-After) a
bounded number of times; a 401 drops the cached token and retries once.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from listingsync.config import Settings, get_settings
from listingsync.errors import RateLimitedError, UpstreamError
from listingsync.services.credentials import UpstreamCredentials
from listingsync.services.query_translator import build_upstream_params

logger = logging.getLogger(__name__)

USER_AGENT = "listingsync/1.0 (Marketplace Listing Monitor)"

# item_state values that mean the listing is gone for good
TERMINAL_STATES = {
    "paid": "Item has been sold.",
    "sold": "Item has been sold.",
    "deleted": "Item state is 'deleted'.",
    "closed": "Item state is 'closed'.",
}


@dataclass
class ListingPage:
    """One page of the upstream listing search."""
    items: list[dict] = field(default_factory=list)
    has_next_page: bool = False
    total_items: int = 0


@dataclass
class ItemStatus:
    is_active: bool
    reason: str


class MarketplaceClient:
    """
    Usage:
        async with MarketplaceClient(UpstreamCredentials(db)) as client:
            page = await client.fetch_page(source, page=1)
    """

    def __init__(
        self,
        credentials: UpstreamCredentials,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep=asyncio.sleep,
    ):
        self.credentials = credentials
        self.settings = settings or get_settings()
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers={
                    "Accept": "application/json",
                    "User-Agent": USER_AGENT,
                },
                timeout=self.settings.upstream_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "MarketplaceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _retry_delay(self, response: httpx.Response, attempt: int) -> float:
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return max(0.0, float(retry_after))
            except ValueError:
                pass
        return self.settings.rate_limit_backoff_seconds * (2 ** attempt)

    async def _get(self, url: str, params: Any = None) -> httpx.Response:
        client = await self._get_client()
        attempt = 0
        reauthenticated = False

        while True:
            response = await client.get(url, params=params, headers=self.credentials.headers)

            if response.status_code == 429 and attempt < self.settings.rate_limit_max_retries:
                delay = self._retry_delay(response, attempt)
                attempt += 1
                logger.warning(
                    f"Rate limited by upstream ({url}), retry {attempt}/"
                    f"{self.settings.rate_limit_max_retries} in {delay:.1f}s"
                )
                await self._sleep(delay)
                continue

            if response.status_code == 401 and not reauthenticated:
                logger.info("Upstream rejected the token, re-reading credentials")
                self.credentials.invalidate()
                reauthenticated = True
                continue

            return response

    async def fetch_page(self, source, page: int, filters: Optional[dict] = None) -> ListingPage:
        """
        Fetch one page of listings for `source`.

        Raises UpstreamError on transport failure or any non-success status
        (RateLimitedError once 429 retries are exhausted).
        """
        url = f"{source.api_base_url}{source.list_path}"
        params = build_upstream_params(source, page, filters)

        try:
            response = await self._get(url, params=params)
        except httpx.RequestError as e:
            raise UpstreamError(f"Network error fetching page {page}: {e}") from e

        if response.status_code == 429:
            raise RateLimitedError(
                f"Rate limited on page {page} after {self.settings.rate_limit_max_retries} retries",
                status_code=429,
            )
        if response.is_error:
            raise UpstreamError(
                f"API request failed. Status: {response.status_code} {response.reason_phrase}"
                f" - {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"Upstream returned invalid JSON for page {page}") from e
        if not isinstance(data, dict):
            raise UpstreamError(f"Unexpected payload type for page {page}: {type(data).__name__}")

        return ListingPage(
            items=data.get("items") or [],
            has_next_page=bool(data.get("hasNextPage", False)),
            total_items=int(data.get("totalItems") or 0),
        )

    async def check_item(self, source, item_id: int) -> ItemStatus:
        """
        Ask upstream whether a listing is still live.

        Only a terminal item_state or a 404 counts as gone. Anything
        ambiguous (other statuses, transport errors, odd payloads) is
        reported as active so nothing is archived on uncertainty.
        """
        try:
            response = await self._get(source.check_url(item_id))
        except httpx.RequestError as e:
            logger.error(f"Network error checking item {item_id}, assuming active: {e}")
            return ItemStatus(is_active=True, reason="Network error during check.")

        if response.status_code == 200:
            try:
                data = response.json()
            except ValueError:
                return ItemStatus(is_active=True, reason="Unreadable status payload.")
            item = data.get("item") if isinstance(data, dict) else None
            state = item.get("item_state") if isinstance(item, dict) else None
            if state in TERMINAL_STATES:
                return ItemStatus(is_active=False, reason=TERMINAL_STATES[state])
            return ItemStatus(is_active=True, reason="Item is active.")

        if response.status_code == 404:
            return ItemStatus(is_active=False, reason="Item not found (404).")

        logger.warning(f"Unexpected status {response.status_code} checking item {item_id}, assuming active")
        return ItemStatus(is_active=True, reason=f"Unexpected status: {response.status_code}")
