"""HTTP client for the Rezdy booking API pickup endpoint."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError

from ...config import settings
from ...errors import UpstreamError
from ...models.domain import PickupRecord
from ...persistence.documents import PickupRecordModel

logger = logging.getLogger(__name__)


class RezdyClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        min_request_interval: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.rezdy_base_url).rstrip("/")
        self.api_key = api_key or settings.rezdy_api_key
        if not self.api_key:
            raise ValueError("Rezdy API key is not configured.")
        self.timeout = timeout if timeout is not None else settings.rezdy_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.rezdy_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.rezdy_backoff_seconds
        self.min_request_interval = (
            min_request_interval if min_request_interval is not None else settings.rezdy_min_request_interval
        )
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
            headers={"Accept": "application/json"},
            transport=transport,
        )
        self._rate_lock = asyncio.Lock()
        self._last_request_at = 0.0

    async def __call__(self, product_code: str) -> list[PickupRecord]:
        return await self.fetch_pickups_for_product(product_code)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _wait_for_rate_limit(self) -> None:
        """Space requests at least ``min_request_interval`` seconds apart."""
        async with self._rate_lock:
            elapsed = time.monotonic() - self._last_request_at
            if elapsed < self.min_request_interval:
                await asyncio.sleep(self.min_request_interval - elapsed)
            self._last_request_at = time.monotonic()

    async def fetch_pickups_for_product(self, product_code: str) -> list[PickupRecord]:
        """Return the product's pickup points; an empty list means "no pickup service"."""
        url = f"{self.base_url}/products/{product_code}/pickups"
        params = {"apiKey": self.api_key}

        attempt = 0
        while True:
            await self._wait_for_rate_limit()
            try:
                response = await self._client.get(url, params=params)
                response.raise_for_status()
                return self._parse(product_code, response.json())
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                if status_code < 500 and status_code != 429:
                    raise UpstreamError(product_code, f"Rezdy returned HTTP {status_code}") from exc
                error: Exception = exc
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                error = exc
            except ValueError as exc:
                raise UpstreamError(product_code, f"invalid Rezdy response: {exc}") from exc

            attempt += 1
            if attempt > self.max_retries:
                raise UpstreamError(
                    product_code, f"Rezdy request failed after {attempt} attempts: {error}"
                ) from error
            wait_time = self.backoff_seconds * attempt
            logger.debug(
                f"Rezdy pickup request for {product_code} failed, retrying in {wait_time:.1f}s "
                f"(attempt {attempt}/{self.max_retries}): {error}"
            )
            await asyncio.sleep(wait_time)

    @staticmethod
    def _parse(product_code: str, payload: Any) -> list[PickupRecord]:
        if not isinstance(payload, dict):
            raise ValueError("expected a JSON object")
        raw_pickups = payload.get("pickupLocations") or []
        if not isinstance(raw_pickups, list):
            raise ValueError("'pickupLocations' is not a list")

        pickups: list[PickupRecord] = []
        for item in raw_pickups:
            try:
                pickups.append(PickupRecordModel.model_validate(item).to_domain())
            except ValidationError as exc:
                logger.warning(f"Skipping malformed pickup for {product_code}: {exc.errors()[0]['msg']}")
        logger.debug(f"Fetched {len(pickups)} pickups for {product_code} from Rezdy")
        return pickups
