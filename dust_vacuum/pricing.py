"""USD price sources used to value wallet balances.

Prices are display and valuation inputs only; nothing here is trusted by the
ledger. A source that cannot price an asset simply omits it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Protocol
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from dust_vacuum.constants import PRICE_API_URL
from dust_vacuum.models.types import normalize_asset_id

logger = structlog.get_logger()


class PriceSource(Protocol):
    """Looks up USD prices per whole unit of an asset."""

    async def prices(self, asset_ids: Iterable[str]) -> dict[str, Decimal]:
        """Return prices for the assets it can price, keyed by normalized id."""
        ...


class StaticPriceSource:
    """Fixed price table, for tests and offline runs."""

    def __init__(self, table: Mapping[str, Decimal | str | float]) -> None:
        self.table = {normalize_asset_id(k): Decimal(str(v)) for k, v in table.items()}

    async def prices(self, asset_ids: Iterable[str]) -> dict[str, Decimal]:
        result = {}
        for asset_id in asset_ids:
            asset_id = normalize_asset_id(asset_id)
            if asset_id in self.table:
                result[asset_id] = self.table[asset_id]
        return result


class _DexPair(BaseModel):
    price_usd: Decimal | None = Field(default=None, alias="priceUsd")


class _DexTokenResponse(BaseModel):
    pairs: list[_DexPair] | None = None


class DexScreenerPriceSource:
    """Prices from the DexScreener token endpoint (first listed pair).

    Lookups are sequential with a delay between them, and capped per call,
    to stay within the public rate limit.
    """

    def __init__(
        self,
        base_url: str = PRICE_API_URL,
        client: httpx.AsyncClient | None = None,
        delay: float = 0.1,
        max_lookups: int = 10,
        timeout: float = 15.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client
        self.delay = delay
        self.max_lookups = max_lookups
        self.timeout = timeout

    async def prices(self, asset_ids: Iterable[str]) -> dict[str, Decimal]:
        targets = [normalize_asset_id(a) for a in asset_ids][: self.max_lookups]
        if self._client is not None:
            return await self._lookup_all(self._client, targets)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._lookup_all(client, targets)

    async def _lookup_all(
        self, client: httpx.AsyncClient, asset_ids: list[str]
    ) -> dict[str, Decimal]:
        result = {}
        for index, asset_id in enumerate(asset_ids):
            price = await self._lookup(client, asset_id)
            if price is not None:
                result[asset_id] = price
            if self.delay > 0 and index < len(asset_ids) - 1:
                await asyncio.sleep(self.delay)
        return result

    async def _lookup(self, client: httpx.AsyncClient, asset_id: str) -> Decimal | None:
        url = f"{self.base_url}/{quote(asset_id, safe='')}"
        try:
            response = await client.get(url)
            response.raise_for_status()
            body = _DexTokenResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            logger.warning("price_lookup_failed", asset_id=asset_id, error=str(e))
            return None

        if not body.pairs:
            return None
        price = body.pairs[0].price_usd
        if price is None or price <= 0:
            return None
        return price
