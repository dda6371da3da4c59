"""Route resolution against the swap aggregator.

Every lookup is an exact-input quote from one asset into the reference asset.
Lookups for several assets run concurrently but are bounded: at most
``route_concurrency`` are in flight and each one sleeps ``route_request_delay``
after completing, which keeps a run inside the aggregator's request budget.

Failures never propagate: a lookup that errors, times out or returns an
unusable payload is reported as "no route" for that asset only.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass

import httpx
import structlog

from dust_vacuum.config import DEFAULT_CONFIG, VacuumConfig
from dust_vacuum.models.route import Route
from dust_vacuum.models.types import normalize_asset_id
from dust_vacuum.routing.adapter import RouteOutcome, parse_quote

logger = structlog.get_logger()


@dataclass(frozen=True)
class RouteLookup:
    """Result of resolving one asset."""

    asset_id: str
    amount: int
    route: Route | None
    outcome: RouteOutcome
    detail: str | None = None

    @property
    def found(self) -> bool:
        return self.route is not None


class RouteResolver:
    """Queries the aggregator for swap routes into the reference asset.

    Args:
        config: Runtime configuration (aggregator URL, concurrency, delay)
        client: Optional shared httpx.AsyncClient. When omitted, a client is
            created per ``resolve_many`` call and closed afterwards.
    """

    def __init__(
        self,
        config: VacuumConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self._client = client
        self.requests_sent = 0
        self._in_flight = 0
        self.max_in_flight = 0

    async def resolve(
        self,
        from_asset: str,
        to_asset: str,
        exact_input_amount: int,
    ) -> Route | None:
        """Resolve a single route. Returns None when no usable route exists."""
        lookup = await self.lookup(from_asset, exact_input_amount, to_asset)
        return lookup.route

    async def lookup(
        self,
        from_asset: str,
        amount: int,
        to_asset: str | None = None,
    ) -> RouteLookup:
        """Resolve one route and report why it was or was not found."""
        asset_id = normalize_asset_id(from_asset)
        target = normalize_asset_id(to_asset or self.config.reference_asset)

        if amount <= 0:
            return RouteLookup(asset_id, amount, None, RouteOutcome.ZERO_AMOUNT)

        if self._client is not None:
            return await self._fetch(self._client, asset_id, target, amount)

        async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
            return await self._fetch(client, asset_id, target, amount)

    async def resolve_many(
        self,
        requests: Iterable[tuple[str, int]],
        to_asset: str | None = None,
    ) -> dict[str, RouteLookup]:
        """Resolve routes for many assets under the concurrency bound.

        Args:
            requests: (asset_id, exact input amount) pairs
            to_asset: Target asset; defaults to the reference asset

        Returns:
            Mapping of normalized asset_id to its lookup, one per request
        """
        pending = [(normalize_asset_id(a), amt) for a, amt in requests]
        if not pending:
            return {}

        semaphore = asyncio.Semaphore(self.config.route_concurrency)
        target = normalize_asset_id(to_asset or self.config.reference_asset)

        async def _bounded(client: httpx.AsyncClient, asset_id: str, amount: int) -> RouteLookup:
            if amount <= 0:
                return RouteLookup(asset_id, amount, None, RouteOutcome.ZERO_AMOUNT)
            async with semaphore:
                try:
                    return await self._fetch(client, asset_id, target, amount)
                finally:
                    if self.config.route_request_delay > 0:
                        await asyncio.sleep(self.config.route_request_delay)

        if self._client is not None:
            results = await asyncio.gather(
                *(_bounded(self._client, a, amt) for a, amt in pending)
            )
        else:
            async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
                results = await asyncio.gather(*(_bounded(client, a, amt) for a, amt in pending))

        found = sum(1 for r in results if r.found)
        logger.info("routes_resolved", requested=len(pending), found=found)
        return {r.asset_id: r for r in results}

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        asset_id: str,
        target: str,
        amount: int,
    ) -> RouteLookup:
        self._in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self._in_flight)
        self.requests_sent += 1
        try:
            response = await client.get(
                self.config.aggregator_url,
                params={
                    "from": asset_id,
                    "target": target,
                    "amount": str(amount),
                    "by_amount_in": "true",
                },
                timeout=self.config.request_timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.warning("route_request_failed", asset_id=asset_id, error=str(e))
            return RouteLookup(asset_id, amount, None, RouteOutcome.NETWORK_ERROR, str(e))
        except ValueError as e:
            # Body was not JSON
            logger.warning("route_response_undecodable", asset_id=asset_id, error=str(e))
            return RouteLookup(asset_id, amount, None, RouteOutcome.MALFORMED, str(e))
        finally:
            self._in_flight -= 1

        parsed = parse_quote(payload, asset_id, target, amount)
        if parsed.route is None:
            logger.info(
                "no_route",
                asset_id=asset_id,
                outcome=parsed.outcome.value,
                detail=parsed.detail,
            )
        else:
            logger.debug(
                "route_found",
                asset_id=asset_id,
                hops=len(parsed.route.steps),
                amount_out=parsed.route.output_amount,
            )
        return RouteLookup(asset_id, amount, parsed.route, parsed.outcome, parsed.detail)
