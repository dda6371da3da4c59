"""Aggregator response adapter.

Normalizes provider-specific quote payloads into the canonical Route model.
Each supported payload shape is a strict pydantic schema; a payload is
accepted only if it validates against one of them. Anything else is treated
as "no route" (fail closed). This module never raises on provider input.

Supported shapes (bare, or wrapped in a ``data``/``result`` envelope that may
carry a ``code``):
- snake_case: ``amount_in``, ``amount_out``, ``price_impact``,
  ``routes[{pool_id, a_to_b, coin_type_a, coin_type_b}]``
- camelCase: ``amountIn``, ``amountOut``, ``priceImpact``,
  ``routes[{poolAddress, a2b, coinTypeA, coinTypeB}]``
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError

from dust_vacuum.models.route import Route, RouteStep
from dust_vacuum.models.types import U64, normalize_asset_id

logger = structlog.get_logger()

# Envelope codes that mean success
_SUCCESS_CODES = {0, 200}


class RouteOutcome(Enum):
    """Why a lookup did or did not produce a route."""

    FOUND = "found"
    NO_LIQUIDITY = "no_liquidity"
    NETWORK_ERROR = "network_error"
    MALFORMED = "malformed"
    ZERO_AMOUNT = "zero_amount"


@dataclass(frozen=True)
class ParsedQuote:
    """Adapter output: a route, or the reason there is none."""

    route: Route | None
    outcome: RouteOutcome
    detail: str | None = None


class _SnakeStep(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pool_id: str
    a_to_b: StrictBool
    coin_type_a: str
    coin_type_b: str


class _SnakeQuote(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount_in: U64
    amount_out: U64
    price_impact: Decimal | None = None
    routes: list[_SnakeStep]


class _CamelStep(BaseModel):
    model_config = ConfigDict(extra="ignore")

    pool_address: str = Field(alias="poolAddress")
    a2b: StrictBool
    coin_type_a: str = Field(alias="coinTypeA")
    coin_type_b: str = Field(alias="coinTypeB")


class _CamelQuote(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amount_in: U64 = Field(alias="amountIn")
    amount_out: U64 = Field(alias="amountOut")
    price_impact: Decimal | None = Field(default=None, alias="priceImpact")
    routes: list[_CamelStep]


def _steps_from_snake(quote: _SnakeQuote) -> list[RouteStep]:
    return [
        RouteStep(
            pool_id=s.pool_id, a_to_b=s.a_to_b, asset_a=s.coin_type_a, asset_b=s.coin_type_b
        )
        for s in quote.routes
    ]


def _steps_from_camel(quote: _CamelQuote) -> list[RouteStep]:
    return [
        RouteStep(
            pool_id=s.pool_address, a_to_b=s.a2b, asset_a=s.coin_type_a, asset_b=s.coin_type_b
        )
        for s in quote.routes
    ]


# Tried in order; the first schema that validates wins
_SCHEMAS: tuple[tuple[str, type[BaseModel], Any], ...] = (
    ("snake_case", _SnakeQuote, _steps_from_snake),
    ("camel_case", _CamelQuote, _steps_from_camel),
)


def _unwrap_envelope(payload: Any) -> tuple[Any, ParsedQuote | None]:
    """Strip a ``{code, data|result}`` envelope.

    Returns:
        (inner payload, None), or (None, the ParsedQuote to report) when the
        envelope is unusable or reports failure.
    """
    if not isinstance(payload, dict):
        detail = f"payload is {type(payload).__name__}, expected object"
        return None, ParsedQuote(route=None, outcome=RouteOutcome.NO_LIQUIDITY, detail=detail)

    code = payload.get("code")
    if code is not None:
        if isinstance(code, bool) or not isinstance(code, int):
            detail = f"envelope code is {type(code).__name__}, expected integer"
            return None, ParsedQuote(route=None, outcome=RouteOutcome.MALFORMED, detail=detail)
        if code not in _SUCCESS_CODES:
            detail = f"envelope code {code}: {payload.get('msg', '')}"
            return None, ParsedQuote(route=None, outcome=RouteOutcome.NO_LIQUIDITY, detail=detail)

    for key in ("data", "result"):
        inner = payload.get(key)
        if isinstance(inner, dict):
            return inner, None
    return payload, None


def parse_quote(
    payload: Any,
    from_asset: str,
    to_asset: str,
    amount_in: int,
) -> ParsedQuote:
    """Normalize an aggregator payload into a Route.

    Args:
        payload: Decoded JSON body from the aggregator
        from_asset: Requested input asset
        to_asset: Requested output asset
        amount_in: Requested exact input amount

    Returns:
        ParsedQuote with the Route on success. Unrecognized shapes, disconnected
        paths, partial quotes and zero outputs all yield no route.
    """
    inner, rejected = _unwrap_envelope(payload)
    if rejected is not None:
        return rejected

    for name, schema, to_steps in _SCHEMAS:
        try:
            quote = schema.model_validate(inner)
        except ValidationError:
            continue

        if not quote.routes or quote.amount_out == 0:  # type: ignore[attr-defined]
            return ParsedQuote(route=None, outcome=RouteOutcome.NO_LIQUIDITY, detail=name)

        if quote.amount_in != amount_in:  # type: ignore[attr-defined]
            return ParsedQuote(
                route=None,
                outcome=RouteOutcome.MALFORMED,
                detail=f"quoted input {quote.amount_in} != requested {amount_in}",  # type: ignore
            )

        try:
            route = Route(
                from_asset=normalize_asset_id(from_asset),
                to_asset=normalize_asset_id(to_asset),
                input_amount=quote.amount_in,  # type: ignore[attr-defined]
                output_amount=quote.amount_out,  # type: ignore[attr-defined]
                price_impact=quote.price_impact,  # type: ignore[attr-defined]
                steps=to_steps(quote),
            )
        except (ValidationError, ValueError) as err:
            return ParsedQuote(route=None, outcome=RouteOutcome.MALFORMED, detail=str(err))

        return ParsedQuote(route=route, outcome=RouteOutcome.FOUND, detail=name)

    return ParsedQuote(
        route=None,
        outcome=RouteOutcome.MALFORMED,
        detail="payload matches no known quote schema",
    )
