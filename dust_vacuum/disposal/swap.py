"""Exact-input swap of a whole balance along its route."""

from __future__ import annotations

from dust_vacuum.config import VacuumConfig
from dust_vacuum.constants import MAX_SQRT_PRICE, MIN_SQRT_PRICE
from dust_vacuum.disposal.base import SwapCandidate
from dust_vacuum.models import (
    AuditLogOperation,
    DisposalAction,
    InputSource,
    LedgerOperation,
    SwapOperation,
)


def sqrt_price_limit(a_to_b: bool) -> int:
    """Least restrictive price limit for the swap direction.

    Selling asset_a pushes the price down, so the limit is the minimum;
    selling asset_b pushes it up, so the limit is the maximum.
    """
    return MIN_SQRT_PRICE if a_to_b else MAX_SQRT_PRICE


class SwapStrategy:
    """One swap operation per route step, then an optional audit-log record.

    Only the first step carries the input amount (the full consolidated
    quantity) and only the last carries the minimum output. Steps in between
    consume whatever the previous step produced.
    """

    action = DisposalAction.SWAP

    def operations(self, candidate: SwapCandidate, config: VacuumConfig) -> list[LedgerOperation]:
        route = candidate.route
        consolidated = candidate.consolidated
        total = consolidated.total_quantity
        if route.input_amount != total:
            raise ValueError(
                f"Route for {candidate.asset_id} was quoted for {route.input_amount}, "
                f"balance is {total}"
            )

        min_out = route.minimum_output(config.slippage_tolerance)
        last = len(route.steps) - 1
        ops: list[LedgerOperation] = []
        for index, step in enumerate(route.steps):
            first = index == 0
            ops.append(
                SwapOperation(
                    asset_id=candidate.asset_id,
                    step_index=index,
                    pool_id=step.pool_id,
                    a_to_b=step.a_to_b,
                    asset_a=step.asset_a,
                    asset_b=step.asset_b,
                    source=InputSource.HANDLE if first else InputSource.PREVIOUS,
                    handle=consolidated.handle if first else None,
                    amount_in=total if first else None,
                    min_amount_out=min_out if index == last else None,
                    sqrt_price_limit=sqrt_price_limit(step.a_to_b),
                )
            )

        if config.audit_log_enabled:
            ops.append(
                AuditLogOperation(
                    asset_id=candidate.asset_id,
                    input_amount=total,
                    estimated_output=route.output_amount,
                )
            )
        return ops

    def estimated_output(self, candidate: SwapCandidate) -> int:
        return candidate.route.output_amount
