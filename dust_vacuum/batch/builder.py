"""Batch plan construction.

Turns swap candidates (assets with a route) and committed disposals into one
BatchPlan. For each asset, in input order:

    merge (when the balance spans several units)
    swap steps, transfer or deposit
    audit log (swaps only, when enabled)

Everything a plan needs is checked before the first operation is emitted:
disposals must be confirmed, empty balances are skipped, and donation
valuations must pass the guard. A plan is therefore either fully valid or
never produced.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import structlog

from dust_vacuum.config import DEFAULT_CONFIG, VacuumConfig
from dust_vacuum.disposal import DisposalCandidate, SwapCandidate, strategy_for
from dust_vacuum.errors import ConfirmationRequired, NothingToDo
from dust_vacuum.models import (
    BatchPlan,
    DisposalAction,
    LedgerOperation,
    PlannedAsset,
)
from dust_vacuum.models.types import normalize_address, normalize_asset_id
from dust_vacuum.validation import PriceValidationGuard

logger = structlog.get_logger()

Candidate = SwapCandidate | DisposalCandidate


class BatchTransactionBuilder:
    """Builds the atomic plan for one run.

    Args:
        config: Slippage, sink address, vault id, gas budget, audit logging
        guard: Valuation bounds applied to donations
    """

    def __init__(
        self,
        config: VacuumConfig | None = None,
        guard: PriceValidationGuard | None = None,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self.guard = guard or PriceValidationGuard(self.config)

    def build(
        self,
        sender: str,
        swaps: Iterable[SwapCandidate],
        disposals: Iterable[DisposalCandidate] = (),
        committed: Mapping[str, DisposalAction] | None = None,
        expected_vault_version: int | None = None,
    ) -> BatchPlan:
        """Build the plan.

        Args:
            sender: Account whose balances are vacuumed
            swaps: Assets with a resolved route, in input order
            disposals: Route-less assets to burn or donate, in input order
            committed: asset_id -> action confirmed through the fallback classifier
            expected_vault_version: Vault version the donations were valued against

        Raises:
            ConfirmationRequired: A disposal has no matching committed decision
            NothingToDo: No candidate has a positive balance
            ValuationOutOfBounds: Donation valuations fail the guard
        """
        swaps = list(swaps)
        disposals = list(disposals)
        confirmed = {normalize_asset_id(k): DisposalAction(v) for k, v in (committed or {}).items()}

        unconfirmed = [d.asset_id for d in disposals if confirmed.get(d.asset_id) != d.action]
        if unconfirmed:
            raise ConfirmationRequired(unconfirmed)

        eligible: list[Candidate] = []
        skipped: list[str] = []
        for candidate in [*swaps, *disposals]:
            if candidate.asset_id == self.config.reference_asset or candidate.consolidated.is_empty:
                skipped.append(candidate.asset_id)
            else:
                eligible.append(candidate)

        if not eligible:
            raise NothingToDo("No selected asset has a balance to vacuum")

        donations = {
            c.asset_id: c.balance.usd_value
            for c in eligible
            if c.action == DisposalAction.DONATE
        }
        if donations:
            self.guard.check(donations)

        operations: list[LedgerOperation] = []
        planned: list[PlannedAsset] = []
        for candidate in eligible:
            strategy = strategy_for(candidate.action)
            merge = candidate.consolidated.merge_operation()
            if merge is not None:
                operations.append(merge)
            operations.extend(strategy.operations(candidate, self.config))
            planned.append(
                PlannedAsset(
                    asset_id=candidate.asset_id,
                    symbol=candidate.balance.symbol,
                    action=candidate.action,
                    quantity=candidate.consolidated.total_quantity,
                    usd_value=candidate.balance.usd_value,
                    estimated_output=strategy.estimated_output(candidate),
                )
            )

        plan = BatchPlan(
            sender=normalize_address(sender),
            operations=operations,
            assets=planned,
            skipped=skipped,
            gas_budget=self.config.gas_budget,
            expected_vault_version=expected_vault_version if donations else None,
        )
        logger.info(
            "batch_plan_built",
            assets=len(planned),
            operations=len(operations),
            skipped=len(skipped),
            value_usd=str(plan.total_value_usd),
        )
        return plan
