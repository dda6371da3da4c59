"""Dust vacuum run orchestration.

One run takes the selected balances of an account through:

    1. consolidate every asset's fund-units (reference asset and empty
       balances are skipped, listing failures fail that asset only)
    2. resolve swap routes with bounded concurrency
    3. classify route-less assets into burn/donate
    4. confirmation gate for irreversible disposals
    5. build one atomic plan
    6. submit
    7. wait for finality
    8. aggregate per-asset outcomes

Valuations of explicitly chosen donations are checked before stage 1, so an
out-of-bounds donation is rejected without a single ledger request. Stages
1-3 never abort the run; problems become per-asset outcomes. Failures from
stage 5 on abort it with a single failed VacuumResult; a plan rejected for a
stale vault version is rebuilt once from a fresh read first.

The stages are also exposed individually (``prepare``, ``preview_disposals``,
``confirm_disposals``, ``execute``) for callers such as the HTTP API that
confirm disposals out of band. All state of a run lives in its RunContext.
"""

from __future__ import annotations

import inspect
import uuid
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, Field

from dust_vacuum.batch import BatchTransactionBuilder
from dust_vacuum.config import DEFAULT_CONFIG, VacuumConfig
from dust_vacuum.consolidation import BalanceConsolidator, ConsolidatedBalance
from dust_vacuum.disposal import DisposalCandidate, SwapCandidate
from dust_vacuum.errors import (
    ConfirmationRequired,
    InsufficientOrZeroBalance,
    LedgerExecutionFailure,
    NetworkFailure,
    NoRouteFound,
    NothingToDo,
    StaleObjectVersion,
    UnknownObject,
    ValuationOutOfBounds,
)
from dust_vacuum.fallback import DisposalPreview, FallbackClassifier
from dust_vacuum.models import (
    AssetBalance,
    AssetOutcome,
    AssetStatus,
    BatchPlan,
    DisposalAction,
    Route,
    VacuumResult,
)
from dust_vacuum.models.result import ACTION_STATUS
from dust_vacuum.models.types import AssetId, normalize_address, normalize_asset_id
from dust_vacuum.routing import RouteOutcome, RouteResolver
from dust_vacuum.validation import PriceValidationGuard

if TYPE_CHECKING:
    from dust_vacuum.ledger.gateway import AssetLedgerGateway

logger = structlog.get_logger()

ConfirmCallback = Callable[[DisposalPreview], bool | Awaitable[bool]]


class RouteCheck(BaseModel):
    """Route preview for one selected asset."""

    asset_id: AssetId = Field(alias="assetId")
    symbol: str
    has_route: bool = Field(alias="hasRoute")
    outcome: RouteOutcome
    estimated_output: int = Field(default=0, alias="estimatedOutput")
    hops: int = 0
    suggested_action: DisposalAction = Field(alias="suggestedAction")

    model_config = {"populate_by_name": True}


class RunStage(str, Enum):
    CREATED = "created"
    PREPARED = "prepared"
    CONFIRMED = "confirmed"
    BUILT = "built"
    FINISHED = "finished"


@dataclass
class RunContext:
    """Everything one run knows, from preparation to result.

    Owned by the caller; the orchestrator keeps no state between calls.
    """

    owner: str
    selected: list[AssetBalance]
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    stage: RunStage = RunStage.CREATED
    consolidated: dict[str, ConsolidatedBalance] = field(default_factory=dict)
    routes: dict[str, Route] = field(default_factory=dict)
    outcomes: dict[str, AssetOutcome] = field(default_factory=dict)
    classifier: FallbackClassifier = field(default_factory=FallbackClassifier)
    plan: BatchPlan | None = None
    result: VacuumResult | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible snapshot of the run."""
        return {
            "runId": self.run_id,
            "owner": self.owner,
            "stage": self.stage.value,
            "selected": [b.model_dump(mode="json", by_alias=True) for b in self.selected],
            "consolidated": {
                asset_id: {
                    "handle": c.handle,
                    "mergedIds": list(c.merged_ids),
                    "totalQuantity": c.total_quantity,
                }
                for asset_id, c in self.consolidated.items()
            },
            "routes": {
                asset_id: route.model_dump(mode="json", by_alias=True)
                for asset_id, route in self.routes.items()
            },
            "disposals": {
                asset_id: {
                    "action": self.classifier.action(asset_id).value,
                    "state": self.classifier.state(asset_id).value,
                }
                for asset_id in [*self.classifier.pending(), *self.classifier.committed()]
            },
            "outcomes": [
                o.model_dump(mode="json", by_alias=True) for o in self.ordered_outcomes()
            ],
            "plan": self.plan.model_dump(mode="json", by_alias=True) if self.plan else None,
            "result": self.result.model_dump(mode="json", by_alias=True) if self.result else None,
        }

    def balance(self, asset_id: str) -> AssetBalance:
        return next(b for b in self.selected if b.asset_id == asset_id)

    def record(self, asset_id: str, status: AssetStatus, reason: str | None = None) -> None:
        balance = self.balance(asset_id)
        self.outcomes[asset_id] = AssetOutcome(
            asset_id=asset_id,
            symbol=balance.symbol,
            status=status,
            reason=reason,
            usd_value=balance.usd_value,
        )

    def ordered_outcomes(self) -> list[AssetOutcome]:
        return [self.outcomes[b.asset_id] for b in self.selected if b.asset_id in self.outcomes]


class VacuumOrchestrator:
    """Runs the consolidate, route, classify, build, submit pipeline.

    Args:
        gateway: Ledger access
        resolver: Route resolver; built from config when omitted
        config: Runtime configuration
        guard: Valuation bounds shared with the builder
    """

    def __init__(
        self,
        gateway: AssetLedgerGateway,
        resolver: RouteResolver | None = None,
        config: VacuumConfig | None = None,
        guard: PriceValidationGuard | None = None,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self.gateway = gateway
        self.resolver = resolver or RouteResolver(self.config)
        self.guard = guard or PriceValidationGuard(self.config)
        self.consolidator = BalanceConsolidator(gateway)
        self.builder = BatchTransactionBuilder(self.config, self.guard)

    async def check_routes(self, selected: Iterable[AssetBalance]) -> list[RouteCheck]:
        """Preview which selected assets can be swapped."""
        balances = [b for b in selected if b.asset_id != self.config.reference_asset]
        lookups = await self.resolver.resolve_many((b.asset_id, b.quantity) for b in balances)
        checks = []
        for balance in balances:
            lookup = lookups[balance.asset_id]
            route = lookup.route
            checks.append(
                RouteCheck(
                    asset_id=balance.asset_id,
                    symbol=balance.symbol,
                    has_route=route is not None,
                    outcome=lookup.outcome,
                    estimated_output=route.output_amount if route else 0,
                    hops=len(route.steps) if route else 0,
                    suggested_action=DisposalAction.SWAP if route else DisposalAction.BURN,
                )
            )
        return checks

    async def prepare(
        self,
        owner: str,
        selected: Iterable[AssetBalance],
        choices: Mapping[str, DisposalAction] | None = None,
    ) -> RunContext:
        """Consolidate, route and classify. Never touches the ledger's state.

        Raises:
            ValuationOutOfBounds: Explicitly chosen donations fail the guard;
                raised before any ledger or aggregator request
        """
        ctx = RunContext(owner=normalize_address(owner), selected=list(selected))
        overrides = {normalize_asset_id(k): DisposalAction(v) for k, v in (choices or {}).items()}

        donations = {
            b.asset_id: b.usd_value
            for b in ctx.selected
            if b.asset_id != self.config.reference_asset
            and overrides.get(b.asset_id, b.disposal_action) == DisposalAction.DONATE
        }
        if donations:
            self.guard.check(donations)

        to_route: list[str] = []
        to_dispose: list[AssetBalance] = []
        for balance in ctx.selected:
            asset_id = balance.asset_id
            if asset_id == self.config.reference_asset:
                ctx.record(asset_id, AssetStatus.SKIPPED, "reference asset pays for gas")
                continue
            try:
                consolidated = await self.consolidator.consolidate(asset_id, ctx.owner)
            except NetworkFailure as e:
                logger.warning("consolidation_failed", asset_id=asset_id, error=str(e))
                ctx.record(asset_id, AssetStatus.FAILED, str(e))
                continue
            if consolidated.is_empty:
                ctx.record(asset_id, AssetStatus.SKIPPED, str(InsufficientOrZeroBalance(asset_id)))
                continue

            ctx.consolidated[asset_id] = consolidated
            action = overrides.get(asset_id, balance.disposal_action)
            if action == DisposalAction.SWAP:
                to_route.append(asset_id)
            else:
                overrides[asset_id] = action
                to_dispose.append(balance)

        lookups = await self.resolver.resolve_many(
            (a, ctx.consolidated[a].total_quantity) for a in to_route
        )
        for asset_id in to_route:
            lookup = lookups[asset_id]
            if lookup.route is not None:
                ctx.routes[asset_id] = lookup.route
            else:
                logger.info(
                    "asset_without_route",
                    asset_id=asset_id,
                    reason=str(NoRouteFound(asset_id, lookup.outcome.value)),
                )
                overrides.pop(asset_id, None)
                to_dispose.append(ctx.balance(asset_id))

        if to_dispose:
            totals = {b.asset_id: ctx.consolidated[b.asset_id].total_quantity for b in to_dispose}
            ctx.classifier.classify(to_dispose, overrides, quantities=totals)

        ctx.stage = RunStage.PREPARED
        logger.info(
            "run_prepared",
            run_id=ctx.run_id,
            selected=len(ctx.selected),
            swappable=len(ctx.routes),
            disposals=len(to_dispose),
            skipped=len(ctx.outcomes),
        )
        return ctx

    def preview_disposals(self, ctx: RunContext) -> DisposalPreview:
        return ctx.classifier.preview()

    def confirm_disposals(
        self, ctx: RunContext, preview: DisposalPreview, accept: bool = True
    ) -> None:
        """Commit the previewed disposals, or drop them from the run.

        Raises:
            ConfirmationRequired: The preview no longer matches the pending set
        """
        if accept:
            ctx.classifier.commit(preview)
        else:
            for asset_id in ctx.classifier.decline(preview.asset_ids):
                ctx.record(asset_id, AssetStatus.SKIPPED, "disposal declined")
        ctx.stage = RunStage.CONFIRMED

    async def read_vault_version(self, ctx: RunContext) -> int | None:
        """Current vault version when the run donates, else None.

        Donations are shared-object writes; a plan carrying the version is
        rejected as stale if the vault moved before execution.
        """
        donates = any(
            ctx.classifier.action(a) == DisposalAction.DONATE
            for a in [*ctx.classifier.pending(), *ctx.classifier.committed()]
        )
        if not donates:
            return None
        vault = await self.gateway.get_vault(self.config.vault_id)
        return vault.version

    def build(self, ctx: RunContext, vault_version: int | None = None) -> BatchPlan:
        """Build the plan from the prepared context.

        Args:
            ctx: Prepared (and, for disposals, confirmed) run
            vault_version: Vault version read for the run's donations

        Raises:
            ConfirmationRequired, NothingToDo, ValuationOutOfBounds
        """
        swaps = [
            SwapCandidate(ctx.balance(a), ctx.consolidated[a], route)
            for a, route in ctx.routes.items()
        ]
        disposal_ids = set(ctx.classifier.pending()) | set(ctx.classifier.committed())
        disposals = [
            DisposalCandidate(b, ctx.consolidated[b.asset_id], ctx.classifier.action(b.asset_id))
            for b in ctx.selected
            if b.asset_id in disposal_ids
        ]
        ctx.plan = self.builder.build(
            ctx.owner,
            swaps,
            disposals,
            committed=ctx.classifier.committed(),
            expected_vault_version=vault_version,
        )
        ctx.stage = RunStage.BUILT
        return ctx.plan

    async def execute(self, ctx: RunContext) -> VacuumResult:
        """Build (if needed), submit and await finality.

        A plan rejected for a stale vault version is rebuilt from a fresh
        vault read, at most ``stale_retry_attempts`` times.
        ConfirmationRequired propagates: the caller has to confirm first.
        Every other failure yields a failed VacuumResult.
        """
        attempts = 1 + self.config.stale_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                if ctx.plan is not None and attempt == 1:
                    plan = ctx.plan
                else:
                    plan = self.build(ctx, await self.read_vault_version(ctx))
            except (NothingToDo, ValuationOutOfBounds, NetworkFailure, UnknownObject) as e:
                logger.warning("run_not_submitted", run_id=ctx.run_id, error=str(e))
                return self._finish(ctx, VacuumResult.failure(e, outcomes=ctx.ordered_outcomes()))

            digest = None
            try:
                submitted = await self.gateway.submit(plan)
                digest = submitted.digest
                receipt = await self.gateway.wait_for_finality(digest)
                if not receipt.success:
                    raise LedgerExecutionFailure(receipt.error or "execution failed", digest)
            except (LedgerExecutionFailure, NetworkFailure) as e:
                if isinstance(e, StaleObjectVersion) and attempt < attempts:
                    logger.info(
                        "stale_vault_retry", run_id=ctx.run_id, attempt=attempt, error=str(e)
                    )
                    continue
                digest = getattr(e, "digest", None) or digest
                logger.error("run_failed", run_id=ctx.run_id, digest=digest, error=str(e))
                for asset in plan.assets:
                    ctx.record(asset.asset_id, AssetStatus.FAILED, str(e))
                return self._finish(
                    ctx, VacuumResult.failure(e, digest=digest, outcomes=ctx.ordered_outcomes())
                )
            break

        for asset in plan.assets:
            ctx.outcomes[asset.asset_id] = AssetOutcome(
                asset_id=asset.asset_id,
                symbol=asset.symbol,
                status=ACTION_STATUS[asset.action],
                action=asset.action,
                usd_value=asset.usd_value,
            )
        for asset_id in plan.skipped:
            if asset_id not in ctx.outcomes:
                ctx.record(asset_id, AssetStatus.SKIPPED, str(InsufficientOrZeroBalance(asset_id)))

        result = VacuumResult(
            success=True,
            digest=receipt.digest,
            outcomes=ctx.ordered_outcomes(),
            total_output_received=receipt.received(ctx.owner, self.config.reference_asset),
            total_value_usd=plan.total_value_usd,
        )
        logger.info(
            "run_completed",
            run_id=ctx.run_id,
            digest=result.digest,
            swapped=result.tokens_swapped,
            burned=result.tokens_burned,
            donated=result.tokens_donated,
            received=result.total_output_received,
        )
        return self._finish(ctx, result)

    @staticmethod
    def _finish(ctx: RunContext, result: VacuumResult) -> VacuumResult:
        ctx.result = result
        ctx.stage = RunStage.FINISHED
        return result

    async def run(
        self,
        owner: str,
        selected: Iterable[AssetBalance],
        choices: Mapping[str, DisposalAction] | None = None,
        confirm: ConfirmCallback | None = None,
    ) -> VacuumResult:
        """Full pipeline. Without ``confirm``, pending disposals are declined."""
        try:
            ctx = await self.prepare(owner, selected, choices)
        except ValuationOutOfBounds as e:
            logger.warning("run_rejected", owner=owner, error=str(e))
            return VacuumResult.failure(e)

        preview = self.preview_disposals(ctx)
        if not preview.is_empty:
            accepted = False
            if confirm is not None:
                answer = confirm(preview)
                accepted = bool(await answer) if inspect.isawaitable(answer) else bool(answer)
            try:
                self.confirm_disposals(ctx, preview, accept=accepted)
            except ConfirmationRequired as e:
                return self._finish(ctx, VacuumResult.failure(e, outcomes=ctx.ordered_outcomes()))

        return await self.execute(ctx)
