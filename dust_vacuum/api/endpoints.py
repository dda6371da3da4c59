"""API endpoints for the dust vacuum.

The service never holds keys: ``/vacuum/plan`` returns an unsigned, encoded
transaction that the caller's wallet signs and submits.
"""

from functools import lru_cache
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from dust_vacuum.batch import encode_transaction
from dust_vacuum.config import VacuumConfig
from dust_vacuum.errors import (
    ConfirmationRequired,
    NetworkFailure,
    NothingToDo,
    UnknownObject,
    ValuationOutOfBounds,
)
from dust_vacuum.fallback import DisposalPreview
from dust_vacuum.ledger import JsonRpcLedgerGateway
from dust_vacuum.models import (
    AssetBalance,
    AssetOutcome,
    BatchPlan,
    DisposalAction,
    VaultAccount,
)
from dust_vacuum.models.types import ObjectId
from dust_vacuum.orchestrator import RouteCheck, VacuumOrchestrator
from dust_vacuum.routing import RouteResolver

logger = structlog.get_logger()

router = APIRouter()


class RouteCheckRequest(BaseModel):
    selected: list[AssetBalance]


class PlanRequest(BaseModel):
    """Selected balances plus the disposal choices and their confirmation.

    ``confirmation`` is the fingerprint of the disposal preview the user
    accepted. Without a matching one the endpoint answers 409 with the
    preview to confirm.
    """

    owner: ObjectId
    selected: list[AssetBalance]
    choices: dict[str, DisposalAction] = Field(default_factory=dict)
    confirmation: str | None = None

    model_config = {"populate_by_name": True}


class PlanResponse(BaseModel):
    plan: BatchPlan
    transaction: dict[str, Any]
    preview: DisposalPreview | None = None
    outcomes: list[AssetOutcome] = Field(default_factory=list)


@lru_cache(maxsize=1)
def get_default_orchestrator() -> VacuumOrchestrator:
    config = VacuumConfig.from_env()
    return VacuumOrchestrator(
        JsonRpcLedgerGateway(config),
        RouteResolver(config),
        config,
    )


def get_orchestrator() -> VacuumOrchestrator:
    """Dependency provider for the orchestrator.

    Override this in tests to inject one backed by a simulated ledger:
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    """
    return get_default_orchestrator()


@router.post("/routes/check", response_model_by_alias=True)
async def check_routes(
    request: RouteCheckRequest,
    orchestrator: VacuumOrchestrator = Depends(get_orchestrator),
) -> list[RouteCheck]:
    """Which of the selected assets can be swapped, and for how much."""
    checks = await orchestrator.check_routes(request.selected)
    logger.info(
        "routes_checked",
        assets=len(checks),
        routable=sum(1 for c in checks if c.has_route),
    )
    return checks


@router.post("/vacuum/plan", response_model_by_alias=True)
async def plan_vacuum(
    request: PlanRequest,
    orchestrator: VacuumOrchestrator = Depends(get_orchestrator),
) -> PlanResponse:
    """Build the atomic vacuum transaction for the selected balances.

    Error Handling:
        - Unconfirmed or changed disposals: 409 with the preview to confirm
        - Valuation out of bounds: 422
        - Nothing left to vacuum: 400
        - Vault unreadable for a donation: 404 or 502
    """
    try:
        ctx = await orchestrator.prepare(request.owner, request.selected, request.choices)
    except ValuationOutOfBounds as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    preview = orchestrator.preview_disposals(ctx)
    if not preview.is_empty:
        if request.confirmation != preview.fingerprint:
            raise HTTPException(
                status_code=409,
                detail={
                    "message": "Disposals require confirmation",
                    "preview": preview.model_dump(mode="json", by_alias=True),
                },
            )
        orchestrator.confirm_disposals(ctx, preview)

    try:
        plan = orchestrator.build(ctx, await orchestrator.read_vault_version(ctx))
    except ConfirmationRequired as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ValuationOutOfBounds as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except NothingToDo as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except UnknownObject as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except NetworkFailure as e:
        raise HTTPException(status_code=502, detail=str(e)) from e

    return PlanResponse(
        plan=plan,
        transaction=encode_transaction(plan, orchestrator.config),
        preview=None if preview.is_empty else preview,
        outcomes=ctx.ordered_outcomes(),
    )


@router.get("/vault", response_model_by_alias=True)
async def get_vault(
    orchestrator: VacuumOrchestrator = Depends(get_orchestrator),
) -> VaultAccount:
    try:
        return await orchestrator.gateway.get_vault(orchestrator.config.vault_id)
    except UnknownObject as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except NetworkFailure as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
