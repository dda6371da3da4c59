"""Pydantic models for batch plans.

A BatchPlan is the ordered list of ledger operations for one run. It is
submitted as a single unit; the ledger applies all of it or none of it.
"""

from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Discriminator, Field, Tag

from dust_vacuum.models.assets import DisposalAction
from dust_vacuum.models.types import U64, AssetId, ObjectId, normalize_asset_id


class InputSource(str, Enum):
    """Where a swap step takes its input coin from."""

    HANDLE = "handle"  # the consolidated coin of the asset
    PREVIOUS = "previous"  # output of the preceding step


class MergeOperation(BaseModel):
    """Merge every source coin into the primary coin."""

    kind: Literal["merge"] = "merge"
    asset_id: AssetId = Field(alias="assetId")
    primary: ObjectId
    sources: list[ObjectId] = Field(min_length=1)

    model_config = {"populate_by_name": True}


class SwapOperation(BaseModel):
    """One pool hop of an exact-input swap.

    Only the first step of a route carries ``amount_in`` and only the last
    carries ``min_amount_out``; intermediate steps pass through whatever the
    previous step produced.
    """

    kind: Literal["swap"] = "swap"
    asset_id: AssetId = Field(alias="assetId", description="Asset being vacuumed")
    step_index: int = Field(alias="stepIndex", ge=0)
    pool_id: ObjectId = Field(alias="poolId")
    a_to_b: bool = Field(alias="a2b")
    asset_a: AssetId = Field(alias="coinTypeA")
    asset_b: AssetId = Field(alias="coinTypeB")
    source: InputSource
    handle: ObjectId | None = None
    amount_in: U64 | None = Field(default=None, alias="amountIn")
    min_amount_out: U64 | None = Field(default=None, alias="minAmountOut")
    by_amount_in: bool = Field(default=True, alias="byAmountIn")
    sqrt_price_limit: int = Field(alias="sqrtPriceLimit")

    model_config = {"populate_by_name": True}

    @property
    def input_asset(self) -> str:
        return self.asset_a if self.a_to_b else self.asset_b

    @property
    def output_asset(self) -> str:
        return self.asset_b if self.a_to_b else self.asset_a


class TransferOperation(BaseModel):
    """Transfer a coin to a recipient (the burn sink for disposals)."""

    kind: Literal["transfer"] = "transfer"
    asset_id: AssetId = Field(alias="assetId")
    handle: ObjectId
    recipient: ObjectId

    model_config = {"populate_by_name": True}


class DepositOperation(BaseModel):
    """Deposit a coin into the vault with a claimed USD valuation (x1e6)."""

    kind: Literal["deposit"] = "deposit"
    asset_id: AssetId = Field(alias="assetId")
    vault_id: ObjectId = Field(alias="vaultId")
    handle: ObjectId
    amount: U64
    claimed_usd_scaled: U64 = Field(alias="claimedUsdScaled")

    model_config = {"populate_by_name": True}


class AuditLogOperation(BaseModel):
    """Informational record of an included swap."""

    kind: Literal["audit_log"] = "audit_log"
    asset_id: AssetId = Field(alias="assetId")
    input_amount: U64 = Field(alias="inputAmount")
    estimated_output: U64 = Field(alias="estimatedOutput")

    model_config = {"populate_by_name": True}


class VaultCall(BaseModel):
    """A vault entry point (admin, claim, stake, vote, membership, receipt)."""

    kind: Literal["vault_call"] = "vault_call"
    function: str
    vault_id: ObjectId = Field(alias="vaultId")
    admin_cap: ObjectId | None = Field(default=None, alias="adminCap")
    arguments: dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


def _get_operation_kind(v: Any) -> str:
    """Discriminator function for the LedgerOperation union."""
    if isinstance(v, dict):
        return str(v.get("kind", ""))
    return str(v.kind)


LedgerOperation = Annotated[
    Annotated[MergeOperation, Tag("merge")]
    | Annotated[SwapOperation, Tag("swap")]
    | Annotated[TransferOperation, Tag("transfer")]
    | Annotated[DepositOperation, Tag("deposit")]
    | Annotated[AuditLogOperation, Tag("audit_log")]
    | Annotated[VaultCall, Tag("vault_call")],
    Discriminator(_get_operation_kind),
]


class PlannedAsset(BaseModel):
    """An asset included in the plan, valued at build time."""

    asset_id: AssetId = Field(alias="assetId")
    symbol: str
    action: DisposalAction
    quantity: U64
    usd_value: Decimal = Field(alias="valueUSD")
    estimated_output: U64 = Field(default=0, alias="estimatedOutput")

    model_config = {"populate_by_name": True}


class BatchPlan(BaseModel):
    """Ordered operations submitted as one atomic unit."""

    sender: ObjectId
    operations: list[LedgerOperation] = Field(default_factory=list)
    assets: list[PlannedAsset] = Field(default_factory=list)
    skipped: list[AssetId] = Field(
        default_factory=list,
        description="Assets left out because they had no balance.",
    )
    gas_budget: int = Field(alias="gasBudget", gt=0)
    expected_vault_version: int | None = Field(default=None, alias="expectedVaultVersion")

    model_config = {"populate_by_name": True}

    @property
    def is_empty(self) -> bool:
        return not self.operations

    @property
    def total_value_usd(self) -> Decimal:
        """Sum of planned assets' USD values at build time."""
        return sum((a.usd_value for a in self.assets), Decimal(0))

    def operations_for(self, asset_id: str) -> list[Any]:
        """Operations belonging to one asset, in plan order."""
        target = normalize_asset_id(asset_id)
        return [op for op in self.operations if getattr(op, "asset_id", None) == target]

    def assets_with_action(self, action: DisposalAction) -> list[PlannedAsset]:
        return [a for a in self.assets if a.action == action]
