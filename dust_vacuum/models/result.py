"""Pydantic models for submission receipts and run results."""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from dust_vacuum.models.assets import DisposalAction
from dust_vacuum.models.types import AssetId, ObjectId


class BalanceChange(BaseModel):
    """Net change of one asset for one owner caused by a transaction."""

    owner: ObjectId
    asset_id: AssetId = Field(alias="coinType")
    amount: int

    model_config = {"populate_by_name": True}


class SubmissionReceipt(BaseModel):
    """Ledger response to a batch submission or a finality query."""

    digest: str
    success: bool
    balance_changes: list[BalanceChange] = Field(default_factory=list, alias="balanceChanges")
    error: str | None = None
    final: bool = False

    model_config = {"populate_by_name": True}

    def received(self, owner: str, asset_id: str) -> int:
        """Sum of positive changes of ``asset_id`` credited to ``owner``."""
        return sum(
            c.amount
            for c in self.balance_changes
            if c.owner == owner and c.asset_id == asset_id and c.amount > 0
        )


class AssetStatus(str, Enum):
    """Per-asset outcome of a run."""

    SWAPPED = "swapped"
    BURNED = "burned"
    DONATED = "donated"
    SKIPPED = "skipped"
    FAILED = "failed"


ACTION_STATUS = {
    DisposalAction.SWAP: AssetStatus.SWAPPED,
    DisposalAction.BURN: AssetStatus.BURNED,
    DisposalAction.DONATE: AssetStatus.DONATED,
}


class AssetOutcome(BaseModel):
    """What happened to one selected asset."""

    asset_id: AssetId = Field(alias="assetId")
    symbol: str
    status: AssetStatus
    action: DisposalAction | None = None
    reason: str | None = None
    usd_value: Decimal = Field(default=Decimal(0), alias="valueUSD")

    model_config = {"populate_by_name": True}


class VacuumResult(BaseModel):
    """Itemized result of one run, or a single terminal failure."""

    success: bool
    digest: str | None = Field(default=None, alias="txDigest")
    outcomes: list[AssetOutcome] = Field(default_factory=list)
    total_output_received: int = Field(default=0, alias="totalOutputReceived")
    total_value_usd: Decimal = Field(default=Decimal(0), alias="totalValueUSD")
    error: str | None = None
    error_kind: str | None = Field(default=None, alias="errorKind")

    model_config = {"populate_by_name": True}

    def _with_status(self, *statuses: AssetStatus) -> list[AssetOutcome]:
        return [o for o in self.outcomes if o.status in statuses]

    @property
    def succeeded_assets(self) -> list[AssetOutcome]:
        return self._with_status(AssetStatus.SWAPPED, AssetStatus.BURNED, AssetStatus.DONATED)

    @property
    def failed_assets(self) -> list[AssetOutcome]:
        return self._with_status(AssetStatus.FAILED)

    @property
    def skipped_assets(self) -> list[AssetOutcome]:
        return self._with_status(AssetStatus.SKIPPED)

    @property
    def tokens_swapped(self) -> int:
        return len(self._with_status(AssetStatus.SWAPPED))

    @property
    def tokens_burned(self) -> int:
        return len(self._with_status(AssetStatus.BURNED))

    @property
    def tokens_donated(self) -> int:
        return len(self._with_status(AssetStatus.DONATED))

    @classmethod
    def failure(
        cls,
        error: Exception | str,
        digest: str | None = None,
        outcomes: list[AssetOutcome] | None = None,
    ) -> "VacuumResult":
        """Create a terminal failure. Outcomes may only carry failed/skipped assets."""
        kind = type(error).__name__ if isinstance(error, Exception) else None
        return cls(
            success=False,
            digest=digest,
            outcomes=[
                o for o in (outcomes or []) if o.status in (AssetStatus.FAILED, AssetStatus.SKIPPED)
            ],
            error=str(error),
            error_kind=kind,
        )
