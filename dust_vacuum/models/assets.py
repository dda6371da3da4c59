"""Pydantic models for wallet balances and ledger fund-units."""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from dust_vacuum.models.types import U64, AssetId, ObjectId


class DisposalAction(str, Enum):
    """What happens to a selected balance."""

    SWAP = "swap"
    BURN = "burn"
    DONATE = "donate"


class FundUnit(BaseModel):
    """A single coin object holding part of an account's balance."""

    object_id: ObjectId = Field(alias="coinObjectId")
    balance: U64
    version: str | None = None
    digest: str | None = None

    model_config = {"populate_by_name": True}


class BalancePage(BaseModel):
    """One page of a paginated fund-unit listing."""

    data: list[FundUnit] = Field(default_factory=list)
    next_cursor: str | None = Field(default=None, alias="nextCursor")
    # JSON-RPC nodes echo the last cursor even on the final page
    has_next_page: bool | None = Field(default=None, alias="hasNextPage")

    model_config = {"populate_by_name": True}

    @property
    def cursor(self) -> str | None:
        """Cursor for the next page, or None when the listing is complete."""
        if self.has_next_page is False:
            return None
        return self.next_cursor


class AssetTotal(BaseModel):
    """Aggregate balance for one asset type, as reported by the ledger."""

    asset_id: AssetId = Field(alias="coinType")
    unit_count: int = Field(default=0, alias="coinObjectCount")
    total_balance: U64 = Field(alias="totalBalance")

    model_config = {"populate_by_name": True}


class AssetMetadata(BaseModel):
    """On-ledger metadata for an asset type."""

    decimals: int = Field(ge=0, le=38)
    symbol: str
    name: str = ""
    icon_url: str | None = Field(default=None, alias="iconUrl")

    model_config = {"populate_by_name": True}


class AssetBalance(BaseModel):
    """A wallet balance considered for vacuuming.

    Created on every refresh from the ledger listing. Only selection and the
    disposal action are mutated locally.
    """

    asset_id: AssetId = Field(alias="coinType")
    symbol: str
    name: str = ""
    decimals: int = Field(default=9, ge=0, le=38)
    quantity: U64 = Field(alias="balance", description="Smallest-unit balance")
    price_usd: Decimal = Field(default=Decimal(0), alias="priceUSD", ge=0)
    usd_value: Decimal = Field(default=Decimal(0), alias="valueUSD", ge=0)
    is_dust: bool = Field(default=False, alias="isDust")
    selected: bool = False
    disposal_action: DisposalAction = Field(default=DisposalAction.SWAP, alias="action")

    model_config = {"populate_by_name": True}

    @property
    def units(self) -> Decimal:
        """Quantity expressed in whole units."""
        return Decimal(self.quantity).scaleb(-self.decimals)

    @property
    def has_price(self) -> bool:
        return self.price_usd > 0
