"""Fund-unit consolidation.

An account's balance of one asset can be spread across many fund-units.
Before an asset can be swapped or disposed of as a whole, every unit is
listed (following pagination to the end) and merged into the first one,
which becomes the asset's spendable handle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from dust_vacuum.errors import NetworkFailure
from dust_vacuum.models import FundUnit, MergeOperation
from dust_vacuum.models.types import normalize_address, normalize_asset_id

if TYPE_CHECKING:
    from dust_vacuum.ledger.gateway import AssetLedgerGateway

logger = structlog.get_logger()


@dataclass(frozen=True)
class ConsolidatedBalance:
    """All fund-units of one asset, resolved to a single handle.

    Attributes:
        handle: Primary unit every other unit merges into; None when there are none
        merged_ids: Units merged into the handle (excludes the handle)
        total_quantity: Sum over every unit
    """

    asset_id: str
    handle: str | None
    merged_ids: list[str] = field(default_factory=list)
    total_quantity: int = 0
    unit_count: int = 0

    @property
    def is_empty(self) -> bool:
        return self.handle is None or self.total_quantity == 0

    def merge_operation(self) -> MergeOperation | None:
        """The merge needed before the handle holds the whole balance."""
        if self.handle is None or not self.merged_ids:
            return None
        return MergeOperation(
            asset_id=self.asset_id, primary=self.handle, sources=list(self.merged_ids)
        )

    @classmethod
    def from_units(cls, asset_id: str, units: list[FundUnit]) -> ConsolidatedBalance:
        if not units:
            return cls(asset_id=asset_id, handle=None)
        return cls(
            asset_id=asset_id,
            handle=units[0].object_id,
            merged_ids=[u.object_id for u in units[1:]],
            total_quantity=sum(u.balance for u in units),
            unit_count=len(units),
        )


class BalanceConsolidator:
    """Lists every fund-unit of an asset through the gateway."""

    def __init__(self, gateway: AssetLedgerGateway) -> None:
        self.gateway = gateway

    async def list_all_units(self, owner: str, asset_id: str) -> list[FundUnit]:
        """Follow the listing cursor until the ledger reports no further page.

        Raises:
            NetworkFailure: Listing failed, or the ledger returned a cursor twice
        """
        units: list[FundUnit] = []
        seen_cursors: set[str] = set()
        cursor: str | None = None

        while True:
            page = await self.gateway.list_fund_units(owner, asset_id, cursor)
            units.extend(page.data)
            cursor = page.cursor
            if cursor is None:
                return units
            if cursor in seen_cursors:
                raise NetworkFailure(f"Listing of {asset_id} repeated cursor {cursor}")
            seen_cursors.add(cursor)

    async def consolidate(self, asset_id: str, owner: str) -> ConsolidatedBalance:
        asset_id = normalize_asset_id(asset_id)
        owner = normalize_address(owner)
        units = await self.list_all_units(owner, asset_id)
        balance = ConsolidatedBalance.from_units(asset_id, units)
        logger.debug(
            "asset_consolidated",
            asset_id=asset_id,
            units=balance.unit_count,
            total=balance.total_quantity,
        )
        return balance
