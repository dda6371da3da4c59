"""Wallet balance sheet: dust detection, selection and valuation."""

from __future__ import annotations

from collections.abc import Iterable
from decimal import Decimal
from typing import TYPE_CHECKING

import structlog

from dust_vacuum.config import DEFAULT_CONFIG, VacuumConfig
from dust_vacuum.errors import NetworkFailure
from dust_vacuum.models import AssetBalance, AssetMetadata, DisposalAction
from dust_vacuum.models.types import normalize_address, normalize_asset_id, symbol_from_asset_id
from dust_vacuum.pricing import PriceSource

if TYPE_CHECKING:
    from dust_vacuum.ledger.gateway import AssetLedgerGateway

logger = structlog.get_logger()


def is_dust(usd_value: Decimal, threshold: Decimal, price_known: bool, quantity: int) -> bool:
    """A balance is dust when worth less than the threshold.

    Balances without a known price count as dust as long as they are non-zero.
    """
    if price_known:
        return Decimal(0) < usd_value < threshold
    return quantity > 0


class BalanceSheet:
    """The balances of one account for one run.

    Order: reference asset first, then dust, then the rest by value descending.
    The reference asset can never be selected since it pays for gas.
    """

    def __init__(
        self,
        balances: Iterable[AssetBalance],
        config: VacuumConfig | None = None,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self.reference_asset = self.config.reference_asset
        self._balances = {b.asset_id: b for b in balances}
        for balance in self._balances.values():
            if balance.asset_id == self.reference_asset:
                balance.selected = False
                balance.is_dust = False

    def _sort_key(self, balance: AssetBalance) -> tuple[int, Decimal]:
        if balance.asset_id == self.reference_asset:
            return (0, Decimal(0))
        return (1 if balance.is_dust else 2, -balance.usd_value)

    @property
    def balances(self) -> list[AssetBalance]:
        return sorted(self._balances.values(), key=self._sort_key)

    def __len__(self) -> int:
        return len(self._balances)

    def __contains__(self, asset_id: str) -> bool:
        return normalize_asset_id(asset_id) in self._balances

    def get(self, asset_id: str) -> AssetBalance:
        return self._balances[normalize_asset_id(asset_id)]

    def toggle(self, asset_id: str) -> bool:
        """Flip selection; returns the new state."""
        balance = self.get(asset_id)
        if balance.asset_id == self.reference_asset:
            return False
        balance.selected = not balance.selected
        return balance.selected

    def select_all_dust(self) -> list[str]:
        selected = []
        for balance in self.dust:
            balance.selected = True
            selected.append(balance.asset_id)
        return selected

    def deselect_all(self) -> None:
        for balance in self._balances.values():
            balance.selected = False

    def set_action(self, asset_id: str, action: DisposalAction) -> None:
        self.get(asset_id).disposal_action = DisposalAction(action)

    @property
    def selected(self) -> list[AssetBalance]:
        return [b for b in self.balances if b.selected]

    @property
    def dust(self) -> list[AssetBalance]:
        return [b for b in self.balances if b.is_dust and b.asset_id != self.reference_asset]

    @property
    def total_dust_value(self) -> Decimal:
        return sum((b.usd_value for b in self.dust), Decimal(0))

    @property
    def selected_value(self) -> Decimal:
        return sum((b.usd_value for b in self.selected), Decimal(0))


class BalanceScanner:
    """Builds a BalanceSheet from ledger totals, metadata and a price source."""

    def __init__(
        self,
        gateway: AssetLedgerGateway,
        prices: PriceSource,
        config: VacuumConfig | None = None,
    ) -> None:
        self.gateway = gateway
        self.price_source = prices
        self.config = config or DEFAULT_CONFIG

    async def _metadata(self, asset_id: str) -> AssetMetadata | None:
        try:
            return await self.gateway.get_coin_metadata(asset_id)
        except NetworkFailure as e:
            logger.warning("metadata_unavailable", asset_id=asset_id, error=str(e))
            return None

    async def scan(self, owner: str) -> BalanceSheet:
        owner = normalize_address(owner)
        totals = [t for t in await self.gateway.list_balances(owner) if t.total_balance > 0]
        prices = await self.price_source.prices([t.asset_id for t in totals])
        threshold = self.config.clamped_dust_threshold

        balances = []
        for total in totals:
            metadata = await self._metadata(total.asset_id)
            symbol = metadata.symbol if metadata else symbol_from_asset_id(total.asset_id)
            decimals = metadata.decimals if metadata else 9
            price = prices.get(total.asset_id, Decimal(0))
            usd_value = Decimal(total.total_balance).scaleb(-decimals) * price
            is_reference = total.asset_id == self.config.reference_asset
            balances.append(
                AssetBalance(
                    asset_id=total.asset_id,
                    symbol=symbol,
                    name=metadata.name if metadata and metadata.name else symbol,
                    decimals=decimals,
                    quantity=total.total_balance,
                    price_usd=price,
                    usd_value=usd_value,
                    is_dust=not is_reference
                    and is_dust(usd_value, threshold, price > 0, total.total_balance),
                )
            )

        sheet = BalanceSheet(balances, self.config)
        logger.info(
            "balances_scanned",
            owner=owner,
            assets=len(sheet),
            dust=len(sheet.dust),
            dust_value=str(sheet.total_dust_value),
        )
        return sheet
