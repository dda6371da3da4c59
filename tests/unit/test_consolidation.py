"""Tests for fund-unit consolidation."""

import asyncio

import pytest

from dust_vacuum.consolidation import BalanceConsolidator, ConsolidatedBalance
from dust_vacuum.errors import NetworkFailure
from dust_vacuum.models import BalancePage, FundUnit
from tests.helpers import CETUS, OWNER


class LoopingGateway:
    """Returns the same non-final page forever."""

    def __init__(self) -> None:
        self.calls = 0

    async def list_fund_units(self, owner, asset_id, cursor=None):
        self.calls += 1
        return BalancePage(
            data=[FundUnit(object_id="0x1", balance=1)], next_cursor="0x1", has_next_page=True
        )


class TestConsolidate:
    def test_follows_pagination_to_the_end(self, ledger):
        """Units beyond the first page are included in the total."""
        ledger.page_size = 2
        ids = ledger.mint(OWNER, CETUS, *([10] * 5))

        balance = asyncio.run(BalanceConsolidator(ledger).consolidate(CETUS, OWNER))

        assert balance.total_quantity == 50
        assert balance.unit_count == 5
        assert balance.handle == ids[0]
        assert balance.merged_ids == ids[1:]
        assert ledger.requests.count("list_fund_units") == 3

    def test_single_unit_needs_no_merge(self, ledger):
        (handle,) = ledger.mint(OWNER, CETUS, 7)
        balance = asyncio.run(BalanceConsolidator(ledger).consolidate(CETUS, OWNER))
        assert balance.handle == handle
        assert balance.merge_operation() is None

    def test_merge_operation_covers_every_other_unit(self, ledger):
        ids = ledger.mint(OWNER, CETUS, 1, 2, 3)
        balance = asyncio.run(BalanceConsolidator(ledger).consolidate(CETUS, OWNER))
        merge = balance.merge_operation()
        assert merge is not None
        assert merge.primary == ids[0]
        assert merge.sources == ids[1:]

    def test_no_units_is_empty(self, ledger):
        balance = asyncio.run(BalanceConsolidator(ledger).consolidate(CETUS, OWNER))
        assert balance.is_empty
        assert balance.handle is None

    def test_repeated_cursor_fails(self):
        """A ledger that keeps returning the same cursor cannot loop us forever."""
        gateway = LoopingGateway()
        with pytest.raises(NetworkFailure, match="repeated cursor"):
            asyncio.run(BalanceConsolidator(gateway).consolidate(CETUS, OWNER))
        assert gateway.calls == 2

    def test_zero_balance_units_are_empty(self):
        balance = ConsolidatedBalance.from_units(CETUS, [FundUnit(object_id="0x1", balance=0)])
        assert balance.is_empty
