"""Tests for the in-memory ledger simulator."""

import asyncio

import pytest

from dust_vacuum.errors import LedgerExecutionFailure, NetworkFailure, StaleObjectVersion
from dust_vacuum.ledger import SimulationError
from dust_vacuum.models import (
    BatchPlan,
    InputSource,
    MergeOperation,
    SwapOperation,
    TransferOperation,
)
from dust_vacuum.models.types import normalize_address
from tests.helpers import CETUS, OTHER, OWNER, SUI

BURN = normalize_address("0x0")


def _plan(*operations, expected_vault_version=None) -> BatchPlan:
    return BatchPlan(
        sender=OWNER,
        operations=list(operations),
        gas_budget=1,
        expected_vault_version=expected_vault_version,
    )


def _swap(pool_id, handle, amount_in, min_out=None) -> SwapOperation:
    return SwapOperation(
        asset_id=CETUS,
        step_index=0,
        pool_id=pool_id,
        a_to_b=True,
        asset_a=CETUS,
        asset_b=SUI,
        source=InputSource.HANDLE,
        handle=handle,
        amount_in=amount_in,
        min_amount_out=min_out,
        sqrt_price_limit=1,
    )


class TestListing:
    def test_pagination_with_echoed_cursor(self, ledger):
        """The last page echoes its cursor but reports no next page."""
        ledger.page_size = 2
        ids = ledger.mint(OWNER, CETUS, 1, 2, 3)

        first = asyncio.run(ledger.list_fund_units(OWNER, CETUS))
        assert [u.object_id for u in first.data] == ids[:2]
        assert first.cursor == ids[1]

        last = asyncio.run(ledger.list_fund_units(OWNER, CETUS, first.cursor))
        assert [u.object_id for u in last.data] == ids[2:]
        assert last.next_cursor == ids[2]
        assert last.cursor is None

    def test_list_balances(self, ledger):
        ledger.mint(OWNER, CETUS, 5, 7)
        ledger.mint(OWNER, SUI, 100)
        totals = {t.asset_id: t for t in asyncio.run(ledger.list_balances(OWNER))}
        assert totals[CETUS].total_balance == 12
        assert totals[CETUS].unit_count == 2
        assert totals[SUI].total_balance == 100

    def test_offline_raises_network_failure(self, ledger):
        ledger.offline = True
        with pytest.raises(NetworkFailure):
            asyncio.run(ledger.list_balances(OWNER))

    def test_failing_asset_only(self, ledger):
        ledger.failing_assets.add(CETUS)
        with pytest.raises(NetworkFailure):
            asyncio.run(ledger.list_fund_units(OWNER, CETUS))
        asyncio.run(ledger.list_fund_units(OWNER, SUI))


class TestSubmit:
    def test_merge_then_burn(self, ledger):
        primary, other = ledger.mint(OWNER, CETUS, 400, 600)
        plan = _plan(
            MergeOperation(asset_id=CETUS, primary=primary, sources=[other]),
            TransferOperation(asset_id=CETUS, handle=primary, recipient=BURN),
        )

        receipt = asyncio.run(ledger.submit(plan))

        assert receipt.success
        assert ledger.balance(OWNER, CETUS) == 0
        assert ledger.balance(BURN, CETUS) == 1000
        final = asyncio.run(ledger.wait_for_finality(receipt.digest))
        assert final.final
        changes = {(c.owner, c.asset_id): c.amount for c in final.balance_changes}
        assert changes[(OWNER, CETUS)] == -1000
        assert changes[(BURN, CETUS)] == 1000

    def test_swap_credits_output(self, ledger):
        pool = ledger.add_pool(CETUS, SUI, "2")
        (handle,) = ledger.mint(OWNER, CETUS, 1_000_000)

        asyncio.run(ledger.submit(_plan(_swap(pool, handle, 1_000_000, 1_990_000))))

        assert ledger.balance(OWNER, CETUS) == 0
        assert ledger.balance(OWNER, SUI) == 2_000_000

    def test_failed_operation_applies_nothing(self, ledger):
        """A batch is all-or-nothing: an abort late in the plan undoes earlier steps."""
        (handle,) = ledger.mint(OWNER, CETUS, 1000)
        (foreign,) = ledger.mint(OTHER, CETUS, 5)
        plan = _plan(
            TransferOperation(asset_id=CETUS, handle=handle, recipient=BURN),
            TransferOperation(asset_id=CETUS, handle=foreign, recipient=BURN),
        )

        with pytest.raises(SimulationError) as exc_info:
            asyncio.run(ledger.submit(plan))

        assert exc_info.value.digest is not None
        assert ledger.balance(OWNER, CETUS) == 1000
        assert ledger.balance(BURN, CETUS) == 0

    def test_slippage_exceeded_aborts(self, ledger):
        pool = ledger.add_pool(CETUS, SUI, "1")
        (handle,) = ledger.mint(OWNER, CETUS, 1000)

        with pytest.raises(LedgerExecutionFailure, match="Slippage"):
            asyncio.run(ledger.submit(_plan(_swap(pool, handle, 1000, 1001))))

        assert ledger.balance(OWNER, CETUS) == 1000

    def test_stale_vault_version(self, ledger):
        with pytest.raises(StaleObjectVersion):
            asyncio.run(ledger.submit(_plan(expected_vault_version=99)))
        assert "wait_for_finality" not in ledger.requests

    def test_unknown_digest(self, ledger):
        with pytest.raises(NetworkFailure):
            asyncio.run(ledger.wait_for_finality("nope"))
