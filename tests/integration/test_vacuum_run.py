"""End-to-end runs: scan a wallet, vacuum it, and collect vault rewards."""

import asyncio
from decimal import Decimal

import pytest

from dust_vacuum.balances import BalanceScanner
from dust_vacuum.models import AssetMetadata, AssetStatus, DisposalAction
from dust_vacuum.pool import PoolClient
from dust_vacuum.pricing import StaticPriceSource
from tests.helpers import ADMIN, CETUS, DEEP, MEME, OWNER, SCAM, SUI, USDC, make_balance


@pytest.fixture
def wallet(ledger, aggregator):
    """A wallet with swappable dust, route-less dust and one large balance."""
    ledger.mint(OWNER, SUI, 3_000_000_000)
    ledger.mint(OWNER, CETUS, 1_000_000_000, 500_000_000, 500_000_000)
    ledger.mint(OWNER, MEME, 250_000)
    ledger.mint(OWNER, DEEP, 400_000)
    ledger.mint(OWNER, SCAM, 10**12)
    ledger.mint(OWNER, USDC, 25_000_000)
    for asset_id, decimals, symbol in [
        (SUI, 9, "SUI"),
        (CETUS, 9, "CETUS"),
        (MEME, 6, "MEME"),
        (DEEP, 6, "DEEP"),
        (USDC, 6, "USDC"),
    ]:
        ledger.set_metadata(asset_id, AssetMetadata(decimals=decimals, symbol=symbol))

    aggregator.add_route(CETUS, "0.05")
    aggregator.paths[MEME] = [
        ledger.add_pool(MEME, USDC, "0.8"),
        ledger.add_pool(USDC, SUI, "250"),
    ]
    aggregator.add_route(USDC, "250")
    return ledger


@pytest.fixture
def prices() -> StaticPriceSource:
    return StaticPriceSource({SUI: "2", CETUS: "0.1", MEME: "1", DEEP: "0.5", USDC: "1"})


class TestVacuumRun:
    def test_scan_then_vacuum(self, config, wallet, prices, orchestrator, open_vault):
        sheet = asyncio.run(BalanceScanner(wallet, prices, config).scan(OWNER))
        assert [b.asset_id for b in sheet.dust] == [MEME, CETUS, DEEP, SCAM]

        sheet.select_all_dust()
        sheet.set_action(DEEP, DisposalAction.DONATE)
        result = asyncio.run(orchestrator.run(OWNER, sheet.selected, confirm=lambda p: True))

        assert result.success
        assert {o.asset_id: o.status for o in result.outcomes} == {
            CETUS: AssetStatus.SWAPPED,
            MEME: AssetStatus.SWAPPED,
            DEEP: AssetStatus.DONATED,
            SCAM: AssetStatus.BURNED,
        }
        # 2e9 CETUS at 0.05 plus 250_000 MEME through USDC at 0.8 then 250
        assert result.total_output_received == 100_000_000 + 50_000_000
        assert result.total_value_usd == Decimal("0.2") + Decimal("0.25") + Decimal("0.2")

        for asset_id in (CETUS, MEME, DEEP, SCAM):
            assert wallet.balance(OWNER, asset_id) == 0
        assert wallet.balance(OWNER, USDC) == 25_000_000
        assert wallet.balance(OWNER, SUI) == 3_150_000_000
        assert [r.shares for r in wallet.engine.receipts_of(OWNER)] == [200_000]

    def test_donation_then_rewards(self, config, wallet, orchestrator, open_vault):
        """Donate, let the admin close the round with proceeds, then claim them."""
        pool = PoolClient(wallet, config)
        asyncio.run(
            orchestrator.run(
                OWNER,
                [make_balance(DEEP, 400_000, "0.20")],
                choices={DEEP: DisposalAction.DONATE},
                confirm=lambda p: True,
            )
        )

        wallet.mint(ADMIN, SUI, 5_000_000)
        asyncio.run(pool.new_round(ADMIN, proceeds=5_000_000))
        snapshot = asyncio.run(pool.snapshot(OWNER))
        (receipt,) = snapshot.claimable_receipts()
        asyncio.run(pool.claim(OWNER, receipt.object_id))

        # Sole depositor: everything but the 2% fee
        assert wallet.balance(OWNER, SUI) == 3_000_000_000 + 4_900_000
        assert wallet.engine.vault.total_fees_collected == 100_000
        assert wallet.balance(ADMIN, SUI) == 0
        assert wallet.balance(config.vault_id, SUI) == 100_000
