"""Tests for the vault client against the simulated ledger."""

import asyncio
from decimal import Decimal

import pytest

from dust_vacuum.errors import (
    ReceiptNotClaimable,
    StaleObjectVersion,
    Unauthorized,
    UnknownObject,
    ValuationOutOfBounds,
)
from dust_vacuum.ledger import SimulationError
from dust_vacuum.models import BatchPlan, VaultCall
from tests.helpers import ADMIN, CETUS, DEEP, NOW_MS, OTHER, OWNER, SUI, make_balance


@pytest.fixture
def finalized_receipt(ledger, open_vault):
    """OWNER's $1 deposit in round 1, finalized with 1_000_000 proceeds held by the vault."""
    receipt = open_vault.deposit(OWNER, CETUS, 10, Decimal("1"))
    open_vault.new_round(open_vault.admin_cap.object_id, proceeds=1_000_000)
    ledger.mint(open_vault.vault.vault_id, SUI, 1_000_000)
    return receipt


def _race(ledger, times: int) -> None:
    """Make another user touch the vault right before each of the next submits."""
    original = ledger.submit
    remaining = [times]

    async def racing_submit(plan):
        if remaining[0] > 0:
            remaining[0] -= 1
            ledger.engine.create_membership(f"0x{remaining[0] + 0xbeef:x}")
        return await original(plan)

    ledger.submit = racing_submit


class TestDeposit:
    def test_deposit_mints_shares(self, pool_client, ledger, open_vault):
        ledger.mint(OWNER, CETUS, 400, 600)

        asyncio.run(pool_client.deposit(OWNER, [make_balance(CETUS, 1000, "0.75")]))

        receipts = ledger.engine.receipts_of(OWNER)
        assert [r.shares for r in receipts] == [750_000]
        assert ledger.balance(OWNER, CETUS) == 0
        assert ledger.engine.holdings[CETUS] == 1000

    def test_guard_runs_before_network(self, pool_client, ledger, open_vault):
        ledger.mint(OWNER, CETUS, 1000)
        with pytest.raises(ValuationOutOfBounds):
            asyncio.run(pool_client.deposit(OWNER, [make_balance(CETUS, 1000, "150")]))
        assert ledger.requests == []

    def test_closed_vault_rejected_by_ledger(self, pool_client, ledger):
        ledger.mint(OWNER, CETUS, 1000)
        with pytest.raises(SimulationError, match="closed"):
            asyncio.run(pool_client.deposit(OWNER, [make_balance(CETUS, 1000, "0.75")]))
        assert ledger.balance(OWNER, CETUS) == 1000


class TestStaleRetry:
    def test_rebuilds_once_on_stale_version(self, pool_client, ledger, open_vault):
        ledger.mint(OWNER, CETUS, 1000)
        _race(ledger, times=1)

        asyncio.run(pool_client.deposit(OWNER, [make_balance(CETUS, 1000, "0.75")]))

        assert ledger.requests.count("submit") == 2
        assert len(ledger.engine.receipts_of(OWNER)) == 1

    def test_gives_up_after_one_retry(self, pool_client, ledger, open_vault):
        ledger.mint(OWNER, CETUS, 1000)
        _race(ledger, times=2)

        with pytest.raises(StaleObjectVersion):
            asyncio.run(pool_client.deposit(OWNER, [make_balance(CETUS, 1000, "0.75")]))

        assert ledger.requests.count("submit") == 2
        assert ledger.balance(OWNER, CETUS) == 1000


class TestRewards:
    def test_claim_pays_reference_asset(self, pool_client, ledger, finalized_receipt):
        asyncio.run(pool_client.claim(OWNER, finalized_receipt.object_id))

        assert ledger.balance(OWNER, SUI) == 980_000
        assert ledger.engine.receipts_of(OWNER) == []
        assert ledger.engine.membership_of(OWNER).total_earned == 980_000

    def test_claim_is_paid_from_vault_holdings(
        self, pool_client, ledger, config, finalized_receipt
    ):
        asyncio.run(pool_client.claim(OWNER, finalized_receipt.object_id))
        # The 2% fee stays behind
        assert ledger.balance(config.vault_id, SUI) == 20_000

    def test_stake_pays_nothing_out(self, pool_client, ledger, finalized_receipt):
        asyncio.run(pool_client.stake(OWNER, finalized_receipt.object_id))

        assert ledger.balance(OWNER, SUI) == 0
        assert ledger.engine.membership_of(OWNER).staked_amount == 980_000

    def test_unfinalized_receipt_not_submitted(self, pool_client, ledger, open_vault):
        receipt = open_vault.deposit(OWNER, CETUS, 10, Decimal("1"))
        with pytest.raises(ReceiptNotClaimable):
            asyncio.run(pool_client.claim(OWNER, receipt.object_id))
        assert "submit" not in ledger.requests

    def test_unknown_receipt(self, pool_client, finalized_receipt):
        with pytest.raises(UnknownObject):
            asyncio.run(pool_client.claim(OTHER, finalized_receipt.object_id))


class TestMembershipAndVoting:
    def test_create_membership_once(self, pool_client, ledger, open_vault):
        first = asyncio.run(pool_client.create_membership(OWNER))
        second = asyncio.run(pool_client.create_membership(OWNER))
        assert first is not None and first.success
        assert second is None
        assert ledger.engine.membership_of(OWNER).joined_at_ms == NOW_MS

    def test_vote_through_ledger(self, pool_client, ledger, finalized_receipt):
        asyncio.run(pool_client.claim(OWNER, finalized_receipt.object_id))
        asyncio.run(pool_client.create_proposal(ADMIN, "Fee to 1%", NOW_MS - 1, NOW_MS + 1))

        asyncio.run(pool_client.vote(OWNER, 1, True))

        assert ledger.engine.proposals[1].votes_for == 1_000_000


class TestAdmin:
    def test_round_proceeds_paid_in_by_admin(self, pool_client, ledger, config, open_vault):
        ledger.mint(ADMIN, SUI, 3_000_000)

        asyncio.run(pool_client.new_round(ADMIN, proceeds=2_000_000))

        assert ledger.balance(ADMIN, SUI) == 1_000_000
        assert ledger.balance(config.vault_id, SUI) == 2_000_000
        assert ledger.engine.vault.rewards == 1_960_000

    def test_unfunded_proceeds_rejected(self, pool_client, ledger, open_vault):
        with pytest.raises(SimulationError, match="holds 0"):
            asyncio.run(pool_client.new_round(ADMIN, proceeds=1))
        assert ledger.engine.vault.round == 1

    def test_admin_round_trip(self, pool_client, ledger):
        asyncio.run(pool_client.open_vault(ADMIN))
        asyncio.run(pool_client.set_target_usd_value(ADMIN, Decimal("25")))
        asyncio.run(pool_client.create_token_vault(ADMIN, DEEP))
        asyncio.run(pool_client.new_round(ADMIN, proceeds=0))

        vault = ledger.engine.vault
        assert vault.is_open
        assert vault.target_usd_value == 25_000_000
        assert vault.round == 2
        assert DEEP in ledger.engine.token_vaults

    def test_non_admin_stopped_before_submit(self, pool_client, ledger):
        with pytest.raises(Unauthorized):
            asyncio.run(pool_client.open_vault(OWNER))
        assert "submit" not in ledger.requests

    def test_ledger_enforces_capability(self, config, ledger):
        """Skipping the client check does not help: the ledger rejects the call."""
        plan = BatchPlan(
            sender=OWNER,
            operations=[
                VaultCall(
                    function="open_vault",
                    vault_id=config.vault_id,
                    admin_cap=config.admin_cap_id,
                )
            ],
            gas_budget=1,
        )
        with pytest.raises(SimulationError, match="admin capability"):
            asyncio.run(ledger.submit(plan))
        assert not ledger.engine.vault.is_open


class TestSnapshot:
    def test_read_model(self, pool_client, ledger, open_vault):
        open_vault.deposit(OWNER, CETUS, 10, Decimal("1"))
        open_vault.deposit(OTHER, CETUS, 10, Decimal("3"))

        snapshot = asyncio.run(pool_client.snapshot(OWNER))

        assert snapshot.user_shares() == 1_000_000
        assert snapshot.user_share_fraction() == Decimal("0.25")
        assert snapshot.pending_receipts() and not snapshot.claimable_receipts()
        assert not snapshot.is_admin

    def test_snapshot_goes_stale(self, pool_client, ledger, open_vault):
        """Locally derived figures lag the vault once anyone else acts."""
        open_vault.deposit(OWNER, CETUS, 10, Decimal("1"))
        snapshot = asyncio.run(pool_client.snapshot(OWNER))
        assert not snapshot.is_stale(ledger.engine.vault.version)

        ledger.engine.deposit(OTHER, CETUS, 10, Decimal("3"))

        assert snapshot.is_stale(ledger.engine.vault.version)
        assert snapshot.user_share_fraction() == Decimal(1)
        fresh = asyncio.run(pool_client.snapshot(OWNER))
        assert fresh.user_share_fraction() == Decimal("0.25")

    def test_active_proposals(self, pool_client, ledger, open_vault):
        cap = open_vault.admin_cap.object_id
        open_vault.create_proposal(cap, "now", NOW_MS - 10, NOW_MS + 10)
        open_vault.create_proposal(cap, "later", NOW_MS + 10, NOW_MS + 20)
        snapshot = asyncio.run(pool_client.snapshot(ADMIN))
        assert [p.title for p in snapshot.active_proposals(NOW_MS)] == ["now"]
        assert snapshot.is_admin
