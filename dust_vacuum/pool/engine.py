"""Vault accounting state machine.

Executable reference of the pooled-deposit vault: deposits mint shares for the
current round, ``new_round`` finalizes the round with its proceeds, and
receipts of finalized rounds are claimed or staked pro rata.

State machine:
    Closed --open_vault--> Open --close_vault--> Closed
    new_round: round r -> r + 1 (allowed in either state)

Invariants:
- shares minted = floor(claimed_usd * 1e6)
- a receipt is claimable iff receipt.round < vault.round
- payout = round_proceeds * receipt.shares // round_shares
- every mutation increments ``vault.version``

All u64 arithmetic goes through SafeInt so underflow and overflow abort the
operation instead of corrupting state.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

import structlog

from dust_vacuum.constants import ADMIN_FEE_BPS
from dust_vacuum.errors import (
    InsufficientOrZeroBalance,
    ReceiptNotClaimable,
    StaleObjectVersion,
    Unauthorized,
    UnknownObject,
    VaultClosed,
    VaultError,
    VoteRejected,
)
from dust_vacuum.models import (
    AdminCap,
    DepositReceipt,
    Membership,
    Proposal,
    RewardPreference,
    VaultAccount,
)
from dust_vacuum.models.types import normalize_address, normalize_asset_id
from dust_vacuum.safe_int import S, basis_points_of
from dust_vacuum.validation import DEFAULT_GUARD, PriceValidationGuard, scale_usd

logger = structlog.get_logger()


@dataclass
class RoundRecord:
    """Totals of one round; proceeds are set when the round is finalized."""

    round: int
    shares: int = 0
    usd_value: int = 0
    proceeds: int = 0
    fee: int = 0
    finalized: bool = False


def sequential_ids(start: int = 0x1000) -> Callable[[], str]:
    """Deterministic object id factory."""
    counter = itertools.count(start)
    return lambda: normalize_address(f"0x{next(counter):x}")


class PoolAccountingEngine:
    """In-memory vault with the ledger's accounting rules.

    Args:
        admin: Address that receives the admin capability
        vault_id: Id of the shared vault object; generated if omitted
        fee_bps: Admin fee taken from each round's proceeds
        guard: Claimed-valuation guard applied to every deposit
        new_id: Object id factory, shared with a ledger simulator when embedded
    """

    def __init__(
        self,
        admin: str,
        vault_id: str | None = None,
        fee_bps: int = ADMIN_FEE_BPS,
        guard: PriceValidationGuard | None = None,
        new_id: Callable[[], str] | None = None,
    ) -> None:
        self._new_id = new_id or sequential_ids()
        self.guard = guard or DEFAULT_GUARD
        vault_id = normalize_address(vault_id) if vault_id else self._new_id()
        self.vault = VaultAccount(
            vault_id=vault_id,
            admin=admin,
            fees_collected_bps=fee_bps,
        )
        self.admin_cap = AdminCap(object_id=self._new_id(), vault_id=vault_id)
        self.receipts: dict[str, DepositReceipt] = {}
        self.memberships: dict[str, Membership] = {}
        self.proposals: dict[int, Proposal] = {}
        self.token_vaults: dict[str, str] = {}
        self.holdings: dict[str, int] = {}
        self.rounds: dict[int, RoundRecord] = {1: RoundRecord(round=1)}

    # -- helpers ---------------------------------------------------------------

    def _bump(self) -> None:
        self.vault.version += 1

    def _require_cap(self, cap: str) -> None:
        if normalize_address(cap) != self.admin_cap.object_id:
            raise Unauthorized(f"{cap} is not the admin capability of {self.vault.vault_id}")

    @property
    def current_round(self) -> RoundRecord:
        return self.rounds[self.vault.round]

    def check_version(self, expected: int) -> None:
        """Reject operations built against an older vault state."""
        if expected != self.vault.version:
            raise StaleObjectVersion(
                f"Vault version {self.vault.version} != expected {expected}"
            )

    def receipts_of(self, owner: str) -> list[DepositReceipt]:
        owner = normalize_address(owner)
        return [r for r in self.receipts.values() if r.depositor == owner]

    def membership_of(self, owner: str) -> Membership | None:
        return self.memberships.get(normalize_address(owner))

    # -- admin -----------------------------------------------------------------

    def open_vault(self, cap: str) -> None:
        self._require_cap(cap)
        self.vault.is_open = True
        self._bump()
        logger.info("vault_opened", vault_id=self.vault.vault_id, round=self.vault.round)

    def close_vault(self, cap: str) -> None:
        self._require_cap(cap)
        self.vault.is_open = False
        self._bump()
        logger.info("vault_closed", vault_id=self.vault.vault_id, round=self.vault.round)

    def set_target_usd_value(self, cap: str, value_scaled: int) -> None:
        self._require_cap(cap)
        self.vault.target_usd_value = S(value_scaled).to_u64()
        self._bump()

    def create_token_vault(self, cap: str, asset_id: str) -> str:
        """Create the per-asset holding object; existing ones are returned."""
        self._require_cap(cap)
        asset_id = normalize_asset_id(asset_id)
        if asset_id not in self.token_vaults:
            self.token_vaults[asset_id] = self._new_id()
            self.holdings[asset_id] = 0
            self._bump()
        return self.token_vaults[asset_id]

    def new_round(self, cap: str, proceeds: int = 0) -> RoundRecord:
        """Finalize the current round with its proceeds and start the next.

        The admin fee is deducted from ``proceeds``; the remainder is what the
        round's receipts share.
        """
        self._require_cap(cap)
        record = self.current_round
        fee = basis_points_of(proceeds, self.vault.fees_collected_bps)
        record.fee = fee
        record.proceeds = (S(proceeds) - fee).to_u64()
        record.finalized = True

        self.vault.rewards = (S(self.vault.rewards) + record.proceeds).to_u64()
        self.vault.total_fees_collected = (S(self.vault.total_fees_collected) + fee).to_u64()
        self.vault.round += 1
        self.vault.total_shares = 0
        self.vault.current_usd_value = 0
        self.rounds[self.vault.round] = RoundRecord(round=self.vault.round)
        # Deposited assets leave with the admin to be liquidated
        self.holdings = {asset: 0 for asset in self.holdings}
        self._bump()

        logger.info(
            "round_finalized",
            round=record.round,
            shares=record.shares,
            proceeds=record.proceeds,
            fee=fee,
        )
        return record

    def create_proposal(self, cap: str, title: str, start_ms: int, end_ms: int) -> Proposal:
        self._require_cap(cap)
        if end_ms <= start_ms:
            raise VaultError(f"Proposal window is empty: [{start_ms}, {end_ms})")
        proposal = Proposal(
            object_id=self._new_id(),
            proposal_id=len(self.proposals) + 1,
            title=title,
            creator=self.vault.admin,
            start_time_ms=start_ms,
            end_time_ms=end_ms,
        )
        self.proposals[proposal.proposal_id] = proposal
        self._bump()
        return proposal

    # -- user ------------------------------------------------------------------

    def deposit(
        self,
        depositor: str,
        asset_id: str,
        quantity: int,
        claimed_usd: Decimal,
        reward_preference: RewardPreference = RewardPreference.CLAIM,
    ) -> DepositReceipt:
        """Deposit ``quantity`` of an asset and mint shares for its claimed value.

        Raises:
            VaultClosed: The vault is not accepting deposits
            InsufficientOrZeroBalance: Nothing to deposit
            ValuationOutOfBounds: The claimed value fails the guard
        """
        if not self.vault.is_open:
            raise VaultClosed(f"Vault {self.vault.vault_id} is closed")
        asset_id = normalize_asset_id(asset_id)
        if quantity <= 0:
            raise InsufficientOrZeroBalance(asset_id)
        self.guard.check({asset_id: claimed_usd})

        depositor = normalize_address(depositor)
        shares = scale_usd(claimed_usd)
        round_ = self.vault.round

        existing = next(
            (r for r in self.receipts.values() if r.depositor == depositor and r.round == round_),
            None,
        )
        if existing is None:
            receipt = DepositReceipt(
                object_id=self._new_id(),
                depositor=depositor,
                shares=shares,
                round=round_,
                reward_preference=reward_preference,
            )
            self.vault.depositors_count += 1
        else:
            receipt = existing.model_copy(
                update={"shares": (S(existing.shares) + shares).to_u64()}
            )
        self.receipts[receipt.object_id] = receipt

        record = self.current_round
        record.shares = (S(record.shares) + shares).to_u64()
        record.usd_value = (S(record.usd_value) + shares).to_u64()
        self.vault.total_shares = (S(self.vault.total_shares) + shares).to_u64()
        self.vault.total_lifetime_shares = (
            S(self.vault.total_lifetime_shares) + shares
        ).to_u64()
        self.vault.current_usd_value = (S(self.vault.current_usd_value) + shares).to_u64()
        self.holdings[asset_id] = (S(self.holdings.get(asset_id, 0)) + quantity).to_u64()
        self._bump()

        logger.debug(
            "deposit_recorded",
            depositor=depositor,
            asset_id=asset_id,
            shares=shares,
            round=round_,
        )
        return receipt

    def create_membership(self, member: str, now_ms: int = 0) -> Membership:
        """Return the member's record, creating it on first use."""
        member = normalize_address(member)
        membership = self.memberships.get(member)
        if membership is None:
            membership = Membership(object_id=self._new_id(), member=member, joined_at_ms=now_ms)
            self.memberships[member] = membership
            self._bump()
        return membership

    def payout_for(self, receipt_id: str) -> int:
        """Amount a receipt would receive if settled now."""
        receipt = self.receipts.get(normalize_address(receipt_id))
        if receipt is None:
            raise UnknownObject(f"Receipt {receipt_id} does not exist")
        if not receipt.is_claimable(self.vault.round):
            raise ReceiptNotClaimable(
                f"Round {receipt.round} is not finalized (vault round {self.vault.round})"
            )
        record = self.rounds[receipt.round]
        return (S(record.proceeds) * receipt.shares // record.shares).to_u64()

    def _settle(self, receipt_id: str, member: str, now_ms: int) -> tuple[int, Membership]:
        receipt_id = normalize_address(receipt_id)
        member = normalize_address(member)
        receipt = self.receipts.get(receipt_id)
        if receipt is None:
            raise UnknownObject(f"Receipt {receipt_id} does not exist")
        if receipt.depositor != member:
            raise Unauthorized(f"Receipt {receipt_id} belongs to {receipt.depositor}")

        payout = self.payout_for(receipt_id)
        membership = self.create_membership(member, now_ms)

        del self.receipts[receipt_id]
        self.vault.rewards = (S(self.vault.rewards) - payout).to_u64()
        membership.lifetime_shares = (S(membership.lifetime_shares) + receipt.shares).to_u64()
        membership.total_earned = (S(membership.total_earned) + payout).to_u64()
        return payout, membership

    def claim(self, receipt_id: str, member: str, now_ms: int = 0) -> int:
        """Consume a finalized receipt and pay its share of the round proceeds."""
        payout, membership = self._settle(receipt_id, member, now_ms)
        self._bump()
        logger.info("rewards_claimed", member=membership.member, payout=payout)
        return payout

    def stake(self, receipt_id: str, member: str, now_ms: int = 0) -> int:
        """Like claim, but the payout stays in the vault as the member's stake."""
        payout, membership = self._settle(receipt_id, member, now_ms)
        membership.staked_amount = (S(membership.staked_amount) + payout).to_u64()
        self.vault.staked = (S(self.vault.staked) + payout).to_u64()
        self._bump()
        logger.info("rewards_staked", member=membership.member, payout=payout)
        return payout

    def vote(self, proposal_id: int, member: str, support: bool, now_ms: int) -> int:
        """Cast a vote weighted by lifetime shares. Returns the weight used.

        Raises:
            UnknownObject: No such proposal
            VoteRejected: Outside [start, end), already voted, or zero weight
        """
        proposal = self.proposals.get(proposal_id)
        if proposal is None:
            raise UnknownObject(f"Proposal {proposal_id} does not exist")
        member = normalize_address(member)
        if not proposal.is_active(now_ms):
            raise VoteRejected(f"Proposal {proposal_id} is not active at {now_ms}")
        if proposal.has_voted(member):
            raise VoteRejected(f"{member} already voted on proposal {proposal_id}")
        membership = self.memberships.get(member)
        weight = membership.lifetime_shares if membership else 0
        if weight == 0:
            raise VoteRejected(f"{member} has no voting weight")

        if support:
            proposal.votes_for = (S(proposal.votes_for) + weight).to_u64()
        else:
            proposal.votes_against = (S(proposal.votes_against) + weight).to_u64()
        proposal.voters.add(member)
        self._bump()
        return weight
