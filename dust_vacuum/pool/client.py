"""User-side client for the community vault.

Builds vault plans, submits them through the gateway and exposes a read
model of the vault as seen by one account. Checks made here (admin address,
receipt claimability) are advisory conveniences; the ledger enforces the
real rules through the admin capability and the vault's own state.

Concurrent users are serialized by the vault's object version. A plan that
loses the race fails with StaleObjectVersion and is rebuilt once from a
fresh read.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, Field

from dust_vacuum.config import DEFAULT_CONFIG, VacuumConfig
from dust_vacuum.consolidation import BalanceConsolidator
from dust_vacuum.errors import (
    InsufficientOrZeroBalance,
    LedgerExecutionFailure,
    ReceiptNotClaimable,
    StaleObjectVersion,
    Unauthorized,
    UnknownObject,
)
from dust_vacuum.models import (
    AssetBalance,
    BatchPlan,
    DepositOperation,
    DepositReceipt,
    LedgerOperation,
    Membership,
    Proposal,
    SubmissionReceipt,
    VaultAccount,
    VaultCall,
)
from dust_vacuum.models.types import normalize_address, normalize_asset_id
from dust_vacuum.validation import PriceValidationGuard, scale_usd

if TYPE_CHECKING:
    from dust_vacuum.ledger.gateway import AssetLedgerGateway

logger = structlog.get_logger()


class PoolSnapshot(BaseModel):
    """The vault and one account's objects, read at a single vault version."""

    owner: str
    vault: VaultAccount
    receipts: list[DepositReceipt] = Field(default_factory=list)
    membership: Membership | None = None
    proposals: list[Proposal] = Field(default_factory=list)

    @property
    def version(self) -> int:
        return self.vault.version

    def is_stale(self, latest_version: int) -> bool:
        """True once the vault has moved past the version this was read at."""
        return latest_version != self.vault.version

    def user_shares(self) -> int:
        """Shares of the current round held by the owner."""
        return sum(r.shares for r in self.receipts if r.round == self.vault.round)

    def user_share_fraction(self) -> Decimal:
        total = self.vault.total_shares
        return Decimal(self.user_shares()) / total if total else Decimal(0)

    def claimable_receipts(self) -> list[DepositReceipt]:
        return [r for r in self.receipts if r.is_claimable(self.vault.round)]

    def pending_receipts(self) -> list[DepositReceipt]:
        return [r for r in self.receipts if not r.is_claimable(self.vault.round)]

    def active_proposals(self, now_ms: int) -> list[Proposal]:
        return [p for p in self.proposals if p.is_active(now_ms)]

    @property
    def is_admin(self) -> bool:
        return self.owner == self.vault.admin


class PoolClient:
    """Deposits, rewards, governance and admin calls against the vault."""

    def __init__(
        self,
        gateway: AssetLedgerGateway,
        config: VacuumConfig | None = None,
        guard: PriceValidationGuard | None = None,
    ) -> None:
        self.gateway = gateway
        self.config = config or DEFAULT_CONFIG
        self.guard = guard or PriceValidationGuard(self.config)
        self.consolidator = BalanceConsolidator(gateway)

    async def snapshot(self, owner: str) -> PoolSnapshot:
        owner = normalize_address(owner)
        vault = await self.gateway.get_vault(self.config.vault_id)
        receipts = await self.gateway.list_receipts(owner)
        membership = await self.gateway.get_membership(owner)
        proposals = await self.gateway.list_proposals()
        return PoolSnapshot(
            owner=owner,
            vault=vault,
            receipts=receipts,
            membership=membership,
            proposals=proposals,
        )

    async def _execute(
        self,
        owner: str,
        build: Callable[[VaultAccount], Any],
        action: str,
    ) -> SubmissionReceipt:
        """Read the vault, build, submit and wait; rebuild on a stale version.

        ``build`` may be a plain function or a coroutine function returning
        the operations for the given vault state.
        """
        attempts = 1 + self.config.stale_retry_attempts
        for attempt in range(1, attempts + 1):
            vault = await self.gateway.get_vault(self.config.vault_id)
            operations = build(vault)
            if inspect.isawaitable(operations):
                operations = await operations
            plan = BatchPlan(
                sender=owner,
                operations=operations,
                gas_budget=self.config.gas_budget,
                expected_vault_version=vault.version,
            )
            try:
                submitted = await self.gateway.submit(plan)
                final = await self.gateway.wait_for_finality(submitted.digest)
            except StaleObjectVersion as e:
                if attempt == attempts:
                    raise
                logger.info("stale_vault_retry", action=action, attempt=attempt, error=str(e))
                continue

            if not final.success:
                raise LedgerExecutionFailure(final.error or f"{action} failed", final.digest)
            logger.info("vault_action_executed", action=action, digest=final.digest)
            return final

        raise AssertionError("unreachable")

    def _call(self, function: str, admin: bool = False, **arguments: Any) -> VaultCall:
        return VaultCall(
            function=function,
            vault_id=self.config.vault_id,
            admin_cap=self.config.admin_cap_id if admin else None,
            arguments=arguments,
        )

    # -- deposits --------------------------------------------------------------

    async def deposit(self, owner: str, balances: Iterable[AssetBalance]) -> SubmissionReceipt:
        """Deposit whole balances with their USD valuations.

        The guard runs before any network call.

        Raises:
            ValuationOutOfBounds: A valuation or the total is out of bounds
            InsufficientOrZeroBalance: An asset has no fund-units
        """
        owner = normalize_address(owner)
        balances = list(balances)
        self.guard.check({b.asset_id: b.usd_value for b in balances})

        async def build(vault: VaultAccount) -> list[LedgerOperation]:
            ops: list[LedgerOperation] = []
            for balance in balances:
                consolidated = await self.consolidator.consolidate(balance.asset_id, owner)
                if consolidated.is_empty or consolidated.handle is None:
                    raise InsufficientOrZeroBalance(balance.asset_id)
                merge = consolidated.merge_operation()
                if merge is not None:
                    ops.append(merge)
                ops.append(
                    DepositOperation(
                        asset_id=balance.asset_id,
                        vault_id=vault.vault_id,
                        handle=consolidated.handle,
                        amount=consolidated.total_quantity,
                        claimed_usd_scaled=scale_usd(balance.usd_value),
                    )
                )
            return ops

        return await self._execute(owner, build, "deposit")

    # -- rewards ---------------------------------------------------------------

    async def _settle(self, owner: str, receipt_id: str, function: str) -> SubmissionReceipt:
        owner = normalize_address(owner)
        receipt_id = normalize_address(receipt_id)
        receipts = {r.object_id: r for r in await self.gateway.list_receipts(owner)}
        if receipt_id not in receipts:
            raise UnknownObject(f"{owner} holds no receipt {receipt_id}")
        receipt = receipts[receipt_id]

        def build(vault: VaultAccount) -> list[LedgerOperation]:
            if not receipt.is_claimable(vault.round):
                raise ReceiptNotClaimable(
                    f"Receipt round {receipt.round} is not finalized (vault round {vault.round})"
                )
            return [self._call(function, receipt_id=receipt_id)]

        return await self._execute(owner, build, function)

    async def claim(self, owner: str, receipt_id: str) -> SubmissionReceipt:
        return await self._settle(owner, receipt_id, "claim_rewards")

    async def stake(self, owner: str, receipt_id: str) -> SubmissionReceipt:
        return await self._settle(owner, receipt_id, "stake_rewards")

    async def create_membership(self, owner: str) -> SubmissionReceipt | None:
        """Create the owner's membership. Returns None if it already exists."""
        owner = normalize_address(owner)
        if await self.gateway.get_membership(owner) is not None:
            return None
        return await self._execute(
            owner, lambda vault: [self._call("create_membership")], "create_membership"
        )

    async def vote(self, owner: str, proposal_id: int, support: bool) -> SubmissionReceipt:
        return await self._execute(
            normalize_address(owner),
            lambda vault: [self._call("vote", proposal_id=proposal_id, support=support)],
            "vote",
        )

    # -- admin -----------------------------------------------------------------

    async def _admin(self, owner: str, function: str, **arguments: Any) -> SubmissionReceipt:
        owner = normalize_address(owner)

        def build(vault: VaultAccount) -> list[LedgerOperation]:
            if owner != vault.admin:
                raise Unauthorized(f"{owner} is not the vault admin")
            return [self._call(function, admin=True, **arguments)]

        return await self._execute(owner, build, function)

    async def open_vault(self, owner: str) -> SubmissionReceipt:
        return await self._admin(owner, "open_vault")

    async def close_vault(self, owner: str) -> SubmissionReceipt:
        return await self._admin(owner, "close_vault")

    async def set_target_usd_value(self, owner: str, value_usd: Decimal) -> SubmissionReceipt:
        return await self._admin(owner, "set_target_usd_value", value=scale_usd(value_usd))

    async def new_round(self, owner: str, proceeds: int = 0) -> SubmissionReceipt:
        return await self._admin(owner, "new_round", proceeds=proceeds)

    async def create_token_vault(self, owner: str, asset_id: str) -> SubmissionReceipt:
        return await self._admin(
            owner, "create_token_vault", asset_id=normalize_asset_id(asset_id)
        )

    async def create_proposal(
        self, owner: str, title: str, start_ms: int, end_ms: int
    ) -> SubmissionReceipt:
        return await self._admin(
            owner, "create_proposal", title=title, start_ms=start_ms, end_ms=end_ms
        )
