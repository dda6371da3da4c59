"""Ledger gateway interface.

The orchestrator, the consolidator and the pool client talk to the ledger
only through this protocol. Implementations:
- JsonRpcLedgerGateway: a live node over JSON-RPC
- InMemoryLedger: a deterministic simulator used by tests and dry runs
"""

from __future__ import annotations

from typing import Any, Protocol

from dust_vacuum.models import (
    AssetMetadata,
    AssetTotal,
    BalancePage,
    BatchPlan,
    DepositReceipt,
    Membership,
    Proposal,
    SubmissionReceipt,
    VaultAccount,
)


class AssetLedgerGateway(Protocol):
    """Read and submit operations against the asset ledger.

    All listing and read methods raise NetworkFailure when the ledger cannot
    be reached. ``submit`` raises LedgerExecutionFailure (or its subclass
    StaleObjectVersion) when the batch is rejected; a rejected batch applies
    nothing.
    """

    async def list_fund_units(
        self, owner: str, asset_id: str, cursor: str | None = None
    ) -> BalancePage:
        """One page of the owner's fund-units of ``asset_id``."""
        ...

    async def list_balances(self, owner: str) -> list[AssetTotal]:
        """Aggregate balance per asset type held by ``owner``."""
        ...

    async def get_coin_metadata(self, asset_id: str) -> AssetMetadata | None:
        ...

    async def submit(self, plan: BatchPlan) -> SubmissionReceipt:
        """Submit a plan as one atomic unit."""
        ...

    async def wait_for_finality(self, digest: str) -> SubmissionReceipt:
        """Block until ``digest`` is final and return its effects."""
        ...

    async def get_vault(self, vault_id: str) -> VaultAccount:
        ...

    async def list_receipts(self, owner: str) -> list[DepositReceipt]:
        ...

    async def get_membership(self, owner: str) -> Membership | None:
        ...

    async def list_proposals(self) -> list[Proposal]:
        ...


class TransactionSigner(Protocol):
    """Signs and executes encoded ledger calls on behalf of the sender.

    Signing belongs to the wallet, so the JSON-RPC gateway receives it
    injected rather than holding keys itself.
    """

    async def sign_and_execute(self, calls: list[dict[str, Any]], gas_budget: int) -> str:
        """Execute the calls as one transaction and return its digest."""
        ...
