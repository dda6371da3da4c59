"""Error taxonomy for dust vacuum runs and vault operations.

Stage-local conditions (no route, zero balance) are absorbed into per-asset
outcomes by the orchestrator. Submission-level errors abort a run.
"""

from __future__ import annotations

from decimal import Decimal


class VacuumError(Exception):
    """Base error for all dust vacuum operations."""

    pass


class NoRouteFound(VacuumError):
    """No usable swap route exists for an asset. Never aborts a run."""

    def __init__(self, asset_id: str, reason: str = "no_liquidity") -> None:
        super().__init__(f"No route for {asset_id}: {reason}")
        self.asset_id = asset_id
        self.reason = reason


class InsufficientOrZeroBalance(VacuumError):
    """Asset has nothing to vacuum. Skipped, not counted as a failure."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(f"No balance for {asset_id}")
        self.asset_id = asset_id


class ValuationOutOfBounds(VacuumError):
    """A claimed USD valuation is outside the allowed bounds."""

    def __init__(
        self,
        value: Decimal,
        bound: Decimal,
        kind: str,
        asset_id: str | None = None,
    ) -> None:
        if kind == "below_minimum":
            detail = f"claimed value ${value} is below the minimum ${bound}"
        elif kind == "empty":
            detail = "no valuations supplied"
        else:
            detail = f"total claimed value ${value} exceeds the maximum ${bound}"
        if asset_id is not None:
            detail = f"{asset_id}: {detail}"
        super().__init__(detail)
        self.value = value
        self.bound = bound
        self.kind = kind
        self.asset_id = asset_id


class NetworkFailure(VacuumError):
    """A ledger or aggregator request failed. Not retried automatically."""

    pass


class LedgerExecutionFailure(VacuumError):
    """The ledger rejected the batch; nothing was applied."""

    def __init__(self, message: str, digest: str | None = None) -> None:
        super().__init__(message)
        self.digest = digest


class StaleObjectVersion(LedgerExecutionFailure):
    """A referenced shared object changed since it was read."""

    pass


class Unauthorized(VacuumError):
    """Privileged operation attempted without the admin capability."""

    pass


class NothingToDo(VacuumError):
    """No eligible assets remained to build a plan from."""

    pass


class ConfirmationRequired(VacuumError):
    """Irreversible disposals were not confirmed before building."""

    def __init__(self, pending: list[str]) -> None:
        super().__init__(f"Disposals awaiting confirmation: {', '.join(pending)}")
        self.pending = pending


class VaultError(VacuumError):
    """Base error for vault state machine violations."""

    pass


class VaultClosed(VaultError):
    """Deposit attempted while the vault is closed."""

    pass


class ReceiptNotClaimable(VaultError):
    """Receipt belongs to a round that has not been finalized."""

    pass


class VoteRejected(VaultError):
    """Vote is outside the window, repeated, or carries no weight."""

    pass


class UnknownObject(VaultError):
    """Referenced receipt, membership or proposal does not exist."""

    pass


__all__ = [
    "VacuumError",
    "NoRouteFound",
    "InsufficientOrZeroBalance",
    "ValuationOutOfBounds",
    "NetworkFailure",
    "LedgerExecutionFailure",
    "StaleObjectVersion",
    "Unauthorized",
    "NothingToDo",
    "ConfirmationRequired",
    "VaultError",
    "VaultClosed",
    "ReceiptNotClaimable",
    "VoteRejected",
    "UnknownObject",
]
