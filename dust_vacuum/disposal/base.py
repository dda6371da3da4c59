"""Base protocol and candidate types for disposal strategies."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from dust_vacuum.config import VacuumConfig
from dust_vacuum.consolidation import ConsolidatedBalance
from dust_vacuum.models import AssetBalance, DisposalAction, Route


@dataclass(frozen=True)
class SwapCandidate:
    """An asset with a route, to be swapped into the reference asset."""

    balance: AssetBalance
    consolidated: ConsolidatedBalance
    route: Route

    @property
    def asset_id(self) -> str:
        return self.balance.asset_id

    @property
    def action(self) -> DisposalAction:
        return DisposalAction.SWAP


@dataclass(frozen=True)
class DisposalCandidate:
    """A route-less asset with a committed burn or donate decision."""

    balance: AssetBalance
    consolidated: ConsolidatedBalance
    action: DisposalAction

    @property
    def asset_id(self) -> str:
        return self.balance.asset_id


class DisposalStrategy(Protocol):
    """Emits the ledger operations that empty one consolidated balance.

    Strategies receive a non-empty, already merged balance: the builder emits
    the merge and skips empty balances before calling them.
    """

    action: DisposalAction

    def operations(self, candidate: Any, config: VacuumConfig) -> list[Any]:
        """Operations for the candidate, in execution order."""
        ...

    def estimated_output(self, candidate: Any) -> int:
        """Reference-asset amount the disposal is expected to return."""
        ...
