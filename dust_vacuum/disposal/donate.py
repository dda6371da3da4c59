"""Donate: deposit the whole balance into the community vault.

The deposit carries the balance's USD valuation scaled by 1e6, which the
vault turns into shares. Valuations are bounded by PriceValidationGuard in
the builder before this strategy runs.
"""

from __future__ import annotations

from dust_vacuum.config import VacuumConfig
from dust_vacuum.disposal.base import DisposalCandidate
from dust_vacuum.models import DepositOperation, DisposalAction, LedgerOperation
from dust_vacuum.validation import scale_usd


class DonateStrategy:
    action = DisposalAction.DONATE

    def operations(
        self, candidate: DisposalCandidate, config: VacuumConfig
    ) -> list[LedgerOperation]:
        consolidated = candidate.consolidated
        if consolidated.handle is None:
            return []
        return [
            DepositOperation(
                asset_id=candidate.asset_id,
                vault_id=config.vault_id,
                handle=consolidated.handle,
                amount=consolidated.total_quantity,
                claimed_usd_scaled=scale_usd(candidate.balance.usd_value),
            )
        ]

    def estimated_output(self, candidate: DisposalCandidate) -> int:
        return 0
