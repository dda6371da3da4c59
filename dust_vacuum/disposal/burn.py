"""Burn: transfer the whole balance to the unspendable sink address."""

from __future__ import annotations

from dust_vacuum.config import VacuumConfig
from dust_vacuum.disposal.base import DisposalCandidate
from dust_vacuum.models import DisposalAction, LedgerOperation, TransferOperation


class BurnStrategy:
    action = DisposalAction.BURN

    def operations(
        self, candidate: DisposalCandidate, config: VacuumConfig
    ) -> list[LedgerOperation]:
        handle = candidate.consolidated.handle
        if handle is None:
            return []
        return [
            TransferOperation(
                asset_id=candidate.asset_id,
                handle=handle,
                recipient=config.burn_address,
            )
        ]

    def estimated_output(self, candidate: DisposalCandidate) -> int:
        return 0
