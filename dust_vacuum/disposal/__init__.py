"""Disposal strategies: how a consolidated balance leaves the account.

- SwapStrategy: exact-input swap into the reference asset
- BurnStrategy: transfer to the burn sink
- DonateStrategy: deposit into the community vault
"""

from dust_vacuum.disposal.base import DisposalCandidate, DisposalStrategy, SwapCandidate
from dust_vacuum.disposal.burn import BurnStrategy
from dust_vacuum.disposal.donate import DonateStrategy
from dust_vacuum.disposal.swap import SwapStrategy, sqrt_price_limit
from dust_vacuum.models import DisposalAction

STRATEGIES: dict[DisposalAction, DisposalStrategy] = {
    DisposalAction.SWAP: SwapStrategy(),
    DisposalAction.BURN: BurnStrategy(),
    DisposalAction.DONATE: DonateStrategy(),
}


def strategy_for(action: DisposalAction) -> DisposalStrategy:
    return STRATEGIES[DisposalAction(action)]


__all__ = [
    "BurnStrategy",
    "DisposalCandidate",
    "DisposalStrategy",
    "DonateStrategy",
    "STRATEGIES",
    "SwapCandidate",
    "SwapStrategy",
    "sqrt_price_limit",
    "strategy_for",
]
