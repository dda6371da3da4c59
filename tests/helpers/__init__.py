"""Test helpers module for shared test utilities.

This module consolidates common test utilities to reduce duplication:
- constants: Account addresses and asset types
- factories: Balance, route, quote and simulated-ledger factories
"""

from tests.helpers.constants import (
    ADMIN,
    CETUS,
    DEEP,
    MEME,
    OTHER,
    OWNER,
    SCAM,
    SUI,
    TOKEN_DECIMALS,
    USDC,
)
from tests.helpers.factories import (
    NOW_MS,
    FakeAggregator,
    make_balance,
    make_config,
    make_quote,
    make_route,
    make_vault_ledger,
)

__all__ = [
    # Constants
    "OWNER",
    "OTHER",
    "ADMIN",
    "SUI",
    "USDC",
    "CETUS",
    "DEEP",
    "SCAM",
    "MEME",
    "TOKEN_DECIMALS",
    # Factories
    "NOW_MS",
    "FakeAggregator",
    "make_balance",
    "make_config",
    "make_quote",
    "make_route",
    "make_vault_ledger",
]
