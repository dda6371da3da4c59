"""Community vault: accounting engine and user-side client."""

from dust_vacuum.pool.client import PoolClient, PoolSnapshot
from dust_vacuum.pool.engine import PoolAccountingEngine, RoundRecord, sequential_ids

__all__ = [
    "PoolAccountingEngine",
    "PoolClient",
    "PoolSnapshot",
    "RoundRecord",
    "sequential_ids",
]
