"""Ledger access: gateway protocol, JSON-RPC client and in-memory simulator."""

from dust_vacuum.ledger.gateway import AssetLedgerGateway, TransactionSigner
from dust_vacuum.ledger.jsonrpc import JsonRpcLedgerGateway
from dust_vacuum.ledger.simulator import InMemoryLedger, SimulatedPool, SimulationError

__all__ = [
    "AssetLedgerGateway",
    "InMemoryLedger",
    "JsonRpcLedgerGateway",
    "SimulatedPool",
    "SimulationError",
    "TransactionSigner",
]
