"""Batch plan construction and encoding."""

from dust_vacuum.batch.builder import BatchTransactionBuilder
from dust_vacuum.batch.encoding import PlanEncoder, encode_plan, encode_transaction

__all__ = [
    "BatchTransactionBuilder",
    "PlanEncoder",
    "encode_plan",
    "encode_transaction",
]
