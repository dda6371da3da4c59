"""Encode a BatchPlan into programmable-transaction calls.

The output is a JSON-serializable list of commands that an external signer
turns into one transaction. Argument references:
- ``{"object": id}``: an on-ledger object
- ``{"pure": value, "type": t}``: a literal of Move type ``t``
- ``{"result": i}``: the output of command ``i`` in this list
"""

from __future__ import annotations

from typing import Any

from dust_vacuum.config import DEFAULT_CONFIG, VacuumConfig
from dust_vacuum.constants import VAULT_MODULE
from dust_vacuum.models import (
    AuditLogOperation,
    BatchPlan,
    DepositOperation,
    InputSource,
    MergeOperation,
    SwapOperation,
    TransferOperation,
    VaultCall,
)
from dust_vacuum.models.types import ADDRESS_HEX_LENGTH, is_valid_address


def _object(object_id: str) -> dict[str, Any]:
    return {"object": object_id}


def _pure(value: Any, type_: str) -> dict[str, Any]:
    # u64/u128 travel as strings; JSON numbers lose precision above 2^53
    if type_ in ("u64", "u128"):
        value = str(value)
    return {"pure": value, "type": type_}


def _vault_argument(value: Any) -> dict[str, Any]:
    """Encode one VaultCall argument by its Python type."""
    if isinstance(value, bool):
        return _pure(value, "bool")
    if isinstance(value, int):
        return _pure(value, "u64")
    if (
        isinstance(value, str)
        and len(value) == ADDRESS_HEX_LENGTH + 2
        and is_valid_address(value)
    ):
        return _object(value)
    return _pure(str(value), "string")


class PlanEncoder:
    """Turns plan operations into move calls for one deployment."""

    def __init__(self, config: VacuumConfig | None = None) -> None:
        self.config = config or DEFAULT_CONFIG

    def _target(self, function: str) -> str:
        return f"{self.config.package_id}::{VAULT_MODULE}::{function}"

    def encode(self, plan: BatchPlan) -> list[dict[str, Any]]:
        calls: list[dict[str, Any]] = []
        last_swap: dict[str, int] = {}

        for op in plan.operations:
            if isinstance(op, MergeOperation):
                calls.append(
                    {
                        "kind": "MergeCoins",
                        "destination": _object(op.primary),
                        "sources": [_object(s) for s in op.sources],
                    }
                )
            elif isinstance(op, SwapOperation):
                calls.append(self._encode_swap(op, last_swap))
                last_swap[op.asset_id] = len(calls) - 1
            elif isinstance(op, TransferOperation):
                calls.append(
                    {
                        "kind": "TransferObjects",
                        "objects": [_object(op.handle)],
                        "recipient": _pure(op.recipient, "address"),
                    }
                )
            elif isinstance(op, DepositOperation):
                calls.append(
                    {
                        "kind": "MoveCall",
                        "target": self._target("deposit_dust"),
                        "typeArguments": [op.asset_id],
                        "arguments": [
                            _object(op.vault_id),
                            _object(op.handle),
                            _pure(op.claimed_usd_scaled, "u64"),
                            _object(self.config.clock_id),
                        ],
                    }
                )
            elif isinstance(op, AuditLogOperation):
                calls.append(
                    {
                        "kind": "MoveCall",
                        "target": self._target("log_individual_swap"),
                        "typeArguments": [op.asset_id],
                        "arguments": [
                            _pure(op.input_amount, "u64"),
                            _pure(op.estimated_output, "u64"),
                            _object(self.config.clock_id),
                        ],
                    }
                )
            elif isinstance(op, VaultCall):
                arguments = [_object(op.vault_id)]
                if op.admin_cap is not None:
                    arguments.append(_object(op.admin_cap))
                arguments.extend(_vault_argument(v) for v in op.arguments.values())
                arguments.append(_object(self.config.clock_id))
                calls.append(
                    {
                        "kind": "MoveCall",
                        "target": self._target(op.function),
                        "typeArguments": [],
                        "arguments": arguments,
                    }
                )
            else:
                raise ValueError(f"Cannot encode operation of kind {op.kind!r}")

        return calls

    def _encode_swap(self, op: SwapOperation, last_swap: dict[str, int]) -> dict[str, Any]:
        if op.source == InputSource.PREVIOUS:
            if op.asset_id not in last_swap:
                raise ValueError(f"Swap step {op.step_index} of {op.asset_id} has no previous step")
            coin = {"result": last_swap[op.asset_id]}
        else:
            if op.handle is None:
                raise ValueError(f"Swap step {op.step_index} of {op.asset_id} has no handle")
            coin = _object(op.handle)

        function = "swap_a2b" if op.a_to_b else "swap_b2a"
        return {
            "kind": "MoveCall",
            "target": f"{self.config.swap_package_id}::{self.config.swap_module}::{function}",
            "typeArguments": [op.asset_a, op.asset_b],
            "arguments": [
                _object(self.config.swap_global_config_id),
                _object(op.pool_id),
                coin,
                _pure(op.by_amount_in, "bool"),
                # Zero on pass-through steps means "the whole input coin"
                _pure(op.amount_in or 0, "u64"),
                _pure(op.min_amount_out or 0, "u64"),
                _pure(op.sqrt_price_limit, "u128"),
                _object(self.config.clock_id),
            ],
        }


def encode_plan(plan: BatchPlan, config: VacuumConfig | None = None) -> list[dict[str, Any]]:
    """Encode a plan's operations as ordered move calls."""
    return PlanEncoder(config).encode(plan)


def encode_transaction(plan: BatchPlan, config: VacuumConfig | None = None) -> dict[str, Any]:
    """Full unsigned transaction payload handed to an external signer."""
    return {
        "sender": plan.sender,
        "gasBudget": str(plan.gas_budget),
        "calls": encode_plan(plan, config),
    }
