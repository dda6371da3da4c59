"""In-memory ledger that executes batch plans without network calls.

Used for dry runs and as the ledger in tests. It keeps fund-units per owner
and asset, constant-rate swap pools and, optionally, a vault engine. A
submitted plan is applied to a copy of the state and committed only if every
operation succeeds, so a rejected batch changes nothing.
"""

from __future__ import annotations

import copy
import hashlib
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal

import structlog

from dust_vacuum.config import DEFAULT_CONFIG, VacuumConfig
from dust_vacuum.constants import SHARE_SCALE
from dust_vacuum.errors import (
    LedgerExecutionFailure,
    NetworkFailure,
    Unauthorized,
    UnknownObject,
    VacuumError,
)
from dust_vacuum.models import (
    AssetMetadata,
    AssetTotal,
    AuditLogOperation,
    BalanceChange,
    BalancePage,
    BatchPlan,
    DepositOperation,
    DepositReceipt,
    FundUnit,
    InputSource,
    MergeOperation,
    Membership,
    Proposal,
    SubmissionReceipt,
    SwapOperation,
    TransferOperation,
    VaultAccount,
    VaultCall,
)
from dust_vacuum.models.types import normalize_address, normalize_asset_id
from dust_vacuum.pool.engine import PoolAccountingEngine, sequential_ids
from dust_vacuum.safe_int import SafeIntError

logger = structlog.get_logger()


class SimulationError(LedgerExecutionFailure):
    """An operation aborted during simulated execution."""

    pass


@dataclass
class SimulatedPool:
    """Constant-rate pool: one unit of asset_a buys ``rate`` units of asset_b."""

    pool_id: str
    asset_a: str
    asset_b: str
    rate: Decimal

    def quote(self, amount: int, a_to_b: bool) -> int:
        value = Decimal(amount) * self.rate if a_to_b else Decimal(amount) / self.rate
        return int(value.to_integral_value(rounding=ROUND_FLOOR))


@dataclass
class AuditRecord:
    sender: str
    asset_id: str
    input_amount: int
    estimated_output: int


@dataclass
class _State:
    # owner -> asset_id -> object_id -> balance (insertion ordered)
    coins: dict[str, dict[str, dict[str, int]]] = field(default_factory=dict)
    engine: PoolAccountingEngine | None = None
    audit_log: list[AuditRecord] = field(default_factory=list)


class InMemoryLedger:
    """Deterministic AssetLedgerGateway implementation.

    Args:
        config: Runtime configuration; the reference asset receives vault payouts
        page_size: Fund-units per listing page
        engine: Vault engine backing the deposit and vault_call operations
        clock: Milliseconds since epoch; injectable for vote windows
    """

    def __init__(
        self,
        config: VacuumConfig | None = None,
        page_size: int = 50,
        engine: PoolAccountingEngine | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self.page_size = page_size
        self.clock = clock or (lambda: int(time.time() * 1000))
        self._new_id = sequential_ids(0x100000)
        self._state = _State(engine=engine)
        self.pools: dict[str, SimulatedPool] = {}
        self.metadata: dict[str, AssetMetadata] = {}
        self.transactions: dict[str, SubmissionReceipt] = {}

        # Failure injection
        self.offline = False
        self.failing_assets: set[str] = set()
        self.reject_audit_log = False

        # Names of gateway methods called, in order
        self.requests: list[str] = []

    # -- setup -----------------------------------------------------------------

    @property
    def engine(self) -> PoolAccountingEngine | None:
        return self._state.engine

    @property
    def audit_log(self) -> list[AuditRecord]:
        return self._state.audit_log

    def mint(self, owner: str, asset_id: str, *amounts: int) -> list[str]:
        """Create one fund-unit per amount and return their ids."""
        owner = normalize_address(owner)
        asset_id = normalize_asset_id(asset_id)
        ids = []
        for amount in amounts:
            object_id = self._new_id()
            self._state.coins.setdefault(owner, {}).setdefault(asset_id, {})[object_id] = amount
            ids.append(object_id)
        return ids

    def add_pool(self, asset_a: str, asset_b: str, rate: Decimal | str | int) -> str:
        pool = SimulatedPool(
            pool_id=self._new_id(),
            asset_a=normalize_asset_id(asset_a),
            asset_b=normalize_asset_id(asset_b),
            rate=Decimal(rate),
        )
        self.pools[pool.pool_id] = pool
        return pool.pool_id

    def set_metadata(self, asset_id: str, metadata: AssetMetadata) -> None:
        self.metadata[normalize_asset_id(asset_id)] = metadata

    def balance(self, owner: str, asset_id: str) -> int:
        units = self._units(self._state, normalize_address(owner), normalize_asset_id(asset_id))
        return sum(units.values())

    def fund_units(self, owner: str, asset_id: str) -> list[FundUnit]:
        units = self._units(self._state, normalize_address(owner), normalize_asset_id(asset_id))
        return [FundUnit(object_id=oid, balance=bal) for oid, bal in units.items()]

    @staticmethod
    def _units(state: _State, owner: str, asset_id: str) -> dict[str, int]:
        return state.coins.get(owner, {}).get(asset_id, {})

    def _request(self, name: str, asset_id: str | None = None) -> None:
        self.requests.append(name)
        if self.offline:
            raise NetworkFailure(f"{name}: ledger unreachable")
        if asset_id is not None and asset_id in self.failing_assets:
            raise NetworkFailure(f"{name}: listing failed for {asset_id}")

    # -- reads -----------------------------------------------------------------

    async def list_fund_units(
        self, owner: str, asset_id: str, cursor: str | None = None
    ) -> BalancePage:
        asset_id = normalize_asset_id(asset_id)
        self._request("list_fund_units", asset_id)
        units = list(self._units(self._state, normalize_address(owner), asset_id).items())

        start = 0
        if cursor is not None:
            ids = [oid for oid, _ in units]
            if cursor not in ids:
                raise NetworkFailure(f"Unknown cursor {cursor}")
            start = ids.index(cursor) + 1

        page = units[start : start + self.page_size]
        has_next = start + self.page_size < len(units)
        return BalancePage(
            data=[FundUnit(object_id=oid, balance=bal) for oid, bal in page],
            # Nodes echo the last id even when there is nothing after it
            next_cursor=page[-1][0] if page else cursor,
            has_next_page=has_next,
        )

    async def list_balances(self, owner: str) -> list[AssetTotal]:
        self._request("list_balances")
        totals = []
        for asset_id, units in self._state.coins.get(normalize_address(owner), {}).items():
            if units:
                totals.append(
                    AssetTotal(
                        asset_id=asset_id,
                        unit_count=len(units),
                        total_balance=sum(units.values()),
                    )
                )
        return totals

    async def get_coin_metadata(self, asset_id: str) -> AssetMetadata | None:
        self._request("get_coin_metadata")
        return self.metadata.get(normalize_asset_id(asset_id))

    def _require_engine(self) -> PoolAccountingEngine:
        if self._state.engine is None:
            raise UnknownObject("No vault deployed on this ledger")
        return self._state.engine

    async def get_vault(self, vault_id: str) -> VaultAccount:
        self._request("get_vault")
        engine = self._require_engine()
        if normalize_address(vault_id) != engine.vault.vault_id:
            raise UnknownObject(f"Vault {vault_id} does not exist")
        return engine.vault.model_copy(deep=True)

    async def list_receipts(self, owner: str) -> list[DepositReceipt]:
        self._request("list_receipts")
        return list(self._require_engine().receipts_of(owner))

    async def get_membership(self, owner: str) -> Membership | None:
        self._request("get_membership")
        membership = self._require_engine().membership_of(owner)
        return membership.model_copy(deep=True) if membership else None

    async def list_proposals(self) -> list[Proposal]:
        self._request("list_proposals")
        return [p.model_copy(deep=True) for p in self._require_engine().proposals.values()]

    # -- execution -------------------------------------------------------------

    async def submit(self, plan: BatchPlan) -> SubmissionReceipt:
        """Apply the plan atomically.

        Raises:
            NetworkFailure: Ledger offline
            StaleObjectVersion: Vault moved past ``plan.expected_vault_version``
            LedgerExecutionFailure: An operation aborted; nothing was applied
        """
        self._request("submit")
        digest = self._digest(plan)

        if plan.expected_vault_version is not None:
            self._require_engine().check_version(plan.expected_vault_version)

        working = copy.deepcopy(self._state)
        try:
            self._apply(working, plan)
        except SimulationError as e:
            e.digest = digest
            logger.warning("simulated_batch_aborted", digest=digest, error=str(e))
            raise
        except (VacuumError, SafeIntError) as e:
            logger.warning("simulated_batch_aborted", digest=digest, error=str(e))
            raise SimulationError(str(e), digest=digest) from e

        changes = self._diff(self._state, working)
        self._state = working
        self.transactions[digest] = SubmissionReceipt(
            digest=digest, success=True, balance_changes=changes, final=True
        )
        logger.info("simulated_batch_applied", digest=digest, operations=len(plan.operations))
        return SubmissionReceipt(digest=digest, success=True, balance_changes=changes)

    async def wait_for_finality(self, digest: str) -> SubmissionReceipt:
        self._request("wait_for_finality")
        receipt = self.transactions.get(digest)
        if receipt is None:
            raise NetworkFailure(f"Unknown transaction {digest}")
        return receipt

    def _digest(self, plan: BatchPlan) -> str:
        seed = f"{len(self.transactions)}:{plan.model_dump_json()}"
        return hashlib.sha256(seed.encode()).hexdigest()

    def _apply(self, state: _State, plan: BatchPlan) -> None:
        sender = plan.sender
        # asset being vacuumed -> (asset held, amount) between swap steps
        in_flight: dict[str, tuple[str, int]] = {}
        operations = plan.operations

        for index, op in enumerate(operations):
            if isinstance(op, MergeOperation):
                self._merge(state, sender, op)
            elif isinstance(op, SwapOperation):
                out_asset, amount_out = self._swap(state, sender, op, in_flight)
                following = operations[index + 1] if index + 1 < len(operations) else None
                continues = (
                    isinstance(following, SwapOperation)
                    and following.source == InputSource.PREVIOUS
                    and following.asset_id == op.asset_id
                )
                if continues:
                    in_flight[op.asset_id] = (out_asset, amount_out)
                else:
                    in_flight.pop(op.asset_id, None)
                    self._credit(state, sender, out_asset, amount_out)
            elif isinstance(op, TransferOperation):
                units = self._owned_unit(state, sender, op.asset_id, op.handle)
                amount = units.pop(op.handle)
                self._credit(state, op.recipient, op.asset_id, amount, object_id=op.handle)
            elif isinstance(op, DepositOperation):
                self._deposit(state, sender, op)
            elif isinstance(op, AuditLogOperation):
                if self.reject_audit_log:
                    raise SimulationError(f"audit log rejected for {op.asset_id}")
                state.audit_log.append(
                    AuditRecord(sender, op.asset_id, op.input_amount, op.estimated_output)
                )
            elif isinstance(op, VaultCall):
                self._vault_call(state, sender, op)
            else:
                raise SimulationError(f"Unsupported operation {op.kind!r}")

    def _owned_unit(
        self, state: _State, owner: str, asset_id: str, object_id: str
    ) -> dict[str, int]:
        units = self._units(state, owner, asset_id)
        if object_id not in units:
            raise SimulationError(f"{object_id} is not a {asset_id} unit owned by {owner}")
        return units

    def _credit(
        self,
        state: _State,
        owner: str,
        asset_id: str,
        amount: int,
        object_id: str | None = None,
    ) -> None:
        if amount <= 0 and object_id is None:
            return
        units = state.coins.setdefault(owner, {}).setdefault(asset_id, {})
        units[object_id or self._new_id()] = amount

    def _debit(self, units: dict[str, int], object_id: str, amount: int) -> None:
        """Split ``amount`` off a unit; an emptied unit is destroyed."""
        if amount > units[object_id]:
            raise SimulationError(
                f"Insufficient balance in {object_id}: {units[object_id]} < {amount}"
            )
        units[object_id] -= amount
        if units[object_id] == 0:
            del units[object_id]

    def _withdraw(self, state: _State, owner: str, asset_id: str, amount: int) -> None:
        """Take ``amount`` from the owner's units of an asset, oldest first."""
        units = self._units(state, owner, asset_id)
        held = sum(units.values())
        if amount > held:
            raise SimulationError(f"{owner} holds {held} {asset_id}, needs {amount}")
        for object_id in list(units):
            if amount == 0:
                break
            taken = min(amount, units[object_id])
            self._debit(units, object_id, taken)
            amount -= taken

    def _merge(self, state: _State, sender: str, op: MergeOperation) -> None:
        units = self._owned_unit(state, sender, op.asset_id, op.primary)
        for source in op.sources:
            if source == op.primary or source not in units:
                raise SimulationError(f"Cannot merge {source} into {op.primary}")
            units[op.primary] += units.pop(source)

    def _swap(
        self,
        state: _State,
        sender: str,
        op: SwapOperation,
        in_flight: dict[str, tuple[str, int]],
    ) -> tuple[str, int]:
        pool = self.pools.get(op.pool_id)
        if pool is None:
            raise SimulationError(f"Pool {op.pool_id} does not exist")
        if (pool.asset_a, pool.asset_b) != (op.asset_a, op.asset_b):
            raise SimulationError(f"Pool {op.pool_id} does not trade {op.asset_a}/{op.asset_b}")

        if op.source == InputSource.PREVIOUS:
            if op.asset_id not in in_flight:
                raise SimulationError(f"Step {op.step_index} of {op.asset_id} has no input")
            held, amount = in_flight.pop(op.asset_id)
            if held != op.input_asset:
                raise SimulationError(f"Step {op.step_index} expects {op.input_asset}, got {held}")
        else:
            if op.handle is None or op.amount_in is None:
                raise SimulationError(f"Step {op.step_index} of {op.asset_id} has no input amount")
            units = self._owned_unit(state, sender, op.input_asset, op.handle)
            amount = op.amount_in
            self._debit(units, op.handle, amount)

        amount_out = pool.quote(amount, op.a_to_b)
        if op.min_amount_out is not None and amount_out < op.min_amount_out:
            raise SimulationError(
                f"Slippage exceeded for {op.asset_id}: {amount_out} < {op.min_amount_out}"
            )
        return op.output_asset, amount_out

    def _deposit(self, state: _State, sender: str, op: DepositOperation) -> None:
        engine = state.engine
        if engine is None or op.vault_id != engine.vault.vault_id:
            raise SimulationError(f"Vault {op.vault_id} does not exist")
        units = self._owned_unit(state, sender, op.asset_id, op.handle)
        self._debit(units, op.handle, op.amount)
        claimed = Decimal(op.claimed_usd_scaled) / SHARE_SCALE
        engine.deposit(sender, op.asset_id, op.amount, claimed)

    def _vault_call(self, state: _State, sender: str, op: VaultCall) -> None:
        engine = state.engine
        if engine is None or op.vault_id != engine.vault.vault_id:
            raise SimulationError(f"Vault {op.vault_id} does not exist")
        args = op.arguments
        now = self.clock()

        admin_calls = {
            "open_vault": lambda cap: engine.open_vault(cap),
            "close_vault": lambda cap: engine.close_vault(cap),
            "set_target_usd_value": lambda cap: engine.set_target_usd_value(
                cap, int(args["value"])
            ),
            "new_round": lambda cap: engine.new_round(cap, int(args.get("proceeds", 0))),
            "create_token_vault": lambda cap: engine.create_token_vault(cap, args["asset_id"]),
            "create_proposal": lambda cap: engine.create_proposal(
                cap, str(args["title"]), int(args["start_ms"]), int(args["end_ms"])
            ),
        }

        if op.function in admin_calls:
            # The capability is an owned object: only its holder can pass it
            if op.admin_cap is None or sender != engine.vault.admin:
                raise Unauthorized(f"{sender} does not hold the admin capability")
            admin_calls[op.function](op.admin_cap)
            if op.function == "new_round":
                # Liquidation proceeds are paid in by the admin and held by the vault
                proceeds = int(args.get("proceeds", 0))
                self._withdraw(state, sender, self.config.reference_asset, proceeds)
                self._credit(state, engine.vault.vault_id, self.config.reference_asset, proceeds)
        elif op.function == "claim_rewards":
            payout = engine.claim(args["receipt_id"], sender, now)
            self._withdraw(state, engine.vault.vault_id, self.config.reference_asset, payout)
            self._credit(state, sender, self.config.reference_asset, payout)
        elif op.function == "stake_rewards":
            engine.stake(args["receipt_id"], sender, now)
        elif op.function == "create_membership":
            engine.create_membership(sender, now)
        elif op.function == "vote":
            engine.vote(int(args["proposal_id"]), sender, bool(args["support"]), now)
        else:
            raise SimulationError(f"Unknown vault function {op.function!r}")

    @staticmethod
    def _diff(before: _State, after: _State) -> list[BalanceChange]:
        keys = set()
        for state in (before, after):
            for owner, assets in state.coins.items():
                keys.update((owner, asset_id) for asset_id in assets)

        changes = []
        for owner, asset_id in sorted(keys):
            delta = sum(InMemoryLedger._units(after, owner, asset_id).values()) - sum(
                InMemoryLedger._units(before, owner, asset_id).values()
            )
            if delta:
                changes.append(BalanceChange(owner=owner, asset_id=asset_id, amount=delta))
        return changes


__all__ = ["AuditRecord", "InMemoryLedger", "SimulatedPool", "SimulationError"]
