"""Pydantic models for dust vacuum data structures."""

from dust_vacuum.models.assets import (
    AssetBalance,
    AssetMetadata,
    AssetTotal,
    BalancePage,
    DisposalAction,
    FundUnit,
)
from dust_vacuum.models.plan import (
    AuditLogOperation,
    BatchPlan,
    DepositOperation,
    InputSource,
    LedgerOperation,
    MergeOperation,
    PlannedAsset,
    SwapOperation,
    TransferOperation,
    VaultCall,
)
from dust_vacuum.models.result import (
    AssetOutcome,
    AssetStatus,
    BalanceChange,
    SubmissionReceipt,
    VacuumResult,
)
from dust_vacuum.models.route import Route, RouteStep
from dust_vacuum.models.types import (
    U64,
    AssetId,
    ObjectId,
    normalize_address,
    normalize_asset_id,
)
from dust_vacuum.models.vault import (
    AdminCap,
    DepositReceipt,
    Membership,
    Proposal,
    RewardPreference,
    VaultAccount,
)

__all__ = [
    # Types
    "AssetId",
    "ObjectId",
    "U64",
    "normalize_address",
    "normalize_asset_id",
    # Balances
    "AssetBalance",
    "AssetMetadata",
    "AssetTotal",
    "BalancePage",
    "DisposalAction",
    "FundUnit",
    # Routes
    "Route",
    "RouteStep",
    # Plans
    "BatchPlan",
    "LedgerOperation",
    "InputSource",
    "MergeOperation",
    "SwapOperation",
    "TransferOperation",
    "DepositOperation",
    "AuditLogOperation",
    "VaultCall",
    "PlannedAsset",
    # Results
    "AssetOutcome",
    "AssetStatus",
    "BalanceChange",
    "SubmissionReceipt",
    "VacuumResult",
    # Vault
    "AdminCap",
    "DepositReceipt",
    "Membership",
    "Proposal",
    "RewardPreference",
    "VaultAccount",
]
