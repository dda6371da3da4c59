"""Pydantic models for the dust vault (pooled-deposit mode).

These are read projections of ledger objects. ``from_move_fields`` parses
the field dictionaries returned by ``sui_getObject``/``suix_getOwnedObjects``
with ``showContent``; nested balances arrive as ``{"fields": {"value": ...}}``.
"""

from decimal import Decimal
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field

from dust_vacuum.models.types import U64, ObjectId


class RewardPreference(IntEnum):
    """How a depositor wants finalized proceeds handled."""

    CLAIM = 0
    STAKE = 1


def _move_int(value: Any, default: int = 0) -> int:
    """Read a Move integer field, unwrapping ``Balance`` structs."""
    if isinstance(value, dict):
        value = value.get("fields", {}).get("value", default)
    if value is None or value == "":
        return default
    return int(value)


class VaultAccount(BaseModel):
    """Read projection of the shared vault object."""

    vault_id: ObjectId = Field(alias="vaultId")
    admin: ObjectId
    round: int = Field(default=1, ge=1)
    is_open: bool = Field(default=False, alias="isOpen")
    total_shares: U64 = Field(default=0, alias="totalShares")
    total_lifetime_shares: U64 = Field(default=0, alias="totalLifetimeShares")
    target_usd_value: U64 = Field(default=0, alias="targetUsdValue")
    current_usd_value: U64 = Field(default=0, alias="currentUsdValue")
    fees_collected_bps: int = Field(default=0, alias="feesCollectedBps", ge=0, le=10_000)
    rewards: U64 = Field(default=0, alias="suiRewards")
    staked: U64 = Field(default=0, alias="stakedSui")
    depositors_count: int = Field(default=0, alias="depositorsCount")
    total_fees_collected: U64 = Field(default=0, alias="totalFeesCollected")
    version: int = 0

    model_config = {"populate_by_name": True}

    @property
    def current_usd(self) -> Decimal:
        """Current-round deposits in USD."""
        return Decimal(self.current_usd_value).scaleb(-6)

    @classmethod
    def from_move_fields(
        cls, vault_id: str, fields: dict[str, Any], version: int | str = 0
    ) -> "VaultAccount":
        return cls(
            vault_id=vault_id,
            admin=fields["admin"],
            round=_move_int(fields.get("round"), 1),
            is_open=bool(fields.get("is_open", False)),
            total_shares=_move_int(fields.get("total_shares")),
            total_lifetime_shares=_move_int(fields.get("total_lifetime_shares")),
            target_usd_value=_move_int(fields.get("target_usd_value")),
            current_usd_value=_move_int(fields.get("current_usd_value")),
            fees_collected_bps=_move_int(fields.get("fee_bps")),
            rewards=_move_int(fields.get("sui_rewards")),
            staked=_move_int(fields.get("staked_sui")),
            depositors_count=_move_int(fields.get("depositors_count")),
            total_fees_collected=_move_int(fields.get("total_fees_collected")),
            version=int(version),
        )


class DepositReceipt(BaseModel):
    """Owned receipt for shares minted in one round. Its round never changes."""

    object_id: ObjectId = Field(alias="objectId")
    depositor: ObjectId
    shares: U64
    round: int = Field(ge=1)
    reward_preference: RewardPreference = Field(
        default=RewardPreference.CLAIM, alias="rewardPreference"
    )

    model_config = {"populate_by_name": True, "frozen": True}

    @property
    def shares_usd(self) -> Decimal:
        return Decimal(self.shares).scaleb(-6)

    def is_claimable(self, vault_round: int) -> bool:
        """A receipt is claimable iff its round has been finalized."""
        return self.round < vault_round

    @classmethod
    def from_move_fields(cls, object_id: str, fields: dict[str, Any]) -> "DepositReceipt":
        return cls(
            object_id=object_id,
            depositor=fields["depositor"],
            shares=_move_int(fields.get("shares")),
            round=_move_int(fields.get("round"), 1),
            reward_preference=RewardPreference(_move_int(fields.get("reward_preference"))),
        )


class Membership(BaseModel):
    """Per-user cumulative record; lifetime shares are the voting weight."""

    object_id: ObjectId = Field(alias="objectId")
    member: ObjectId
    lifetime_shares: U64 = Field(default=0, alias="lifetimeShares")
    total_earned: U64 = Field(default=0, alias="totalSuiEarned")
    staked_amount: U64 = Field(default=0, alias="stakedAmount")
    reward_preference: RewardPreference = Field(
        default=RewardPreference.CLAIM, alias="rewardPreference"
    )
    joined_at_ms: int = Field(default=0, alias="joinedAtMs")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_move_fields(cls, object_id: str, fields: dict[str, Any]) -> "Membership":
        return cls(
            object_id=object_id,
            member=fields["member"],
            lifetime_shares=_move_int(fields.get("lifetime_shares")),
            total_earned=_move_int(fields.get("total_sui_earned")),
            staked_amount=_move_int(fields.get("staked_amount")),
            reward_preference=RewardPreference(_move_int(fields.get("reward_preference"))),
            joined_at_ms=_move_int(fields.get("joined_at_ms")),
        )


class Proposal(BaseModel):
    """Governance proposal with a half-open voting window [start, end)."""

    object_id: ObjectId = Field(alias="objectId")
    proposal_id: int = Field(alias="proposalId")
    title: str
    creator: ObjectId
    votes_for: U64 = Field(default=0, alias="votesFor")
    votes_against: U64 = Field(default=0, alias="votesAgainst")
    start_time_ms: int = Field(alias="startTimeMs")
    end_time_ms: int = Field(alias="endTimeMs")
    voters: set[str] = Field(default_factory=set)

    model_config = {"populate_by_name": True}

    def is_active(self, now_ms: int) -> bool:
        return self.start_time_ms <= now_ms < self.end_time_ms

    def has_voted(self, member: str) -> bool:
        return member in self.voters

    @classmethod
    def from_move_fields(cls, object_id: str, fields: dict[str, Any]) -> "Proposal":
        return cls(
            object_id=object_id,
            proposal_id=_move_int(fields.get("proposal_id")),
            title=str(fields.get("title", "")),
            creator=fields["creator"],
            votes_for=_move_int(fields.get("votes_for")),
            votes_against=_move_int(fields.get("votes_against")),
            start_time_ms=_move_int(fields.get("start_time_ms")),
            end_time_ms=_move_int(fields.get("end_time_ms")),
        )


class AdminCap(BaseModel):
    """Capability object whose possession authorizes admin calls."""

    object_id: ObjectId = Field(alias="objectId")
    vault_id: ObjectId = Field(alias="vaultId")

    model_config = {"populate_by_name": True, "frozen": True}
