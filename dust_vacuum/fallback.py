"""Fallback classification for assets without a swap route.

Route-less assets can only be burned or donated, and both are irreversible,
so each decision goes through a two-phase commit:

    unclassified --classify/choose--> pending_confirmation --commit--> committed

``preview()`` captures the exact pending set with a fingerprint.
``commit(preview)`` succeeds only if nothing changed since that preview was
taken; changing any choice afterwards invalidates it.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from decimal import Decimal
from enum import Enum

import structlog
from pydantic import BaseModel, Field

from dust_vacuum.errors import ConfirmationRequired
from dust_vacuum.models import AssetBalance, DisposalAction
from dust_vacuum.models.types import U64, AssetId, normalize_asset_id

logger = structlog.get_logger()

DEFAULT_FALLBACK_ACTION = DisposalAction.BURN


class DisposalState(str, Enum):
    UNCLASSIFIED = "unclassified"
    PENDING_CONFIRMATION = "pending_confirmation"
    COMMITTED = "committed"


class DisposalItem(BaseModel):
    """One irreversible disposal awaiting confirmation."""

    asset_id: AssetId = Field(alias="assetId")
    symbol: str
    action: DisposalAction
    quantity: U64
    usd_value: Decimal = Field(alias="valueUSD")

    model_config = {"populate_by_name": True}


class DisposalPreview(BaseModel):
    """Exact set of disposals shown to the user, bound by a fingerprint."""

    items: list[DisposalItem] = Field(default_factory=list)
    fingerprint: str

    model_config = {"populate_by_name": True}

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def asset_ids(self) -> list[str]:
        return [item.asset_id for item in self.items]

    @property
    def total_value_usd(self) -> Decimal:
        return sum((item.usd_value for item in self.items), Decimal(0))

    def with_action(self, action: DisposalAction) -> list[DisposalItem]:
        return [item for item in self.items if item.action == action]


def _fingerprint(items: list[DisposalItem]) -> str:
    canonical = [
        [item.asset_id, item.action.value, str(item.quantity), str(item.usd_value)]
        for item in sorted(items, key=lambda i: i.asset_id)
    ]
    return hashlib.sha256(json.dumps(canonical).encode()).hexdigest()


class FallbackClassifier:
    """Tracks burn/donate decisions for route-less assets within one run."""

    def __init__(self) -> None:
        self._balances: dict[str, AssetBalance] = {}
        self._quantities: dict[str, int] = {}
        self._actions: dict[str, DisposalAction] = {}
        self._states: dict[str, DisposalState] = {}

    def classify(
        self,
        assets_without_route: Iterable[AssetBalance],
        choices: Mapping[str, DisposalAction] | None = None,
        quantities: Mapping[str, int] | None = None,
    ) -> dict[str, DisposalAction]:
        """Assign a disposal action to each route-less asset.

        Args:
            assets_without_route: Balances for which no route was found
            choices: Per-asset overrides; unlisted assets default to burn
            quantities: Consolidated on-ledger totals; these, not the listed
                balances, are what the preview shows and the plan moves

        Returns:
            asset_id -> action for every classified asset

        Raises:
            ValueError: A choice asks to swap an asset that has no route
        """
        overrides = {normalize_asset_id(k): DisposalAction(v) for k, v in (choices or {}).items()}
        result = {}
        totals = {normalize_asset_id(k): int(v) for k, v in (quantities or {}).items()}
        for balance in assets_without_route:
            asset_id = balance.asset_id
            self._balances[asset_id] = balance
            self._quantities[asset_id] = totals.get(asset_id, balance.quantity)
            action = overrides.get(asset_id, DEFAULT_FALLBACK_ACTION)
            self._set(asset_id, action)
            result[asset_id] = action

        logger.info(
            "fallback_classified",
            burn=sum(1 for a in result.values() if a == DisposalAction.BURN),
            donate=sum(1 for a in result.values() if a == DisposalAction.DONATE),
        )
        return result

    def choose(self, asset_id: str, action: DisposalAction) -> None:
        """Change one asset's action. A committed decision returns to pending."""
        asset_id = normalize_asset_id(asset_id)
        if asset_id not in self._balances:
            raise KeyError(f"{asset_id} has not been classified")
        self._set(asset_id, DisposalAction(action))

    def _set(self, asset_id: str, action: DisposalAction) -> None:
        if action == DisposalAction.SWAP:
            raise ValueError(f"{asset_id} has no route and cannot be swapped")
        self._actions[asset_id] = action
        self._states[asset_id] = DisposalState.PENDING_CONFIRMATION

    def decline(self, asset_ids: Iterable[str] | None = None) -> list[str]:
        """Drop pending assets from the run. Returns the ids dropped."""
        targets = (
            [normalize_asset_id(a) for a in asset_ids] if asset_ids is not None else self.pending()
        )
        dropped = []
        for asset_id in targets:
            if self._states.get(asset_id) == DisposalState.PENDING_CONFIRMATION:
                self._states[asset_id] = DisposalState.UNCLASSIFIED
                self._actions.pop(asset_id, None)
                dropped.append(asset_id)
        return dropped

    def state(self, asset_id: str) -> DisposalState:
        return self._states.get(normalize_asset_id(asset_id), DisposalState.UNCLASSIFIED)

    def action(self, asset_id: str) -> DisposalAction:
        return self._actions[normalize_asset_id(asset_id)]

    def pending(self) -> list[str]:
        return [a for a, s in self._states.items() if s == DisposalState.PENDING_CONFIRMATION]

    def committed(self) -> dict[str, DisposalAction]:
        return {
            a: self._actions[a]
            for a, s in self._states.items()
            if s == DisposalState.COMMITTED
        }

    def _pending_items(self) -> list[DisposalItem]:
        items = []
        for asset_id in self.pending():
            balance = self._balances[asset_id]
            items.append(
                DisposalItem(
                    asset_id=asset_id,
                    symbol=balance.symbol,
                    action=self._actions[asset_id],
                    quantity=self._quantities[asset_id],
                    usd_value=balance.usd_value,
                )
            )
        return items

    def preview(self) -> DisposalPreview:
        items = self._pending_items()
        return DisposalPreview(items=items, fingerprint=_fingerprint(items))

    def commit(self, preview: DisposalPreview) -> dict[str, DisposalAction]:
        """Commit exactly the previewed disposals.

        Raises:
            ConfirmationRequired: Pending decisions changed since the preview
        """
        current = self._pending_items()
        if not current or _fingerprint(current) != preview.fingerprint:
            raise ConfirmationRequired(self.pending())
        for item in current:
            self._states[item.asset_id] = DisposalState.COMMITTED
        logger.info("disposals_committed", count=len(current))
        return self.committed()
