"""Claimed-valuation bounds for deposits and donations.

The USD valuation attached to a deposit is estimated client-side from market
prices and drives share minting directly; the ledger does not verify it. The
guard bounds it before anything is sent:
- every single valuation must be at least ``min_dust_value_usd``
- the aggregate of one run must not exceed ``max_dust_value_usd``

The check is pure and synchronous so it always runs before any network call.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from enum import Enum

import structlog

from dust_vacuum.config import DEFAULT_CONFIG, VacuumConfig
from dust_vacuum.constants import SHARE_SCALE
from dust_vacuum.errors import ValuationOutOfBounds

logger = structlog.get_logger()


class RejectReason(Enum):
    """Why a set of valuations was rejected."""

    BELOW_MINIMUM = "below_minimum"
    ABOVE_MAXIMUM = "above_maximum"
    EMPTY = "empty"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a valuation check.

    Attributes:
        reason: None when the valuations are acceptable
        asset_id: Offending asset for per-asset violations
        value: Offending value (single valuation or aggregate)
        bound: The bound that was violated
    """

    reason: RejectReason | None = None
    asset_id: str | None = None
    value: Decimal | None = None
    bound: Decimal | None = None

    @property
    def is_valid(self) -> bool:
        return self.reason is None

    @classmethod
    def ok(cls) -> ValidationResult:
        return cls()

    def to_error(self) -> ValuationOutOfBounds:
        """Convert a rejection into the exception raised to callers."""
        if self.reason is None:
            raise ValueError("Cannot convert a valid result to an error")
        return ValuationOutOfBounds(
            value=self.value if self.value is not None else Decimal(0),
            bound=self.bound if self.bound is not None else Decimal(0),
            kind=self.reason.value,
            asset_id=self.asset_id,
        )


def scale_usd(value: Decimal) -> int:
    """USD value scaled to share units: floor(value * 1e6)."""
    return int((Decimal(value) * SHARE_SCALE).to_integral_value(rounding=ROUND_FLOOR))


class PriceValidationGuard:
    """Rejects claimed valuations outside the configured bounds."""

    def __init__(self, config: VacuumConfig | None = None) -> None:
        cfg = config or DEFAULT_CONFIG
        self.min_value = cfg.min_dust_value_usd
        self.max_value = cfg.max_dust_value_usd

    def validate(
        self, valuations: Mapping[str, Decimal] | Iterable[Decimal]
    ) -> ValidationResult:
        """Check one run's valuations.

        Args:
            valuations: Either asset_id -> USD value, or bare USD values

        Returns:
            ValidationResult; never raises
        """
        if isinstance(valuations, Mapping):
            items = [(str(k), Decimal(v)) for k, v in valuations.items()]
        else:
            items = [(None, Decimal(v)) for v in valuations]

        if not items:
            return ValidationResult(reason=RejectReason.EMPTY)

        for asset_id, value in items:
            if value < self.min_value:
                return ValidationResult(
                    reason=RejectReason.BELOW_MINIMUM,
                    asset_id=asset_id,
                    value=value,
                    bound=self.min_value,
                )

        total = sum((v for _, v in items), Decimal(0))
        if total > self.max_value:
            return ValidationResult(
                reason=RejectReason.ABOVE_MAXIMUM,
                value=total,
                bound=self.max_value,
            )

        return ValidationResult.ok()

    def check(self, valuations: Mapping[str, Decimal] | Iterable[Decimal]) -> None:
        """Validate and raise on rejection.

        Raises:
            ValuationOutOfBounds: With the offending value and the violated bound
        """
        result = self.validate(valuations)
        if not result.is_valid:
            logger.warning(
                "valuation_rejected",
                reason=result.reason.value if result.reason else None,
                asset_id=result.asset_id,
                value=str(result.value),
                bound=str(result.bound),
            )
            raise result.to_error()


DEFAULT_GUARD = PriceValidationGuard()
