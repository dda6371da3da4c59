"""Checked u64 arithmetic for vault accounting.

Shares, rewards and payouts are u64 quantities on the ledger, where an
underflowing subtraction or an overflowing sum aborts the transaction. The
accounting engine mirrors that: every intermediate goes through ``SafeInt``
and the final value is narrowed with ``to_u64()``, so a bad sequence of calls
raises here instead of drifting the in-memory state.

    payout = (S(proceeds) * shares // round_shares).to_u64()

Intermediates may exceed u64 (the product above usually does); only the
narrowed result is bounded.
"""

from __future__ import annotations

from functools import total_ordering

U64_MAX = 2**64 - 1
BPS_DENOMINATOR = 10_000


class SafeIntError(ArithmeticError):
    """Raised by checked vault arithmetic."""


class DivisionByZero(SafeIntError):
    pass


class Underflow(SafeIntError):
    """A subtraction went below zero."""


class U64Overflow(SafeIntError):
    """A narrowed value does not fit in a u64."""


def _operand(other: SafeInt | int) -> int:
    if isinstance(other, SafeInt):
        return other.value
    if isinstance(other, int) and not isinstance(other, bool):
        return other
    raise TypeError(f"cannot combine SafeInt with {type(other).__name__}")


@total_ordering
class SafeInt:
    """An integer whose arithmetic refuses to go negative or divide by zero."""

    __slots__ = ("value",)

    def __init__(self, value: SafeInt | int) -> None:
        try:
            self.value = _operand(value)
        except TypeError:
            raise TypeError(f"SafeInt requires int, got {type(value).__name__}") from None

    def __repr__(self) -> str:
        return f"SafeInt({self.value})"

    def __hash__(self) -> int:
        return hash(self.value)

    def __int__(self) -> int:
        return self.value

    def __bool__(self) -> bool:
        return bool(self.value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, (SafeInt, int)):
            return NotImplemented
        return self.value == _operand(other)

    def __lt__(self, other: SafeInt | int) -> bool:
        return self.value < _operand(other)

    def __add__(self, other: SafeInt | int) -> SafeInt:
        return SafeInt(self.value + _operand(other))

    def __mul__(self, other: SafeInt | int) -> SafeInt:
        return SafeInt(self.value * _operand(other))

    def __sub__(self, other: SafeInt | int) -> SafeInt:
        rhs = _operand(other)
        if rhs > self.value:
            raise Underflow(f"Underflow: {self.value} - {rhs} = {self.value - rhs}")
        return SafeInt(self.value - rhs)

    def __floordiv__(self, other: SafeInt | int) -> SafeInt:
        rhs = _operand(other)
        if not rhs:
            raise DivisionByZero(f"Division by zero: {self.value} // 0")
        return SafeInt(self.value // rhs)

    def to_u64(self) -> int:
        """Narrow to a plain int in ``[0, U64_MAX]`` or raise ``U64Overflow``."""
        if not 0 <= self.value <= U64_MAX:
            raise U64Overflow(f"{self.value} is outside the u64 range")
        return self.value


S = SafeInt


def basis_points_of(amount: int, bps: int) -> int:
    """Return floor(amount * bps / 10_000) as a u64."""
    return (S(amount) * bps // BPS_DENOMINATOR).to_u64()


__all__ = [
    "BPS_DENOMINATOR",
    "U64_MAX",
    "SafeInt",
    "SafeIntError",
    "DivisionByZero",
    "Underflow",
    "U64Overflow",
    "S",
    "basis_points_of",
]
