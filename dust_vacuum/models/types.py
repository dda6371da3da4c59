"""Shared type definitions for ledger and vault models.

The ledger represents the same address in several textual forms (short
``0x2``, full 64-digit, upper/lower case, with or without ``0x``). Every
identifier that crosses a module boundary is normalized here first.
"""

import re
from typing import Annotated, Any

from pydantic import BeforeValidator, Field

# Maximum u64 value (Move amounts and shares)
U64_MAX = 2**64 - 1

# Number of hex digits in a canonical ledger address
ADDRESS_HEX_LENGTH = 64

# Address component of an asset type: at the start of the string or after a
# generic delimiter, followed by "::". Module names (preceded by ':') never match.
_TYPE_ADDRESS_RE = re.compile(r"(?<![0-9a-zA-Z_:])(?:0[xX])?([0-9a-fA-F]{1,64})(?=::)")


def validate_u64(value: Any) -> int:
    """Validate that a value is a u64 given as int or decimal string.

    Raises:
        ValueError: If value is not a non-negative integer within u64 range
    """
    if isinstance(value, bool):
        raise ValueError("U64 cannot be a boolean")
    if isinstance(value, str):
        try:
            value = int(value)
        except ValueError as err:
            raise ValueError(f"U64 must be a decimal integer string: '{value}'") from err
    if not isinstance(value, int):
        raise ValueError(f"U64 must be string or int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"U64 cannot be negative: {value}")
    if value > U64_MAX:
        raise ValueError(f"U64 overflow: {value} > 2^64-1")
    return value


def normalize_address(address: str, *, validate: bool = False) -> str:
    """Normalize a ledger address or object id to canonical form.

    Canonical form is lowercase, ``0x``-prefixed and left-padded to 64 hex
    digits, so ``0x2`` and ``0x00..02`` compare equal.

    Raises:
        ValueError: If validate=True and address is not valid hex of at most 64 digits
    """
    addr = address.strip().lower()
    if addr.startswith("0x"):
        addr = addr[2:]

    if validate and not is_valid_address("0x" + addr):
        raise ValueError(f"Invalid address: {address}")

    return "0x" + addr.rjust(ADDRESS_HEX_LENGTH, "0")


def is_valid_address(address: str) -> bool:
    """Check if a string is a valid (possibly short) ledger address."""
    if not isinstance(address, str) or not address.startswith("0x"):
        return False
    digits = address[2:]
    if not digits or len(digits) > ADDRESS_HEX_LENGTH:
        return False
    try:
        int(digits, 16)
        return True
    except ValueError:
        return False


def normalize_asset_id(asset_id: str) -> str:
    """Normalize an asset type such as ``0x2::sui::SUI``.

    Every address inside the type is padded, including generic parameters
    (``0x..::lp::LP<0x2::sui::SUI, 0xabc::x::X>``). Module and struct names are
    kept as-is since they are case-sensitive.

    Raises:
        ValueError: If the value does not look like ``address::module::Name``
    """
    if not isinstance(asset_id, str) or asset_id.count("::") < 2:
        raise ValueError(f"Invalid asset type: {asset_id!r}")

    def _pad(match: re.Match[str]) -> str:
        return "0x" + match.group(1).lower().rjust(ADDRESS_HEX_LENGTH, "0")

    return _TYPE_ADDRESS_RE.sub(_pad, asset_id.strip())


def same_asset(a: str, b: str) -> bool:
    """Compare two asset types after normalization."""
    return normalize_asset_id(a) == normalize_asset_id(b)


def symbol_from_asset_id(asset_id: str) -> str:
    """Extract the struct name from an asset type (``0x..::cetus::CETUS`` -> ``CETUS``)."""
    parts = asset_id.split("<", 1)[0].split("::")
    if len(parts) >= 3:
        return parts[-1]
    return "UNKNOWN"


def _as_str(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError(f"Expected string, got {type(value).__name__}")
    return value


# Asset type (coin type), canonicalized on validation
AssetId = Annotated[
    str,
    BeforeValidator(lambda v: normalize_asset_id(_as_str(v))),
    Field(description="Canonical asset type (address::module::Name)"),
]

# Object id or account address, canonicalized on validation
ObjectId = Annotated[
    str,
    BeforeValidator(lambda v: normalize_address(_as_str(v), validate=True)),
    Field(description="Canonical 32-byte object id or address"),
]

# u64 accepted as int or decimal string
U64 = Annotated[
    int,
    BeforeValidator(validate_u64),
    Field(description="Unsigned 64-bit integer"),
]
