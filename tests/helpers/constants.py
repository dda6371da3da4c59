"""Shared test constants (addresses and asset types)."""

from dust_vacuum.constants import SUI_TYPE
from dust_vacuum.models.types import normalize_address, normalize_asset_id

# Accounts
OWNER = normalize_address("0xa11ce")
OTHER = normalize_address("0xb0b")
ADMIN = normalize_address("0xad")

# Asset types, canonical form
SUI = SUI_TYPE
USDC = normalize_asset_id(
    "0xdba34672e30cb065b1f93e3ab55318768fd6fef66c15942c9f7cb846e2f900e7::usdc::USDC"
)
CETUS = normalize_asset_id(
    "0x06864a6f921804860930db6ddbe2e16acdf8504495ea7481637a1c8b9a8fe54b::cetus::CETUS"
)
DEEP = normalize_asset_id(
    "0xdeeb7a4662eec9f2f3def03fb937a663dddaa2e215b8078a284d026b7946c270::deep::DEEP"
)
SCAM = normalize_asset_id("0xbad::scam::SCAM")
MEME = normalize_asset_id("0xface::meme::MEME")

TOKEN_DECIMALS = {
    SUI: 9,
    USDC: 6,
    CETUS: 9,
    DEEP: 6,
    SCAM: 9,
    MEME: 6,
}
