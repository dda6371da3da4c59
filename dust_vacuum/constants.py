"""Network and protocol constants for the dust vacuum.

Centralizes well-known object ids, asset types and protocol parameters.
"""

from decimal import Decimal

from dust_vacuum.models.types import normalize_address, normalize_asset_id

# Reference asset (the gas coin); everything is vacuumed into it
SUI_TYPE = normalize_asset_id("0x2::sui::SUI")
SUI_DECIMALS = 9

# Shared clock object passed to every time-dependent call
CLOCK_OBJECT_ID = normalize_address("0x6")

# Unspendable sink: transferring a coin here destroys it
BURN_ADDRESS = normalize_address("0x0")

# Vault accounting
SHARE_SCALE = 10**6  # shares = floor(usd * 1e6)
BPS_DENOMINATOR = 10_000
ADMIN_FEE_BPS = 200  # 2% of round proceeds

# Claimed-valuation bounds for deposits and donations
MIN_DUST_VALUE_USD = Decimal("0.001")
MAX_DUST_VALUE_USD = Decimal("100")

# Dust threshold (USD) used to flag balances, clamped to [MIN, MAX]
DEFAULT_DUST_THRESHOLD_USD = Decimal("1.0")
MIN_DUST_THRESHOLD_USD = Decimal("0.1")
MAX_DUST_THRESHOLD_USD = Decimal("10.0")

# 0.5% default slippage, as a fraction
DEFAULT_SLIPPAGE_TOLERANCE = Decimal("0.005")

# 0.1 SUI
DEFAULT_GAS_BUDGET = 100_000_000

# Concentrated-liquidity price bounds used as swap price limits
MIN_SQRT_PRICE = 4_295_048_016
MAX_SQRT_PRICE = 79_226_673_515_401_279_992_447_579_055

# Dust vault package (mainnet v2)
DUST_VACUUM_PACKAGE_ID = normalize_address(
    "0xcbcb622f6a47404be4c28d75dc47fdc0abfd2e8a730eb104495a404e5b2c56e4"
)
DUST_VAULT_ID = normalize_address(
    "0xf0c002e13c121a72b12d39d3e6d1a99c10792ee5c3d539bb1c6b28c778beb720"
)
ADMIN_CAP_ID = normalize_address(
    "0x5e270e3af10a6085119ea5f5b2e479dfcbd4a451abba02f3aa1463b81394a8a3"
)
VAULT_MODULE = "vacuum"

# Cetus CLMM (mainnet)
CETUS_GLOBAL_CONFIG_ID = normalize_address(
    "0x0408fa4e4a4c03cc0de8f23d0c2bbfe8913d178713c9a271ed4080973fe42d8f"
)
CETUS_INTEGRATE_PUBLISHED_AT = normalize_address(
    "0x2d8c2e0fc6dd25b0214b3fa747e0fd27fd54608142cd2e4f64c1cd350cc4add4"
)
CETUS_SWAP_MODULE = "pool_script_v2"
AGGREGATOR_URL = "https://api-sui.cetus.zone/router_v2/find_routes"

SUI_RPC_URL = "https://fullnode.mainnet.sui.io:443"
PRICE_API_URL = "https://api.dexscreener.com/latest/dex/tokens"
