"""Runtime configuration for the dust vacuum."""

import os
from dataclasses import dataclass, replace
from decimal import Decimal

from dust_vacuum.constants import (
    ADMIN_CAP_ID,
    AGGREGATOR_URL,
    BURN_ADDRESS,
    CETUS_GLOBAL_CONFIG_ID,
    CETUS_INTEGRATE_PUBLISHED_AT,
    CETUS_SWAP_MODULE,
    CLOCK_OBJECT_ID,
    DEFAULT_DUST_THRESHOLD_USD,
    DEFAULT_GAS_BUDGET,
    DEFAULT_SLIPPAGE_TOLERANCE,
    DUST_VACUUM_PACKAGE_ID,
    DUST_VAULT_ID,
    MAX_DUST_THRESHOLD_USD,
    MAX_DUST_VALUE_USD,
    MIN_DUST_THRESHOLD_USD,
    MIN_DUST_VALUE_USD,
    SUI_RPC_URL,
    SUI_TYPE,
)
from dust_vacuum.models.types import normalize_address, normalize_asset_id


@dataclass(frozen=True)
class VacuumConfig:
    """Centralized configuration for a vacuum deployment.

    Attributes:
        network: Ledger network name (mainnet, testnet)
        reference_asset: Asset every swap route targets
        slippage_tolerance: Max fractional shortfall between quoted and received output
        dust_threshold_usd: Balances below this USD value are flagged as dust
        min_dust_value_usd / max_dust_value_usd: Claimed-valuation bounds
        route_concurrency: Max in-flight aggregator queries per run
        route_request_delay: Seconds slept after each aggregator query
        audit_log_enabled: Append an audit-log call after each swap
    """

    network: str = "mainnet"
    rpc_url: str = SUI_RPC_URL
    aggregator_url: str = AGGREGATOR_URL

    reference_asset: str = SUI_TYPE
    burn_address: str = BURN_ADDRESS
    clock_id: str = CLOCK_OBJECT_ID

    slippage_tolerance: Decimal = DEFAULT_SLIPPAGE_TOLERANCE
    dust_threshold_usd: Decimal = DEFAULT_DUST_THRESHOLD_USD
    min_dust_value_usd: Decimal = MIN_DUST_VALUE_USD
    max_dust_value_usd: Decimal = MAX_DUST_VALUE_USD

    gas_budget: int = DEFAULT_GAS_BUDGET

    # Request budget for the aggregator
    route_concurrency: int = 3
    route_request_delay: float = 0.1
    request_timeout: float = 15.0

    # Finality polling
    finality_timeout: float = 60.0
    finality_poll_interval: float = 1.0

    # Dust vault deployment
    package_id: str = DUST_VACUUM_PACKAGE_ID
    vault_id: str = DUST_VAULT_ID
    admin_cap_id: str = ADMIN_CAP_ID
    audit_log_enabled: bool = True

    # Swap venue
    swap_package_id: str = CETUS_INTEGRATE_PUBLISHED_AT
    swap_module: str = CETUS_SWAP_MODULE
    swap_global_config_id: str = CETUS_GLOBAL_CONFIG_ID

    stale_retry_attempts: int = 1

    def __post_init__(self) -> None:
        if not (Decimal(0) <= self.slippage_tolerance < Decimal(1)):
            raise ValueError(f"slippage_tolerance must be in [0, 1): {self.slippage_tolerance}")
        if self.route_concurrency < 1:
            raise ValueError(f"route_concurrency must be >= 1: {self.route_concurrency}")
        if self.min_dust_value_usd > self.max_dust_value_usd:
            raise ValueError("min_dust_value_usd must not exceed max_dust_value_usd")
        # Canonical ids so comparisons downstream never depend on input form
        object.__setattr__(self, "reference_asset", normalize_asset_id(self.reference_asset))
        for name in ("burn_address", "clock_id", "package_id", "vault_id", "admin_cap_id",
                     "swap_package_id", "swap_global_config_id"):
            value = getattr(self, name)
            if value:
                object.__setattr__(self, name, normalize_address(value))

    @property
    def clamped_dust_threshold(self) -> Decimal:
        """Dust threshold clamped to the supported range."""
        return max(MIN_DUST_THRESHOLD_USD, min(self.dust_threshold_usd, MAX_DUST_THRESHOLD_USD))

    def with_overrides(self, **changes: object) -> "VacuumConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)  # type: ignore[arg-type]

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "VacuumConfig":
        """Build a config from DUST_* environment variables.

        Recognized variables:
        - DUST_NETWORK, DUST_RPC_URL, DUST_AGGREGATOR_URL
        - DUST_SLIPPAGE (fraction, e.g. 0.005), DUST_THRESHOLD_USD
        - DUST_ROUTE_CONCURRENCY, DUST_ROUTE_DELAY, DUST_REQUEST_TIMEOUT
        - DUST_FINALITY_TIMEOUT
        - DUST_PACKAGE_ID, DUST_VAULT_ID, DUST_ADMIN_CAP_ID
        - DUST_AUDIT_LOG (true/false)
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            network=env.get("DUST_NETWORK", defaults.network),
            rpc_url=env.get("DUST_RPC_URL", defaults.rpc_url),
            aggregator_url=env.get("DUST_AGGREGATOR_URL", defaults.aggregator_url),
            slippage_tolerance=Decimal(
                env.get("DUST_SLIPPAGE", str(defaults.slippage_tolerance))
            ),
            dust_threshold_usd=Decimal(
                env.get("DUST_THRESHOLD_USD", str(defaults.dust_threshold_usd))
            ),
            route_concurrency=int(
                env.get("DUST_ROUTE_CONCURRENCY", str(defaults.route_concurrency))
            ),
            route_request_delay=float(
                env.get("DUST_ROUTE_DELAY", str(defaults.route_request_delay))
            ),
            request_timeout=float(env.get("DUST_REQUEST_TIMEOUT", str(defaults.request_timeout))),
            finality_timeout=float(
                env.get("DUST_FINALITY_TIMEOUT", str(defaults.finality_timeout))
            ),
            package_id=env.get("DUST_PACKAGE_ID", defaults.package_id),
            vault_id=env.get("DUST_VAULT_ID", defaults.vault_id),
            admin_cap_id=env.get("DUST_ADMIN_CAP_ID", defaults.admin_cap_id),
            audit_log_enabled=env.get("DUST_AUDIT_LOG", "true").lower() in ("true", "1", "yes"),
        )


# Default configuration instance
DEFAULT_CONFIG = VacuumConfig()
