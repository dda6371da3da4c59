"""Dust Vacuum - consolidate and batch-swap dust balances."""

from dust_vacuum.config import DEFAULT_CONFIG, VacuumConfig
from dust_vacuum.orchestrator import RunContext, VacuumOrchestrator

__version__ = "0.1.0"
__all__ = ["DEFAULT_CONFIG", "RunContext", "VacuumConfig", "VacuumOrchestrator", "__version__"]
