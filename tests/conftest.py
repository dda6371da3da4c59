"""Pytest configuration and fixtures."""

import pytest

from dust_vacuum.config import VacuumConfig
from dust_vacuum.ledger import InMemoryLedger
from dust_vacuum.orchestrator import VacuumOrchestrator
from dust_vacuum.pool import PoolAccountingEngine, PoolClient
from tests.helpers import FakeAggregator, make_vault_ledger


@pytest.fixture
def vault_setup() -> tuple[VacuumConfig, InMemoryLedger]:
    """Config and simulated ledger sharing one deployed vault."""
    return make_vault_ledger()


@pytest.fixture
def config(vault_setup: tuple[VacuumConfig, InMemoryLedger]) -> VacuumConfig:
    return vault_setup[0]


@pytest.fixture
def ledger(vault_setup: tuple[VacuumConfig, InMemoryLedger]) -> InMemoryLedger:
    return vault_setup[1]


@pytest.fixture
def engine(ledger: InMemoryLedger) -> PoolAccountingEngine:
    """The vault engine as deployed before any submission.

    Submissions replace the ledger's state; read ``ledger.engine`` afterwards.
    """
    assert ledger.engine is not None
    return ledger.engine


@pytest.fixture
def open_vault(engine: PoolAccountingEngine) -> PoolAccountingEngine:
    """The deployed vault, opened for deposits."""
    engine.open_vault(engine.admin_cap.object_id)
    return engine


@pytest.fixture
def aggregator(ledger: InMemoryLedger) -> FakeAggregator:
    """Aggregator quoting from the ledger's pools; no routes until added."""
    return FakeAggregator(ledger)


@pytest.fixture
def orchestrator(
    config: VacuumConfig, ledger: InMemoryLedger, aggregator: FakeAggregator
) -> VacuumOrchestrator:
    """Orchestrator wired to the simulated ledger and the fake aggregator."""
    return VacuumOrchestrator(ledger, aggregator.resolver(config), config)


@pytest.fixture
def pool_client(config: VacuumConfig, ledger: InMemoryLedger) -> PoolClient:
    return PoolClient(ledger, config)
