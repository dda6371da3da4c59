"""Integration tests for the HTTP API over a simulated ledger."""

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from dust_vacuum.api.endpoints import get_orchestrator
from dust_vacuum.api.main import app
from dust_vacuum.ledger import InMemoryLedger
from dust_vacuum.models import DisposalAction
from dust_vacuum.orchestrator import VacuumOrchestrator
from tests.helpers import CETUS, DEEP, OWNER, SCAM, SUI, make_balance


def _selected(*balances) -> list[dict]:
    return [b.model_dump(mode="json", by_alias=True) for b in balances]


@pytest.fixture
def client(orchestrator) -> Iterator[TestClient]:
    """Test client whose endpoints use the simulated orchestrator."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def wallet(ledger, aggregator):
    """CETUS with a route, SCAM and DEEP without one."""
    ledger.mint(OWNER, CETUS, 600, 400)
    ledger.mint(OWNER, SCAM, 42)
    ledger.mint(OWNER, DEEP, 1000)
    aggregator.add_route(CETUS, "2")
    return ledger


class TestRouteCheck:
    def test_reports_routes(self, client, wallet):
        response = client.post(
            "/routes/check",
            json={"selected": _selected(make_balance(CETUS, 1000), make_balance(SCAM, 42))},
        )
        assert response.status_code == 200

        data = response.json()
        assert [c["assetId"] for c in data] == [CETUS, SCAM]
        assert data[0]["hasRoute"] is True
        assert data[0]["estimatedOutput"] == 2000
        assert data[1]["suggestedAction"] == "burn"

    def test_invalid_body_rejected(self, client):
        response = client.post("/routes/check", json={"selected": [{"coinType": "nope"}]})
        assert response.status_code == 422


class TestPlanEndpoint:
    def test_swap_plan(self, client, wallet):
        response = client.post(
            "/vacuum/plan",
            json={"owner": OWNER, "selected": _selected(make_balance(CETUS, 1000))},
        )
        assert response.status_code == 200

        data = response.json()
        kinds = [op["kind"] for op in data["plan"]["operations"]]
        assert kinds == ["merge", "swap", "audit_log"]
        assert data["plan"]["gasBudget"] > 0
        assert data["transaction"]["sender"] == OWNER
        assert len(data["transaction"]["calls"]) == 3
        assert data["preview"] is None

    def test_plan_does_not_submit(self, client, wallet):
        client.post(
            "/vacuum/plan",
            json={"owner": OWNER, "selected": _selected(make_balance(CETUS, 1000))},
        )
        assert "submit" not in wallet.requests
        assert wallet.balance(OWNER, CETUS) == 1000

    def test_disposal_needs_confirmation(self, client, wallet):
        body = {"owner": OWNER, "selected": _selected(make_balance(SCAM, 42))}

        first = client.post("/vacuum/plan", json=body)
        assert first.status_code == 409
        preview = first.json()["detail"]["preview"]
        assert [i["assetId"] for i in preview["items"]] == [SCAM]

        body["confirmation"] = preview["fingerprint"]
        second = client.post("/vacuum/plan", json=body)
        assert second.status_code == 200
        operations = second.json()["plan"]["operations"]
        assert [op["kind"] for op in operations] == ["transfer"]

    def test_stale_confirmation_rejected(self, client, wallet):
        body = {"owner": OWNER, "selected": _selected(make_balance(SCAM, 42))}
        fingerprint = client.post("/vacuum/plan", json=body).json()["detail"]["preview"][
            "fingerprint"
        ]

        body["choices"] = {SCAM: DisposalAction.DONATE.value}
        body["confirmation"] = fingerprint
        assert client.post("/vacuum/plan", json=body).status_code == 409

    def test_oversized_donation_is_422(self, client, wallet):
        """Rejected before the preview: no confirmation round trip, no ledger reads."""
        body = {
            "owner": OWNER,
            "selected": _selected(make_balance(DEEP, 1000, "150")),
            "choices": {DEEP: "donate"},
        }
        wallet.requests.clear()

        response = client.post("/vacuum/plan", json=body)
        assert response.status_code == 422
        assert wallet.requests == []

    def test_donation_plan_pins_vault_version(self, client, wallet):
        body = {
            "owner": OWNER,
            "selected": _selected(make_balance(DEEP, 1000, "0.5")),
            "choices": {DEEP: "donate"},
        }
        body["confirmation"] = client.post("/vacuum/plan", json=body).json()["detail"][
            "preview"
        ]["fingerprint"]

        response = client.post("/vacuum/plan", json=body)
        assert response.status_code == 200
        assert response.json()["plan"]["expectedVaultVersion"] == wallet.engine.vault.version

    def test_nothing_to_do_is_400(self, client, wallet):
        body = {"owner": OWNER, "selected": _selected(make_balance(SUI, 10))}
        assert client.post("/vacuum/plan", json=body).status_code == 400


class TestVaultEndpoint:
    def test_returns_vault(self, client, config):
        response = client.get("/vault")
        assert response.status_code == 200
        data = response.json()
        assert data["vaultId"] == config.vault_id
        assert data["isOpen"] is False
        assert data["feesCollectedBps"] == 200

    def test_missing_vault_is_404(self, config, aggregator):
        no_vault = InMemoryLedger(config)
        orchestrator = VacuumOrchestrator(no_vault, aggregator.resolver(config), config)
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator
        try:
            assert TestClient(app).get("/vault").status_code == 404
        finally:
            app.dependency_overrides.clear()

    def test_unreachable_ledger_is_502(self, client, ledger):
        ledger.offline = True
        assert client.get("/vault").status_code == 502
