"""Tests for the JSON-RPC gateway against a mocked node."""

import asyncio
import json

import httpx
import pytest

from dust_vacuum.errors import LedgerExecutionFailure, NetworkFailure, StaleObjectVersion
from dust_vacuum.ledger import JsonRpcLedgerGateway
from dust_vacuum.models import BatchPlan, TransferOperation
from dust_vacuum.models.types import normalize_address
from tests.helpers import CETUS, OWNER, SUI, make_config

VAULT = normalize_address("0xf00")


class FakeNode:
    """JSON-RPC node answering from a method -> result table."""

    def __init__(self, results: dict | None = None) -> None:
        self.results = results or {}
        self.calls: list[tuple[str, list]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method, params = body["method"], body["params"]
        self.calls.append((method, params))
        result = self.results.get(method)
        if callable(result):
            result = result(params)
        if isinstance(result, Exception):
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"message": str(result)}}
            )
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def gateway(self, signer=None, **overrides) -> JsonRpcLedgerGateway:
        overrides.setdefault("vault_id", VAULT)
        overrides.setdefault("finality_timeout", 0)
        overrides.setdefault("finality_poll_interval", 0)
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return JsonRpcLedgerGateway(make_config(**overrides), signer=signer, client=client)


class RecordingSigner:
    def __init__(self, digest: str = "digest1") -> None:
        self.digest = digest
        self.calls: list[list] = []

    async def sign_and_execute(self, calls, gas_budget):
        self.calls.append(calls)
        return self.digest


def _vault_object(version: str = "7") -> dict:
    return {
        "data": {
            "objectId": VAULT,
            "version": version,
            "content": {
                "fields": {
                    "admin": "0xad",
                    "round": "2",
                    "is_open": True,
                    "total_shares": "10",
                    "proposal_ids": [],
                }
            },
        }
    }


class TestReads:
    def test_list_fund_units(self):
        node = FakeNode(
            {
                "suix_getCoins": {
                    "data": [{"coinObjectId": "0x11", "balance": "5", "version": "1"}],
                    "nextCursor": "0x11",
                    "hasNextPage": False,
                }
            }
        )
        page = asyncio.run(node.gateway().list_fund_units(OWNER, "0x2::sui::SUI"))

        assert page.data[0].balance == 5
        assert page.cursor is None
        method, params = node.calls[0]
        assert method == "suix_getCoins"
        assert params == [OWNER, SUI, None, 50]

    def test_list_balances(self):
        node = FakeNode(
            {
                "suix_getAllBalances": [
                    {"coinType": "0x2::sui::SUI", "coinObjectCount": 2, "totalBalance": "99"}
                ]
            }
        )
        totals = asyncio.run(node.gateway().list_balances(OWNER))
        assert totals[0].asset_id == SUI
        assert totals[0].total_balance == 99

    def test_missing_metadata_is_none(self):
        node = FakeNode({"suix_getCoinMetadata": None})
        assert asyncio.run(node.gateway().get_coin_metadata(CETUS)) is None

    def test_rpc_error_is_network_failure(self):
        node = FakeNode({"suix_getAllBalances": RuntimeError("node overloaded")})
        with pytest.raises(NetworkFailure, match="node overloaded"):
            asyncio.run(node.gateway().list_balances(OWNER))

    def test_http_error_is_network_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        gateway = JsonRpcLedgerGateway(make_config(), client=client)
        with pytest.raises(NetworkFailure):
            asyncio.run(gateway.list_balances(OWNER))

    def test_get_vault(self):
        node = FakeNode({"sui_getObject": _vault_object()})
        vault = asyncio.run(node.gateway().get_vault(VAULT))
        assert vault.round == 2
        assert vault.version == 7


class TestSubmit:
    def _plan(self, expected_vault_version=None) -> BatchPlan:
        return BatchPlan(
            sender=OWNER,
            operations=[TransferOperation(asset_id=CETUS, handle="0x11", recipient="0x0")],
            gas_budget=5,
            expected_vault_version=expected_vault_version,
        )

    def test_requires_signer(self):
        with pytest.raises(LedgerExecutionFailure):
            asyncio.run(FakeNode().gateway().submit(self._plan()))

    def test_signs_encoded_calls(self):
        signer = RecordingSigner()
        receipt = asyncio.run(FakeNode().gateway(signer=signer).submit(self._plan()))
        assert receipt.digest == "digest1"
        assert signer.calls[0][0]["kind"] == "TransferObjects"

    def test_stale_version_checked_before_signing(self):
        signer = RecordingSigner()
        node = FakeNode({"sui_getObject": _vault_object(version="8")})
        with pytest.raises(StaleObjectVersion):
            asyncio.run(node.gateway(signer=signer).submit(self._plan(expected_vault_version=7)))
        assert signer.calls == []


class TestFinality:
    def test_receipt_with_balance_changes(self):
        node = FakeNode(
            {
                "sui_getTransactionBlock": {
                    "effects": {"status": {"status": "success"}},
                    "balanceChanges": [
                        {"owner": {"AddressOwner": OWNER}, "coinType": SUI, "amount": "1990000"},
                        {"owner": {"Shared": {}}, "coinType": SUI, "amount": "1"},
                    ],
                }
            }
        )
        receipt = asyncio.run(node.gateway().wait_for_finality("d"))
        assert receipt.success
        assert receipt.final
        assert receipt.received(OWNER, SUI) == 1_990_000

    def test_timeout(self):
        # Unindexed digests come back as RPC errors
        node = FakeNode({"sui_getTransactionBlock": RuntimeError("Could not find transaction")})
        with pytest.raises(NetworkFailure, match="not final"):
            asyncio.run(node.gateway().wait_for_finality("d"))

    def test_stale_abort(self):
        node = FakeNode(
            {
                "sui_getTransactionBlock": {
                    "effects": {
                        "status": {
                            "status": "failure",
                            "error": "ObjectVersionUnavailableForConsumption { .. }",
                        }
                    }
                }
            }
        )
        with pytest.raises(StaleObjectVersion):
            asyncio.run(node.gateway().wait_for_finality("d"))
