"""AssetLedgerGateway backed by a full node's JSON-RPC API."""

from __future__ import annotations

import asyncio
import itertools
import time
from typing import Any

import httpx
import structlog

from dust_vacuum.batch.encoding import encode_plan
from dust_vacuum.config import DEFAULT_CONFIG, VacuumConfig
from dust_vacuum.constants import VAULT_MODULE
from dust_vacuum.errors import (
    LedgerExecutionFailure,
    NetworkFailure,
    StaleObjectVersion,
)
from dust_vacuum.ledger.gateway import TransactionSigner
from dust_vacuum.models import (
    AssetMetadata,
    AssetTotal,
    BalanceChange,
    BalancePage,
    BatchPlan,
    DepositReceipt,
    Membership,
    Proposal,
    SubmissionReceipt,
    VaultAccount,
)
from dust_vacuum.models.types import normalize_address, normalize_asset_id

logger = structlog.get_logger()

# Page size requested from list endpoints (node maximum is 50)
PAGE_LIMIT = 50

# Substrings of execution errors caused by a shared object moving on
_STALE_MARKERS = ("ObjectVersionUnavailableForConsumption", "is not available for consumption")


def _owner_address(owner: Any) -> str | None:
    """Extract the address from an owner field (``{"AddressOwner": "0x.."}``)."""
    if isinstance(owner, dict):
        value = owner.get("AddressOwner") or owner.get("ObjectOwner")
        return normalize_address(value) if value else None
    if isinstance(owner, str):
        return normalize_address(owner)
    return None


def _is_stale(error: str) -> bool:
    return any(marker in error for marker in _STALE_MARKERS)


class JsonRpcLedgerGateway:
    """Talks to a node over JSON-RPC using httpx.

    Args:
        config: Runtime configuration (RPC URL, timeouts, deployment ids)
        signer: Wallet collaborator used by ``submit``. Read-only use needs none.
        client: Optional shared httpx.AsyncClient; one is created per call otherwise
    """

    def __init__(
        self,
        config: VacuumConfig | None = None,
        signer: TransactionSigner | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or DEFAULT_CONFIG
        self.signer = signer
        self._client = client
        self._ids = itertools.count(1)

    async def _call(self, method: str, params: list[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            if self._client is not None:
                response = await self._client.post(
                    self.config.rpc_url, json=body, timeout=self.config.request_timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
                    response = await client.post(self.config.rpc_url, json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.warning("rpc_request_failed", method=method, error=str(e))
            raise NetworkFailure(f"{method} failed: {e}") from e
        except ValueError as e:
            raise NetworkFailure(f"{method} returned a non-JSON body") from e

        if "error" in payload:
            error = payload["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            logger.warning("rpc_error", method=method, error=message)
            raise NetworkFailure(f"{method}: {message}")
        return payload.get("result")

    async def list_fund_units(
        self, owner: str, asset_id: str, cursor: str | None = None
    ) -> BalancePage:
        result = await self._call(
            "suix_getCoins",
            [normalize_address(owner), normalize_asset_id(asset_id), cursor, PAGE_LIMIT],
        )
        return BalancePage.model_validate(result or {})

    async def list_balances(self, owner: str) -> list[AssetTotal]:
        result = await self._call("suix_getAllBalances", [normalize_address(owner)])
        return [AssetTotal.model_validate(item) for item in result or []]

    async def get_coin_metadata(self, asset_id: str) -> AssetMetadata | None:
        result = await self._call("suix_getCoinMetadata", [normalize_asset_id(asset_id)])
        if not result:
            return None
        return AssetMetadata.model_validate(result)

    async def submit(self, plan: BatchPlan) -> SubmissionReceipt:
        """Sign and execute the encoded plan through the injected signer.

        Raises:
            LedgerExecutionFailure: No signer configured, or execution rejected
            StaleObjectVersion: The vault moved past ``plan.expected_vault_version``
        """
        if self.signer is None:
            raise LedgerExecutionFailure("No transaction signer configured")

        if plan.expected_vault_version is not None:
            vault = await self.get_vault(self.config.vault_id)
            if vault.version != plan.expected_vault_version:
                raise StaleObjectVersion(
                    f"Vault version {vault.version} != expected {plan.expected_vault_version}"
                )

        calls = encode_plan(plan, self.config)
        logger.info("submitting_batch", sender=plan.sender, calls=len(calls))
        try:
            digest = await self.signer.sign_and_execute(calls, plan.gas_budget)
        except LedgerExecutionFailure:
            raise
        except httpx.HTTPError as e:
            raise NetworkFailure(f"Submission failed: {e}") from e
        return SubmissionReceipt(digest=digest, success=True)

    async def wait_for_finality(self, digest: str) -> SubmissionReceipt:
        """Poll ``sui_getTransactionBlock`` until the transaction is known.

        Raises:
            NetworkFailure: Not final within ``finality_timeout``
            StaleObjectVersion: Executed but aborted on a stale shared object
        """
        deadline = time.monotonic() + self.config.finality_timeout
        options = {"showEffects": True, "showBalanceChanges": True}

        while True:
            try:
                result = await self._call("sui_getTransactionBlock", [digest, options])
            except NetworkFailure as e:
                # Unknown digests are reported as errors until indexed
                logger.debug("finality_pending", digest=digest, error=str(e))
                result = None

            if result:
                return self._receipt_from_block(digest, result)

            if time.monotonic() >= deadline:
                raise NetworkFailure(
                    f"Transaction {digest} not final after {self.config.finality_timeout}s"
                )
            await asyncio.sleep(self.config.finality_poll_interval)

    def _receipt_from_block(self, digest: str, block: dict[str, Any]) -> SubmissionReceipt:
        status = block.get("effects", {}).get("status", {})
        success = status.get("status") == "success"
        error = status.get("error")
        if not success and error and _is_stale(error):
            raise StaleObjectVersion(error, digest=digest)

        changes = []
        for change in block.get("balanceChanges") or []:
            owner = _owner_address(change.get("owner"))
            if owner is None:
                continue
            changes.append(
                BalanceChange(
                    owner=owner, asset_id=change["coinType"], amount=int(change["amount"])
                )
            )
        return SubmissionReceipt(
            digest=digest, success=success, balance_changes=changes, error=error, final=True
        )

    async def _get_object_fields(self, object_id: str) -> tuple[dict[str, Any], str]:
        result = await self._call(
            "sui_getObject", [normalize_address(object_id), {"showContent": True}]
        )
        data = (result or {}).get("data")
        if not data:
            raise NetworkFailure(f"Object {object_id} not found")
        return data["content"]["fields"], data.get("version", "0")

    async def get_vault(self, vault_id: str) -> VaultAccount:
        fields, version = await self._get_object_fields(vault_id)
        return VaultAccount.from_move_fields(vault_id, fields, version)

    async def _owned_objects(self, owner: str, struct: str) -> list[tuple[str, dict[str, Any]]]:
        query = {
            "filter": {"StructType": f"{self.config.package_id}::{VAULT_MODULE}::{struct}"},
            "options": {"showContent": True},
        }
        objects: list[tuple[str, dict[str, Any]]] = []
        cursor = None
        while True:
            result = await self._call(
                "suix_getOwnedObjects", [normalize_address(owner), query, cursor, PAGE_LIMIT]
            ) or {}
            for item in result.get("data", []):
                data = item.get("data") or {}
                content = data.get("content") or {}
                if "fields" in content:
                    objects.append((data["objectId"], content["fields"]))
            if not result.get("hasNextPage") or not result.get("nextCursor"):
                return objects
            cursor = result["nextCursor"]

    async def list_receipts(self, owner: str) -> list[DepositReceipt]:
        objects = await self._owned_objects(owner, "DepositReceipt")
        return [DepositReceipt.from_move_fields(oid, fields) for oid, fields in objects]

    async def get_membership(self, owner: str) -> Membership | None:
        objects = await self._owned_objects(owner, "DustDAOMembership")
        if not objects:
            return None
        oid, fields = objects[0]
        return Membership.from_move_fields(oid, fields)

    async def list_proposals(self) -> list[Proposal]:
        """Proposals are shared objects whose ids the vault records."""
        fields, _ = await self._get_object_fields(self.config.vault_id)
        proposals = []
        for proposal_id in fields.get("proposal_ids") or []:
            proposal_fields, _ = await self._get_object_fields(proposal_id)
            proposals.append(Proposal.from_move_fields(proposal_id, proposal_fields))
        return proposals
