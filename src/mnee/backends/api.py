"""
HTTP backend for the MNEE token API and the ordinals indexer.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Sequence
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from mnee.backends.base import MneeBackend
from mnee.constants import DEFAULT_API_URL, DEFAULT_ORDINALS_API_URL
from mnee.errors import ErrorKind, MneeError
from mnee.models import BroadcastResult, ProtocolConfig, SyncRecord, TokenUtxo
from mnee.transaction import Transaction, deserialize_transaction

DEFAULT_REQUEST_TIMEOUT = 30.0


class MneeApiBackend(MneeBackend):
    """
    Backend using the token API for configuration, UTXOs, cosigning and
    sync records, and the ordinals indexer for raw transactions and
    broadcast.
    """

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        api_token: str = "",
        ordinals_api_url: str = DEFAULT_ORDINALS_API_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_token = api_token
        self.ordinals_api_url = ordinals_api_url.rstrip("/")
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def _params(self, **extra: Any) -> dict[str, Any]:
        params = {"auth_token": self.api_token} if self.api_token else {}
        params.update(extra)
        return params

    async def _api_call(
        self,
        method: str,
        path: str,
        kind: ErrorKind,
        json: Any = None,
        **params: Any,
    ) -> Any:
        """
        Call the token API and return the decoded JSON body.

        Raises:
            MneeError: with ``kind`` on connection errors, non-2xx responses
                or a body that is not JSON
        """
        url = f"{self.api_url}{path}"
        try:
            response = await self.client.request(method, url, params=self._params(**params), json=json)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"API call failed: {method} {path} - HTTP {e.response.status_code}")
            raise MneeError(kind, f"HTTP error! status: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"API call failed: {method} {path} - {e}")
            raise MneeError(kind, f"{path}: {e}") from e
        except ValueError as e:
            logger.error(f"API call returned invalid JSON: {method} {path} - {e}")
            raise MneeError(kind, f"{path}: invalid response body") from e

    async def get_config(self) -> ProtocolConfig:
        data = await self._api_call("GET", "/v1/config", ErrorKind.CONFIG_UNAVAILABLE)
        try:
            config = ProtocolConfig.model_validate(data)
        except ValidationError as e:
            logger.error(f"Invalid protocol configuration: {e}")
            raise MneeError(ErrorKind.CONFIG_UNAVAILABLE, f"Invalid protocol configuration: {e}") from e
        logger.debug(f"Fetched protocol config: token {config.token_id}, {len(config.fees)} fee tiers")
        return config

    async def get_utxos(
        self, addresses: Sequence[str], ops: Sequence[str] | None = None
    ) -> list[TokenUtxo]:
        data = await self._api_call(
            "POST", "/v1/utxos", ErrorKind.TRANSPORT_FAILURE, json=list(addresses)
        )
        try:
            utxos = [TokenUtxo.model_validate(item) for item in data or []]
        except ValidationError as e:
            logger.error(f"Invalid UTXO response: {e}")
            raise MneeError(ErrorKind.TRANSPORT_FAILURE, f"Invalid UTXO response: {e}") from e

        if ops:
            wanted = {op.lower() for op in ops}
            utxos = [utxo for utxo in utxos if utxo.op in wanted]
        logger.debug(f"Found {len(utxos)} token UTXOs for {len(addresses)} address(es)")
        return utxos

    async def get_transaction(self, txid: str) -> Transaction:
        url = f"{self.ordinals_api_url}/v5/tx/{txid}"
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch transaction {txid}: {e}")
            raise MneeError(ErrorKind.SOURCE_TRANSACTION_UNAVAILABLE, f"{txid}: {e}") from e

        if response.status_code == 404:
            raise MneeError(ErrorKind.SOURCE_TRANSACTION_UNAVAILABLE, f"Transaction not found: {txid}")
        if response.status_code != 200:
            raise MneeError(
                ErrorKind.SOURCE_TRANSACTION_UNAVAILABLE,
                f"{response.status_code} - Failed to fetch transaction {txid}",
            )

        try:
            tx = deserialize_transaction(response.content)
        except MneeError as e:
            raise MneeError(ErrorKind.SOURCE_TRANSACTION_UNAVAILABLE, e.message) from e
        if tx.txid != txid.lower():
            raise MneeError(
                ErrorKind.SOURCE_TRANSACTION_UNAVAILABLE,
                f"Indexer returned {tx.txid} for {txid}",
            )
        return tx

    async def cosign(self, rawtx: bytes) -> bytes:
        data = await self._api_call(
            "POST",
            "/v1/transfer",
            ErrorKind.COSIGN_FAILED,
            json={"rawtx": base64.b64encode(rawtx).decode()},
        )
        signed = data.get("rawtx") if isinstance(data, dict) else None
        if not signed:
            raise MneeError(ErrorKind.COSIGN_FAILED, "Failed to broadcast transaction")
        try:
            return base64.b64decode(signed, validate=True)
        except binascii.Error as e:
            raise MneeError(ErrorKind.COSIGN_FAILED, f"Cosigned transaction is not base64: {e}") from e

    async def broadcast(self, rawtx: bytes) -> BroadcastResult:
        url = f"{self.ordinals_api_url}/v5/tx"
        try:
            response = await self.client.post(
                url, content=rawtx, headers={"Content-Type": "application/octet-stream"}
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to broadcast: {e}")
            return BroadcastResult(success=False, code="UNKNOWN", description=str(e))

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not response.is_success:
            description = body.get("error") or "Unknown error"
            logger.error(f"Broadcast rejected: {response.status_code} {description}")
            return BroadcastResult(
                success=False, code=str(response.status_code), description=description
            )

        txid = body.get("txid")
        logger.info(f"Broadcast transaction: {txid}")
        return BroadcastResult(
            success=True, txid=txid, description="Transaction broadcast successfully"
        )

    async def get_sync_records(
        self, address: str, from_score: float = 0, limit: int = 100
    ) -> list[SyncRecord]:
        data = await self._api_call(
            "POST",
            "/v1/sync",
            ErrorKind.TRANSPORT_FAILURE,
            json=[address],
            **{"from": from_score, "limit": limit},
        )
        try:
            return [SyncRecord.model_validate(item) for item in data or []]
        except ValidationError as e:
            logger.error(f"Invalid sync response: {e}")
            raise MneeError(ErrorKind.TRANSPORT_FAILURE, f"Invalid sync response: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()
