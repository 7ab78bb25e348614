"""
MNEE token service.

Ties the engine together: protocol configuration is fetched once per
service and cached; transfers run build, sign, cosign and broadcast in
order and report failures as a ``TransferResult`` instead of raising.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence

from coincurve import PrivateKey
from loguru import logger

from mnee.backends.api import MneeApiBackend
from mnee.backends.base import MneeBackend
from mnee.config import Settings
from mnee.constants import DEFAULT_HISTORY_LIMIT, OP_TRANSFER, SPENDABLE_OPERATIONS
from mnee.errors import ErrorKind, MneeError
from mnee.history import build_history_page, reconstruct_history_entry
from mnee.keys import private_key_from_wif, private_key_to_address
from mnee.models import (
    Environment,
    ParsedTransaction,
    ProtocolConfig,
    TokenBalance,
    TokenUtxo,
    TransferInput,
    TransferRequest,
    TransferResult,
    TxHistoryPage,
)
from mnee.parser import Outpoint, parse_transaction
from mnee.signing import apply_signatures, create_sig_requests, sign_requests_with_keys
from mnee.transaction import Transaction, TxOutput, deserialize_transaction, transaction_from_hex
from mnee.tx_builder import (
    UnsignedTransfer,
    build_transfer_from_outpoints,
    build_transfer_tx,
    from_atomic_amount,
)
from mnee.validation import validate_token_transaction


class ConfigCache:
    """
    Lazily fetched protocol configuration.

    Concurrent first callers share a single fetch; a failed fetch leaves
    the cache empty so the next call retries.
    """

    def __init__(self, fetch: Callable[[], Awaitable[ProtocolConfig]]):
        self._fetch = fetch
        self._config: ProtocolConfig | None = None
        self._lock = asyncio.Lock()

    @property
    def cached(self) -> ProtocolConfig | None:
        return self._config

    async def get(self) -> ProtocolConfig:
        if self._config is not None:
            return self._config
        async with self._lock:
            if self._config is None:
                self._config = await self._fetch()
                logger.debug(f"Cached protocol config for token {self._config.token_id}")
            return self._config

    def invalidate(self) -> None:
        self._config = None


class MneeService:
    """
    Token service facade.

    Owns its backend; use as an async context manager or call ``close()``.
    """

    def __init__(
        self,
        backend: MneeBackend,
        environment: Environment = Environment.PRODUCTION,
    ):
        self.backend = backend
        self.environment = environment
        self._config = ConfigCache(backend.get_config)

    @classmethod
    def from_settings(cls, settings: Settings) -> MneeService:
        backend = MneeApiBackend(
            api_url=settings.api_url,
            api_token=settings.api_token,
            ordinals_api_url=settings.ordinals_api_url,
            timeout=settings.request_timeout,
        )
        return cls(backend, Environment(settings.environment))

    async def __aenter__(self) -> MneeService:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self.backend.close()

    async def config(self) -> ProtocolConfig:
        return await self._config.get()

    async def get_utxos(
        self,
        addresses: Sequence[str],
        ops: Sequence[str] | None = SPENDABLE_OPERATIONS,
    ) -> list[TokenUtxo]:
        return await self.backend.get_utxos(addresses, ops)

    async def balance(self, address: str) -> TokenBalance:
        balances = await self.balances([address])
        return balances[0]

    async def balances(self, addresses: Sequence[str]) -> list[TokenBalance]:
        """Balance per address, counting only ``transfer`` UTXOs."""
        config = await self.config()
        utxos = await self.backend.get_utxos(addresses, [OP_TRANSFER])

        totals = {address: 0 for address in addresses}
        for utxo in utxos:
            if utxo.op != OP_TRANSFER:
                continue
            for owner in utxo.owners:
                if owner in totals:
                    totals[owner] += utxo.amount
                    break

        return [
            TokenBalance(
                address=address,
                amount=amount,
                decimal_amount=from_atomic_amount(amount, config.decimals),
            )
            for address, amount in totals.items()
        ]

    async def transfer(
        self,
        requests: Sequence[TransferRequest],
        wif: str,
        broadcast: bool = True,
        change_address: str | None = None,
    ) -> TransferResult:
        """
        Build, sign and (optionally) cosign and broadcast a token transfer.

        With ``broadcast=False`` the holder-signed transaction is returned
        without cosigning; submit it later with ``submit_raw_tx``.

        Returns:
            TransferResult carrying either txid and rawtx or an error kind
        """
        try:
            config = await self.config()
            private_key = private_key_from_wif(wif)
            address = private_key_to_address(private_key)

            utxos = await self.backend.get_utxos([address], SPENDABLE_OPERATIONS)
            unsigned = await build_transfer_tx(
                config, utxos, requests, self.backend.get_transaction, change_address
            )
            return await self._sign_and_submit(
                unsigned, [private_key] * len(unsigned.tx.inputs), None, broadcast
            )
        except MneeError as e:
            logger.error(f"Failed to transfer tokens: {e.kind.value}: {e.message}")
            return TransferResult(error=e.kind, message=e.message)

    async def transfer_multi(
        self,
        inputs: Sequence[TransferInput],
        requests: Sequence[TransferRequest],
        change_address: str | None = None,
        broadcast: bool = True,
    ) -> TransferResult:
        """
        Transfer from explicitly chosen outputs, each signed with its own key.

        Every input is spent; the surplus goes to ``change_address``, or to
        the owner of the first input. An input may carry its own signature
        scope.
        """
        try:
            config = await self.config()
            keys = [private_key_from_wif(inp.wif) for inp in inputs]

            unsigned = await build_transfer_from_outpoints(
                config,
                [(inp.txid.lower(), inp.vout) for inp in inputs],
                requests,
                self.backend.get_transaction,
                change_address,
            )
            for index, (key, owner) in enumerate(zip(keys, unsigned.signing_addresses)):
                if private_key_to_address(key) != owner:
                    raise MneeError(
                        ErrorKind.INVALID_KEY, f"Key for input {index} does not own {owner}"
                    )

            return await self._sign_and_submit(
                unsigned, keys, [inp.sighash_type for inp in inputs], broadcast
            )
        except MneeError as e:
            logger.error(f"Failed to transfer tokens: {e.kind.value}: {e.message}")
            return TransferResult(error=e.kind, message=e.message)

    async def _sign_and_submit(
        self,
        unsigned: UnsignedTransfer,
        keys: Sequence[PrivateKey],
        sighash_types: Sequence[int | None] | None,
        broadcast: bool,
    ) -> TransferResult:
        tx = unsigned.tx
        sig_requests = create_sig_requests(tx, unsigned.signing_addresses, sighash_types)
        apply_signatures(tx, sign_requests_with_keys(tx, sig_requests, keys))

        if not broadcast:
            logger.info(f"Built transfer {tx.txid} ({unsigned.total_amount} units, fee {unsigned.fee})")
            return TransferResult(txid=tx.txid, rawtx=tx.hex())

        return await self._cosign_and_broadcast(tx.serialize())

    async def submit_raw_tx(self, rawtx_hex: str) -> TransferResult:
        """Cosign and broadcast a holder-signed transaction built elsewhere."""
        try:
            tx = transaction_from_hex(rawtx_hex)
            return await self._cosign_and_broadcast(tx.serialize())
        except MneeError as e:
            logger.error(f"Failed to submit transaction: {e.kind.value}: {e.message}")
            return TransferResult(error=e.kind, message=e.message)

    async def _cosign_and_broadcast(self, rawtx: bytes) -> TransferResult:
        cosigned = await self.backend.cosign(rawtx)
        try:
            signed_tx = deserialize_transaction(cosigned)
        except MneeError as e:
            raise MneeError(ErrorKind.COSIGN_FAILED, f"Cosigned transaction unreadable: {e.message}") from e

        result = await self.backend.broadcast(cosigned)
        if not result.success:
            # The cosign service relays the transaction as well
            logger.warning(
                f"Indexer broadcast of {signed_tx.txid} failed: {result.code} {result.description}"
            )
        else:
            logger.info(f"Transfer broadcast: {signed_tx.txid}")

        return TransferResult(txid=signed_tx.txid, rawtx=cosigned.hex())

    async def validate_tx(
        self, rawtx_hex: str, requests: Sequence[TransferRequest] | None = None
    ) -> bool:
        config = await self.config()
        return validate_token_transaction(rawtx_hex, config, requests)

    async def parse_tx(self, txid: str, include_raw: bool = False) -> ParsedTransaction:
        tx = await self.backend.get_transaction(txid)
        return await self._parse(tx, include_raw)

    async def parse_tx_from_raw(self, rawtx_hex: str, include_raw: bool = False) -> ParsedTransaction:
        return await self._parse(transaction_from_hex(rawtx_hex), include_raw)

    async def _parse(self, tx: Transaction, include_raw: bool) -> ParsedTransaction:
        config = await self.config()
        sources: dict[Outpoint, TxOutput] = {}
        fetched: dict[str, Transaction] = {}

        for inp in tx.inputs:
            if inp.txid not in fetched:
                try:
                    fetched[inp.txid] = await self.backend.get_transaction(inp.txid)
                except MneeError as e:
                    logger.warning(f"Source of input {inp.txid}:{inp.vout} unavailable: {e.message}")
                    continue
            source_tx = fetched[inp.txid]
            if inp.vout < len(source_tx.outputs):
                sources[(inp.txid, inp.vout)] = source_tx.outputs[inp.vout]

        return parse_transaction(
            tx,
            config,
            source_outputs=sources,
            environment=self.environment,
            include_raw=include_raw,
        )

    async def recent_tx_history(
        self,
        address: str,
        from_score: float = 0,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> TxHistoryPage:
        config = await self.config()
        records = await self.backend.get_sync_records(address, from_score, limit)

        entries = []
        for record in records:
            entry = reconstruct_history_entry(record, address, config)
            if entry is not None:
                entries.append(entry)

        logger.debug(f"History for {address}: {len(entries)} of {len(records)} records")
        return build_history_page(address, entries, from_score, limit)
