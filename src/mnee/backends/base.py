"""
Base backend interface for the token service and the chain indexer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from mnee.models import BroadcastResult, ProtocolConfig, SyncRecord, TokenUtxo
from mnee.transaction import Transaction


class MneeBackend(ABC):
    """
    Abstract backend interface.

    Implementations provide protocol configuration, token UTXOs, source
    transactions, cosigning and broadcast. Failures raise ``MneeError``.
    """

    @abstractmethod
    async def get_config(self) -> ProtocolConfig:
        """Fetch the protocol configuration"""

    @abstractmethod
    async def get_utxos(
        self, addresses: Sequence[str], ops: Sequence[str] | None = None
    ) -> list[TokenUtxo]:
        """Get token UTXOs for the given addresses, optionally filtered by operation"""

    @abstractmethod
    async def get_transaction(self, txid: str) -> Transaction:
        """Get a full transaction by txid"""

    @abstractmethod
    async def cosign(self, rawtx: bytes) -> bytes:
        """Submit a partially signed transaction, returns the fully signed one"""

    @abstractmethod
    async def broadcast(self, rawtx: bytes) -> BroadcastResult:
        """Broadcast a fully signed transaction"""

    @abstractmethod
    async def get_sync_records(
        self, address: str, from_score: float = 0, limit: int = 100
    ) -> list[SyncRecord]:
        """Get ledger-change records for an address"""

    async def close(self) -> None:
        """Close backend connection"""
        pass
