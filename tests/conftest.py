"""
Shared fixtures for mnee tests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

import pytest
from coincurve import PrivateKey

from mnee.backends.base import MneeBackend
from mnee.constants import OP_TRANSFER, TRANSFER_SIGHASH_TYPE
from mnee.cosign import create_token_script
from mnee.errors import ErrorKind, MneeError
from mnee.keys import private_key_to_address, private_key_to_wif
from mnee.models import BroadcastResult, ProtocolConfig, SyncRecord, TokenUtxo
from mnee.script import encode_script, push_data
from mnee.signing import compute_sighash_forkid
from mnee.transaction import Transaction, TxInput, TxOutput, deserialize_transaction

TOKEN_ID = "ae59f3b898ec61acbdb6cc7a245fabeded0c094bf046f35206a3aec60ef88127_0"


def make_key(n: int) -> PrivateKey:
    """Deterministic test key (not for production use!)."""
    return PrivateKey(bytes([n]) * 32)


HOLDER_KEY = make_key(1)
COSIGNER_KEY = make_key(2)
RECIPIENT_KEY = make_key(3)
FEE_KEY = make_key(4)
BURN_KEY = make_key(5)
MINT_KEY = make_key(6)
OTHER_KEY = make_key(7)


def make_config(**overrides) -> ProtocolConfig:
    data = {
        "approver": COSIGNER_KEY.public_key.format(compressed=True).hex(),
        "feeAddress": private_key_to_address(FEE_KEY),
        "burnAddress": private_key_to_address(BURN_KEY),
        "mintAddress": private_key_to_address(MINT_KEY),
        "decimals": 5,
        "tokenId": TOKEN_ID,
        "fees": [
            {"min": 1, "max": 1_000_000, "fee": 100},
            {"min": 1_000_001, "max": 10**15, "fee": 1_000},
        ],
    }
    data.update(overrides)
    return ProtocolConfig.model_validate(data)


def make_token_tx(
    outputs: Sequence[tuple[str, int]],
    config: ProtocolConfig,
    seed: int = 1,
    op: str = OP_TRANSFER,
    inputs: list[TxInput] | None = None,
) -> Transaction:
    """Transaction paying each (address, amount) through the configured cosigner."""
    return Transaction(
        inputs=inputs if inputs is not None else [TxInput(txid=f"{seed:064x}", vout=0)],
        outputs=[
            TxOutput(1, create_token_script(address, amount, config.token_id, config.approver, op))
            for address, amount in outputs
        ],
    )


def make_utxo(
    tx: Transaction, vout: int, owner: str, amount: int, config: ProtocolConfig, op: str = OP_TRANSFER
) -> TokenUtxo:
    return TokenUtxo.model_validate(
        {
            "txid": tx.txid,
            "vout": vout,
            "outpoint": f"{tx.txid}_{vout}",
            "owners": [owner],
            "satoshis": 1,
            "script": tx.outputs[vout].script.hex(),
            "data": {
                "bsv21": {"amt": amount, "op": op, "id": config.token_id, "dec": config.decimals},
                "cosign": {"address": owner, "cosigner": config.cosigner},
            },
        }
    )


class FakeBackend(MneeBackend):
    """In-memory backend; cosigns with the configured cosigner key."""

    def __init__(self, config: ProtocolConfig, cosigner_key: PrivateKey = COSIGNER_KEY):
        self.config = config
        self.cosigner_key = cosigner_key
        self.transactions: dict[str, Transaction] = {}
        self.utxos: list[TokenUtxo] = []
        self.sync_records: list[SyncRecord] = []
        self.cosigned: list[bytes] = []
        self.broadcasts: list[bytes] = []
        self.config_calls = 0
        self.closed = False

    def add_transaction(self, tx: Transaction) -> Transaction:
        self.transactions[tx.txid] = tx
        return tx

    def fund(self, owner: str, amount: int, seed: int = 1, op: str = OP_TRANSFER) -> TokenUtxo:
        tx = self.add_transaction(make_token_tx([(owner, amount)], self.config, seed=seed, op=op))
        utxo = make_utxo(tx, 0, owner, amount, self.config, op)
        self.utxos.append(utxo)
        return utxo

    async def get_config(self) -> ProtocolConfig:
        self.config_calls += 1
        await asyncio.sleep(0)
        return self.config

    async def get_utxos(self, addresses, ops=None) -> list[TokenUtxo]:
        wanted = {op.lower() for op in ops} if ops else None
        return [
            utxo
            for utxo in self.utxos
            if set(utxo.owners) & set(addresses) and (wanted is None or utxo.op in wanted)
        ]

    async def get_transaction(self, txid: str) -> Transaction:
        if txid not in self.transactions:
            raise MneeError(ErrorKind.SOURCE_TRANSACTION_UNAVAILABLE, f"Transaction not found: {txid}")
        return self.transactions[txid]

    async def cosign(self, rawtx: bytes) -> bytes:
        self.cosigned.append(rawtx)
        tx = deserialize_transaction(rawtx)
        for index, inp in enumerate(tx.inputs):
            source = self.transactions[inp.txid].outputs[inp.vout]
            digest = compute_sighash_forkid(
                tx, index, source.script, source.satoshis, TRANSFER_SIGHASH_TYPE
            )
            sig = self.cosigner_key.sign(digest, hasher=None) + bytes([TRANSFER_SIGHASH_TYPE])
            inp.script = encode_script([push_data(sig)]) + inp.script
        return tx.serialize()

    async def broadcast(self, rawtx: bytes) -> BroadcastResult:
        self.broadcasts.append(rawtx)
        tx = self.add_transaction(deserialize_transaction(rawtx))
        return BroadcastResult(success=True, txid=tx.txid)

    async def get_sync_records(self, address, from_score=0, limit=100) -> list[SyncRecord]:
        return self.sync_records[:limit]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def config() -> ProtocolConfig:
    return make_config()


@pytest.fixture
def holder_key() -> PrivateKey:
    return HOLDER_KEY


@pytest.fixture
def holder_wif() -> str:
    return private_key_to_wif(HOLDER_KEY)


@pytest.fixture
def holder_address() -> str:
    return private_key_to_address(HOLDER_KEY)


@pytest.fixture
def recipient_address() -> str:
    return private_key_to_address(RECIPIENT_KEY)


@pytest.fixture
def other_address() -> str:
    return private_key_to_address(OTHER_KEY)


@pytest.fixture
def backend(config: ProtocolConfig) -> FakeBackend:
    return FakeBackend(config)
