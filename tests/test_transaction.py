"""
Tests for mnee.transaction
"""

import pytest

from mnee.errors import ErrorKind, MneeError
from mnee.transaction import (
    Transaction,
    TxInput,
    TxOutput,
    deserialize_transaction,
    encode_varint,
    hash256,
    read_varint,
    serialize_transaction,
    transaction_from_hex,
)

PREV_TXID = "aa" * 31 + "01"


def _sample_tx() -> Transaction:
    return Transaction(
        inputs=[
            TxInput(txid=PREV_TXID, vout=3, script=b"\x51"),
            TxInput(txid="bb" * 32, vout=0, sequence=0xFFFFFFFE),
        ],
        outputs=[TxOutput(1, b"\x76\xa9"), TxOutput(5000, b"")],
    )


class TestVarint:
    @pytest.mark.parametrize(
        "value,size",
        [(0, 1), (0xFC, 1), (0xFD, 3), (0xFFFF, 3), (0x10000, 5), (0xFFFFFFFF, 5), (2**32, 9)],
    )
    def test_round_trip(self, value, size):
        encoded = encode_varint(value)
        assert len(encoded) == size
        assert read_varint(encoded, 0) == (value, size)


class TestTransaction:
    def test_round_trip(self):
        tx = _sample_tx()
        assert deserialize_transaction(tx.serialize()) == tx

    def test_serialize_helper(self):
        tx = _sample_tx()
        assert serialize_transaction(tx) == tx.serialize()

    def test_txid_is_reversed_double_sha(self):
        tx = _sample_tx()
        assert tx.txid == hash256(tx.serialize())[::-1].hex()

    def test_outpoint_is_little_endian(self):
        inp = TxInput(txid=PREV_TXID, vout=3)
        assert inp.outpoint() == bytes.fromhex(PREV_TXID)[::-1] + b"\x03\x00\x00\x00"

    def test_defaults(self):
        tx = Transaction()
        assert tx.version == 1
        assert tx.locktime == 0
        assert TxInput(txid=PREV_TXID, vout=0).sequence == 0xFFFFFFFF

    def test_source_output_not_serialized(self):
        tx = _sample_tx()
        raw = tx.serialize()
        tx.inputs[0].source_output = TxOutput(1, b"\x00" * 10)
        assert tx.serialize() == raw

    def test_from_hex(self):
        tx = _sample_tx()
        assert transaction_from_hex(tx.hex()) == tx


class TestDeserializeErrors:
    def test_truncated(self):
        raw = _sample_tx().serialize()
        with pytest.raises(MneeError) as exc_info:
            deserialize_transaction(raw[:-1])
        assert exc_info.value.kind == ErrorKind.PARSE_FAILURE

    def test_trailing_bytes(self):
        raw = _sample_tx().serialize()
        with pytest.raises(MneeError) as exc_info:
            deserialize_transaction(raw + b"\x00")
        assert exc_info.value.kind == ErrorKind.PARSE_FAILURE

    def test_empty(self):
        with pytest.raises(MneeError):
            deserialize_transaction(b"")

    def test_bad_hex(self):
        with pytest.raises(MneeError) as exc_info:
            transaction_from_hex("zz")
        assert exc_info.value.kind == ErrorKind.PARSE_FAILURE
