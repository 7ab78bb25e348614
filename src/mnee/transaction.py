"""
Raw transaction serialization (legacy, non-segwit format).
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field

from mnee.constants import DEFAULT_SEQUENCE, TX_LOCKTIME, TX_VERSION
from mnee.errors import ErrorKind, MneeError


def hash256(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    first = data[offset]
    offset += 1

    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        value = int.from_bytes(data[offset : offset + 2], "little")
        return value, offset + 2
    if first == 0xFE:
        value = int.from_bytes(data[offset : offset + 4], "little")
        return value, offset + 4
    value = int.from_bytes(data[offset : offset + 8], "little")
    return value, offset + 8


def encode_varint(value: int) -> bytes:
    if value < 0xFD:
        return bytes([value])
    if value <= 0xFFFF:
        return b"\xfd" + value.to_bytes(2, "little")
    if value <= 0xFFFFFFFF:
        return b"\xfe" + value.to_bytes(4, "little")
    return b"\xff" + value.to_bytes(8, "little")


@dataclass
class TxOutput:
    satoshis: int
    script: bytes

    def serialize(self) -> bytes:
        return self.satoshis.to_bytes(8, "little") + encode_varint(len(self.script)) + self.script


@dataclass
class TxInput:
    txid: str
    vout: int
    script: bytes = b""
    sequence: int = DEFAULT_SEQUENCE
    # Spent output, when known; never serialized
    source_output: TxOutput | None = field(default=None, compare=False, repr=False)

    def outpoint(self) -> bytes:
        # txid is in display (big-endian) form; raw transactions reverse it
        return bytes.fromhex(self.txid)[::-1] + self.vout.to_bytes(4, "little")

    def serialize(self) -> bytes:
        return (
            self.outpoint()
            + encode_varint(len(self.script))
            + self.script
            + self.sequence.to_bytes(4, "little")
        )


@dataclass
class Transaction:
    version: int = TX_VERSION
    inputs: list[TxInput] = field(default_factory=list)
    outputs: list[TxOutput] = field(default_factory=list)
    locktime: int = TX_LOCKTIME

    def serialize(self) -> bytes:
        result = self.version.to_bytes(4, "little")
        result += encode_varint(len(self.inputs))
        for inp in self.inputs:
            result += inp.serialize()
        result += encode_varint(len(self.outputs))
        for out in self.outputs:
            result += out.serialize()
        result += self.locktime.to_bytes(4, "little")
        return result

    def hex(self) -> str:
        return self.serialize().hex()

    @property
    def txid(self) -> str:
        return hash256(self.serialize())[::-1].hex()


def _take(data: bytes, offset: int, length: int) -> tuple[bytes, int]:
    end = offset + length
    if end > len(data):
        raise ValueError(f"Unexpected end of data at offset {offset} (need {length} bytes)")
    return data[offset:end], end


def deserialize_transaction(tx_bytes: bytes) -> Transaction:
    """
    Parse a raw transaction.

    Raises:
        MneeError: PARSE_FAILURE if the bytes are not exactly one transaction
    """
    try:
        offset = 0
        raw, offset = _take(tx_bytes, offset, 4)
        version = int.from_bytes(raw, "little")

        input_count, offset = read_varint(tx_bytes, offset)
        inputs: list[TxInput] = []
        for _ in range(input_count):
            txid_le, offset = _take(tx_bytes, offset, 32)
            raw, offset = _take(tx_bytes, offset, 4)
            vout = int.from_bytes(raw, "little")
            script_len, offset = read_varint(tx_bytes, offset)
            script, offset = _take(tx_bytes, offset, script_len)
            raw, offset = _take(tx_bytes, offset, 4)
            sequence = int.from_bytes(raw, "little")
            inputs.append(TxInput(txid_le[::-1].hex(), vout, script, sequence))

        output_count, offset = read_varint(tx_bytes, offset)
        outputs: list[TxOutput] = []
        for _ in range(output_count):
            raw, offset = _take(tx_bytes, offset, 8)
            satoshis = int.from_bytes(raw, "little")
            script_len, offset = read_varint(tx_bytes, offset)
            script, offset = _take(tx_bytes, offset, script_len)
            outputs.append(TxOutput(satoshis, script))

        raw, offset = _take(tx_bytes, offset, 4)
        locktime = int.from_bytes(raw, "little")
    except (IndexError, ValueError) as e:
        raise MneeError(ErrorKind.PARSE_FAILURE, f"Failed to parse transaction: {e}") from e

    if offset != len(tx_bytes):
        raise MneeError(
            ErrorKind.PARSE_FAILURE,
            f"Failed to parse transaction: {len(tx_bytes) - offset} trailing bytes",
        )

    return Transaction(version, inputs, outputs, locktime)


def transaction_from_hex(tx_hex: str) -> Transaction:
    try:
        tx_bytes = bytes.fromhex(tx_hex.strip())
    except ValueError as e:
        raise MneeError(ErrorKind.PARSE_FAILURE, f"Invalid transaction hex: {e}") from e
    return deserialize_transaction(tx_bytes)


def serialize_transaction(tx: Transaction) -> bytes:
    return tx.serialize()
