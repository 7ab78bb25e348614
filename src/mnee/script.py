"""
Opaque script chunk abstraction.

A script is handled as a list of ``ScriptChunk`` (opcode plus optional push
data) so the token codecs can match templates without touching raw bytes.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from mnee.constants import (
    OP_0,
    OP_1,
    OP_16,
    OP_ENDIF,
    OP_IF,
    OP_PUSHDATA1,
    OP_PUSHDATA2,
    OP_PUSHDATA4,
    OP_RETURN,
)

OP_NOTIF = 0x64


@dataclass(frozen=True)
class ScriptChunk:
    op: int
    data: bytes | None = None

    def is_push(self) -> bool:
        return self.op <= OP_PUSHDATA4

    def small_int(self) -> int | None:
        """Value of OP_0 / OP_1..OP_16, None for anything else."""
        if self.op == OP_0:
            return 0
        if OP_1 <= self.op <= OP_16:
            return self.op - (OP_1 - 1)
        return None


def push_data(data: bytes) -> ScriptChunk:
    """Chunk pushing ``data`` with the smallest push opcode."""
    length = len(data)
    if length == 0:
        return ScriptChunk(OP_0)
    if length <= 0x4B:
        return ScriptChunk(length, data)
    if length <= 0xFF:
        return ScriptChunk(OP_PUSHDATA1, data)
    if length <= 0xFFFF:
        return ScriptChunk(OP_PUSHDATA2, data)
    return ScriptChunk(OP_PUSHDATA4, data)


def decode_script(script: bytes) -> list[ScriptChunk]:
    """
    Split a serialized script into chunks.

    A push that runs past the end of the script keeps whatever bytes remain.
    Everything after a top-level OP_RETURN is carried as that chunk's data.
    """
    chunks: list[ScriptChunk] = []
    offset = 0
    depth = 0

    while offset < len(script):
        op = script[offset]
        offset += 1

        if op == OP_RETURN and depth == 0:
            chunks.append(ScriptChunk(op, script[offset:] or None))
            break

        if 0 < op <= 0x4B:
            length = op
        elif op == OP_PUSHDATA1:
            length = script[offset] if offset < len(script) else 0
            offset += 1
        elif op == OP_PUSHDATA2:
            length = int.from_bytes(script[offset : offset + 2], "little")
            offset += 2
        elif op == OP_PUSHDATA4:
            length = int.from_bytes(script[offset : offset + 4], "little")
            offset += 4
        else:
            if op in (OP_IF, OP_NOTIF):
                depth += 1
            elif op == OP_ENDIF and depth > 0:
                depth -= 1
            chunks.append(ScriptChunk(op))
            continue

        chunks.append(ScriptChunk(op, script[offset : offset + length]))
        offset += length

    return chunks


def encode_script(chunks: Iterable[ScriptChunk]) -> bytes:
    result = bytearray()
    for chunk in chunks:
        result.append(chunk.op)
        if chunk.data is None:
            continue
        if chunk.op == OP_RETURN:
            result += chunk.data
            continue
        length = len(chunk.data)
        if chunk.op == OP_PUSHDATA1:
            result += length.to_bytes(1, "little")
        elif chunk.op == OP_PUSHDATA2:
            result += length.to_bytes(2, "little")
        elif chunk.op == OP_PUSHDATA4:
            result += length.to_bytes(4, "little")
        elif chunk.op != length:
            raise ValueError(f"Push opcode {chunk.op:#x} does not match data length {length}")
        result += chunk.data
    return bytes(result)
