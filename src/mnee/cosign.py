"""
Locking scripts for token outputs.

Two shapes are recognized:

- cosign:  OP_DUP OP_HASH160 <20-byte hash> OP_EQUALVERIFY OP_CHECKSIGVERIFY
           <33-byte cosigner pubkey> OP_CHECKSIG
- p2pkh:   OP_DUP OP_HASH160 <20-byte hash> OP_EQUALVERIFY OP_CHECKSIG

Either may be preceded by an inscription envelope, so templates are matched
at every chunk offset.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from mnee.constants import (
    OP_CHECKSIG,
    OP_CHECKSIGVERIFY,
    OP_DUP,
    OP_EQUALVERIFY,
    OP_HASH160,
    TOKEN_CONTENT_TYPE,
    TOKEN_PROTOCOL,
)
from mnee.inscription import encode_inscription, encode_token_payload
from mnee.keys import address_to_pubkey_hash, pubkey_hash_to_address
from mnee.models import TokenPayload
from mnee.script import ScriptChunk, decode_script, encode_script, push_data

ChunkMatcher = Callable[[ScriptChunk], bool]


def _op(op: int) -> ChunkMatcher:
    return lambda chunk: chunk.op == op


def _push(length: int) -> ChunkMatcher:
    return lambda chunk: chunk.data is not None and len(chunk.data) == length


COSIGN_TEMPLATE: tuple[ChunkMatcher, ...] = (
    _op(OP_DUP),
    _op(OP_HASH160),
    _push(20),
    _op(OP_EQUALVERIFY),
    _op(OP_CHECKSIGVERIFY),
    _push(33),
    _op(OP_CHECKSIG),
)

P2PKH_TEMPLATE: tuple[ChunkMatcher, ...] = (
    _op(OP_DUP),
    _op(OP_HASH160),
    _push(20),
    _op(OP_EQUALVERIFY),
    _op(OP_CHECKSIG),
)


@dataclass(frozen=True)
class Ownership:
    """Owner address of a token output; cosigner is "" for plain p2pkh."""

    address: str
    cosigner: str = ""


def _matches(chunks: Sequence[ScriptChunk], offset: int, template: Sequence[ChunkMatcher]) -> bool:
    if offset + len(template) > len(chunks):
        return False
    return all(match(chunks[offset + i]) for i, match in enumerate(template))


def decode_ownership(script: bytes | list[ScriptChunk]) -> Ownership | None:
    """First cosign or p2pkh template found scanning left to right."""
    chunks = decode_script(script) if isinstance(script, bytes) else script

    for offset in range(len(chunks)):
        if _matches(chunks, offset, COSIGN_TEMPLATE):
            return Ownership(
                address=pubkey_hash_to_address(chunks[offset + 2].data or b""),
                cosigner=(chunks[offset + 5].data or b"").hex(),
            )
        if _matches(chunks, offset, P2PKH_TEMPLATE):
            return Ownership(address=pubkey_hash_to_address(chunks[offset + 2].data or b""))

    return None


def create_p2pkh_script(address: str) -> bytes:
    return encode_script(
        [
            ScriptChunk(OP_DUP),
            ScriptChunk(OP_HASH160),
            push_data(address_to_pubkey_hash(address)),
            ScriptChunk(OP_EQUALVERIFY),
            ScriptChunk(OP_CHECKSIG),
        ]
    )


def create_cosign_script(address: str, cosigner_pubkey: str | bytes) -> bytes:
    """Output spendable only with both the owner's and the cosigner's signatures."""
    if isinstance(cosigner_pubkey, str):
        cosigner_pubkey = bytes.fromhex(cosigner_pubkey)
    if len(cosigner_pubkey) != 33:
        raise ValueError(f"Invalid compressed cosigner pubkey length: {len(cosigner_pubkey)}")
    return encode_script(
        [
            ScriptChunk(OP_DUP),
            ScriptChunk(OP_HASH160),
            push_data(address_to_pubkey_hash(address)),
            ScriptChunk(OP_EQUALVERIFY),
            ScriptChunk(OP_CHECKSIGVERIFY),
            push_data(cosigner_pubkey),
            ScriptChunk(OP_CHECKSIG),
        ]
    )


def create_token_script(
    address: str, amount: int, token_id: str, cosigner_pubkey: str | bytes, op: str = "transfer"
) -> bytes:
    """Inscribed cosign output carrying ``amount`` atomic units to ``address``."""
    payload = TokenPayload(p=TOKEN_PROTOCOL, op=op, id=token_id, amt=amount)
    return encode_inscription(
        TOKEN_CONTENT_TYPE,
        encode_token_payload(payload),
        create_cosign_script(address, cosigner_pubkey),
    )
