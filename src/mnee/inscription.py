"""
Inscription envelope codec and the bsv-20 token payload.

Envelope layout, placed in front of the base locking script:

    OP_FALSE OP_IF <"ord"> OP_1 <content-type> OP_0 <payload> OP_ENDIF

Decoding yields ``None`` for scripts without an envelope, and for
envelopes whose field section is malformed.
"""

from __future__ import annotations

import base64
import hashlib
import json
from dataclasses import dataclass

from loguru import logger

from mnee.constants import (
    OP_0,
    OP_1,
    OP_ENDIF,
    OP_FALSE,
    OP_IF,
    OP_16,
    OP_PUSHDATA4,
    ORD_MARKER,
    TOKEN_PROTOCOL,
)
from mnee.models import TokenPayload
from mnee.script import ScriptChunk, decode_script, encode_script, push_data

FIELD_PAYLOAD = 0
FIELD_CONTENT_TYPE = 1


@dataclass(frozen=True)
class Inscription:
    content_type: str
    payload: bytes

    @property
    def size(self) -> int:
        return len(self.payload)

    @property
    def hash(self) -> str:
        """Base64 SHA-256 of the payload (empty for an empty payload)."""
        if not self.payload:
            return ""
        return base64.b64encode(hashlib.sha256(self.payload).digest()).decode("ascii")


def envelope_chunks(content_type: str, payload: bytes) -> list[ScriptChunk]:
    return [
        ScriptChunk(OP_FALSE),
        ScriptChunk(OP_IF),
        push_data(ORD_MARKER),
        ScriptChunk(OP_1),
        push_data(content_type.encode("utf-8")),
        ScriptChunk(OP_0),
        push_data(payload),
        ScriptChunk(OP_ENDIF),
    ]


def encode_inscription(content_type: str, payload: bytes, locking_script: bytes = b"") -> bytes:
    """Prefix ``locking_script`` with an inscription envelope."""
    return encode_script(envelope_chunks(content_type, payload)) + locking_script


def _find_envelope(chunks: list[ScriptChunk]) -> int | None:
    start = None
    for i in range(2, len(chunks)):
        chunk = chunks[i]
        if (
            chunk.data == ORD_MARKER
            and chunks[i - 1].op == OP_IF
            and chunks[i - 2].op == OP_FALSE
        ):
            start = i + 1
    return start


def decode_inscription(script: bytes | list[ScriptChunk]) -> Inscription | None:
    """
    Read the last inscription envelope in ``script``.

    Fields are (tag, value) pairs up to OP_ENDIF; tag OP_0 is the payload
    and tag OP_1 the content type. Unknown tags are skipped.
    """
    chunks = decode_script(script) if isinstance(script, bytes) else script
    start = _find_envelope(chunks)
    if start is None:
        return None

    content_type = ""
    payload = b""
    i = start
    while i < len(chunks):
        field = chunks[i]
        if field.op == OP_ENDIF:
            break
        if field.op > OP_16 or i + 1 >= len(chunks):
            return None
        value = chunks[i + 1]
        if value.op > OP_PUSHDATA4:
            return None
        i += 2

        if field.data:
            continue

        field_no = field.small_int()
        if field_no == FIELD_PAYLOAD:
            payload = value.data or b""
        elif field_no == FIELD_CONTENT_TYPE:
            content_type = (value.data or b"").decode("utf-8", errors="replace")

    return Inscription(content_type=content_type, payload=payload)


def encode_token_payload(payload: TokenPayload) -> bytes:
    data = {"p": payload.p, "op": payload.op, "id": payload.id, "amt": str(payload.amt)}
    return json.dumps(data, separators=(",", ":")).encode("utf-8")


def decode_token_payload(inscription: Inscription | None) -> TokenPayload | None:
    """
    Validate an inscription body as a bsv-20 token payload.

    Missing or mistyped fields yield None; the amount must be a decimal
    string of a non-negative integer.
    """
    if inscription is None or not inscription.payload:
        return None

    try:
        data = json.loads(inscription.payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to parse inscription JSON: {e}")
        return None

    if not isinstance(data, dict):
        return None
    p, op, token_id, amt = (data.get(k) for k in ("p", "op", "id", "amt"))
    if not all(isinstance(v, str) for v in (p, op, token_id, amt)):
        return None
    if p != TOKEN_PROTOCOL or not (amt.isascii() and amt.isdigit()):
        return None

    return TokenPayload(p=p, op=op, id=token_id, amt=int(amt))
