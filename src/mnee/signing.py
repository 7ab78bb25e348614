"""
Per-input signatures for token transfers.

The holder signs each input it owns with a FORKID-scoped signature and
leaves the cosigner's slot empty; the cosign service completes the
unlocking scripts afterwards.
"""

from __future__ import annotations

from collections.abc import Sequence

from coincurve import PrivateKey, PublicKey
from loguru import logger

from mnee.constants import (
    DEFAULT_SIGHASH_TYPE,
    SIGHASH_ANYONECANPAY,
    SIGHASH_NONE,
    SIGHASH_SINGLE,
    TRANSFER_SIGHASH_TYPE,
)
from mnee.cosign import create_p2pkh_script
from mnee.errors import ErrorKind, MneeError
from mnee.keys import private_key_to_address
from mnee.models import SigRequest, SigResponse
from mnee.script import encode_script, push_data
from mnee.transaction import Transaction, encode_varint, hash256

ZERO_HASH = bytes(32)


def compute_sighash_preimage(
    tx: Transaction,
    input_index: int,
    subscript: bytes,
    satoshis: int,
    sighash_type: int,
    prev_txid: str | None = None,
    prev_vout: int | None = None,
) -> bytes:
    """
    Build the FORKID signature preimage for one input.

    ``prev_txid``/``prev_vout`` override the outpoint recorded in the
    transaction for the signed input.
    """
    if input_index >= len(tx.inputs):
        raise MneeError(
            ErrorKind.SIGNATURE_PREIMAGE_INCOMPLETE,
            f"Input index {input_index} out of range ({len(tx.inputs)} inputs)",
        )

    base_type = sighash_type & 0x1F
    anyone_can_pay = bool(sighash_type & SIGHASH_ANYONECANPAY)
    target = tx.inputs[input_index]

    outpoints = []
    for i, inp in enumerate(tx.inputs):
        if i == input_index and prev_txid is not None:
            vout = target.vout if prev_vout is None else prev_vout
            outpoints.append(bytes.fromhex(prev_txid)[::-1] + vout.to_bytes(4, "little"))
        else:
            outpoints.append(inp.outpoint())

    if anyone_can_pay:
        hash_prevouts = ZERO_HASH
    else:
        hash_prevouts = hash256(b"".join(outpoints))

    if anyone_can_pay or base_type in (SIGHASH_SINGLE, SIGHASH_NONE):
        hash_sequence = ZERO_HASH
    else:
        hash_sequence = hash256(
            b"".join(inp.sequence.to_bytes(4, "little") for inp in tx.inputs)
        )

    if base_type not in (SIGHASH_SINGLE, SIGHASH_NONE):
        hash_outputs = hash256(b"".join(out.serialize() for out in tx.outputs))
    elif base_type == SIGHASH_SINGLE and input_index < len(tx.outputs):
        hash_outputs = hash256(tx.outputs[input_index].serialize())
    else:
        hash_outputs = ZERO_HASH

    return (
        tx.version.to_bytes(4, "little")
        + hash_prevouts
        + hash_sequence
        + outpoints[input_index]
        + encode_varint(len(subscript))
        + subscript
        + satoshis.to_bytes(8, "little")
        + target.sequence.to_bytes(4, "little")
        + hash_outputs
        + tx.locktime.to_bytes(4, "little")
        + (sighash_type & 0xFFFFFFFF).to_bytes(4, "little")
    )


def compute_sighash_forkid(
    tx: Transaction,
    input_index: int,
    subscript: bytes,
    satoshis: int,
    sighash_type: int = DEFAULT_SIGHASH_TYPE,
) -> bytes:
    return hash256(compute_sighash_preimage(tx, input_index, subscript, satoshis, sighash_type))


def create_sig_requests(
    tx: Transaction,
    signing_addresses: Sequence[str],
    sighash_types: Sequence[int | None] | None = None,
) -> list[SigRequest]:
    """
    One request per input, taking value and script from the spent output.

    ``sighash_types`` gives an explicit scope per input; None entries fall
    back to ALL|ANYONECANPAY|FORKID.
    """
    if len(signing_addresses) != len(tx.inputs):
        raise MneeError(
            ErrorKind.SIGNATURE_PREIMAGE_INCOMPLETE,
            f"{len(signing_addresses)} signing addresses for {len(tx.inputs)} inputs",
        )
    if sighash_types and len(sighash_types) != len(tx.inputs):
        raise MneeError(
            ErrorKind.SIGNATURE_PREIMAGE_INCOMPLETE,
            f"{len(sighash_types)} signature scopes for {len(tx.inputs)} inputs",
        )

    requests = []
    for index, inp in enumerate(tx.inputs):
        if not inp.txid:
            raise MneeError(ErrorKind.SIGNATURE_PREIMAGE_INCOMPLETE, "Source TXID is undefined")
        source = inp.source_output
        if source is None:
            raise MneeError(
                ErrorKind.SIGNATURE_PREIMAGE_INCOMPLETE,
                f"Source output unknown for input {index} ({inp.txid}:{inp.vout})",
            )
        scope = sighash_types[index] if sighash_types else None
        requests.append(
            SigRequest(
                prev_txid=inp.txid,
                output_index=inp.vout,
                input_index=index,
                address=signing_addresses[index],
                script=source.script.hex(),
                satoshis=source.satoshis,
                sighash_type=scope if scope is not None else TRANSFER_SIGHASH_TYPE,
            )
        )
    return requests


def sign_request(tx: Transaction, request: SigRequest, private_key: PrivateKey) -> SigResponse:
    if request.satoshis is None:
        raise MneeError(
            ErrorKind.SIGNATURE_PREIMAGE_INCOMPLETE,
            f"Funding value missing for input {request.input_index}",
        )

    sighash_type = request.sighash_type or DEFAULT_SIGHASH_TYPE
    if request.script:
        subscript = bytes.fromhex(request.script)
    else:
        subscript = create_p2pkh_script(private_key_to_address(private_key))

    preimage = compute_sighash_preimage(
        tx,
        request.input_index,
        subscript,
        request.satoshis,
        sighash_type,
        prev_txid=request.prev_txid,
        prev_vout=request.output_index,
    )
    # The digest is already SHA256d; coincurve must not hash again
    signature = private_key.sign(hash256(preimage), hasher=None)

    return SigResponse(
        input_index=request.input_index,
        sig=(signature + bytes([sighash_type & 0xFF])).hex(),
        pub_key=private_key.public_key.format(compressed=True).hex(),
        sighash_type=sighash_type,
        cs_idx=request.cs_idx,
    )


def sign_requests(
    tx: Transaction, requests: Sequence[SigRequest], private_key: PrivateKey
) -> list[SigResponse]:
    return sign_requests_with_keys(tx, requests, [private_key] * len(requests))


def sign_requests_with_keys(
    tx: Transaction, requests: Sequence[SigRequest], private_keys: Sequence[PrivateKey]
) -> list[SigResponse]:
    """Sign each request with the key at the same position."""
    if len(private_keys) != len(requests):
        raise MneeError(
            ErrorKind.SIGNATURE_PREIMAGE_INCOMPLETE,
            f"{len(private_keys)} keys for {len(requests)} signature requests",
        )

    responses = []
    for request, private_key in zip(requests, private_keys):
        logger.debug(
            f"Signing input {request.input_index} "
            f"({request.prev_txid[:16]}...:{request.output_index}, "
            f"scope={request.sighash_type or DEFAULT_SIGHASH_TYPE:#04x})"
        )
        responses.append(sign_request(tx, request, private_key))
    return responses


def apply_signatures(tx: Transaction, responses: Sequence[SigResponse]) -> Transaction:
    """Write ``<sig> <pubkey>`` unlocking scripts; the cosigner prepends its own."""
    for response in responses:
        if response.input_index >= len(tx.inputs):
            raise MneeError(
                ErrorKind.SIGNATURE_PREIMAGE_INCOMPLETE,
                f"Signature for unknown input {response.input_index}",
            )
        tx.inputs[response.input_index].script = encode_script(
            [push_data(bytes.fromhex(response.sig)), push_data(bytes.fromhex(response.pub_key))]
        )
    return tx


def verify_input_signature(
    tx: Transaction,
    input_index: int,
    subscript: bytes,
    satoshis: int,
    sig: bytes,
    pubkey: bytes,
) -> bool:
    """Check a checksig-format signature (DER + scope byte) for one input."""
    if not sig:
        return False
    digest = compute_sighash_forkid(tx, input_index, subscript, satoshis, sig[-1])
    try:
        return PublicKey(pubkey).verify(sig[:-1], digest, hasher=None)
    except ValueError:
        return False
