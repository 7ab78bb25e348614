"""
Token transaction parser.

Walks outputs (and, where the spent outputs are known, inputs) through the
ownership and inscription codecs to recover (address, amount) pairs and
classify the transaction.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from loguru import logger

from mnee.constants import MINT_ADDRESSES, OP_BURN, OP_DEPLOY_MINT, OP_TRANSFER
from mnee.cosign import Ownership, decode_ownership
from mnee.errors import ErrorKind, MneeError
from mnee.inscription import decode_inscription, decode_token_payload
from mnee.models import (
    Environment,
    ParsedTransaction,
    ProtocolConfig,
    TokenPayload,
    TxAddressAmount,
    TxOperation,
)
from mnee.script import decode_script
from mnee.transaction import Transaction, TxOutput

Outpoint = tuple[str, int]


@dataclass(frozen=True)
class DecodedOutput:
    ownership: Ownership
    payload: TokenPayload
    script: bytes


def decode_token_output(output: TxOutput) -> DecodedOutput | None:
    """Ownership plus token payload of one output, or None if either is missing."""
    chunks = decode_script(output.script)
    ownership = decode_ownership(chunks)
    if ownership is None:
        return None
    payload = decode_token_payload(decode_inscription(chunks))
    if payload is None:
        return None
    return DecodedOutput(ownership=ownership, payload=payload, script=output.script)


def _is_mint_source(
    decoded: DecodedOutput, config: ProtocolConfig, environment: Environment
) -> bool:
    address = decoded.ownership.address
    return address == config.mint_address or address in MINT_ADDRESSES[environment.value]


def _is_deploy_output(decoded: DecodedOutput, config: ProtocolConfig) -> bool:
    return (
        not decoded.ownership.cosigner
        and decoded.ownership.address == config.mint_address
        and decoded.payload.op == OP_DEPLOY_MINT
    )


def is_trusted_output(decoded: DecodedOutput, config: ProtocolConfig) -> bool:
    """Locked to the configured cosigner, or the plain deploy output at the mint address."""
    return decoded.ownership.cosigner == config.cosigner or _is_deploy_output(decoded, config)


def classify(
    txid: str,
    config: ProtocolConfig,
    inputs: list[DecodedOutput],
    outputs: list[DecodedOutput],
    environment: Environment = Environment.PRODUCTION,
) -> TxOperation:
    """burn > deploy > mint > transfer."""
    if any(out.payload.op == OP_BURN for out in outputs):
        return TxOperation.BURN
    mint_input = any(_is_mint_source(inp, config, environment) for inp in inputs)
    if txid == config.token_txid:
        return TxOperation.DEPLOY
    if not mint_input and any(_is_deploy_output(out, config) for out in outputs):
        return TxOperation.DEPLOY
    if mint_input:
        return TxOperation.MINT
    return TxOperation.TRANSFER


def parse_transaction(
    tx: Transaction,
    config: ProtocolConfig,
    source_outputs: Mapping[Outpoint, TxOutput] | None = None,
    environment: Environment = Environment.PRODUCTION,
    strict: bool = True,
    include_raw: bool = False,
) -> ParsedTransaction:
    """
    Parse a token transaction.

    Args:
        tx: Transaction to parse
        config: Protocol configuration
        source_outputs: Spent outputs keyed by (txid, vout); inputs whose
            spent output is absent are left out of the input list
        environment: Reported environment; also selects the known mint addresses
        strict: Raise on protocol violations instead of flagging is_valid
        include_raw: Attach the raw transaction hex

    Raises:
        MneeError: PROTOCOL_VIOLATION when strict and inputs and outputs do
            not balance, or no output carries a trusted token payload
    """
    source_outputs = source_outputs or {}
    txid = tx.txid

    decoded_inputs: list[DecodedOutput] = []
    resolved_all = True
    for index, inp in enumerate(tx.inputs):
        source = source_outputs.get((inp.txid, inp.vout)) or inp.source_output
        if source is None:
            resolved_all = False
            logger.debug(f"Input {index} of {txid[:16]}...: spent output unknown")
            continue
        decoded = decode_token_output(source)
        if decoded is not None and is_trusted_output(decoded, config):
            decoded_inputs.append(decoded)

    decoded_outputs: list[DecodedOutput] = []
    for index, out in enumerate(tx.outputs):
        decoded = decode_token_output(out)
        if decoded is None:
            logger.debug(f"Output {index} of {txid[:16]}...: no token payload")
            continue
        if not is_trusted_output(decoded, config):
            logger.warning(
                f"Output {index} of {txid[:16]}...: payload not under the configured cosigner, ignored"
            )
            continue
        if decoded.payload.op not in (OP_TRANSFER, OP_BURN, OP_DEPLOY_MINT):
            logger.warning(f"Output {index} of {txid[:16]}...: unknown op {decoded.payload.op!r}")
        decoded_outputs.append(decoded)

    if not decoded_outputs and strict:
        raise MneeError(ErrorKind.PROTOCOL_VIOLATION, f"{txid} is not a token transaction")

    tx_type = classify(txid, config, decoded_inputs, decoded_outputs, environment)
    input_total = sum(d.payload.amt for d in decoded_inputs)
    output_total = sum(d.payload.amt for d in decoded_outputs)

    is_valid = True
    if tx_type != TxOperation.DEPLOY and resolved_all and input_total != output_total:
        is_valid = False
        message = f"Inputs and outputs are not equal ({input_total} != {output_total})"
        if strict:
            raise MneeError(ErrorKind.PROTOCOL_VIOLATION, message)
        logger.warning(f"{txid}: {message}")

    return ParsedTransaction(
        txid=txid,
        environment=environment,
        type=tx_type,
        inputs=[_address_amount(d) for d in decoded_inputs],
        outputs=[_address_amount(d) for d in decoded_outputs],
        input_total=str(input_total),
        output_total=str(output_total),
        is_valid=is_valid,
        raw=tx.hex() if include_raw else None,
    )


def _address_amount(decoded: DecodedOutput) -> TxAddressAmount:
    return TxAddressAmount(
        address=decoded.ownership.address,
        amount=decoded.payload.amt,
        script=decoded.script.hex(),
    )
