"""
Token transaction validation.

Every recognized output's cosigner must be empty or the configured
cosigner, so the value cannot have been diverted to a foreign second key.

Given expected transfers, output i must additionally pay expected transfer
i, through the configured cosigner, with a bsv-20 transfer payload of the
exact atomic amount for the configured token.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from mnee.constants import OP_TRANSFER, TOKEN_PROTOCOL
from mnee.cosign import decode_ownership
from mnee.errors import ErrorKind, MneeError
from mnee.inscription import decode_inscription, decode_token_payload
from mnee.models import ProtocolConfig, TransferRequest
from mnee.script import decode_script
from mnee.transaction import Transaction, transaction_from_hex
from mnee.tx_builder import to_atomic_amount


def _check_expected(tx: Transaction, config: ProtocolConfig, expected: Sequence[TransferRequest]) -> None:
    if len(expected) > len(tx.outputs):
        raise MneeError(
            ErrorKind.VALIDATION_MISMATCH,
            f"Expected {len(expected)} transfers but transaction has {len(tx.outputs)} outputs",
        )

    for idx, req in enumerate(expected):
        chunks = decode_script(tx.outputs[idx].script)
        ownership = decode_ownership(chunks)
        if ownership is None or ownership.cosigner != config.cosigner:
            raise MneeError(
                ErrorKind.VALIDATION_MISMATCH,
                f"Cosigner not found for address: {req.address} at index: {idx}",
            )
        if ownership.address != req.address:
            raise MneeError(
                ErrorKind.VALIDATION_MISMATCH,
                f"Address mismatch at index {idx}: {ownership.address} != {req.address}",
            )

        payload = decode_token_payload(decode_inscription(chunks))
        if payload is None:
            raise MneeError(ErrorKind.PROTOCOL_VIOLATION, f"Invalid inscription content at index {idx}")
        if payload.p != TOKEN_PROTOCOL:
            raise MneeError(ErrorKind.PROTOCOL_VIOLATION, f"Invalid bsv 20 protocol: {payload.p}")
        if payload.op != OP_TRANSFER:
            raise MneeError(ErrorKind.VALIDATION_MISMATCH, f"Invalid operation: {payload.op}")
        if payload.id != config.token_id:
            raise MneeError(ErrorKind.VALIDATION_MISMATCH, f"Invalid token id: {payload.id}")

        expected_amount = to_atomic_amount(req.amount, config.decimals)
        if payload.amt != expected_amount:
            raise MneeError(
                ErrorKind.VALIDATION_MISMATCH,
                f"Invalid amount at index {idx}: {payload.amt} != {expected_amount}",
            )


def _check_cosigners(tx: Transaction, config: ProtocolConfig) -> None:
    for idx, out in enumerate(tx.outputs):
        ownership = decode_ownership(out.script)
        if ownership is None:
            continue
        if ownership.cosigner and ownership.cosigner != config.cosigner:
            raise MneeError(
                ErrorKind.VALIDATION_MISMATCH,
                f"Invalid or missing cosigner at index {idx}: {ownership.cosigner}",
            )


def verify_token_transaction(
    tx: Transaction | str,
    config: ProtocolConfig,
    expected: Sequence[TransferRequest] | None = None,
) -> tuple[bool, str]:
    """
    Verify a token transaction.

    Args:
        tx: Transaction or raw hex
        config: Protocol configuration
        expected: Intended transfers, aligned by position with the outputs

    Returns:
        (is_valid, error_message)
    """
    try:
        if isinstance(tx, str):
            tx = transaction_from_hex(tx)
        if expected:
            _check_expected(tx, config, expected)
        _check_cosigners(tx, config)
    except MneeError as e:
        logger.debug(f"Token transaction verification failed: {e.kind.value}: {e.message}")
        return False, e.message

    return True, ""


def validate_token_transaction(
    tx: Transaction | str,
    config: ProtocolConfig,
    expected: Sequence[TransferRequest] | None = None,
) -> bool:
    is_valid, _ = verify_token_transaction(tx, config, expected)
    return is_valid
