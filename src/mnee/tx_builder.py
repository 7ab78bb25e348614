"""
Transaction builder for token transfers.

Builds the unsigned transfer from:
- the holder's token UTXOs, consumed in the order given, or an explicit
  list of outpoints that are all spent
- the requested (address, amount) pairs
- the protocol fee tier for the total amount
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from loguru import logger

from mnee.constants import OP_TRANSFER, SPENDABLE_OPERATIONS, TOKEN_OUTPUT_SATOSHIS
from mnee.cosign import create_token_script
from mnee.errors import ErrorKind, MneeError
from mnee.keys import is_valid_address
from mnee.models import (
    Bsv21Data,
    CosignData,
    ProtocolConfig,
    TokenUtxo,
    TransferRequest,
    UtxoData,
)
from mnee.parser import decode_token_output, is_trusted_output
from mnee.transaction import Transaction, TxInput, TxOutput

SourceFetcher = Callable[[str], Awaitable[Transaction]]


@dataclass
class UnsignedTransfer:
    """Result of building a transfer, before any signature is applied."""

    tx: Transaction
    signing_addresses: list[str]
    change_address: str
    total_amount: int
    fee: int
    change: int
    consumed: list[TokenUtxo] = field(default_factory=list)

    @property
    def tokens_in(self) -> int:
        return sum(utxo.amount for utxo in self.consumed)


def to_atomic_amount(amount: Decimal | int | float | str, decimals: int) -> int:
    """
    Convert a decimal token amount to atomic units.

    Fractions of an atomic unit round half-up.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise MneeError(ErrorKind.INVALID_AMOUNT, f"Invalid amount: {amount!r}") from e
    if not value.is_finite() or value < 0:
        raise MneeError(ErrorKind.INVALID_AMOUNT, f"Invalid amount: {amount!r}")
    return int((value * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_atomic_amount(amount: int, decimals: int) -> Decimal:
    return (Decimal(amount) / (Decimal(10) ** decimals)).quantize(Decimal(1).scaleb(-decimals))


def select_fee(config: ProtocolConfig, requests: Sequence[TransferRequest], total_atomic: int) -> int:
    """
    Protocol fee for a transfer of ``total_atomic`` units.

    Transfers that touch the burn address are free.
    """
    if any(req.address == config.burn_address for req in requests):
        return 0
    for tier in config.fees:
        if tier.contains(total_atomic):
            return tier.fee
    raise MneeError(
        ErrorKind.FEE_RANGE_INADEQUATE,
        f"Fee ranges inadequate for amount {total_atomic}",
    )


def token_output(address: str, amount: int, config: ProtocolConfig) -> TxOutput:
    return TxOutput(
        satoshis=TOKEN_OUTPUT_SATOSHIS,
        script=create_token_script(address, amount, config.token_id, config.approver, OP_TRANSFER),
    )


def _require_address(address: str, role: str) -> None:
    if not is_valid_address(address):
        raise MneeError(ErrorKind.INVALID_ADDRESS, f"Invalid {role} address: {address}")


def _plan_transfer(
    config: ProtocolConfig,
    requests: Sequence[TransferRequest],
    change_address: str | None,
) -> tuple[list[int], int, int]:
    """Atomic amount per request, their total and the fee; every address is checked."""
    if not requests:
        raise MneeError(ErrorKind.INVALID_AMOUNT, "Invalid amount: no transfer requested")

    for req in requests:
        _require_address(req.address, "recipient")
    if change_address is not None:
        _require_address(change_address, "change")

    amounts = [to_atomic_amount(req.amount, config.decimals) for req in requests]
    total = sum(amounts)
    if total <= 0:
        raise MneeError(ErrorKind.INVALID_AMOUNT, "Invalid amount")

    fee = select_fee(config, requests, total)
    if fee > 0:
        _require_address(config.fee_address, "fee")
    return amounts, total, fee


def _finish_transfer(
    tx: Transaction,
    config: ProtocolConfig,
    requests: Sequence[TransferRequest],
    amounts: Sequence[int],
    fee: int,
    consumed: list[TokenUtxo],
    change_address: str | None,
) -> UnsignedTransfer:
    """Append recipient, fee and change outputs to a transaction whose inputs are in place."""
    total = sum(amounts)
    tokens_in = sum(utxo.amount for utxo in consumed)
    change_to = change_address or consumed[0].owner

    for req, amount in zip(requests, amounts):
        tx.outputs.append(token_output(req.address, amount, config))
    if fee > 0:
        tx.outputs.append(token_output(config.fee_address, fee, config))

    change = tokens_in - total - fee
    if change > 0:
        _require_address(change_to, "change")
        tx.outputs.append(token_output(change_to, change, config))

    logger.debug(
        f"Built transfer: {len(tx.inputs)} inputs, {len(tx.outputs)} outputs, "
        f"amount={total}, fee={fee}, change={change}"
    )

    return UnsignedTransfer(
        tx=tx,
        signing_addresses=[utxo.owner for utxo in consumed],
        change_address=change_to,
        total_amount=total,
        fee=fee,
        change=change,
        consumed=consumed,
    )


async def _fetch_output(fetch_source: SourceFetcher, txid: str, vout: int) -> TxOutput:
    source_tx = await fetch_source(txid)
    if vout >= len(source_tx.outputs):
        raise MneeError(
            ErrorKind.SOURCE_TRANSACTION_UNAVAILABLE,
            f"Source transaction {txid} has no output {vout}",
        )
    return source_tx.outputs[vout]


async def build_transfer_tx(
    config: ProtocolConfig,
    utxos: Sequence[TokenUtxo],
    requests: Sequence[TransferRequest],
    fetch_source: SourceFetcher,
    change_address: str | None = None,
) -> UnsignedTransfer:
    """
    Select inputs and lay out recipient, fee and change outputs.

    Source transactions are fetched one at a time as inputs are consumed.

    Raises:
        MneeError: INVALID_AMOUNT, INVALID_ADDRESS, FEE_RANGE_INADEQUATE,
            INSUFFICIENT_BALANCE or SOURCE_TRANSACTION_UNAVAILABLE; nothing
            is returned on failure
    """
    amounts, total, fee = _plan_transfer(config, requests, change_address)
    target = total + fee

    available = sum(utxo.amount for utxo in utxos)
    if available < target:
        raise MneeError(
            ErrorKind.INSUFFICIENT_BALANCE,
            f"Insufficient MNEE balance: need {target}, have {available}",
        )

    tx = Transaction()
    consumed: list[TokenUtxo] = []
    tokens_in = 0
    pending = list(utxos)

    while tokens_in < target:
        if not pending:
            raise MneeError(
                ErrorKind.INSUFFICIENT_BALANCE,
                f"Insufficient MNEE balance: need {target}, have {tokens_in}",
            )
        utxo = pending.pop(0)

        source = await _fetch_output(fetch_source, utxo.txid, utxo.vout)
        tx.inputs.append(TxInput(txid=utxo.txid, vout=utxo.vout, source_output=source))
        consumed.append(utxo)
        tokens_in += utxo.amount
        logger.debug(f"Consumed {utxo.txid[:16]}...:{utxo.vout} ({utxo.amount} units)")

    return _finish_transfer(tx, config, requests, amounts, fee, consumed, change_address)


def _utxo_from_output(txid: str, vout: int, output: TxOutput, config: ProtocolConfig) -> TokenUtxo:
    decoded = decode_token_output(output)
    if decoded is None or not is_trusted_output(decoded, config):
        raise MneeError(
            ErrorKind.PROTOCOL_VIOLATION, f"{txid}:{vout} is not a token output of this token"
        )
    payload = decoded.payload
    if payload.op not in SPENDABLE_OPERATIONS or (
        payload.op == OP_TRANSFER and payload.id != config.token_id
    ):
        raise MneeError(
            ErrorKind.PROTOCOL_VIOLATION,
            f"{txid}:{vout} is not spendable ({payload.op} of {payload.id})",
        )

    return TokenUtxo(
        txid=txid,
        vout=vout,
        outpoint=f"{txid}_{vout}",
        owners=[decoded.ownership.address],
        satoshis=output.satoshis,
        script=output.script.hex(),
        data=UtxoData(
            bsv21=Bsv21Data(amt=payload.amt, op=payload.op, id=payload.id, dec=config.decimals),
            cosign=CosignData(address=decoded.ownership.address, cosigner=decoded.ownership.cosigner),
        ),
    )


async def build_transfer_from_outpoints(
    config: ProtocolConfig,
    outpoints: Sequence[tuple[str, int]],
    requests: Sequence[TransferRequest],
    fetch_source: SourceFetcher,
    change_address: str | None = None,
) -> UnsignedTransfer:
    """
    Spend exactly the given outpoints, in order.

    Every outpoint is decoded from its fetched source transaction; any
    surplus over amount and fee goes to change.

    Raises:
        MneeError: as ``build_transfer_tx``, plus PROTOCOL_VIOLATION when an
            outpoint is repeated or is not a spendable output of this token
    """
    amounts, total, fee = _plan_transfer(config, requests, change_address)
    if not outpoints:
        raise MneeError(ErrorKind.INSUFFICIENT_BALANCE, "No inputs given")
    if len(set(outpoints)) != len(outpoints):
        raise MneeError(ErrorKind.PROTOCOL_VIOLATION, "Duplicate input outpoint")

    tx = Transaction()
    consumed: list[TokenUtxo] = []
    for txid, vout in outpoints:
        source = await _fetch_output(fetch_source, txid, vout)
        utxo = _utxo_from_output(txid, vout, source, config)
        tx.inputs.append(TxInput(txid=txid, vout=vout, source_output=source))
        consumed.append(utxo)
        logger.debug(f"Input {txid[:16]}...:{vout} ({utxo.amount} units of {utxo.owner})")

    tokens_in = sum(utxo.amount for utxo in consumed)
    if tokens_in < total + fee:
        raise MneeError(
            ErrorKind.INSUFFICIENT_BALANCE,
            f"Insufficient MNEE balance: need {total + fee}, have {tokens_in}",
        )

    return _finish_transfer(tx, config, requests, amounts, fee, consumed, change_address)
