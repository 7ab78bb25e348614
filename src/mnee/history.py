"""
Transaction history reconstruction.

A sync record names the senders of a transaction touching an address and
carries the raw transaction. Reconstruction nets the token outputs of that
transaction into one ledger entry from the address's point of view:
- change returned to the sender is not reported as a payment
- the protocol fee is reported separately, never as a counterparty
- outputs not locked to the configured cosigner carry no trusted value
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Iterable

from loguru import logger

from mnee.constants import OP_TRANSFER
from mnee.errors import MneeError
from mnee.models import (
    Counterparty,
    ProtocolConfig,
    SyncRecord,
    TxDirection,
    TxHistoryEntry,
    TxHistoryPage,
    TxStatus,
)
from mnee.parser import decode_token_output
from mnee.transaction import deserialize_transaction


def reconstruct_history_entry(
    record: SyncRecord, address: str, config: ProtocolConfig
) -> TxHistoryEntry | None:
    """
    Net one sync record into a history entry for ``address``.

    Returns:
        The entry, or None when the record carries no decodable transaction
    """
    if not record.rawtx:
        logger.warning(f"Sync record {record.txid} has no raw transaction, skipping")
        return None

    try:
        tx = deserialize_transaction(base64.b64decode(record.rawtx, validate=True))
    except (binascii.Error, ValueError, MneeError) as e:
        logger.warning(f"Sync record {record.txid} has an undecodable transaction: {e}")
        return None

    direction = TxDirection.SEND if address in record.senders else TxDirection.RECEIVE
    status = TxStatus.CONFIRMED if record.height > 0 else TxStatus.UNCONFIRMED
    sender = record.senders[0] if record.senders else ""

    fee = 0
    buckets: dict[str, int] = {}
    for index, out in enumerate(tx.outputs):
        decoded = decode_token_output(out)
        if decoded is None:
            continue
        if decoded.ownership.cosigner != config.cosigner:
            logger.debug(f"{record.txid[:16]}... output {index}: not under the configured cosigner")
            continue
        payload = decoded.payload
        if payload.op != OP_TRANSFER or payload.id != config.token_id:
            continue

        out_address = decoded.ownership.address
        if out_address == config.fee_address and sender == address:
            fee += payload.amt
            continue
        buckets[out_address] = buckets.get(out_address, 0) + payload.amt
        logger.debug(f"{record.txid[:16]}... output {index}: {payload.amt} to {out_address}")

    self_received = buckets.get(address, 0)

    if direction == TxDirection.SEND:
        # Change back to the sender is not an outgoing payment
        buckets[sender] = buckets.get(sender, 0) - self_received
        counterparties = [
            Counterparty(address=addr, amount=amount)
            for addr, amount in buckets.items()
            if addr != address and addr != config.fee_address and amount > 0
        ]
    else:
        counterparties = [Counterparty(address=sender, amount=self_received)]

    return TxHistoryEntry(
        txid=record.txid,
        height=record.height,
        direction=direction,
        status=status,
        amount=sum(cp.amount for cp in counterparties),
        fee=fee,
        score=record.score,
        counterparties=counterparties,
    )


def order_history(entries: Iterable[TxHistoryEntry]) -> list[TxHistoryEntry]:
    """Unconfirmed first, then by height, newest first."""
    return sorted(entries, key=lambda e: (e.height != 0, -e.height))


def build_history_page(
    address: str,
    entries: Iterable[TxHistoryEntry],
    from_score: float = 0,
    limit: int | None = None,
) -> TxHistoryPage:
    ordered = order_history(entries)
    if limit is not None:
        ordered = ordered[:limit]
    next_score = ordered[-1].score if ordered else from_score
    return TxHistoryPage(address=address, history=ordered, next_score=next_score)
