"""
Error taxonomy for the token transaction engine.

Callers branch on ``MneeError.kind`` rather than on message text.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONFIG_UNAVAILABLE = "config_unavailable"
    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    FEE_RANGE_INADEQUATE = "fee_range_inadequate"
    SOURCE_TRANSACTION_UNAVAILABLE = "source_transaction_unavailable"
    SIGNATURE_PREIMAGE_INCOMPLETE = "signature_preimage_incomplete"
    PROTOCOL_VIOLATION = "protocol_violation"
    VALIDATION_MISMATCH = "validation_mismatch"
    PARSE_FAILURE = "parse_failure"
    COSIGN_FAILED = "cosign_failed"
    TRANSPORT_FAILURE = "transport_failure"
    INVALID_KEY = "invalid_key"
    INVALID_ADDRESS = "invalid_address"


class MneeError(Exception):
    """Raised by engine operations; ``kind`` identifies the failure class."""

    def __init__(self, kind: ErrorKind, message: str = ""):
        self.kind = kind
        self.message = message or kind.value.replace("_", " ")
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"MneeError({self.kind.value!r}, {self.message!r})"
