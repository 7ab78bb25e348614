"""
mnee - MNEE token client library

Builds, signs, validates and parses cosigned bsv-20 token transactions.
"""

__version__ = "2.1.4"

from mnee.backends import MneeApiBackend, MneeBackend
from mnee.config import Settings, get_settings
from mnee.errors import ErrorKind, MneeError
from mnee.history import build_history_page, reconstruct_history_entry
from mnee.models import (
    Environment,
    FeeTier,
    ParsedTransaction,
    ProtocolConfig,
    TokenBalance,
    TokenUtxo,
    TransferInput,
    TransferRequest,
    TransferResult,
    TxHistoryEntry,
    TxHistoryPage,
)
from mnee.parser import parse_transaction
from mnee.service import ConfigCache, MneeService
from mnee.tx_builder import (
    build_transfer_from_outpoints,
    build_transfer_tx,
    from_atomic_amount,
    to_atomic_amount,
)
from mnee.validation import validate_token_transaction, verify_token_transaction

__all__ = [
    "ConfigCache",
    "Environment",
    "ErrorKind",
    "FeeTier",
    "MneeApiBackend",
    "MneeBackend",
    "MneeError",
    "MneeService",
    "ParsedTransaction",
    "ProtocolConfig",
    "Settings",
    "TokenBalance",
    "TokenUtxo",
    "TransferInput",
    "TransferRequest",
    "TransferResult",
    "TxHistoryEntry",
    "TxHistoryPage",
    "build_history_page",
    "build_transfer_from_outpoints",
    "build_transfer_tx",
    "from_atomic_amount",
    "get_settings",
    "parse_transaction",
    "reconstruct_history_entry",
    "to_atomic_amount",
    "validate_token_transaction",
    "verify_token_transaction",
]
