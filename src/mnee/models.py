"""
Data models using Pydantic for validation and serialization.

Models that mirror API payloads accept the API's camelCase field names
through aliases and are populated by name as well.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mnee.errors import ErrorKind


class Environment(str, Enum):
    PRODUCTION = "production"
    SANDBOX = "sandbox"


class TxOperation(str, Enum):
    TRANSFER = "transfer"
    BURN = "burn"
    DEPLOY = "deploy"
    MINT = "mint"


class TxDirection(str, Enum):
    SEND = "send"
    RECEIVE = "receive"


class TxStatus(str, Enum):
    CONFIRMED = "confirmed"
    UNCONFIRMED = "unconfirmed"


class FeeTier(BaseModel):
    model_config = ConfigDict(frozen=True)

    min: int = Field(..., ge=0)
    max: int = Field(..., ge=0)
    fee: int = Field(..., ge=0)

    @model_validator(mode="after")
    def check_bounds(self) -> FeeTier:
        if self.min > self.max:
            raise ValueError(f"Fee tier min {self.min} exceeds max {self.max}")
        return self

    def contains(self, amount: int) -> bool:
        return self.min <= amount <= self.max


class ProtocolConfig(BaseModel):
    """Token protocol configuration as served by the config endpoint."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    approver: str = Field(..., pattern=r"^(02|03)[0-9a-fA-F]{64}$")
    fee_address: str = Field(..., alias="feeAddress")
    burn_address: str = Field(..., alias="burnAddress")
    mint_address: str = Field(..., alias="mintAddress")
    fees: tuple[FeeTier, ...]
    decimals: int = Field(..., ge=0, le=18)
    token_id: str = Field(..., alias="tokenId")

    @field_validator("fees")
    @classmethod
    def check_tiers(cls, v: tuple[FeeTier, ...]) -> tuple[FeeTier, ...]:
        for prev, tier in zip(v, v[1:]):
            if tier.min <= prev.max:
                raise ValueError(
                    f"Fee tiers overlap or are not ascending: "
                    f"[{prev.min}, {prev.max}] then [{tier.min}, {tier.max}]"
                )
        return v

    @property
    def cosigner(self) -> str:
        return self.approver.lower()

    @property
    def token_txid(self) -> str:
        return self.token_id.split("_")[0]


class TokenPayload(BaseModel):
    """Validated bsv-20 inscription body."""

    model_config = ConfigDict(frozen=True)

    p: str
    op: str
    id: str
    amt: int = Field(..., ge=0)


class Bsv21Data(BaseModel):
    model_config = ConfigDict(extra="ignore")

    amt: int = Field(..., ge=0)
    op: str
    id: str = ""
    dec: int = 0
    sym: str | None = None
    icon: str | None = None


class CosignData(BaseModel):
    address: str = ""
    cosigner: str = ""


class UtxoData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    bsv21: Bsv21Data
    cosign: CosignData | None = None


class TokenUtxo(BaseModel):
    """A token-bearing output as returned by the UTXO endpoint."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    txid: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")
    vout: int = Field(..., ge=0)
    owners: list[str] = Field(..., min_length=1)
    data: UtxoData
    satoshis: int = Field(default=1, ge=0)
    script: str = ""
    outpoint: str = ""
    height: int = 0
    idx: int = 0
    score: float = 0

    @property
    def amount(self) -> int:
        return self.data.bsv21.amt

    @property
    def op(self) -> str:
        return self.data.bsv21.op.lower()

    @property
    def owner(self) -> str:
        return self.owners[0]


class TransferRequest(BaseModel):
    """Destination and amount in the token's decimal unit."""

    address: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)


class TransferInput(BaseModel):
    """An explicitly chosen token output and the key that spends it."""

    model_config = ConfigDict(populate_by_name=True)

    txid: str = Field(..., pattern=r"^[0-9a-fA-F]{64}$")
    vout: int = Field(..., ge=0)
    wif: str = Field(..., repr=False)
    sighash_type: int | None = Field(default=None, alias="sigHashType")


class SigRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prev_txid: str = Field(..., alias="prevTxid")
    output_index: int = Field(..., alias="outputIndex", ge=0)
    input_index: int = Field(..., alias="inputIndex", ge=0)
    satoshis: int | None = Field(default=None, ge=0)
    address: str | list[str] = ""
    script: str | None = None
    sighash_type: int | None = Field(default=None, alias="sigHashType")
    cs_idx: int | None = Field(default=None, alias="csIdx")


class SigResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    input_index: int = Field(..., alias="inputIndex")
    sig: str
    pub_key: str = Field(..., alias="pubKey")
    sighash_type: int = Field(..., alias="sigHashType")
    cs_idx: int | None = Field(default=None, alias="csIdx")


class TxAddressAmount(BaseModel):
    address: str
    amount: int
    script: str | None = None


class ParsedTransaction(BaseModel):
    txid: str
    environment: Environment
    type: TxOperation
    inputs: list[TxAddressAmount] = Field(default_factory=list)
    outputs: list[TxAddressAmount] = Field(default_factory=list)
    input_total: str = "0"
    output_total: str = "0"
    is_valid: bool = True
    raw: str | None = None


class SyncRecord(BaseModel):
    """Ledger-change notification for one address."""

    model_config = ConfigDict(extra="ignore")

    txid: str
    height: int = 0
    idx: int = 0
    score: float = 0
    rawtx: str | None = None
    senders: list[str] = Field(default_factory=list)
    receivers: list[str] = Field(default_factory=list)


class Counterparty(BaseModel):
    address: str
    amount: int


class TxHistoryEntry(BaseModel):
    txid: str
    height: int
    direction: TxDirection
    status: TxStatus
    amount: int
    fee: int
    score: float
    counterparties: list[Counterparty] = Field(default_factory=list)


class TxHistoryPage(BaseModel):
    address: str
    history: list[TxHistoryEntry] = Field(default_factory=list)
    next_score: float = 0


class TokenBalance(BaseModel):
    address: str
    amount: int = 0
    decimal_amount: Decimal = Decimal(0)


class BroadcastResult(BaseModel):
    success: bool
    txid: str | None = None
    code: str | None = None
    description: str | None = None


class TransferResult(BaseModel):
    """Outcome of a transfer: either a transaction or an error kind."""

    txid: str | None = None
    rawtx: str | None = None
    error: ErrorKind | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
