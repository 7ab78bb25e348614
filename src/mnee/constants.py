"""
Script opcodes and MNEE protocol constants.

Opcode values follow the Bitcoin script encoding; only the opcodes the
token scripts use are named here.
"""

from __future__ import annotations

# Script opcodes
OP_0 = 0x00
OP_FALSE = OP_0
OP_PUSHDATA1 = 0x4C
OP_PUSHDATA2 = 0x4D
OP_PUSHDATA4 = 0x4E
OP_1 = 0x51
OP_16 = 0x60
OP_IF = 0x63
OP_ENDIF = 0x68
OP_RETURN = 0x6A
OP_DUP = 0x76
OP_EQUALVERIFY = 0x88
OP_HASH160 = 0xA9
OP_CHECKSIG = 0xAC
OP_CHECKSIGVERIFY = 0xAD

# Signature scope flags
SIGHASH_ALL = 0x01
SIGHASH_NONE = 0x02
SIGHASH_SINGLE = 0x03
SIGHASH_FORKID = 0x40
SIGHASH_ANYONECANPAY = 0x80

# Scope used when a signature request names none
DEFAULT_SIGHASH_TYPE = SIGHASH_ALL | SIGHASH_FORKID  # 0x41

# Scope mandated for ordinary transfers: the cosigner may append its own
# inputs and outputs without invalidating the holder's signatures
TRANSFER_SIGHASH_TYPE = SIGHASH_ALL | SIGHASH_ANYONECANPAY | SIGHASH_FORKID  # 0xC1

# Address version byte (mainnet P2PKH)
P2PKH_VERSION = 0x00
WIF_VERSION = 0x80

# Transaction defaults for built transfers
TX_VERSION = 1
TX_LOCKTIME = 0
DEFAULT_SEQUENCE = 0xFFFFFFFF
TOKEN_OUTPUT_SATOSHIS = 1

# Inscription envelope
ORD_MARKER = b"ord"
TOKEN_CONTENT_TYPE = "application/bsv-20"
TOKEN_PROTOCOL = "bsv-20"

# Protocol operations carried in the token payload
OP_TRANSFER = "transfer"
OP_DEPLOY_MINT = "deploy+mint"
OP_BURN = "burn"

# Operations that yield spendable token UTXOs
SPENDABLE_OPERATIONS = (OP_TRANSFER, OP_DEPLOY_MINT)

# Known issuance addresses per network. Payloads that originate from one of
# these addresses are mints rather than transfers.
PRODUCTION_MINT_ADDRESS = "1inHbiwj2jrEcZPiSYnfgJ8FmS1Bmk4Dh"
SANDBOX_MINT_ADDRESSES = (
    "1A1QNEkLuvAALsmG4Me3iubP8zb5C6jpv5",  # dev
    "1BW7cejD27vDLiHsbK1Hvf1y4JTKvC1Yue",  # qa
    "1AZNdbFYBDFTAEgzZMfPzANxyNrpGJZAUY",  # stage
)
MINT_ADDRESSES = {
    "production": (PRODUCTION_MINT_ADDRESS,),
    "sandbox": SANDBOX_MINT_ADDRESSES,
}

# API defaults
DEFAULT_API_URL = "https://proxy-api.mnee.net"
DEFAULT_ORDINALS_API_URL = "https://ordinals.1sat.app"
DEFAULT_HISTORY_LIMIT = 100
