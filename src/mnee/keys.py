"""
Key and address helpers for mainnet P2PKH addresses.
"""

from __future__ import annotations

import hashlib

import base58
from coincurve import PrivateKey

from mnee.constants import P2PKH_VERSION, WIF_VERSION
from mnee.errors import ErrorKind, MneeError


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))"""
    h = hashlib.new("ripemd160")
    h.update(hashlib.sha256(data).digest())
    return h.digest()


def pubkey_hash_to_address(pubkey_hash: bytes) -> str:
    if len(pubkey_hash) != 20:
        raise ValueError(f"Invalid pubkey hash length: {len(pubkey_hash)}")
    return base58.b58encode_check(bytes([P2PKH_VERSION]) + pubkey_hash).decode("ascii")


def pubkey_to_address(pubkey: bytes) -> str:
    return pubkey_hash_to_address(hash160(pubkey))


def address_to_pubkey_hash(address: str) -> bytes:
    """
    Decode a base58check P2PKH address to its 20-byte hash.

    Raises:
        ValueError: If the checksum, version byte or payload length is wrong
    """
    decoded = base58.b58decode_check(address)
    if not decoded or decoded[0] != P2PKH_VERSION:
        raise ValueError(f"Invalid address prefix: {address}")
    if len(decoded) != 21:
        raise ValueError(f"Invalid address payload length: {len(decoded) - 1}")
    return decoded[1:]


def is_valid_address(address: str) -> bool:
    try:
        address_to_pubkey_hash(address)
    except ValueError:
        return False
    return True


def private_key_from_wif(wif: str) -> PrivateKey:
    """Decode a WIF string (compressed or uncompressed) to a coincurve key."""
    try:
        decoded = base58.b58decode_check(wif)
    except ValueError as e:
        raise MneeError(ErrorKind.INVALID_KEY, "Invalid WIF checksum") from e

    if not decoded or decoded[0] != WIF_VERSION:
        raise MneeError(ErrorKind.INVALID_KEY, "Invalid WIF version")
    if len(decoded) == 34 and decoded[-1] == 0x01:
        secret = decoded[1:33]
    elif len(decoded) == 33:
        secret = decoded[1:]
    else:
        raise MneeError(ErrorKind.INVALID_KEY, "Invalid WIF length")

    try:
        return PrivateKey(secret)
    except ValueError as e:
        raise MneeError(ErrorKind.INVALID_KEY, "Invalid private key") from e


def private_key_to_wif(private_key: PrivateKey, compressed: bool = True) -> str:
    payload = bytes([WIF_VERSION]) + private_key.secret
    if compressed:
        payload += b"\x01"
    return base58.b58encode_check(payload).decode("ascii")


def private_key_to_address(private_key: PrivateKey) -> str:
    return pubkey_to_address(private_key.public_key.format(compressed=True))
