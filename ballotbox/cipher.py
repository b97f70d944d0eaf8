# ballotbox/cipher.py
# AES-256-GCM sealing of ballot plaintext under the server key
import os
import binascii
from typing import NamedTuple, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ballotbox.config import KEY_BYTES
from ballotbox.errors import AuthenticationFailure

NONCE_BYTES = 12  # 96-bit GCM nonce
TAG_BYTES = 16


class SealedBallot(NamedTuple):
    cipher_hex: str
    nonce_hex: str
    tag_hex: str


def _check_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_BYTES:
        raise ValueError(f"key must be {KEY_BYTES} bytes")


def ballot_aad(election_id: str, vote_id: str) -> bytes:
    """Associated data binding a ciphertext to its ballot record."""
    return f"election_id={election_id}|vote_id={vote_id}".encode("utf-8")


def encrypt(plaintext: bytes, key: bytes, associated_data: Optional[bytes] = None) -> SealedBallot:
    """
    Encrypt with a fresh random nonce per call.
    AESGCM returns ciphertext || tag; the tag is split off so the record
    stores cipher/nonce/tag as separate hex fields.
    """
    _check_key(key)
    nonce = os.urandom(NONCE_BYTES)
    sealed = AESGCM(bytes(key)).encrypt(nonce, plaintext, associated_data)
    ct, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return SealedBallot(
        cipher_hex=ct.hex(),
        nonce_hex=nonce.hex(),
        tag_hex=tag.hex(),
    )


def decrypt(
    cipher_hex: str,
    nonce_hex: str,
    tag_hex: str,
    key: bytes,
    associated_data: Optional[bytes] = None,
) -> bytes:
    """
    Verify and decrypt. Any malformed or altered input raises
    AuthenticationFailure; no partial plaintext is ever returned.
    """
    _check_key(key)
    try:
        ct = binascii.unhexlify(cipher_hex)
        nonce = binascii.unhexlify(nonce_hex)
        tag = binascii.unhexlify(tag_hex)
    except (binascii.Error, ValueError, TypeError):
        raise AuthenticationFailure("Ballot fields are not valid hex.")

    if len(nonce) != NONCE_BYTES or len(tag) != TAG_BYTES:
        raise AuthenticationFailure()

    try:
        return AESGCM(bytes(key)).decrypt(nonce, ct + tag, associated_data)
    except (InvalidTag, ValueError):
        raise AuthenticationFailure()
