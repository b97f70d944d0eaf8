# ballotbox/receipts.py
# Public receipt hashes. A voter can recompute theirs from vote_id + ciphertext
# and look it up in the public list without revealing the choice.
import hashlib
import hmac

SEPARATOR = "|"


def derive_receipt(vote_id: str, cipher_hex: str, public_salt: str) -> str:
    """
    sha256(vote_id | cipher_hex | public_salt) as 64 hex chars.

    vote_id and cipher_hex may not contain the separator; the salt is the
    last field so it is unambiguous whatever it contains.
    """
    for name, value in (("vote_id", vote_id), ("cipher_hex", cipher_hex)):
        if SEPARATOR in value:
            raise ValueError(f"{name} must not contain {SEPARATOR!r}")
    h = hashlib.sha256()
    h.update(SEPARATOR.join((vote_id, cipher_hex, public_salt)).encode("utf-8"))
    return h.hexdigest()


def verify_receipt(receipt_hash: str, vote_id: str, cipher_hex: str, public_salt: str) -> bool:
    expected = derive_receipt(vote_id, cipher_hex, public_salt)
    if not receipt_hash.isascii():
        return False
    return hmac.compare_digest(expected, receipt_hash.lower())
