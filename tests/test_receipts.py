import hashlib

import pytest

from ballotbox.receipts import derive_receipt, verify_receipt


def test_matches_pipe_joined_sha256():
    expected = hashlib.sha256(b"vote-1|abcd|salt").hexdigest()
    assert derive_receipt("vote-1", "abcd", "salt") == expected


def test_deterministic():
    assert derive_receipt("v", "00ff", "s") == derive_receipt("v", "00ff", "s")


@pytest.mark.parametrize(
    "args",
    [("v2", "00ff", "s"), ("v", "00fe", "s"), ("v", "00ff", "t")],
)
def test_any_input_change_changes_hash(args):
    base = derive_receipt("v", "00ff", "s")
    assert derive_receipt(*args) != base


def test_is_256_bit_hex():
    h = derive_receipt("v", "00ff", "s")
    assert len(h) == 64
    int(h, 16)


@pytest.mark.parametrize("vote_id, cipher_hex", [("a|b", "00"), ("a", "00|11")])
def test_separator_rejected_in_fields(vote_id, cipher_hex):
    with pytest.raises(ValueError):
        derive_receipt(vote_id, cipher_hex, "salt")


def test_salt_may_contain_separator():
    assert len(derive_receipt("v", "00", "a|b")) == 64


def test_verify_receipt():
    h = derive_receipt("v", "00ff", "s")
    assert verify_receipt(h, "v", "00ff", "s")
    assert verify_receipt(h.upper(), "v", "00ff", "s")
    assert not verify_receipt(h, "v", "00ff", "other")
    assert not verify_receipt("é" * 64, "v", "00ff", "s")
