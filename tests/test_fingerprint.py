from __future__ import annotations

from hashlib import sha3_256

import pytest

from vimporter.core.errors import InvalidState
from vimporter.ingest.fingerprint import FINGERPRINT_LENGTH, fingerprint, fingerprints, is_fingerprint


def test_fingerprint_is_uppercase_sha3_of_utf8_id():
    value = fingerprint("talks/intro.md")
    assert value == sha3_256("talks/intro.md".encode("utf-8")).hexdigest().upper()
    assert len(value) == FINGERPRINT_LENGTH
    assert is_fingerprint(value)


def test_fingerprint_is_deterministic_and_distinct():
    assert fingerprint("abc") == fingerprint("abc")
    assert fingerprint("abc") != fingerprint("abd")
    assert fingerprint("vidéo") == sha3_256("vidéo".encode("utf-8")).hexdigest().upper()


@pytest.mark.parametrize("value", ["", None])
def test_fingerprint_rejects_empty_ids(value):
    with pytest.raises(InvalidState):
        fingerprint(value)


def test_fingerprints_keep_first_occurrence_order():
    result = fingerprints(["b", "a", "b"])
    assert result == (fingerprint("b"), fingerprint("a"))


@pytest.mark.parametrize(
    "value",
    ["", None, "abc", "a" * 64, "G" * 64, "A" * 63],
)
def test_is_fingerprint_rejects_other_shapes(value):
    assert not is_fingerprint(value)
