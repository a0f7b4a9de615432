from __future__ import annotations

import hashlib

import pytest

from converge.engine import codec
from converge.handlers.memory import MemoryObjectConfig, MemoryObjectState
from converge.utils.errors import DecodeError


def test_canonical_encoding_sorts_keys_and_drops_whitespace():
    assert codec.canonicalize({"b": 1, "a": {"d": 2, "c": 3}}) == b'{"a":{"c":3,"d":2},"b":1}'


def test_encode_is_stable_for_equal_models():
    first = MemoryObjectState(id="obj-1", name="a", size=1, tags={"y": "2", "x": "1"})
    second = MemoryObjectState(id="obj-1", name="a", size=1, tags={"x": "1", "y": "2"})

    assert codec.encode(first) == codec.encode(second)


def test_encode_keeps_non_ascii_text():
    encoded = codec.encode(MemoryObjectConfig(name="größe", size=1))

    assert "größe".encode("utf-8") in encoded


def test_decode_validates_against_shape():
    config = codec.decode(b'{"name": "a", "size": 3}', MemoryObjectConfig)

    assert config == MemoryObjectConfig(name="a", size=3)


def test_decode_ignores_unknown_fields_in_state():
    state = codec.decode(b'{"id": "obj-1", "name": "a", "size": 3, "extra": true}', MemoryObjectState)

    assert state.id == "obj-1"


@pytest.mark.parametrize("blob", [b"", b"   "])
def test_decode_rejects_empty_blobs(blob):
    with pytest.raises(DecodeError, match="is empty"):
        codec.decode(blob, MemoryObjectConfig, "desired config")


def test_decode_collects_every_validation_error():
    with pytest.raises(DecodeError) as excinfo:
        codec.decode(b'{"size": -1}', MemoryObjectConfig)

    errors = excinfo.value.context.additional_info["errors"]
    assert {error["path"] for error in errors} == {"name", "size"}


def test_decode_reports_nested_paths():
    with pytest.raises(DecodeError) as excinfo:
        codec.decode(b'{"name": "a", "size": 1, "tags": {"k": 5}}', MemoryObjectConfig)

    assert excinfo.value.path == "tags.k"


def test_decode_rejects_invalid_utf8():
    with pytest.raises(DecodeError, match="not valid JSON"):
        codec.decode(b"\xff\xfe", MemoryObjectConfig)


def test_decode_optional_passes_absence_through():
    assert codec.decode_optional(None, MemoryObjectConfig) is None


@pytest.mark.parametrize(
    ("blob", "expected"),
    [(None, False), (b"", True), (b" \n", True), (b"{}", False)],
)
def test_is_untracked(blob, expected):
    assert codec.is_untracked(blob) is expected


def test_blob_hash():
    assert codec.blob_hash(None) is None
    assert codec.blob_hash(b"") == hashlib.sha256(b"").hexdigest()
    assert codec.blob_hash(b"{}") != codec.blob_hash(b"{ }")
