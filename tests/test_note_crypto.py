import dataclasses
import os

import pytest

import crypto
import note_crypto as note_crypto_mod
from crypto import KEY_LEN, aead_seal, derive_key
from errors import (
    AuthenticationFailed,
    DecodingFailed,
    EmptyRecord,
    ErrorKind,
    InvalidInputLength,
    NonceGenerationFailed,
    NoteCryptoError,
)
from record import EMPTY, EncryptedRecord


def test_hello_vault_scenario(note_crypto):
    record = note_crypto.seal("Hello, vault!", "correct-horse")

    assert len(record.salt) == 16
    assert len(record.nonce) == 12
    assert len(record.tag) == 16
    assert len(record.ciphertext) == 13

    assert note_crypto.open(record, "correct-horse") == "Hello, vault!"
    with pytest.raises(AuthenticationFailed):
        note_crypto.open(record, "wrong-horse")


@pytest.mark.parametrize("text", [
    "x",
    "Grocery list\n- milk\n- eggs\n",
    "密钥派生 ✓ émoji 🗝️",
    "a" * 10_000,
])
def test_round_trip(note_crypto, text):
    record = note_crypto.seal(text, "pw")
    assert note_crypto.open(record, "pw") == text


def test_seal_refuses_empty_plaintext(note_crypto):
    with pytest.raises(ValueError):
        note_crypto.seal("", "pw")


def test_seal_refuses_unencodable_text(note_crypto):
    with pytest.raises(ValueError):
        note_crypto.seal("broken \ud800 surrogate", "pw")
    with pytest.raises(ValueError):
        note_crypto.seal("fine", "broken \ud800 password")


def test_every_bit_flip_is_detected(note_crypto):
    record = note_crypto.seal("Hello, vault!", "correct-horse")

    for field in ("ciphertext", "tag"):
        original = getattr(record, field)
        for i in range(len(original) * 8):
            flipped = bytearray(original)
            flipped[i // 8] ^= 1 << (i % 8)
            tampered = dataclasses.replace(record, **{field: bytes(flipped)})
            with pytest.raises(AuthenticationFailed):
                note_crypto.open(tampered, "correct-horse")


def test_seals_never_repeat(note_crypto):
    records = [note_crypto.seal("same text", "same password") for _ in range(25)]

    for field in ("salt", "nonce", "ciphertext", "tag"):
        values = {getattr(r, field) for r in records}
        assert len(values) == len(records), field


def test_open_empty_skips_key_derivation(monkeypatch, note_crypto):
    def must_not_run(*args, **kwargs):
        raise AssertionError("key derivation should not run")

    monkeypatch.setattr(note_crypto_mod, "derive_key", must_not_run)

    unsealed = EncryptedRecord(os.urandom(16), os.urandom(12), b"", os.urandom(16))
    for body in (EMPTY, None, unsealed):
        with pytest.raises(EmptyRecord):
            note_crypto.open(body, "pw")


def test_invalid_utf8_is_decoding_failure(note_crypto, fast_kdf):
    salt, nonce = crypto.generate_salt(), crypto.generate_nonce()
    key = derive_key("pw", salt, fast_kdf)
    ciphertext, tag = aead_seal(b"\xff\xfe\xfa not text", key, nonce)
    record = EncryptedRecord(salt=salt, nonce=nonce, ciphertext=ciphertext, tag=tag)

    with pytest.raises(DecodingFailed):
        note_crypto.open(record, "pw")


def test_nonce_failure_aborts_seal(monkeypatch, note_crypto):
    real_urandom = os.urandom
    calls = []

    def flaky_urandom(n):
        calls.append(n)
        if len(calls) > 1:
            raise OSError("entropy pool unavailable")
        return real_urandom(n)

    monkeypatch.setattr(crypto.os, "urandom", flaky_urandom)
    with pytest.raises(NonceGenerationFailed):
        note_crypto.seal("text", "pw")
    assert calls == [16, 12]


def test_errors_form_closed_set():
    assert AuthenticationFailed().kind is ErrorKind.AUTHENTICATION_FAILED
    assert EmptyRecord().kind is ErrorKind.EMPTY_RECORD
    assert {cls.kind for cls in NoteCryptoError.__subclasses__()} == set(ErrorKind)
    assert "corrupted" in str(AuthenticationFailed())
    assert str(EmptyRecord("note 42 is unsealed")) == "note 42 is unsealed"


# ───────── Record layout ─────────

def test_record_rejects_wrong_field_sizes():
    with pytest.raises(InvalidInputLength):
        EncryptedRecord(os.urandom(15), os.urandom(12), b"ct", os.urandom(16))
    with pytest.raises(InvalidInputLength):
        EncryptedRecord(os.urandom(16), os.urandom(12), b"ct", os.urandom(KEY_LEN))


def test_record_serializes_to_base64(note_crypto):
    record = note_crypto.seal("portable", "pw")
    restored = EncryptedRecord.from_dict(record.to_dict())

    assert restored == record
    assert note_crypto.open(restored, "pw") == "portable"


def test_partial_storage_row_is_rejected():
    assert EncryptedRecord.from_row(None, None, None, None) is EMPTY
    with pytest.raises(InvalidInputLength):
        EncryptedRecord.from_row(os.urandom(16), None, b"ct", os.urandom(16))
