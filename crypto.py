import os
from dataclasses import dataclass

from argon2.exceptions import HashingError
from argon2.low_level import hash_secret_raw, Type
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from errors import (
    AuthenticationFailed,
    InvalidInputLength,
    KeyDerivationFailed,
    NonceGenerationFailed,
)

KEY_LEN = 32
SALT_LEN = 16
NONCE_LEN = 12
TAG_LEN = 16


@dataclass(frozen=True)
class KdfParams:
    time_cost: int
    memory_cost: int  # KiB
    parallelism: int


# libsodium crypto_pwhash OPSLIMIT/MEMLIMIT presets
MODERATE = KdfParams(time_cost=3, memory_cost=262144, parallelism=1)  # 256 MiB
INTERACTIVE = KdfParams(time_cost=2, memory_cost=65536, parallelism=1)  # 64 MiB


def _check_len(name: str, value: bytes, expected: int) -> None:
    if len(value) != expected:
        raise InvalidInputLength(
            f"{name} must be {expected} bytes, got {len(value)}"
        )


def _random_bytes(length: int) -> bytes:
    try:
        return os.urandom(length)
    except (OSError, NotImplementedError) as e:
        raise NonceGenerationFailed() from e


def generate_salt() -> bytes:
    return _random_bytes(SALT_LEN)


def generate_nonce() -> bytes:
    return _random_bytes(NONCE_LEN)


def derive_key(password: str, salt: bytes, params: KdfParams = MODERATE) -> bytes:
    _check_len("salt", salt, SALT_LEN)
    try:
        secret = password.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValueError("Password is not valid Unicode text") from e
    try:
        return hash_secret_raw(
            secret=secret,
            salt=salt,
            time_cost=params.time_cost,
            memory_cost=params.memory_cost,
            parallelism=params.parallelism,
            hash_len=KEY_LEN,
            type=Type.ID
        )
    except (HashingError, MemoryError) as e:
        raise KeyDerivationFailed() from e


def aead_seal(plaintext: bytes, key: bytes, nonce: bytes) -> tuple[bytes, bytes]:
    """AES-256-GCM encrypt. Returns (ciphertext, tag), split from GCM output."""
    _check_len("key", key, KEY_LEN)
    _check_len("nonce", nonce, NONCE_LEN)
    sealed = AESGCM(key).encrypt(nonce, plaintext, None)
    return sealed[:-TAG_LEN], sealed[-TAG_LEN:]


def aead_open(ciphertext: bytes, tag: bytes, key: bytes, nonce: bytes) -> bytes:
    """AES-256-GCM decrypt. No plaintext is returned unless the tag verifies."""
    _check_len("key", key, KEY_LEN)
    _check_len("nonce", nonce, NONCE_LEN)
    _check_len("tag", tag, TAG_LEN)
    try:
        return AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as e:
        raise AuthenticationFailed() from e
