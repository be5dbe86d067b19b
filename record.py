"""
At-rest layout of a note body.

A body is either EMPTY (never sealed) or an EncryptedRecord holding all
four fields. There is no way to build a record with some fields missing.
"""

import base64
from dataclasses import dataclass
from typing import Union

from crypto import NONCE_LEN, SALT_LEN, TAG_LEN
from errors import InvalidInputLength


class _Empty:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "EMPTY"

    def __bool__(self):
        return False


EMPTY = _Empty()


@dataclass(frozen=True)
class EncryptedRecord:
    salt: bytes
    nonce: bytes
    ciphertext: bytes
    tag: bytes

    def __post_init__(self):
        for name, expected in (("salt", SALT_LEN), ("nonce", NONCE_LEN), ("tag", TAG_LEN)):
            value = getattr(self, name)
            if len(value) != expected:
                raise InvalidInputLength(
                    f"{name} must be {expected} bytes, got {len(value)}"
                )

    def __repr__(self):
        return f"EncryptedRecord(ciphertext={len(self.ciphertext)} bytes)"

    def to_dict(self) -> dict:
        return {
            "salt": base64.b64encode(self.salt).decode(),
            "nonce": base64.b64encode(self.nonce).decode(),
            "tag": base64.b64encode(self.tag).decode(),
            "ciphertext": base64.b64encode(self.ciphertext).decode(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EncryptedRecord":
        return cls(
            salt=base64.b64decode(data["salt"]),
            nonce=base64.b64decode(data["nonce"]),
            ciphertext=base64.b64decode(data["ciphertext"]),
            tag=base64.b64decode(data["tag"]),
        )

    @classmethod
    def from_row(cls, salt, nonce, ciphertext, tag) -> Union["EncryptedRecord", _Empty]:
        """Rebuild a body from storage columns; all NULL means EMPTY."""
        if salt is None and nonce is None and ciphertext is None and tag is None:
            return EMPTY
        if salt is None or nonce is None or ciphertext is None or tag is None:
            raise InvalidInputLength("stored record is missing fields")
        return cls(bytes(salt), bytes(nonce), bytes(ciphertext), bytes(tag))


NoteBody = Union[EncryptedRecord, _Empty]
