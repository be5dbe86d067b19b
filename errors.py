"""
Notebook exception classes.

Crypto failures form a closed set: every NoteCryptoError carries one
ErrorKind, and each kind has exactly one exception class.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    KEY_DERIVATION_FAILED = "KeyDerivationFailed"
    NONCE_GENERATION_FAILED = "NonceGenerationFailed"
    INVALID_INPUT_LENGTH = "InvalidInputLength"
    AUTHENTICATION_FAILED = "AuthenticationFailed"
    EMPTY_RECORD = "EmptyRecord"
    DECODING_FAILED = "DecodingFailed"


class NoteCryptoError(Exception):
    """Base exception for note encryption/decryption"""

    kind: ErrorKind
    default_message = "Note crypto operation failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class KeyDerivationFailed(NoteCryptoError):
    """Raised when Argon2id cannot allocate memory or errors internally"""

    kind = ErrorKind.KEY_DERIVATION_FAILED
    default_message = "Key derivation failed, free some memory and retry"


class NonceGenerationFailed(NoteCryptoError):
    """Raised when the OS random source is unavailable"""

    kind = ErrorKind.NONCE_GENERATION_FAILED
    default_message = "Secure random generation failed, please retry"


class InvalidInputLength(NoteCryptoError):
    """Raised when a key, salt, nonce or tag has the wrong size"""

    kind = ErrorKind.INVALID_INPUT_LENGTH
    default_message = "Invalid input length"


class AuthenticationFailed(NoteCryptoError):
    """Raised when the tag does not verify (wrong password or tampered data)"""

    kind = ErrorKind.AUTHENTICATION_FAILED
    default_message = "Wrong password or corrupted data"


class EmptyRecord(NoteCryptoError):
    """Raised when opening a note that was never sealed"""

    kind = ErrorKind.EMPTY_RECORD
    default_message = "Note has not been encrypted yet, nothing to unlock"


class DecodingFailed(NoteCryptoError):
    """Raised when authenticated bytes are not valid UTF-8"""

    kind = ErrorKind.DECODING_FAILED
    default_message = "Decrypted content is not valid text"


# ───────── Storage ─────────

class StorageError(Exception):
    """Base exception for notebook persistence"""
    pass


class StorageUnavailable(StorageError):
    """Raised when the database cannot be opened or initialised"""
    pass


class NoteNotFound(StorageError):
    """Raised when a note id does not exist"""
    pass


class CategoryNotFound(StorageError):
    """Raised when a category id does not exist"""
    pass
