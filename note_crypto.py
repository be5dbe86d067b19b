"""
Per-note encryption.

Flow:
1. seal: fresh salt -> Argon2id key -> fresh nonce -> AES-256-GCM
2. open: re-derive key from the stored salt -> verify tag -> decode UTF-8

Every seal produces a brand new salt and nonce, so a re-saved note never
shares key material with its previous version.
"""

import logging

from crypto import (
    MODERATE,
    KdfParams,
    aead_open,
    aead_seal,
    derive_key,
    generate_nonce,
    generate_salt,
)
from errors import AuthenticationFailed, DecodingFailed, EmptyRecord
from record import EncryptedRecord, NoteBody

logger = logging.getLogger(__name__)


class NoteCrypto:
    """
    Seals and opens note bodies under a password.

    Holds no per-note state; one instance can serve any number of notes
    and threads. Callers must serialize seal/open for the same note.
    """

    def __init__(self, kdf_params: KdfParams = MODERATE):
        self.kdf_params = kdf_params

    def seal(self, plaintext: str, password: str) -> EncryptedRecord:
        """
        Encrypt plaintext into a complete EncryptedRecord.

        Raises:
            ValueError: plaintext is empty (zero-length ciphertext means unsealed)
                or not encodable as UTF-8
            KeyDerivationFailed, NonceGenerationFailed
        """
        try:
            data = plaintext.encode("utf-8")
        except UnicodeEncodeError as e:
            raise ValueError("Note content is not valid Unicode text") from e
        if not data:
            raise ValueError("Refusing to seal empty plaintext")

        salt = generate_salt()
        key = derive_key(password, salt, self.kdf_params)
        nonce = generate_nonce()
        ciphertext, tag = aead_seal(data, key, nonce)
        del key

        logger.debug("Sealed note body (%d bytes)", len(ciphertext))
        return EncryptedRecord(salt=salt, nonce=nonce, ciphertext=ciphertext, tag=tag)

    def open(self, body: NoteBody, password: str) -> str:
        """
        Decrypt a sealed body back to text.

        Raises:
            EmptyRecord: body was never sealed (checked before key derivation)
            AuthenticationFailed: wrong password or tampered data
            DecodingFailed: authenticated bytes are not UTF-8
        """
        if not body or not body.ciphertext:
            raise EmptyRecord()

        key = derive_key(password, body.salt, self.kdf_params)
        try:
            data = aead_open(body.ciphertext, body.tag, key, body.nonce)
        except AuthenticationFailed:
            logger.warning("Note body failed authentication")
            raise
        finally:
            del key

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodingFailed() from e
