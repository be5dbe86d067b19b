"""
Shared pytest fixtures.

Argon2id at the moderate profile needs 256 MiB per derivation, so tests
use a tiny work factor. Profiles are exercised by constant checks only.
"""

import pytest

from crypto import KdfParams
from note_crypto import NoteCrypto
from notebook import Notebook

FAST_KDF = KdfParams(time_cost=1, memory_cost=1024, parallelism=1)


@pytest.fixture
def fast_kdf():
    return FAST_KDF


@pytest.fixture
def note_crypto():
    return NoteCrypto(FAST_KDF)


@pytest.fixture
def notebook(tmp_path):
    return Notebook(db_name=str(tmp_path / "notebook.db"), kdf_params=FAST_KDF)
