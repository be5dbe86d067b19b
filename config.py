import os
from dataclasses import dataclass

from crypto import INTERACTIVE, MODERATE, KdfParams

DEFAULT_DB_NAME = "notebook.db"
DEFAULT_KDF_PROFILE = "moderate"

# A profile must stay the same for the lifetime of a database: notes sealed
# under one profile only open under that profile.
KDF_PROFILES = {
    "moderate": MODERATE,
    "interactive": INTERACTIVE,
}


@dataclass(frozen=True)
class Settings:
    db_name: str
    kdf_profile: str

    @property
    def kdf_params(self) -> KdfParams:
        return KDF_PROFILES[self.kdf_profile]


def db_name_from_env() -> str:
    return os.getenv("NOTEBOOK_DB", DEFAULT_DB_NAME)


def kdf_profile_from_env() -> str:
    profile = os.getenv("NOTEBOOK_KDF_PROFILE", DEFAULT_KDF_PROFILE).strip().lower()
    if profile not in KDF_PROFILES:
        raise ValueError(
            f"Unknown KDF profile {profile!r}, expected one of {sorted(KDF_PROFILES)}"
        )
    return profile


def kdf_params_from_env() -> KdfParams:
    return KDF_PROFILES[kdf_profile_from_env()]


def load_settings() -> Settings:
    """Read settings from NOTEBOOK_* environment variables."""
    return Settings(db_name=db_name_from_env(), kdf_profile=kdf_profile_from_env())
