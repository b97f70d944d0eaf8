# ballotbox/config.py
# Central place for settings loaded from the environment / .env

import os
import binascii
from dataclasses import dataclass

from dotenv import load_dotenv

from ballotbox.errors import ConfigError

load_dotenv()

# AES-256 key length in bytes; the env var carries it hex-encoded (64 chars)
KEY_BYTES = 32

DEFAULT_PUBLIC_SALT = "public_salt_for_receipts"
DEFAULT_SECRET_KEY = "dev_secret_key_change_me"
DEFAULT_MONGO_URI = "mongodb://localhost:27017"
DEFAULT_MONGO_DB = "ballotbox"
DEFAULT_STORAGE_TIMEOUT_MS = 5000

STORAGE_BACKENDS = ("mongo", "memory")


@dataclass(frozen=True)
class Settings:
    encryption_key: bytes
    public_salt: str = DEFAULT_PUBLIC_SALT
    secret_key: str = DEFAULT_SECRET_KEY
    storage_backend: str = "mongo"
    mongo_uri: str = DEFAULT_MONGO_URI
    mongo_db: str = DEFAULT_MONGO_DB
    storage_timeout_ms: int = DEFAULT_STORAGE_TIMEOUT_MS

    def __repr__(self) -> str:
        # never print key material
        return (
            f"Settings(storage_backend={self.storage_backend!r}, "
            f"mongo_uri={self.mongo_uri!r}, mongo_db={self.mongo_db!r}, "
            f"storage_timeout_ms={self.storage_timeout_ms})"
        )


def parse_encryption_key(key_hex: str) -> bytes:
    """
    Decode a hex-encoded 32-byte key.
    Raises ConfigError if absent, not hex, or the wrong length.
    """
    if not key_hex:
        raise ConfigError("ENCRYPTION_KEY is not set. Use a 64-hex-character (32-byte) key.")
    key_hex = key_hex.strip()
    if len(key_hex) != KEY_BYTES * 2:
        raise ConfigError(
            f"ENCRYPTION_KEY must be {KEY_BYTES * 2} hex characters, got {len(key_hex)}."
        )
    try:
        return binascii.unhexlify(key_hex)
    except (binascii.Error, ValueError):
        raise ConfigError("ENCRYPTION_KEY is not valid hex.")


def load_encryption_key() -> bytes:
    return parse_encryption_key(os.getenv("ENCRYPTION_KEY", ""))


def load_settings() -> Settings:
    """Read all settings once at startup. Any problem is fatal."""
    backend = os.getenv("STORAGE_BACKEND", "mongo").strip().lower()
    if backend not in STORAGE_BACKENDS:
        raise ConfigError(f"STORAGE_BACKEND must be one of {STORAGE_BACKENDS}, got {backend!r}.")

    timeout_raw = os.getenv("STORAGE_TIMEOUT_MS", str(DEFAULT_STORAGE_TIMEOUT_MS))
    try:
        timeout_ms = int(timeout_raw)
    except ValueError:
        raise ConfigError(f"STORAGE_TIMEOUT_MS must be an integer, got {timeout_raw!r}.")
    if timeout_ms <= 0:
        raise ConfigError("STORAGE_TIMEOUT_MS must be positive.")

    return Settings(
        encryption_key=load_encryption_key(),
        public_salt=os.getenv("PUBLIC_SALT", DEFAULT_PUBLIC_SALT),
        secret_key=os.getenv("SECRET_KEY", DEFAULT_SECRET_KEY),
        storage_backend=backend,
        mongo_uri=os.getenv("MONGO_URI", DEFAULT_MONGO_URI),
        mongo_db=os.getenv("MONGO_DB", DEFAULT_MONGO_DB),
        storage_timeout_ms=timeout_ms,
    )
