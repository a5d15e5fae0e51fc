from __future__ import annotations

import base64
import secrets
import string
import time
from dataclasses import dataclass, field

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

PBKDF2_ITERATIONS = 310_000
KEY_LENGTH_BYTES = 32
VALID_KEY_LENGTHS = {16, 24, 32}

_KEY_ID_ALPHABET = string.digits + string.ascii_lowercase


class UnknownKeyError(KeyError):
    pass


def new_key_id() -> str:
    suffix = "".join(secrets.choice(_KEY_ID_ALPHABET) for _ in range(8))
    return f"key_{int(time.time() * 1000)}_{suffix}"


@dataclass(frozen=True)
class EncryptionKey:
    """Symmetric AES key plus an identifier safe to log.

    ``material`` is excluded from ``repr`` so the key never ends up in a log
    line or traceback by accident.
    """

    material: bytes = field(repr=False)
    key_id: str = field(default_factory=new_key_id)

    def __post_init__(self) -> None:
        if len(self.material) not in VALID_KEY_LENGTHS:
            raise ValueError("AES keys must be 16, 24 or 32 bytes long.")

    @classmethod
    def from_base64(cls, encoded: str, key_id: str | None = None) -> "EncryptionKey":
        try:
            material = base64.b64decode(encoded.strip(), validate=True)
        except (ValueError, TypeError) as exc:
            raise ValueError("Shared key is not valid base64.") from exc
        if key_id:
            return cls(material=material, key_id=key_id)
        return cls(material=material)


def generate_key(key_id: str | None = None) -> EncryptionKey:
    material = secrets.token_bytes(KEY_LENGTH_BYTES)
    if key_id:
        return EncryptionKey(material=material, key_id=key_id)
    return EncryptionKey(material=material)


def generate_salt(length: int = 16) -> bytes:
    return secrets.token_bytes(length)


def derive_key(
    passphrase: str,
    salt: bytes,
    *,
    iterations: int = PBKDF2_ITERATIONS,
    key_id: str | None = None,
) -> EncryptionKey:
    """PBKDF2-HMAC-SHA256 derivation of a 256-bit AES key."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH_BYTES,
        salt=salt,
        iterations=iterations,
    )
    material = kdf.derive(passphrase.encode("utf-8"))
    if key_id:
        return EncryptionKey(material=material, key_id=key_id)
    return EncryptionKey(material=material)


class KeyRing:
    def __init__(self, default: EncryptionKey | None = None) -> None:
        self._keys: dict[str, EncryptionKey] = {}
        self._default_id: str | None = None
        if default is not None:
            self.register(default, default=True)

    def register(self, key: EncryptionKey, *, default: bool = False) -> None:
        self._keys[key.key_id] = key
        if default or self._default_id is None:
            self._default_id = key.key_id

    def resolve(self, key_id: str | None = None) -> EncryptionKey:
        wanted = key_id or self._default_id
        key = self._keys.get(wanted) if wanted else None
        if key is None:
            raise UnknownKeyError(f"Encryption key not registered: {key_id}")
        return key

    @property
    def default_id(self) -> str | None:
        return self._default_id

    def list_ids(self) -> list[str]:
        return sorted(self._keys.keys())
