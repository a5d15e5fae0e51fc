from .codec import (
    IV_LENGTH_BYTES,
    AesGcmCodec,
    AuthenticationError,
    CodecError,
    DecryptionError,
    EncryptionFailure,
    from_base64,
    to_base64,
)
from .keys import EncryptionKey, KeyRing, UnknownKeyError, derive_key, generate_key, generate_salt

__all__ = [
    "IV_LENGTH_BYTES",
    "AesGcmCodec",
    "AuthenticationError",
    "CodecError",
    "DecryptionError",
    "EncryptionFailure",
    "EncryptionKey",
    "KeyRing",
    "UnknownKeyError",
    "derive_key",
    "from_base64",
    "generate_key",
    "generate_salt",
    "to_base64",
]
