from __future__ import annotations

import base64
import binascii
import secrets
import threading
from collections import OrderedDict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .audit import audited
from .keys import EncryptionKey, generate_key

IV_LENGTH_BYTES = 12
TAG_LENGTH_BYTES = 16


class CodecError(Exception):
    pass


class DecryptionError(CodecError):
    pass


class AuthenticationError(DecryptionError):
    pass


class EncryptionFailure(CodecError):
    pass


def to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def from_base64(text: str) -> bytes:
    try:
        return base64.b64decode(text.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
        raise DecryptionError("Payload is not valid base64.") from exc


class AesGcmCodec:
    """AES-GCM envelope codec.

    Ciphertexts are ``ciphertext || tag`` as produced by ``AESGCM``. Each codec
    remembers the IVs it encrypted with per key id (bounded) and refuses to
    encrypt twice under the same (key, IV) pair.
    """

    def __init__(self, *, iv_history: int = 100_000) -> None:
        self._iv_history = iv_history
        self._used: OrderedDict[tuple[str, bytes], None] = OrderedDict()
        self._lock = threading.Lock()

    def generate_iv(self) -> bytes:
        return secrets.token_bytes(IV_LENGTH_BYTES)

    def _claim_iv(self, key: EncryptionKey, iv: bytes) -> None:
        marker = (key.key_id, iv)
        with self._lock:
            if marker in self._used:
                raise EncryptionFailure("IV already used with this key.")
            self._used[marker] = None
            while len(self._used) > self._iv_history:
                self._used.popitem(last=False)

    def encrypt(self, plaintext: str | bytes, key: EncryptionKey, iv: bytes) -> bytes:
        data = plaintext.encode("utf-8") if isinstance(plaintext, str) else plaintext
        with audited("encrypt", key.key_id, len(data)):
            if len(iv) != IV_LENGTH_BYTES:
                raise EncryptionFailure(f"IV must be {IV_LENGTH_BYTES} bytes.")
            try:
                cipher = AESGCM(key.material)
            except ValueError as exc:
                raise EncryptionFailure("Key is not usable for AES-GCM.") from exc
            self._claim_iv(key, iv)
            return cipher.encrypt(iv, data, None)

    def decrypt_bytes(self, ciphertext: bytes, key: EncryptionKey, iv: bytes) -> bytes:
        with audited("decrypt", key.key_id, len(ciphertext)):
            if len(iv) != IV_LENGTH_BYTES:
                raise DecryptionError(f"IV must be {IV_LENGTH_BYTES} bytes.")
            if len(ciphertext) < TAG_LENGTH_BYTES:
                raise AuthenticationError("Ciphertext is shorter than the authentication tag.")
            try:
                return AESGCM(key.material).decrypt(iv, ciphertext, None)
            except InvalidTag as exc:
                raise AuthenticationError("Authentication tag did not verify.") from exc

    def decrypt(self, ciphertext: bytes, key: EncryptionKey, iv: bytes) -> str:
        plaintext = self.decrypt_bytes(ciphertext, key, iv)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionError("Decrypted payload is not UTF-8 text.") from exc

    def seal(self, plaintext: str, key: EncryptionKey) -> tuple[str, str]:
        """Encrypt under a fresh IV and return ``(encrypted_data, iv)`` in base64."""
        iv = self.generate_iv()
        ciphertext = self.encrypt(plaintext, key, iv)
        return to_base64(ciphertext), to_base64(iv)

    def open(self, encrypted_data: str, iv: str, key: EncryptionKey) -> str:
        return self.decrypt(from_base64(encrypted_data), key, from_base64(iv))

    def self_test(self) -> bool:
        probe = "Hello, this is a test message for encryption!"
        key = generate_key(key_id="self_test")
        try:
            encrypted_data, iv = self.seal(probe, key)
            return self.open(encrypted_data, iv, key) == probe
        except CodecError:
            return False
