from __future__ import annotations

import pytest

from log_utils import RecordingLogger
from triage_crypto import (
    IV_LENGTH_BYTES,
    AesGcmCodec,
    AuthenticationError,
    DecryptionError,
    EncryptionFailure,
    EncryptionKey,
    KeyRing,
    UnknownKeyError,
    derive_key,
    from_base64,
    generate_key,
    generate_salt,
    to_base64,
)
from triage_crypto import audit


@pytest.mark.parametrize(
    "plaintext",
    ["", "I have a fever", "dry_cold", "Température élevée 🤒 नमस्ते", "x" * 10_000],
)
def test_decrypt_inverts_encrypt(plaintext):
    codec = AesGcmCodec()
    key = generate_key()
    iv = codec.generate_iv()

    ciphertext = codec.encrypt(plaintext, key, iv)

    assert len(ciphertext) == len(plaintext.encode("utf-8")) + 16
    assert codec.decrypt(ciphertext, key, iv) == plaintext


def test_generate_iv_yields_fresh_96_bit_values():
    codec = AesGcmCodec()
    ivs = [codec.generate_iv() for _ in range(10_000)]
    assert all(len(iv) == IV_LENGTH_BYTES == 12 for iv in ivs)
    assert len(set(ivs)) == len(ivs)


def test_bit_flipped_ciphertext_fails_authentication():
    codec = AesGcmCodec()
    key = generate_key()
    iv = codec.generate_iv()
    ciphertext = bytearray(codec.encrypt("I have a cold", key, iv))
    ciphertext[0] ^= 0x01

    with pytest.raises(AuthenticationError):
        codec.decrypt(bytes(ciphertext), key, iv)


def test_wrong_key_or_iv_fails_authentication():
    codec = AesGcmCodec()
    key = generate_key()
    iv = codec.generate_iv()
    ciphertext = codec.encrypt("suggest", key, iv)

    with pytest.raises(AuthenticationError):
        codec.decrypt(ciphertext, generate_key(), iv)
    with pytest.raises(AuthenticationError):
        codec.decrypt(ciphertext, key, codec.generate_iv())


def test_truncated_ciphertext_is_rejected():
    codec = AesGcmCodec()
    with pytest.raises(AuthenticationError):
        codec.decrypt(b"short", generate_key(), codec.generate_iv())


def test_non_utf8_plaintext_is_a_decryption_error_not_an_auth_error():
    codec = AesGcmCodec()
    key = generate_key()
    iv = codec.generate_iv()
    ciphertext = codec.encrypt(b"\xff\xfe\xfd", key, iv)

    with pytest.raises(DecryptionError) as excinfo:
        codec.decrypt(ciphertext, key, iv)
    assert not isinstance(excinfo.value, AuthenticationError)
    assert codec.decrypt_bytes(ciphertext, key, iv) == b"\xff\xfe\xfd"


def test_iv_reuse_under_the_same_key_is_refused():
    codec = AesGcmCodec()
    key = generate_key()
    iv = codec.generate_iv()
    codec.encrypt("first", key, iv)

    with pytest.raises(EncryptionFailure):
        codec.encrypt("second", key, iv)
    # Same IV under a different key is a distinct nonce space.
    codec.encrypt("second", generate_key(), iv)


def test_iv_length_is_enforced():
    codec = AesGcmCodec()
    key = generate_key()
    with pytest.raises(EncryptionFailure):
        codec.encrypt("hello", key, b"\x00" * 8)
    with pytest.raises(DecryptionError):
        codec.decrypt(b"\x00" * 32, key, b"\x00" * 8)


@pytest.mark.parametrize("payload", [b"", b"\x00", bytes(range(256)), "héllo wörld".encode("utf-8")])
def test_base64_round_trips_bytes(payload):
    assert from_base64(to_base64(payload)) == payload


@pytest.mark.parametrize("text", ["not base64!!", "abc", "é"])
def test_from_base64_rejects_malformed_text(text):
    with pytest.raises(DecryptionError):
        from_base64(text)


def test_seal_uses_a_fresh_iv_per_call():
    codec = AesGcmCodec()
    key = generate_key()
    first = codec.seal("same text", key)
    second = codec.seal("same text", key)

    assert first[1] != second[1]
    assert first[0] != second[0]
    assert codec.open(*first, key) == "same text"
    assert codec.open(*second, key) == "same text"


def test_self_test_passes():
    assert AesGcmCodec().self_test() is True


def test_audit_events_carry_key_id_but_never_material(monkeypatch):
    recorder = RecordingLogger()
    monkeypatch.setattr(audit, "logger", recorder)
    codec = AesGcmCodec()
    key = EncryptionKey(material=bytes(range(32)), key_id="audit-key")
    iv = codec.generate_iv()
    ciphertext = codec.encrypt("secret symptom", key, iv)
    with pytest.raises(AuthenticationError):
        codec.decrypt(ciphertext[:-1] + bytes([ciphertext[-1] ^ 0xFF]), key, iv)

    events = recorder.named("encryption_audit")
    assert [(e["operation"], e["success"]) for e in events] == [("encrypt", True), ("decrypt", False)]
    assert all(e["key_id"] == "audit-key" and e["algorithm"] == "AES-256-GCM" for e in events)
    assert events[1]["error"] == "AuthenticationError"
    assert events[1]["level"] == "warning"
    flattened = repr(recorder.events)
    assert "secret symptom" not in flattened
    assert repr(key.material) not in flattened


def test_key_repr_hides_material():
    key = EncryptionKey(material=bytes(range(32)), key_id="k1")
    assert "k1" in repr(key)
    assert "material" not in repr(key)


def test_key_rejects_invalid_length():
    with pytest.raises(ValueError):
        EncryptionKey(material=b"too short")


def test_generated_keys_get_distinct_ids():
    first, second = generate_key(), generate_key()
    assert first.key_id.startswith("key_")
    assert first.key_id != second.key_id
    assert first.material != second.material


def test_derive_key_is_deterministic_per_salt():
    salt = generate_salt()
    first = derive_key("correct horse", salt, iterations=1_000)
    again = derive_key("correct horse", salt, iterations=1_000)
    other = derive_key("correct horse", generate_salt(), iterations=1_000)

    assert len(salt) == 16
    assert len(first.material) == 32
    assert first.material == again.material
    assert first.material != other.material


def test_key_ring_resolves_default_and_named_keys():
    default = generate_key(key_id="primary")
    secondary = generate_key(key_id="secondary")
    ring = KeyRing(default=default)
    ring.register(secondary)

    assert ring.resolve() is default
    assert ring.resolve("secondary") is secondary
    assert ring.list_ids() == ["primary", "secondary"]
    with pytest.raises(UnknownKeyError):
        ring.resolve("missing")
