from __future__ import annotations

import importlib
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from chat_protocol import EncryptedChatClient  # noqa: E402
from triage_crypto import EncryptionKey  # noqa: E402

TEST_KEY_MATERIAL = bytes(range(32))
TEST_KEY_B64 = "AAECAwQFBgcICQoLDA0ODxAREhMUFRYXGBkaGxwdHh8="
TEST_KEY_ID = "test-key"


@pytest.fixture
def shared_key() -> EncryptionKey:
    return EncryptionKey(material=TEST_KEY_MATERIAL, key_id=TEST_KEY_ID)


@pytest.fixture
def backend_module(monkeypatch):
    monkeypatch.setenv("TRIAGE_SHARED_KEY", TEST_KEY_B64)
    monkeypatch.setenv("TRIAGE_KEY_ID", TEST_KEY_ID)
    monkeypatch.setenv("TRIAGE_RANDOM_SEED", "7")
    monkeypatch.setenv("LOG_FORMAT", "console")
    monkeypatch.delenv("TRIAGE_STATE_DB_PATH", raising=False)
    monkeypatch.delenv("TRIAGE_ALLOW_PLAINTEXT_FALLBACK", raising=False)

    if "main" in sys.modules:
        module = importlib.reload(sys.modules["main"])
    else:
        module = importlib.import_module("main")
    return module


@pytest.fixture
def client(backend_module):
    with TestClient(backend_module.app) as test_client:
        yield test_client


@pytest.fixture
def chat_client(client, shared_key) -> EncryptedChatClient:
    return EncryptedChatClient(http=client, key=shared_key, user_id="user-a")
