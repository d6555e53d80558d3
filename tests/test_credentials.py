from __future__ import annotations

import json
from pathlib import Path

from stylebranch_engine.credentials import API_KEY_STORAGE_KEY, CredentialStore, mask_credential


def test_set_get_clear(tmp_path: Path) -> None:
    store = CredentialStore(path=tmp_path / "creds.json", use_env=False)
    assert store.get() is None

    store.set("  abc123  ")
    assert store.get() == "abc123"
    assert json.loads((tmp_path / "creds.json").read_text(encoding="utf-8")) == {API_KEY_STORAGE_KEY: "abc123"}

    store.clear()
    assert store.get() is None


def test_set_empty_clears(tmp_path: Path) -> None:
    store = CredentialStore(path=tmp_path / "creds.json", use_env=False)
    store.set("abc")
    store.set("")
    assert store.get() is None


def test_env_fallback(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("GOOGLE_API_KEY", "from-env")
    store = CredentialStore(path=tmp_path / "creds.json")
    assert store.get() == "from-env"
    store.set("stored")
    assert store.get() == "stored"


def test_mask_credential() -> None:
    assert mask_credential(None) == "(not set)"
    assert mask_credential("short") == "*****"
    assert mask_credential("abcdefghijkl") == "abcd…ijkl"
