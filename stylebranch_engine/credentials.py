"""File-backed store for the generation API key."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .utils import read_json, write_json


CREDENTIALS_PATH = Path.home() / ".stylebranch" / "credentials.json"
API_KEY_STORAGE_KEY = "gemini-api-key"
ENV_KEYS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


def credential_from_env() -> str | None:
    for key in ENV_KEYS:
        value = (os.getenv(key) or "").strip()
        if value:
            return value
    return None


@dataclass
class CredentialStore:
    path: Path = CREDENTIALS_PATH
    use_env: bool = True

    def _load(self) -> dict[str, str]:
        payload = read_json(self.path, {})
        return payload if isinstance(payload, dict) else {}

    def get(self) -> str | None:
        stored = self._load().get(API_KEY_STORAGE_KEY)
        if isinstance(stored, str) and stored.strip():
            return stored.strip()
        return credential_from_env() if self.use_env else None

    def set(self, value: str) -> None:
        value = (value or "").strip()
        if not value:
            self.clear()
            return
        payload = self._load()
        payload[API_KEY_STORAGE_KEY] = value
        write_json(self.path, payload)
        try:
            os.chmod(self.path, 0o600)
        except OSError:
            pass

    def clear(self) -> None:
        payload = self._load()
        if API_KEY_STORAGE_KEY not in payload:
            return
        payload.pop(API_KEY_STORAGE_KEY)
        write_json(self.path, payload)


def mask_credential(value: str | None) -> str:
    if not value:
        return "(not set)"
    if len(value) <= 8:
        return "*" * len(value)
    return f"{value[:4]}…{value[-4:]}"
