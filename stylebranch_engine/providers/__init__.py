"""Provider registry."""

from __future__ import annotations

from .base import ProviderRegistry
from .dryrun import DryRunProvider
from .gemini import GeminiProvider
from .remote import RemoteProvider


def default_registry(endpoint: str | None = None) -> ProviderRegistry:
    providers = [DryRunProvider(), GeminiProvider()]
    providers.append(RemoteProvider(endpoint) if endpoint else RemoteProvider())
    return ProviderRegistry(providers)
