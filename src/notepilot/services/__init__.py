"""Service layer helpers (settings loading)."""

from .settings import OllamaSettings, Settings, SettingsStore, redact_secret

__all__ = [
    "OllamaSettings",
    "Settings",
    "SettingsStore",
    "redact_secret",
]
