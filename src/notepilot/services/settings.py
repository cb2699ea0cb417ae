"""Settings dataclasses and loading helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from ..ai.ai_types import ModelOptions
from ..ai.prompts import DEFAULT_SYSTEM_MESSAGE

__all__ = [
    "Settings",
    "SettingsStore",
    "OllamaSettings",
    "ModelOptions",
    "PROVIDER_CHOICES",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".notepilot"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_ENV_OVERRIDES: Mapping[str, str] = {
    "NOTEPILOT_PROVIDER": "api_provider",
    "NOTEPILOT_API_KEY": "api_key",
    "NOTEPILOT_BASE_URL": "base_url",
    "NOTEPILOT_MODEL": "model",
    "NOTEPILOT_ORGANIZATION": "organization",
    "NOTEPILOT_SYSTEM_MESSAGE": "system_message",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "NOTEPILOT_DEBUG_MODE": "debug_mode",
    "NOTEPILOT_DEBUG_LOGGING": "debug_logging",
    "NOTEPILOT_MATH_CONVERSION": "math_block_conversion_enabled",
    "NOTEPILOT_STRIP_DATAVIEW": "dataview_stripping_enabled",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "NOTEPILOT_REQUEST_TIMEOUT": "request_timeout",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "NOTEPILOT_PREFIX_CHAR_LIMIT": "prefix_char_limit",
    "NOTEPILOT_SUFFIX_CHAR_LIMIT": "suffix_char_limit",
}
# Nested ollama settings are addressed as ``ollama.<field>``.
_OLLAMA_ENV_OVERRIDES: Mapping[str, str] = {
    "NOTEPILOT_OLLAMA_HOST": "host",
    "NOTEPILOT_OLLAMA_MODEL": "model",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
PROVIDER_CHOICES: tuple[str, ...] = ("ollama", "openai")


@dataclass(slots=True)
class OllamaSettings:
    """Connection details for a local Ollama server."""

    host: str = "localhost:11434"
    model: str = ""


@dataclass(slots=True)
class Settings:
    """User-configurable settings for completion requests."""

    api_provider: str = "ollama"
    ollama: OllamaSettings = field(default_factory=OllamaSettings)
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: dict[str, str] = field(default_factory=dict)
    model_options: ModelOptions = field(default_factory=ModelOptions)
    system_message: str = DEFAULT_SYSTEM_MESSAGE
    math_block_conversion_enabled: bool = True
    dataview_stripping_enabled: bool = True
    duplicate_math_indicator_suppression: bool = True
    duplicate_code_indicator_suppression: bool = True
    prefix_char_limit: int = 4_000
    suffix_char_limit: int = 4_000
    debug_mode: bool = False
    debug_logging: bool = False


class SettingsStore:
    """Read-only loader for :class:`Settings`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI/environment overrides when present."""

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data = _filter_fields(payload)
            data["ollama"] = _build_nested(OllamaSettings, data.get("ollama"), "ollama")
            data["model_options"] = _build_nested(ModelOptions, data.get("model_options"), "model_options")
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            LOGGER.debug("Settings loaded from %s (provider=%s)", self._path, settings.api_provider)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")

        settings = self._apply_env_overrides(settings)
        if settings.api_provider not in PROVIDER_CHOICES:
            LOGGER.warning(
                "Unknown api_provider '%s'; defaulting to %s.",
                settings.api_provider,
                PROVIDER_CHOICES[0],
            )
            settings = replace(settings, api_provider=PROVIDER_CHOICES[0])
        return settings

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
            payload = json.loads(text)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain a JSON object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {field.name for field in fields(Settings)}
        filtered: Dict[str, Any] = {}
        nested: Dict[str, Dict[str, Any]] = {}
        for key, value in overrides.items():
            if value is None:
                continue
            parent, _, child = key.partition(".")
            if child and parent in ("ollama", "model_options"):
                nested.setdefault(parent, {})[child] = value
                continue
            if key not in allowed:
                continue
            filtered[key] = value
        for parent, values in nested.items():
            current = filtered.get(parent, getattr(settings, parent))
            try:
                filtered[parent] = replace(current, **values)
            except TypeError as exc:
                LOGGER.warning("Ignoring %s overrides for %s: %s", source, parent, exc)
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _OLLAMA_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[f"ollama.{field_name}"] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid integer",
                    env_name,
                    value,
                )
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid float", env_name, value
                )
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(Settings)}
    result: Dict[str, Any] = {}
    for key, value in payload.items():
        if key not in allowed:
            LOGGER.debug("Ignoring unknown settings key %s", key)
            continue
        result[key] = value
    return result


def _build_nested(factory: type, payload: Any, name: str) -> Any:
    if not isinstance(payload, Mapping):
        return factory()
    allowed = {field.name for field in fields(factory)}
    try:
        return factory(**{key: value for key, value in payload.items() if key in allowed})
    except TypeError:
        LOGGER.warning("Settings section %s is malformed; using defaults", name)
        return factory()


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
