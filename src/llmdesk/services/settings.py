"""Settings dataclasses and persistence helpers.

Agent invocation settings come from the environment only; nothing secret is
ever read or stored. Panel preferences (provider choice and context toggles)
persist between sessions in a small JSON file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

__all__ = [
    "AgentSettings",
    "PanelPreferences",
    "PreferencesStore",
    "load_agent_settings",
    "clamp_timeout",
    "env_enabled",
    "PROVIDER_ENV",
    "TIMEOUT_ENV",
    "DEFAULT_TIMEOUT_SECONDS",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".llmdesk"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1

PROVIDER_ENV = "LLMDESK_LLM_PROVIDER"
TIMEOUT_ENV = "LLMDESK_LLM_TIMEOUT_SEC"
DEFAULT_TIMEOUT_SECONDS = 300
MIN_TIMEOUT_SECONDS = 1
MAX_TIMEOUT_SECONDS = 3600
_KNOWN_PROVIDERS = ("codex", "gemini")
_DEFAULT_PROVIDER = "codex"

_ENV_OVERRIDES: Mapping[str, str] = {
    "LLMDESK_CODEX_BIN": "codex_bin",
    "LLMDESK_GEMINI_BIN": "gemini_bin",
}
# Any non-empty value other than "0" switches codex into danger mode.
_UNSAFE_ENV_ALIASES: tuple[str, ...] = ("LLMDESK_LLM_UNSAFE", "LLMDESK_CODEX_DANGEROUS")


@dataclass(slots=True, frozen=True)
class AgentSettings:
    """How the external agents are located and invoked."""

    default_provider: str = _DEFAULT_PROVIDER
    codex_bin: str | None = None
    gemini_bin: str | None = None
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    codex_dangerous: bool = False

    def binary_override(self, provider_name: str) -> str | None:
        value = self.codex_bin if provider_name == "codex" else self.gemini_bin
        return value or None


@dataclass(slots=True)
class PanelPreferences:
    """User-facing assistant panel toggles persisted between sessions."""

    provider: str = _DEFAULT_PROVIDER
    include_dataset: bool = True
    include_last_error: bool = False
    include_script: bool = False
    tools_enabled: bool = True


def env_enabled(value: str | None) -> bool:
    """Return True for any non-empty value other than ``"0"``."""

    return bool(value) and value != "0"


def clamp_timeout(raw: str | None) -> int:
    """Parse a timeout in seconds, clamped into ``[1, 3600]``.

    Empty or non-integer input yields :data:`DEFAULT_TIMEOUT_SECONDS`.
    """

    if raw is None or not raw.strip():
        return DEFAULT_TIMEOUT_SECONDS
    try:
        value = int(raw.strip(), 10)
    except ValueError:
        LOGGER.warning("Environment override %s=%s is not a valid integer", TIMEOUT_ENV, raw)
        return DEFAULT_TIMEOUT_SECONDS
    return max(MIN_TIMEOUT_SECONDS, min(MAX_TIMEOUT_SECONDS, value))


def load_agent_settings(environ: Mapping[str, str] | None = None) -> AgentSettings:
    """Resolve :class:`AgentSettings` from ``environ`` (defaults to ``os.environ``)."""

    env = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for env_name, field_name in _ENV_OVERRIDES.items():
        value = env.get(env_name)
        if value:
            overrides[field_name] = value

    selector = (env.get(PROVIDER_ENV) or "").strip().lower()
    if selector in _KNOWN_PROVIDERS:
        overrides["default_provider"] = selector
    elif selector and selector != "none":
        LOGGER.warning(
            "Unknown %s=%s (expected codex|gemini); using %s",
            PROVIDER_ENV,
            selector,
            _DEFAULT_PROVIDER,
        )

    overrides["timeout_seconds"] = clamp_timeout(env.get(TIMEOUT_ENV))
    overrides["codex_dangerous"] = any(env_enabled(env.get(name)) for name in _UNSAFE_ENV_ALIASES)

    settings = replace(AgentSettings(), **overrides)
    if settings.codex_dangerous:
        LOGGER.warning("Codex danger mode enabled: approvals and sandbox are bypassed")
    return settings


class PreferencesStore:
    """Persistence adapter for :class:`PanelPreferences`."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self) -> PanelPreferences:
        """Load preferences from disk, falling back to defaults."""

        payload = self._read_payload()
        if not payload:
            return PanelPreferences()
        allowed = {item.name for item in fields(PanelPreferences)}
        data = {key: value for key, value in payload.items() if key in allowed}
        try:
            prefs = PanelPreferences(**data)
        except TypeError as exc:
            LOGGER.warning("Settings payload contained unexpected data: %s", exc)
            return PanelPreferences()
        if prefs.provider not in _KNOWN_PROVIDERS:
            prefs.provider = _DEFAULT_PROVIDER
        LOGGER.debug("Preferences loaded from %s", self._path)
        return prefs

    def save(self, prefs: PanelPreferences) -> Path:
        """Persist preferences to disk with atomic file writes."""

        payload = asdict(prefs)
        payload["version"] = _SETTINGS_VERSION
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Preferences saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not contain an object", self._path)
            return {}
        if payload.get("version") != _SETTINGS_VERSION:
            LOGGER.debug("Settings version mismatch in %s; keeping known fields", self._path)
        return payload
