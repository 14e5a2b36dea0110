"""Service layer helpers (settings, preferences)."""

from .settings import AgentSettings, PanelPreferences, PreferencesStore, load_agent_settings

__all__ = ["AgentSettings", "PanelPreferences", "PreferencesStore", "load_agent_settings"]
