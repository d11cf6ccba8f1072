"""Configuration package."""

from family_tracker.config.preferences import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    PreferencesStore,
    UserPreferences,
)
from family_tracker.config.settings import (
    AccessSettings,
    AppSettings,
    FirebaseSettings,
    GeminiSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AccessSettings",
    "AppSettings",
    "FirebaseSettings",
    "GeminiSettings",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "PreferencesStore",
    "Settings",
    "UserPreferences",
    "get_settings",
    "validate_all_settings",
]
