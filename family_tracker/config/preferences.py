"""
Local Preferences

Per-device settings (currently just the colour theme) are kept in a single
pydantic model persisted through an injected key-value store. The same store
may also hold data written by older, local-only versions of the app, which
the orchestrator offers to migrate into the user's account.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ValidationError


PREFERENCES_KEY = "preferences"


class KeyValueStore(ABC):
    """Minimal string-keyed store for JSON-compatible values."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store, used in tests."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore(KeyValueStore):
    """
    Stores all keys in one JSON file.

    The file is re-read on every access so that several Streamlit
    sessions on the same machine see each other's writes.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def get(self, key: str) -> Optional[Any]:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class UserPreferences(BaseModel):
    """Settings that belong to the device rather than the account."""

    theme: Literal["light", "dark"] = "light"


class PreferencesStore:
    """Loads and saves UserPreferences through a KeyValueStore."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    @property
    def kv(self) -> KeyValueStore:
        return self._kv

    def load(self) -> UserPreferences:
        raw = self._kv.get(PREFERENCES_KEY)
        if not raw:
            return UserPreferences()
        try:
            return UserPreferences.model_validate(raw)
        except ValidationError:
            return UserPreferences()

    def save(self, preferences: UserPreferences) -> None:
        self._kv.set(PREFERENCES_KEY, preferences.model_dump())

    def toggle_theme(self) -> UserPreferences:
        current = self.load()
        updated = current.model_copy(
            update={"theme": "dark" if current.theme == "light" else "light"}
        )
        self.save(updated)
        return updated
