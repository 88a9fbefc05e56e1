"""Per-user key-value preferences persisted as a JSON file."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Mapping

from ..utils import file_io

__all__ = ["PreferencesStore", "default_preferences_path"]

LOGGER = logging.getLogger(__name__)
_PREFERENCES_DIR = Path.home() / ".quickselect"
_PREFERENCES_FILENAME = "preferences.json"
_PREFERENCES_VERSION = 1


def default_preferences_path() -> Path:
    override = os.environ.get("QUICKSELECT_PREFERENCES_PATH")
    if override:
        return Path(override).expanduser()
    return _PREFERENCES_DIR / _PREFERENCES_FILENAME


class PreferencesStore:
    """String/bool values keyed by composite strings.

    Values are cached after the first read and every write is flushed to
    disk immediately. Pass ``path=None`` together with ``persist=False`` for
    an in-memory store.
    """

    def __init__(self, path: Path | None = None, *, persist: bool = True) -> None:
        self._path = path or default_preferences_path()
        self._persist = persist
        self._values: dict[str, Any] | None = None if persist else {}
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Typed accessors
    # ------------------------------------------------------------------

    def get_string(self, key: str, default: str = "") -> str:
        value = self._data().get(key)
        return value if isinstance(value, str) else default

    def set_string(self, key: str, value: str | None) -> None:
        self._write(key, value or "")

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._data().get(key)
        return value if isinstance(value, bool) else default

    def set_bool(self, key: str, value: bool) -> None:
        self._write(key, bool(value))

    def has_key(self, key: str) -> bool:
        return key in self._data()

    def delete(self, key: str) -> bool:
        with self._lock:
            data = self._data()
            if key not in data:
                return False
            del data[key]
            self._flush()
            return True

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(key for key in self._data() if key.startswith(prefix))

    def reload(self) -> None:
        """Discard the cache so the next access re-reads the file."""

        with self._lock:
            if self._persist:
                self._values = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _data(self) -> dict[str, Any]:
        with self._lock:
            if self._values is None:
                self._values = self._read_payload()
            return self._values

    def _write(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._data()
            if data.get(key) == value and key in data:
                return
            data[key] = value
            self._flush()

    def _flush(self) -> None:
        if not self._persist or self._values is None:
            return
        payload = {"version": _PREFERENCES_VERSION, "values": self._values}
        file_io.write_text(self._path, json.dumps(payload, indent=2, sort_keys=True))

    def _read_payload(self) -> dict[str, Any]:
        text = file_io.read_text_or_none(self._path)
        if text is None:
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Preferences file %s is not valid JSON: %s", self._path, exc)
            return {}
        values = payload.get("values") if isinstance(payload, Mapping) else None
        if not isinstance(values, Mapping):
            LOGGER.warning("Preferences file %s has no value table; ignoring", self._path)
            return {}
        return {str(key): value for key, value in values.items() if isinstance(value, (str, bool))}
