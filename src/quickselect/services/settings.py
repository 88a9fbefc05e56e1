"""Settings dataclass and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from ..utils import file_io

__all__ = ["Settings", "SettingsStore", "SETTINGS_DIR"]

LOGGER = logging.getLogger(__name__)
SETTINGS_DIR = Path.home() / ".quickselect"
_DEFAULT_SETTINGS_PATH = SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "QUICKSELECT_PROJECT_ROOT": "project_root",
    "QUICKSELECT_PROJECT_NAME": "project_name",
    "QUICKSELECT_SHARED_FILE": "shared_file_name",
    "QUICKSELECT_DEBUG_LOGGING": "debug_logging",
    "QUICKSELECT_SHOW_SUBCATEGORY_COUNT": "show_subcategory_count",
    "QUICKSELECT_SHOW_ITEM_COUNT": "show_item_count",
    "QUICKSELECT_WATCH_INTERVAL": "watch_interval",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    project_root: str = "."
    project_name: str = ""
    shared_file_name: str = "SharedLayout.json"
    show_subcategory_count: bool = False
    show_item_count: bool = False
    group_items: bool = False
    group_by_folder: bool = False
    group_by_type: bool = False
    group_alphabetically: bool = False
    watch_interval: float = 1.0
    debug_logging: bool = False

    @property
    def root_path(self) -> Path:
        return Path(self.project_root).expanduser().resolve()

    @property
    def shared_layout_path(self) -> Path:
        return self.root_path / self.shared_file_name

    @property
    def project_key(self) -> str:
        """Namespace for preference keys; defaults to the project folder name."""

        return self.project_name or self.root_path.name or "default"


class SettingsStore:
    """Persistence adapter for :class:`Settings`."""

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
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            LOGGER.debug("Settings loaded from %s: %s", self._path, sorted(data))

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload: Dict[str, Any] = asdict(settings)
        payload["version"] = _SETTINGS_VERSION
        file_io.write_text(self._path, json.dumps(payload, indent=2, sort_keys=True))
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        text = file_io.read_text_or_none(self._path)
        if text is None:
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(data, dict):
            LOGGER.warning("Settings file %s does not hold an object", self._path)
            return {}
        if data.get("version") not in (None, _SETTINGS_VERSION):
            LOGGER.info("Settings file %s has version %s", self._path, data.get("version"))
        return data

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        filtered: Dict[str, Any] = {}
        for key, value in _filter_fields(overrides).items():
            if value is None:
                continue
            filtered[key] = _coerce_field(key, value)
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if raw is None:
                continue
            try:
                overrides[field_name] = _coerce_field(field_name, raw)
            except ValueError as exc:
                LOGGER.warning("Ignoring %s: %s", env_name, exc)
        return self._apply_overrides(settings, overrides, source="environment")


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}


def _coerce_field(name: str, value: Any) -> Any:
    """Coerce string overrides (CLI ``--set``) to the field's declared type."""

    default = getattr(Settings(), name)
    if not isinstance(value, str):
        return value
    if isinstance(default, bool):
        return value.strip().lower() in _TRUE_VALUES
    if isinstance(default, float):
        try:
            return float(value)
        except ValueError as exc:
            raise ValueError(f"{name} expects a number, got {value!r}") from exc
    return value
