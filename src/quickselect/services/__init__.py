"""Persistence, configuration and host services."""

from .persistence import PersistenceStore, PresentationMode, Scope, WindowStateStore
from .preferences import PreferencesStore
from .save_guard import GuardState, SaveGuard, get_save_guard, reset_save_guard
from .scheduler import DeferredQueue, Scheduler
from .settings import Settings, SettingsStore

__all__ = [
    "DeferredQueue",
    "GuardState",
    "PersistenceStore",
    "PreferencesStore",
    "PresentationMode",
    "SaveGuard",
    "Scheduler",
    "Scope",
    "Settings",
    "SettingsStore",
    "WindowStateStore",
    "get_save_guard",
    "reset_save_guard",
]
