"""Shared pytest fixtures."""

from __future__ import annotations

import os

# Run Qt headless so the suite works without a display server.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from pathlib import Path
from typing import Any, Callable

import pytest

from quickselect.services.persistence import PersistenceStore, PresentationMode, WindowStateStore
from quickselect.services.preferences import PreferencesStore
from quickselect.services.save_guard import get_save_guard, reset_save_guard
from quickselect.services.scheduler import DeferredQueue
from quickselect.services.settings import Settings
from quickselect.ui.events import EventBus, reset_event_bus
from quickselect.ui.notifier import ChangeNotifier
from quickselect.ui.session import CategorySession
from quickselect.utils import logging as logging_utils


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in (
        "QUICKSELECT_PROJECT_ROOT",
        "QUICKSELECT_PROJECT_NAME",
        "QUICKSELECT_SHARED_FILE",
        "QUICKSELECT_DEBUG",
        "QUICKSELECT_DEBUG_LOGGING",
        "QUICKSELECT_WATCH_INTERVAL",
        "QUICKSELECT_SETTINGS_PATH",
        "QUICKSELECT_SHOW_SUBCATEGORY_COUNT",
        "QUICKSELECT_SHOW_ITEM_COUNT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("QUICKSELECT_PREFERENCES_PATH", str(tmp_path / "home" / "preferences.json"))
    monkeypatch.setenv("QUICKSELECT_LOG_DIR", str(tmp_path / "home" / "logs"))
    reset_save_guard()
    reset_event_bus()
    yield
    reset_save_guard()
    reset_event_bus()
    logging_utils.reset_logging()


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def settings(project_root: Path) -> Settings:
    return Settings(project_root=str(project_root), project_name="demo")


@pytest.fixture
def queue() -> DeferredQueue:
    return DeferredQueue()


@pytest.fixture
def preferences() -> PreferencesStore:
    return PreferencesStore(persist=False)


@pytest.fixture
def bus() -> EventBus[Any]:
    return EventBus()


@pytest.fixture
def store(settings: Settings, preferences: PreferencesStore, queue: DeferredQueue) -> PersistenceStore:
    return PersistenceStore.from_settings(settings, preferences, scheduler=queue, guard=get_save_guard())


@pytest.fixture
def window_state(settings: Settings, preferences: PreferencesStore) -> WindowStateStore:
    return WindowStateStore(preferences, settings.project_key)


@pytest.fixture
def notifier(queue: DeferredQueue, bus: EventBus[Any]) -> ChangeNotifier:
    return ChangeNotifier(queue, guard=get_save_guard(), event_bus=bus)


@pytest.fixture
def make_session(
    store: PersistenceStore,
    window_state: WindowStateStore,
    notifier: ChangeNotifier,
    bus: EventBus[Any],
    settings: Settings,
) -> Callable[..., CategorySession]:
    created: list[CategorySession] = []

    def factory(mode: PresentationMode = PresentationMode.DOCKED, **kwargs: Any) -> CategorySession:
        kwargs.setdefault("event_bus", bus)
        kwargs.setdefault("settings", settings)
        session = CategorySession(store, window_state, notifier, mode=mode, **kwargs)
        created.append(session)
        return session

    yield factory
    for session in created:
        session.close()
