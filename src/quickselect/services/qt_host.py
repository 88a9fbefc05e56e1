"""PySide6 adapters: a scheduler on the Qt event loop and a file watcher.

PySide6 is imported lazily so the headless core and CLI never require it.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable

from .watcher import ChangeCallback

__all__ = ["QtScheduler", "QtSharedStoreWatcher", "qt_available"]

LOGGER = logging.getLogger(__name__)

_DISPATCHER_CLASS: Any = None
# One dispatcher per thread, owned here so queued posts outlive any scheduler.
_DISPATCHERS: dict[int, Any] = {}
_DISPATCHERS_LOCK = threading.Lock()


def qt_available() -> bool:
    try:
        import PySide6.QtCore  # noqa: F401
    except ImportError:
        return False
    return True


def _require_qtcore() -> Any:
    try:  # Local import to avoid mandatory PySide6 dependency at import time.
        from PySide6 import QtCore
    except ImportError as exc:  # pragma: no cover - depends on desktop stack
        raise RuntimeError("PySide6 must be installed to use the Qt host adapters.") from exc
    return QtCore


def _dispatcher_class() -> Any:
    global _DISPATCHER_CLASS
    if _DISPATCHER_CLASS is not None:
        return _DISPATCHER_CLASS
    QtCore = _require_qtcore()

    class _Dispatcher(QtCore.QObject):
        posted = QtCore.Signal(object)

        def __init__(self) -> None:
            super().__init__()
            self.posted.connect(self._run, QtCore.Qt.ConnectionType.QueuedConnection)

        def _run(self, payload: tuple[Callable[..., Any], tuple[Any, ...]]) -> None:
            callback, args = payload
            try:
                callback(*args)
            except Exception:
                LOGGER.exception("Deferred Qt callback %r failed", callback)

    _DISPATCHER_CLASS = _Dispatcher
    return _Dispatcher


def _thread_dispatcher() -> Any:
    ident = threading.get_ident()
    with _DISPATCHERS_LOCK:
        dispatcher = _DISPATCHERS.get(ident)
        if dispatcher is None:
            dispatcher = _DISPATCHERS[ident] = _dispatcher_class()()
        return dispatcher


class QtScheduler:
    """Posts callbacks to the thread that created the scheduler.

    Emission goes through a queued connection, so callbacks always run on a
    later turn of that thread's event loop, even when posted from it.
    Schedulers created on the same thread share one dispatcher, which stays
    alive after the scheduler itself is dropped.
    """

    def __init__(self) -> None:
        self._dispatcher = _thread_dispatcher()

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        self._dispatcher.posted.emit((callback, args))

    def call_soon_threadsafe(self, callback: Callable[..., Any], *args: Any) -> None:
        self._dispatcher.posted.emit((callback, args))


class QtSharedStoreWatcher:
    """Wraps ``QFileSystemWatcher`` for the shared layout file.

    Atomic replacement removes the original inode from the watch list, so
    the path is re-added after each notification. The parent directory is
    watched as well to pick up the file being created.
    """

    def __init__(self, path: Path) -> None:
        QtCore = _require_qtcore()
        self._path = Path(path)
        self._callbacks: list[ChangeCallback] = []
        self._watcher = QtCore.QFileSystemWatcher()
        self._watcher.fileChanged.connect(self._handle_file_changed)
        self._watcher.directoryChanged.connect(self._handle_directory_changed)
        self._running = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def running(self) -> bool:
        return self._running

    def on_shared_store_changed(self, callback: ChangeCallback) -> None:
        self._callbacks.append(callback)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        parent = str(self._path.parent)
        if self._path.parent.exists() and parent not in self._watcher.directories():
            self._watcher.addPath(parent)
        self._arm()
        LOGGER.debug("QFileSystemWatcher armed for %s", self._path)

    def stop(self) -> None:
        self._running = False
        paths = list(self._watcher.files()) + list(self._watcher.directories())
        if paths:
            self._watcher.removePaths(paths)

    def _arm(self) -> bool:
        target = str(self._path)
        if not self._path.exists():
            return False
        if target not in self._watcher.files():
            self._watcher.addPath(target)
        return True

    def _handle_file_changed(self, changed: str) -> None:
        if not self._running:
            return
        self._arm()
        self._notify()

    def _handle_directory_changed(self, _directory: str) -> None:
        if not self._running:
            return
        watched = str(self._path) in self._watcher.files()
        if not watched and self._arm():
            # File appeared (created or atomically replaced).
            self._notify()

    def _notify(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._path)
            except Exception:
                LOGGER.exception("Shared store change callback %r failed", callback)
