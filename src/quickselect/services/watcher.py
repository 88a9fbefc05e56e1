"""Watchers that report modifications of the shared layout file."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Protocol

from ..utils import file_io

__all__ = ["ChangeCallback", "SharedStoreWatcher", "PollingSharedStoreWatcher"]

LOGGER = logging.getLogger(__name__)

ChangeCallback = Callable[[Path], None]


class SharedStoreWatcher(Protocol):
    """Source of "the shared layout file changed" notifications.

    Callbacks may be invoked on any thread.
    """

    def on_shared_store_changed(self, callback: ChangeCallback) -> None:
        ...

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...


class PollingSharedStoreWatcher:
    """Background thread that compares :class:`FileSignature` snapshots.

    Creation, modification and deletion of the file are all reported.
    :meth:`poll` runs one comparison synchronously.
    """

    def __init__(self, path: Path, *, interval: float = 1.0) -> None:
        self._path = Path(path)
        self._interval = max(0.05, float(interval))
        self._callbacks: list[ChangeCallback] = []
        self._signature = file_io.try_snapshot(self._path)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def on_shared_store_changed(self, callback: ChangeCallback) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        with self._lock:
            self._signature = file_io.try_snapshot(self._path)
        self._thread = threading.Thread(
            target=self._run, name="quickselect-shared-watcher", daemon=True
        )
        self._thread.start()
        LOGGER.debug("Watching %s every %.2fs", self._path, self._interval)

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._interval * 4)
        LOGGER.debug("Stopped watching %s", self._path)

    def poll(self) -> bool:
        """Compare the file against the last snapshot; notify and return True on change."""

        with self._lock:
            if not file_io.file_has_changed(self._signature, self._path):
                return False
            self._signature = file_io.try_snapshot(self._path)
            callbacks = list(self._callbacks)
        LOGGER.debug("Shared layout %s changed on disk", self._path)
        for callback in callbacks:
            try:
                callback(self._path)
            except Exception:
                LOGGER.exception("Shared store change callback %r failed", callback)
        return True

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self.poll()
            except OSError as exc:
                LOGGER.warning("Polling %s failed: %s", self._path, exc)
