"""Cross-session propagation and external-change reconciliation.

The notifier is the only component that sees every open session. It has two
inputs:

* :meth:`ChangeNotifier.notify_others`, called by a session right after it
  saved. The saving session only redraws; every other session reloads on
  the next scheduler turn.
* :meth:`ChangeNotifier.on_shared_store_changed`, called by a
  :class:`~quickselect.services.watcher.SharedStoreWatcher` on any thread.
  The save guard is read at receipt time: a notification produced by our
  own write is dropped, whether it arrives while the guard is set or later
  while the file still matches what we wrote. Accepted notifications are handed to the scheduler
  with ``call_soon_threadsafe`` and reload all sessions one turn later.
  Notifications arriving while such a reload is pending are coalesced.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Protocol

from ..services.save_guard import SaveGuard, get_save_guard
from .events import (
    EventBus,
    ExternalChangeIgnored,
    SessionsReloaded,
    SharedStoreChanged,
    get_event_bus,
)

if TYPE_CHECKING:  # pragma: no cover
    from ..services.scheduler import Scheduler
    from ..services.watcher import SharedStoreWatcher

__all__ = ["ChangeNotifier", "ReloadableSession"]

LOGGER = logging.getLogger(__name__)

REASON_SELF_SAVE = "self_save"
REASON_COALESCED = "coalesced"


class ReloadableSession(Protocol):
    session_id: str

    def reload(self) -> None:
        ...

    def redraw(self) -> None:
        ...


class ChangeNotifier:
    """Registry of open sessions plus the reload policy between them."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        guard: SaveGuard | None = None,
        event_bus: EventBus[Any] | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._guard = guard or get_save_guard()
        self._bus = event_bus or get_event_bus()
        self._sessions: list[ReloadableSession] = []
        self._watcher: SharedStoreWatcher | None = None
        self._watching = False
        self._external_reload_pending = False

    # ------------------------------------------------------------------
    # Session registry
    # ------------------------------------------------------------------
    @property
    def sessions(self) -> tuple[ReloadableSession, ...]:
        return tuple(self._sessions)

    @property
    def reload_pending(self) -> bool:
        return self._external_reload_pending

    @property
    def watching(self) -> bool:
        return self._watching

    def register(self, session: ReloadableSession) -> None:
        if any(existing is session for existing in self._sessions):
            return
        self._sessions.append(session)
        LOGGER.debug("Registered session %s (%d open)", session.session_id, len(self._sessions))
        self._update_watcher()

    def unregister(self, session: ReloadableSession) -> None:
        self._sessions = [existing for existing in self._sessions if existing is not session]
        LOGGER.debug("Unregistered session %s (%d open)", session.session_id, len(self._sessions))
        self._update_watcher()

    # ------------------------------------------------------------------
    # Watcher wiring
    # ------------------------------------------------------------------
    def attach(self, watcher: SharedStoreWatcher) -> None:
        """Subscribe to ``watcher``; it runs while at least one session is open."""

        if self._watcher is not None:
            self.detach()
        self._watcher = watcher
        watcher.on_shared_store_changed(self.on_shared_store_changed)
        self._update_watcher()

    def detach(self) -> None:
        watcher = self._watcher
        if watcher is None:
            return
        if self._watching:
            watcher.stop()
            self._watching = False
        self._watcher = None

    def _update_watcher(self) -> None:
        watcher = self._watcher
        if watcher is None:
            return
        if self._sessions and not self._watching:
            watcher.start()
            self._watching = True
        elif not self._sessions and self._watching:
            watcher.stop()
            self._watching = False

    # ------------------------------------------------------------------
    # External changes
    # ------------------------------------------------------------------
    def on_shared_store_changed(self, path: Path | str) -> None:
        """Watcher callback; safe to call from any thread."""

        if self._watcher is not None and not self._watching:
            return
        if self._guard.is_saving or self._guard.is_own_write(path):
            LOGGER.debug("Ignoring self-inflicted change to %s", path)
            self._scheduler.call_soon_threadsafe(self._report_ignored, str(path), REASON_SELF_SAVE)
            return
        self._scheduler.call_soon_threadsafe(self._accept_external_change, str(path))

    def _report_ignored(self, path: str, reason: str) -> None:
        self._bus.publish(ExternalChangeIgnored(path=path, reason=reason))

    def _accept_external_change(self, path: str) -> None:
        if self._external_reload_pending:
            LOGGER.debug("Reload already pending; coalescing change to %s", path)
            self._report_ignored(path, REASON_COALESCED)
            return
        self._external_reload_pending = True
        LOGGER.info("Shared layout changed externally: %s", path)
        self._bus.publish(SharedStoreChanged(path=path))
        self._scheduler.call_soon(self._reload_all)

    def _reload_all(self) -> None:
        self._external_reload_pending = False
        self._reload(self._sessions, origin_id=None)

    # ------------------------------------------------------------------
    # Local saves
    # ------------------------------------------------------------------
    def notify_others(self, origin: ReloadableSession) -> None:
        """Redraw ``origin`` now and reload every other session on the next turn."""

        origin.redraw()
        others = [session for session in self._sessions if session is not origin]
        if not others:
            return
        LOGGER.debug("Session %s saved; reloading %d sibling(s)", origin.session_id, len(others))
        self._scheduler.call_soon(self._reload, others, origin.session_id)

    def _reload(self, sessions: Iterable[ReloadableSession], origin_id: str | None) -> None:
        reloaded: list[str] = []
        for session in list(sessions):
            if not any(open_session is session for open_session in self._sessions):
                continue
            try:
                session.reload()
            except Exception:
                LOGGER.exception("Session %s failed to reload", session.session_id)
                continue
            reloaded.append(session.session_id)
        if reloaded:
            self._bus.publish(SessionsReloaded(session_ids=tuple(reloaded), origin_id=origin_id))
