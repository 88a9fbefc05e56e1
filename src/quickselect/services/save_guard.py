"""Process-wide reentrancy flag for shared-layout saves.

Lifecycle: a shared-scope save calls :meth:`SaveGuard.begin` before it
writes, which enters ``SAVING_SHARED`` and schedules the reset on the next
turn of the scheduler. A filesystem notification caused by that very write
is therefore observed while the guard is still set and is ignored. A
watcher that only notices the write after the reset is matched against the
signature of the file the guard last recorded. Private saves never touch
the guard. The guard is process-wide because watcher
notifications carry no session context.
"""

from __future__ import annotations

import logging
from enum import Enum, auto
from pathlib import Path
from typing import TYPE_CHECKING

from ..utils import file_io

if TYPE_CHECKING:  # pragma: no cover
    from .scheduler import Scheduler

__all__ = ["GuardState", "SaveGuard", "get_save_guard", "reset_save_guard"]

LOGGER = logging.getLogger(__name__)


class GuardState(Enum):
    """State of the shared-store save guard."""

    IDLE = auto()
    SAVING_SHARED = auto()


class SaveGuard:
    """Tracks whether a shared-layout save is in flight.

    Each :meth:`begin` bumps a generation counter; a deferred reset only
    returns to ``IDLE`` if no newer save started after it was scheduled.
    """

    def __init__(self) -> None:
        self._state = GuardState.IDLE
        self._generation = 0
        self._last_write: file_io.FileSignature | None = None

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def is_saving(self) -> bool:
        return self._state is GuardState.SAVING_SHARED

    @property
    def generation(self) -> int:
        return self._generation

    def begin(self, scheduler: Scheduler) -> int:
        """Enter ``SAVING_SHARED`` and schedule the deferred reset."""

        self._generation += 1
        generation = self._generation
        self._state = GuardState.SAVING_SHARED
        scheduler.call_soon(self._finish, generation)
        LOGGER.debug("SaveGuard.begin: generation=%d", generation)
        return generation

    def _finish(self, generation: int) -> None:
        if generation != self._generation:
            LOGGER.debug(
                "SaveGuard reset skipped: generation=%d, latest=%d", generation, self._generation
            )
            return
        self._state = GuardState.IDLE
        LOGGER.debug("SaveGuard idle after generation=%d", generation)

    def record_write(self, path: Path | str) -> None:
        """Remember what our shared save left on disk.

        Watchers that notice the write only after the deferred reset (a
        polling interval, a late file-system event) are matched against this
        signature by :meth:`is_own_write`.
        """

        self._last_write = file_io.try_snapshot(path)

    def is_own_write(self, path: Path | str) -> bool:
        """True while the file at ``path`` is still exactly what we last wrote."""

        signature = self._last_write
        if signature is None or signature.path != Path(path):
            return False
        return not file_io.file_has_changed(signature)

    def force_idle(self) -> None:
        self._state = GuardState.IDLE


_default_guard: SaveGuard | None = None


def get_save_guard() -> SaveGuard:
    """Get or create the process-wide guard."""
    global _default_guard
    if _default_guard is None:
        _default_guard = SaveGuard()
    return _default_guard


def reset_save_guard() -> None:
    """Drop the process-wide guard (primarily for testing)."""
    global _default_guard
    _default_guard = None
