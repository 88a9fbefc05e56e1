"""Session controllers and the collaborators they talk to."""

from .drag import DragController
from .events import EventBus, get_event_bus
from .notifier import ChangeNotifier
from .session import CategorySession

__all__ = [
    "CategorySession",
    "ChangeNotifier",
    "DragController",
    "EventBus",
    "get_event_bus",
]
