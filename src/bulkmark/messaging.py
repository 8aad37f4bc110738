"""Best-effort message channel between the foreground and background.

Notifications are hints only: the persisted session is the source of
truth, and a message with no listener is simply dropped.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# foreground -> background
START_ORGANIZE = "START_ORGANIZE"
GET_ORGANIZE_STATUS = "GET_ORGANIZE_STATUS"
# background -> foreground
ORGANIZE_COMPLETE = "ORGANIZE_COMPLETE"
ORGANIZE_ERROR = "ORGANIZE_ERROR"

MESSAGE_TYPES = (START_ORGANIZE, GET_ORGANIZE_STATUS, ORGANIZE_COMPLETE, ORGANIZE_ERROR)


@dataclass
class Message:
    type: str
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Message":
        if not isinstance(d, dict):
            raise ValueError("Message must be a JSON object")
        message_type = d.get("type")
        if message_type not in MESSAGE_TYPES:
            raise ValueError(f"Unknown message type: {message_type!r}")
        return cls(type=message_type, payload=d.get("payload") or {})


Listener = Callable[[Message], Optional[Any]]


class MessageBus:
    """Fan a message out to whoever is listening right now."""

    def __init__(self, name: str = "bus"):
        self.name = name
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def send(self, message: Message) -> Optional[Any]:
        """Deliver to every listener and return the first non-None reply.

        Listener errors are logged, never raised back to the sender.
        """
        with self._lock:
            listeners = list(self._listeners)
        if not listeners:
            logger.debug("[%s] No listener for %s", self.name, message.type)
            return None

        response = None
        for listener in listeners:
            try:
                result = listener(message)
            except Exception:
                logger.exception("[%s] Listener failed on %s", self.name, message.type)
                continue
            if response is None:
                response = result
        return response


class Channel:
    """The pair of one-directional buses shared by both contexts."""

    def __init__(self):
        self.to_background = MessageBus("background")
        self.to_foreground = MessageBus("foreground")
