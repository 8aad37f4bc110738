"""The background context: runs the slow AI call and records the outcome.

The worker never talks back to a particular foreground. It merges its
result into the persisted session and broadcasts an advisory
notification that nobody is required to hear.
"""

import logging
import queue
import threading
from typing import Any, Callable, Optional

from .exceptions import ConfigError
from .llm import get_llm_provider
from .llm.base import LLMProvider
from .messaging import (
    GET_ORGANIZE_STATUS,
    ORGANIZE_COMPLETE,
    ORGANIZE_ERROR,
    START_ORGANIZE,
    Channel,
    Message,
)
from .models import ERROR, ORGANIZING, REVIEWING_PLAN, CompactBookmark, OrganizeResult, OrganizeSession
from .planner import organize_bookmarks
from .storage import CredentialStore, KeyValueStore, SessionStore
from .utils import now_ms

logger = logging.getLogger(__name__)

HEARTBEAT_STORAGE_KEY = "organizeHeartbeat"
DEFAULT_KEEPALIVE_INTERVAL = 20.0

ProviderFactory = Callable[..., LLMProvider]


class Keepalive:
    """Call ``ping`` every ``interval`` seconds until stopped."""

    def __init__(self, ping: Callable[[], None], interval: float = DEFAULT_KEEPALIVE_INTERVAL):
        self._ping = ping
        self._interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="bulkmark-keepalive", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=self._interval)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._ping()
            except Exception as e:
                logger.warning("Keepalive ping failed: %s", e)

    def __enter__(self) -> "Keepalive":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()


def heartbeat_ping(kv: KeyValueStore) -> Callable[[], None]:
    """A ping that records the last sign of life under its own key."""
    def ping() -> None:
        kv.set(HEARTBEAT_STORAGE_KEY, now_ms())
    return ping


def record_organize_error(sessions: SessionStore, error_message: str) -> bool:
    """Put the organizing session into the error state.

    An error for a session that was reset or moved on is dropped, like a
    late result. When the session can't be loaded at all, a fresh one
    carries the error so the user still sees it.

    Returns:
        True if the error was recorded.
    """
    try:
        session = sessions.load()
    except Exception as e:
        logger.warning("Could not load session to record error: %s", e)
        session = OrganizeSession.initial()
    else:
        if session is None or session.status != ORGANIZING:
            logger.info("Session is no longer organizing; discarding error: %s", error_message)
            return False
    session.status = ERROR
    session.error_message = error_message
    try:
        sessions.save(session)
    except Exception:
        logger.exception("Could not persist organize error")
    return True


class OrganizeWorker:
    """Handles START_ORGANIZE and GET_ORGANIZE_STATUS messages."""

    def __init__(
        self,
        sessions: SessionStore,
        credentials: CredentialStore,
        channel: Optional[Channel] = None,
        provider_factory: Optional[ProviderFactory] = None,
        model: Optional[str] = None,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        ping: Optional[Callable[[], None]] = None,
    ):
        self._sessions = sessions
        self._credentials = credentials
        self._channel = channel
        self._provider_factory = provider_factory or get_llm_provider
        self._model = model
        self._keepalive_interval = keepalive_interval
        self._ping = ping or (lambda: logger.debug("keepalive"))

    def handle(self, message: Message) -> Optional[Any]:
        if message.type == START_ORGANIZE:
            self.run_organize(message.payload)
            return None
        if message.type == GET_ORGANIZE_STATUS:
            session = self._sessions.load()
            return session.to_dict() if session else None
        logger.debug("Worker ignoring %s", message.type)
        return None

    def run_organize(self, payload: dict[str, Any]) -> Optional[OrganizeResult]:
        """Perform the plan+assign call and persist its outcome.

        Leaves the session in reviewing_plan or error. A result that
        arrives after the session was reset or moved on is discarded.
        """
        keepalive = Keepalive(self._ping, self._keepalive_interval)
        keepalive.start()
        try:
            result = self._organize(payload)
            session = self._sessions.load()
            if session is None or session.status != ORGANIZING:
                logger.info("Session is no longer organizing; discarding result")
                return None
            session.status = REVIEWING_PLAN
            session.folder_plan = result.folder_plan
            session.assignments = result.assignments
            session.error_message = None
            self._sessions.save(session)
        except Exception as e:
            logger.exception("Organize run failed")
            self._record_error(str(e) or e.__class__.__name__)
            return None
        finally:
            keepalive.stop()

        self._notify(Message(ORGANIZE_COMPLETE, {"result": result.to_dict()}))
        return result

    def _organize(self, payload: dict[str, Any]) -> OrganizeResult:
        service_id = payload.get("serviceId") or ""
        if not service_id:
            raise ConfigError("No AI provider selected")
        api_key = self._credentials.get_api_key(service_id)
        llm = self._provider_factory(service_id, api_key, model=self._model)
        bookmarks = [CompactBookmark.from_dict(b) for b in payload.get("bookmarks", [])]
        logger.info("Organizing %d bookmark(s) with %s", len(bookmarks), service_id)
        return organize_bookmarks(
            llm,
            bookmarks,
            payload.get("folderTree", ""),
            payload.get("pathToIdMap") or {},
            payload.get("defaultParentId", ""),
        )

    def _record_error(self, error_message: str) -> None:
        if record_organize_error(self._sessions, error_message):
            self._notify(Message(ORGANIZE_ERROR, {"errorMessage": error_message}))

    def _notify(self, message: Message) -> None:
        if self._channel is not None:
            self._channel.to_foreground.send(message)


class ThreadedWorker:
    """Runs an OrganizeWorker on its own thread behind a mailbox.

    START_ORGANIZE is queued and returns immediately; GET_ORGANIZE_STATUS
    is answered inline from the store.
    """

    def __init__(self, worker: OrganizeWorker, channel: Channel):
        self._worker = worker
        self._channel = channel
        self._mailbox: "queue.Queue[Optional[Message]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._channel.to_background.add_listener(self._on_message)
        self._thread = threading.Thread(target=self._run, name="bulkmark-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._channel.to_background.remove_listener(self._on_message)
        if self._thread is not None:
            self._mailbox.put(None)
            self._thread.join(timeout=timeout)
            self._thread = None

    def wait_idle(self) -> None:
        """Block until every queued message has been handled."""
        self._mailbox.join()

    def _on_message(self, message: Message) -> Optional[Any]:
        if message.type == START_ORGANIZE:
            self._mailbox.put(message)
            return None
        return self._worker.handle(message)

    def _run(self) -> None:
        while True:
            message = self._mailbox.get()
            try:
                if message is None:
                    return
                self._worker.handle(message)
            except Exception:
                logger.exception("Worker failed handling %s", message.type)
            finally:
                self._mailbox.task_done()
