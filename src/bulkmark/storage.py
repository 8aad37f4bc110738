"""Durable key-value storage, the session record and stored credentials.

The session store is the only channel through which the foreground and
background contexts observe each other's progress. Writes are
last-write-wins with no version check.
"""

import copy
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from .exceptions import ConfigError, StorageError
from .models import OrganizeSession
from .services import SELECTED_SERVICE_STORAGE_KEY, get_service

ORGANIZE_SESSION_STORAGE_KEY = "organizeSession"


class KeyValueStore(ABC):
    """Minimal durable key-value store interface."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key; removing a missing key is not an error."""


class MemoryStore(KeyValueStore):
    def __init__(self):
        self._data: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """One JSON file per key inside a directory.

    Separate files keep independent keys (session, heartbeat, credentials)
    from clobbering each other when two processes write.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt store file {path}: {e}") from e

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        try:
            text = json.dumps(value, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for {key} is not JSON-serializable: {e}") from e
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", delete=False, dir=str(path.parent), encoding="utf-8", suffix=".tmp"
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(text)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"Failed to write {path}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to remove {key}: {e}") from e


class SessionStore:
    """Persist, load and clear the single organize session record."""

    def __init__(self, kv: KeyValueStore, key: str = ORGANIZE_SESSION_STORAGE_KEY):
        self._kv = kv
        self._key = key

    def save(self, session: OrganizeSession) -> None:
        self._kv.set(self._key, session.to_dict())

    def load(self) -> Optional[OrganizeSession]:
        data = self._kv.get(self._key)
        if data is None:
            return None
        if not isinstance(data, dict):
            raise StorageError(f"Stored session under '{self._key}' is not an object")
        return OrganizeSession.from_dict(data)

    def clear(self) -> None:
        self._kv.remove(self._key)


class CredentialStore:
    """API keys and the selected service, with environment fallbacks."""

    def __init__(self, kv: KeyValueStore, env_keys: Optional[dict[str, str]] = None):
        self._kv = kv
        self._env_keys = env_keys or {}

    def get(self, key: str) -> Optional[str]:
        value = self._kv.get(key)
        if value:
            return value
        return self._env_keys.get(key)

    def set(self, key: str, value: str) -> None:
        self._kv.set(key, value)

    def get_api_key(self, service_id: str) -> str:
        service = get_service(service_id)
        api_key = self.get(service.storage_key)
        if not api_key:
            raise ConfigError(f"No API key found for {service.name}")
        return api_key

    def set_api_key(self, service_id: str, api_key: str) -> None:
        service = get_service(service_id)
        self.set(service.storage_key, api_key)

    def selected_service(self) -> str:
        return self.get(SELECTED_SERVICE_STORAGE_KEY) or ""

    def select_service(self, service_id: str) -> None:
        get_service(service_id)
        self.set(SELECTED_SERVICE_STORAGE_KEY, service_id)
