"""Origin-scoped key-value storage shared between execution contexts.

A :class:`StorageArea` holds the data of one origin, optionally backed by a
JSON file. Each execution context (a browser tab in the web client, a form
instance here) talks to it through its own :class:`StorageConnection`. Writes
made through one connection are announced to listeners of every *other*
connection, never to the writer itself.
"""
from __future__ import annotations

import errno
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

from analysis_client.domain import QuotaExceededError, StorageError

logger = logging.getLogger(__name__)

_QUOTA_ERRNOS = {errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)}


@dataclass(frozen=True, slots=True)
class StorageEvent:
    """Change notification delivered to other contexts of the same origin."""

    key: str
    old_value: str | None
    new_value: str | None


StorageListener = Callable[[StorageEvent], None]


class KeyValueStorage(Protocol):
    """Contract the history store and session context persist through."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...

    def subscribe(self, listener: StorageListener) -> Callable[[], None]: ...


class StorageArea:
    def __init__(self, path: Path | None = None, *, quota_bytes: int = 0) -> None:
        self._path = path
        self._quota_bytes = quota_bytes
        self._data: dict[str, str] = self._load()
        self._connections: list[StorageConnection] = []

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    def _load(self) -> dict[str, str]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to load storage file %s: %s", self._path, exc)
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(key): value for key, value in raw.items() if isinstance(value, str)}

    def _flush(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._data, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self._path)

    def _usage_with(self, key: str, value: str) -> int:
        total = len(key.encode("utf-8")) + len(value.encode("utf-8"))
        for existing_key, existing_value in self._data.items():
            if existing_key != key:
                total += len(existing_key.encode("utf-8")) + len(existing_value.encode("utf-8"))
        return total

    def _broadcast(self, source: StorageConnection, event: StorageEvent) -> None:
        for connection in list(self._connections):
            if connection is not source:
                connection._dispatch(event)

    def _refresh(self) -> None:
        """Pick up keys written to the backing file by other processes."""

        if self._path is not None:
            self._data = self._load()

    def _commit(self, source: StorageConnection, key: str, value: str | None) -> None:
        snapshot = dict(self._data)
        old_value = snapshot.get(key)
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value
        try:
            self._flush()
        except OSError as exc:
            self._data = snapshot
            if exc.errno in _QUOTA_ERRNOS:
                raise QuotaExceededError(f"storage quota exceeded writing {key!r}") from exc
            raise StorageError(f"failed to persist {key!r}: {exc}") from exc
        self._broadcast(source, StorageEvent(key=key, old_value=old_value, new_value=value))

    # ------------------------------------------------------------------
    # connection API
    # ------------------------------------------------------------------
    def connect(self) -> "StorageConnection":
        connection = StorageConnection(self)
        self._connections.append(connection)
        return connection

    def _detach(self, connection: "StorageConnection") -> None:
        if connection in self._connections:
            self._connections.remove(connection)

    def _get(self, key: str) -> str | None:
        return self._data.get(key)

    def _set(self, source: "StorageConnection", key: str, value: str) -> None:
        self._refresh()
        if self._quota_bytes and self._usage_with(key, value) > self._quota_bytes:
            raise QuotaExceededError(f"storage quota of {self._quota_bytes} bytes exceeded writing {key!r}")
        self._commit(source, key, value)

    def _remove(self, source: "StorageConnection", key: str) -> None:
        self._refresh()
        if key in self._data:
            self._commit(source, key, None)

    def _keys(self) -> list[str]:
        return list(self._data)


class StorageConnection:
    """One execution context's view of a :class:`StorageArea`."""

    def __init__(self, area: StorageArea) -> None:
        self._area = area
        self._listeners: list[StorageListener] = []

    def get_item(self, key: str) -> str | None:
        return self._area._get(key)

    def set_item(self, key: str, value: str) -> None:
        self._area._set(self, key, value)

    def remove_item(self, key: str) -> None:
        self._area._remove(self, key)

    def keys(self) -> list[str]:
        return self._area._keys()

    def subscribe(self, listener: StorageListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _dispatch(self, event: StorageEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.exception("Storage listener failed for key %r", event.key)

    def close(self) -> None:
        self._listeners.clear()
        self._area._detach(self)
