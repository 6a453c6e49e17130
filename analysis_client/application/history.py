"""Bounded, deduplicated history of terminal jobs.

Entries are plain dicts keyed by ``id``. The newest inserted or promoted entry
is first. Every mutation is written straight back to storage; another context
connected to the same storage area converges by replacing its list with the
value it is notified about.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable, Union

from analysis_client.domain import QuotaExceededError, StorageError
from analysis_client.infrastructure.storage import KeyValueStorage, StorageEvent

logger = logging.getLogger(__name__)

MAX_HISTORY_ITEMS = 20

HistoryEntry = dict[str, Any]
HistoryUpdate = Union[list[HistoryEntry], Callable[[list[HistoryEntry]], list[HistoryEntry]]]


def _entry_id(entry: Any) -> str | None:
    if isinstance(entry, dict) and entry.get("id"):
        return str(entry["id"])
    return None


def _coerce_entries(raw: Any) -> list[HistoryEntry]:
    if not isinstance(raw, list):
        return []
    return [dict(entry) for entry in raw if _entry_id(entry) is not None]


class BoundedHistoryStore:
    def __init__(
        self,
        storage: KeyValueStorage,
        key: str,
        *,
        max_items: int = MAX_HISTORY_ITEMS,
        namespace: str | None = None,
    ) -> None:
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        self._storage = storage
        self._base_key = key
        self._max_items = max_items
        self._namespace = namespace
        self._items: list[HistoryEntry] = self._read()
        self._unsubscribe = storage.subscribe(self._on_storage_event)

    # ------------------------------------------------------------------
    # internal helpers
    # ------------------------------------------------------------------
    @property
    def storage_key(self) -> str:
        if self._namespace:
            return f"{self._base_key}:{self._namespace}"
        return self._base_key

    def _read(self) -> list[HistoryEntry]:
        key = self.storage_key
        raw = self._storage.get_item(key)
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Failed to load history (%s): %s", key, exc)
            return []
        return _coerce_entries(parsed)[: self._max_items]

    def _write(self, items: list[HistoryEntry]) -> None:
        self._storage.set_item(self.storage_key, json.dumps(items, ensure_ascii=False, default=str))

    def _persist(self) -> None:
        key = self.storage_key
        try:
            self._write(self._items)
        except QuotaExceededError as exc:
            kept = self._items[: len(self._items) // 2]
            logger.warning(
                "History storage quota exceeded (%s), keeping %d of %d entries: %s",
                key,
                len(kept),
                len(self._items),
                exc,
            )
            self._items = kept
            try:
                self._write(self._items)
            except StorageError as retry_exc:
                logger.error("Failed to recover from quota error (%s): %s", key, retry_exc)
        except StorageError as exc:
            logger.error("Failed to persist history (%s): %s", key, exc)

    def _commit(self, items: Iterable[HistoryEntry]) -> None:
        self._items = list(items)[: self._max_items]
        self._persist()

    def _on_storage_event(self, event: StorageEvent) -> None:
        if event.key != self.storage_key:
            return
        if not event.new_value:
            self._items = []
            return
        try:
            parsed = json.loads(event.new_value)
        except json.JSONDecodeError:
            logger.debug("Ignoring malformed history update for %s", event.key)
            return
        if isinstance(parsed, list):
            self._items = _coerce_entries(parsed)[: self._max_items]

    # ------------------------------------------------------------------
    # read API
    # ------------------------------------------------------------------
    @property
    def history(self) -> list[HistoryEntry]:
        return [dict(entry) for entry in self._items]

    @property
    def max_items(self) -> int:
        return self._max_items

    def __len__(self) -> int:
        return len(self._items)

    def get_by_id(self, entry_id: str) -> HistoryEntry | None:
        for entry in self._items:
            if entry["id"] == entry_id:
                return dict(entry)
        return None

    def has_id(self, entry_id: str) -> bool:
        return any(entry["id"] == entry_id for entry in self._items)

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------
    def set_history(self, value: HistoryUpdate) -> None:
        """Replace the whole list, bounded to capacity."""

        items = value(self.history) if callable(value) else value
        self._commit(_coerce_entries(list(items)))

    def add_item(self, entry: HistoryEntry) -> None:
        """Put ``entry`` first, replacing any entry with the same id."""

        entry_id = _entry_id(entry)
        if entry_id is None:
            raise ValueError("history entries require an id")
        rest = [item for item in self._items if item["id"] != entry_id]
        self._commit([dict(entry), *rest])

    def upsert_item(self, entry: HistoryEntry) -> None:
        """Merge ``entry`` onto the entry with the same id and promote it."""

        entry_id = _entry_id(entry)
        if entry_id is None:
            raise ValueError("history entries require an id")
        for index, item in enumerate(self._items):
            if item["id"] == entry_id:
                merged = {**item, **entry}
                rest = self._items[:index] + self._items[index + 1 :]
                self._commit([merged, *rest])
                return
        self._commit([dict(entry), *self._items])

    def remove_by_id(self, entry_id: str) -> None:
        self._commit(item for item in self._items if item["id"] != entry_id)

    def clear_history(self) -> None:
        """Empty the list and delete the persisted record itself."""

        self._items = []
        try:
            self._storage.remove_item(self.storage_key)
        except StorageError as exc:
            logger.error("Failed to clear history (%s): %s", self.storage_key, exc)

    def set_namespace(self, namespace: str | None) -> None:
        """Switch to another key and reload; the old list is not written back."""

        if namespace == self._namespace:
            return
        self._namespace = namespace
        self._items = self._read()

    def close(self) -> None:
        self._unsubscribe()
