"""Merge local mutations and change-feed events into one ordered record list.

The same three operations serve both sources, so a tab's own optimistic write
and the feed echo of that write converge on a single entry:

* insert is a no-op when the id is already present, otherwise the record is
  prepended (or appended for ascending lists);
* update replaces a record in place and ignores unknown ids;
* delete removes a record and ignores unknown ids.

A delete followed by a stale insert for the same id reintroduces the record.
Nothing here tracks tombstones.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

ACTION_INSERT = "insert"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"


class Reconciler:
    def __init__(
        self,
        factory: Callable[[dict], object],
        records=(),
        prepend: bool = True,
    ):
        self._factory = factory
        self._prepend = prepend
        self._lock = threading.RLock()
        self._items = list(records)

    @property
    def items(self) -> list:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, record_id) -> bool:
        return self.get(record_id) is not None

    def ids(self) -> list[str]:
        with self._lock:
            return [item.id for item in self._items]

    def get(self, record_id):
        with self._lock:
            for item in self._items:
                if item.id == record_id:
                    return item
        return None

    def reset(self, records) -> None:
        with self._lock:
            self._items = list(records)

    def insert(self, record) -> bool:
        with self._lock:
            if any(item.id == record.id for item in self._items):
                return False
            if self._prepend:
                self._items.insert(0, record)
            else:
                self._items.append(record)
            return True

    def update(self, record) -> bool:
        with self._lock:
            for index, item in enumerate(self._items):
                if item.id == record.id:
                    self._items[index] = record
                    return True
            return False

    def delete(self, record_id) -> bool:
        with self._lock:
            remaining = [item for item in self._items if item.id != record_id]
            changed = len(remaining) != len(self._items)
            self._items = remaining
            return changed

    def apply_event(self, event: dict) -> bool:
        action = (event.get("action") or "").lower()
        payload = event.get("payload") or {}
        record_id = payload.get("id") or event.get("record_id")

        if action == ACTION_DELETE:
            return self.delete(record_id)
        if action not in {ACTION_INSERT, ACTION_UPDATE}:
            logger.warning("Ignoring change event with action %r", action)
            return False

        record = self._factory({**payload, "id": record_id})
        if action == ACTION_INSERT:
            return self.insert(record)
        return self.update(record)
