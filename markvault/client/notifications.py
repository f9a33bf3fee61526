from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

TOAST_SECONDS = 3.0


@dataclass
class Notification:
    message: str
    kind: str
    expires_at: float


class Notifier:
    """Holds the single visible toast; a newer message replaces the older one."""

    def __init__(
        self,
        ttl: float = TOAST_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        history_size: int = 50,
    ):
        self._ttl = ttl
        self._clock = clock
        self._current: Notification | None = None
        self.history: deque[Notification] = deque(maxlen=history_size)

    def show(self, message: str, kind: str = "info") -> Notification:
        notification = Notification(message, kind, self._clock() + self._ttl)
        self._current = notification
        self.history.append(notification)
        return notification

    @property
    def current(self) -> Notification | None:
        if self._current and self._clock() >= self._current.expires_at:
            self._current = None
        return self._current

    def messages(self) -> list[str]:
        return [item.message for item in self.history]
