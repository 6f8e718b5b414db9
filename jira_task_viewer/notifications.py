from __future__ import annotations

import enum
import itertools
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, List, Optional

DEFAULT_TTL = 5.0
MAX_VISIBLE = 3
MAX_QUEUED = 20


class Level(enum.Enum):
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notification:
    id: int
    level: Level
    message: str
    created_at: float


class NotificationQueue:
    """FIFO of transient messages; the oldest expires first."""

    def __init__(self, ttl: float = DEFAULT_TTL, max_visible: int = MAX_VISIBLE,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.max_visible = max_visible
        self._clock = clock
        self._ids = itertools.count(1)
        self._queue: Deque[Notification] = deque(maxlen=MAX_QUEUED)

    def push(self, level: Level, message: str) -> Notification:
        note = Notification(id=next(self._ids), level=level, message=message, created_at=self._clock())
        self._queue.append(note)
        return note

    def success(self, message: str) -> Notification:
        return self.push(Level.SUCCESS, message)

    def error(self, message: str) -> Notification:
        return self.push(Level.ERROR, message)

    def expire(self, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        removed = 0
        while self._queue and now - self._queue[0].created_at > self.ttl:
            self._queue.popleft()
            removed += 1
        return removed

    def dismiss(self, note_id: int) -> bool:
        for note in self._queue:
            if note.id == note_id:
                self._queue.remove(note)
                return True
        return False

    def visible(self) -> List[Notification]:
        return list(itertools.islice(self._queue, self.max_visible))

    def __len__(self) -> int:
        return len(self._queue)

    def __iter__(self):
        return iter(list(self._queue))
