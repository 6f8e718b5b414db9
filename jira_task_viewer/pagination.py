from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, List, Optional, Sequence, TypeVar

LOAD_MORE_THRESHOLD = 5
DEFAULT_PAGE_SIZE = 20

T = TypeVar("T")


@dataclass(frozen=True)
class PageRequest:
    cursor: Optional[int]
    page_size: int
    generation: int  # filter generation the page belongs to
    epoch: int       # bumped on every reset, including screen re-entry


class PaginationCursor(Generic[T]):
    """Offset cursor plus the rows accumulated so far for one paginated list."""

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE, threshold: int = LOAD_MORE_THRESHOLD):
        self.page_size = page_size
        self.threshold = threshold
        self.cursor: Optional[int] = None
        self.has_more = True
        self.loading = False
        self.items: List[T] = []
        self.generation = 0
        self.epoch = 0

    def should_load_more(self, scroll_position: int, total_rendered: int) -> bool:
        if not self.has_more or self.loading:
            return False
        remaining = total_rendered - scroll_position - 1
        return remaining < self.threshold

    def begin_load(self) -> Optional[PageRequest]:
        if self.loading or not self.has_more:
            return None
        self.loading = True
        return PageRequest(cursor=self.cursor, page_size=self.page_size, generation=self.generation, epoch=self.epoch)

    def is_current(self, request: PageRequest) -> bool:
        return request.epoch == self.epoch and request.generation == self.generation

    def commit_page(self, items: Sequence[T], next_cursor: Optional[int], has_more: bool) -> None:
        # server order is preserved; never re-sorted here
        self.items.extend(items)
        self.cursor = next_cursor
        self.has_more = bool(has_more) and next_cursor is not None
        self.loading = False

    def fail_load(self) -> None:
        self.loading = False

    def reset(self, generation: Optional[int] = None) -> None:
        if generation is not None:
            self.generation = generation
        self.epoch += 1
        self.cursor = None
        self.has_more = True
        self.loading = False
        self.items = []

    def __len__(self) -> int:
        return len(self.items)
