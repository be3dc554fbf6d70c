"""A bounded, thread-safe FIFO of integer values (typically data offsets)."""

from __future__ import annotations

import threading
from collections import deque


class RingBuffer:
    """Fixed-capacity FIFO where ``pop`` blocks until a value is available.

    A buffer created with ``empty=False`` starts full, every slot holding 0.
    """

    def __init__(self, max_cnt: int, empty: bool = True) -> None:
        if max_cnt < 0:
            raise ValueError("ring buffer capacity must not be negative")
        self.max_cnt = max_cnt
        self._items: deque[int] = deque([] if empty else [0] * max_cnt)
        self._lock = threading.Lock()
        self._available = threading.Semaphore(len(self._items))

    def push(self, value: int) -> None:
        """Append a value; raise OverflowError when the buffer is full."""
        with self._lock:
            if len(self._items) >= self.max_cnt:
                raise OverflowError("ring buffer is full")
            self._items.append(value)
        self._available.release()

    def pop(self, timeout: float | None = None) -> int:
        """Remove and return the oldest value, waiting up to ``timeout`` seconds."""
        if not self._available.acquire(timeout=timeout):
            raise TimeoutError("no value became available in the ring buffer")
        with self._lock:
            return self._items.popleft()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)