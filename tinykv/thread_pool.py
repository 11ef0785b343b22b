"""Fixed pool of worker threads consuming a shared FIFO queue of jobs."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Callable, Deque, List, Tuple

_Job = Tuple[Callable[..., Any], Tuple[Any, ...]]


class ThreadPool:
    """Runs submitted callables on ``num_threads`` daemon worker threads."""

    def __init__(self, num_threads: int = 4) -> None:
        if num_threads <= 0:
            raise ValueError("num_threads must be positive")
        self._queue: Deque[_Job] = deque()
        self._not_empty = threading.Condition()
        self.threads: List[threading.Thread] = [
            threading.Thread(target=self._worker, name=f"tinykv-worker-{i}", daemon=True)
            for i in range(num_threads)
        ]
        for thread in self.threads:
            thread.start()

    def _worker(self) -> None:
        while True:
            with self._not_empty:
                while not self._queue:
                    self._not_empty.wait()
                func, args = self._queue.popleft()
            func(*args)

    def submit(self, func: Callable[..., Any], *args: Any) -> None:
        """Queue ``func(*args)`` to run on a worker thread."""
        with self._not_empty:
            self._queue.append((func, args))
            self._not_empty.notify()