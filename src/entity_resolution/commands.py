from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from threading import Condition, Lock
from typing import Any


class ClusterCommandQueue:
    """Single-writer mailboxes keyed by cluster (or batch) id.

    Commands submitted under the same key run one at a time in submission
    order; commands under different keys run concurrently on a shared pool.
    """

    def __init__(self, max_workers: int = 4) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="review")
        self._lock = Lock()
        self._mailboxes: dict[str, deque[tuple[Future, Callable[..., Any], tuple[Any, ...]]]] = {}

    def submit(self, key: str, command: Callable[..., Any], *args: Any) -> Future:
        future: Future = Future()
        with self._lock:
            mailbox = self._mailboxes.get(key)
            if mailbox is None:
                self._mailboxes[key] = deque([(future, command, args)])
                self._executor.submit(self._drain, key)
            else:
                mailbox.append((future, command, args))
        return future

    def pending(self, key: str) -> int:
        with self._lock:
            return len(self._mailboxes.get(key, ()))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _drain(self, key: str) -> None:
        while True:
            with self._lock:
                mailbox = self._mailboxes[key]
                if not mailbox:
                    del self._mailboxes[key]
                    return
                future, command, args = mailbox[0]
            try:
                if future.set_running_or_notify_cancel():
                    try:
                        future.set_result(command(*args))
                    except Exception as exc:
                        future.set_exception(exc)
            except BaseException as exc:
                if not future.done():
                    future.set_exception(exc)
                self._hand_off(key, mailbox)
                raise
            with self._lock:
                mailbox.popleft()

    def _hand_off(self, key: str, mailbox: deque) -> None:
        # This worker is unwinding; the rest of the mailbox moves to a fresh drain.
        with self._lock:
            mailbox.popleft()
            if mailbox:
                self._executor.submit(self._drain, key)
            else:
                del self._mailboxes[key]


class SharedExclusiveGate:
    """Many shared holders or one exclusive holder.

    A waiting exclusive holder blocks new shared entrants, so a reindex is not
    starved by a stream of review commands.
    """

    def __init__(self) -> None:
        self._condition = Condition()
        self._shared = 0
        self._exclusive = False
        self._exclusive_waiting = 0

    @contextmanager
    def shared(self) -> Iterator[None]:
        with self._condition:
            self._condition.wait_for(lambda: not self._exclusive and not self._exclusive_waiting)
            self._shared += 1
        try:
            yield
        finally:
            with self._condition:
                self._shared -= 1
                self._condition.notify_all()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        with self._condition:
            self._exclusive_waiting += 1
            try:
                self._condition.wait_for(lambda: not self._exclusive and self._shared == 0)
            finally:
                self._exclusive_waiting -= 1
            self._exclusive = True
        try:
            yield
        finally:
            with self._condition:
                self._exclusive = False
                self._condition.notify_all()
