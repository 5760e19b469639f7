"""Serializing worker that runs connection-affecting jobs one at a time."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

from printlink.core.errors import AlreadyBusyError, UnavailableError

T = TypeVar("T")


class SerialWorker:
    """Single worker thread shared by the components of one manager instance.

    ``run`` executes a caller request and waits for it; a request arriving
    while another one is in flight is rejected with ``AlreadyBusyError``.
    ``submit`` queues internal work (such as link-loss handling) behind
    whatever is running.
    """

    def __init__(self, name: str = "printlink-worker") -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._busy = False

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        with self._lock:
            if self._busy:
                raise AlreadyBusyError("Another connection operation is already in progress")
            self._busy = True
        try:
            future = self.submit(fn, *args, **kwargs)
            return future.result()
        finally:
            with self._lock:
                self._busy = False

    def submit(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> Future[T]:
        try:
            return self._executor.submit(fn, *args, **kwargs)
        except RuntimeError as exc:
            raise UnavailableError("Worker has been shut down") from exc

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
