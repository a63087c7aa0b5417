"""Worker pool capability for running request tasks off the main thread."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Protocol


class WorkerPool(Protocol):
    """Runs submitted callables independently of the caller."""

    def submit(self, fn: Callable[[], Any]) -> Any:
        ...


class ThreadWorkerPool:
    """WorkerPool backed by a ThreadPoolExecutor.

    Usage:
        with ThreadWorkerPool(max_workers=4) as pool:
            future = pool.submit(task)
    """

    def __init__(self, max_workers: int | None = None) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="tickhttp"
        )

    def submit(self, fn: Callable[[], Any]) -> Future:
        return self._executor.submit(fn)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "ThreadWorkerPool":
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.shutdown()
