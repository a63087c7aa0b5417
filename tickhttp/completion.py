"""Completion Queue - Hands finished requests from worker threads to the host.

Worker threads enqueue one CompletionItem per successful transfer. The host's
main thread calls drain_and_dispatch() once per tick; it swaps out everything
queued so far and invokes each item's completion handler with
(response, value), in enqueue order.

The queue is unbounded: a slow consumer accumulates items rather than
blocking producers.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from threading import Lock
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from tickhttp.models import Response


logger = logging.getLogger(__name__)

CompletionCallback = Callable[["Response", Any], Any]


class HandleReleasedError(RuntimeError):
    """Raised when a released or moved-from CallbackHandle is used."""


class CallbackHandle:
    """Owned reference to a completion handler, released exactly once.

    Ownership is either moved (move() returns a new handle and empties this
    one) or released (release(), or leaving a `with` block). Releasing an
    empty handle is a no-op, so a scoped exit after a move does nothing.
    on_release, if given, is called with the handler exactly once across
    all moves.

    Usage:
        with CallbackHandle(callback) as handle:
            if ok:
                queue.enqueue(CompletionItem(handle.move(), response, value))
        # released here unless moved
    """

    def __init__(
        self,
        callback: CompletionCallback,
        on_release: Callable[[CompletionCallback], None] | None = None,
    ) -> None:
        self._callback: CompletionCallback | None = callback
        self._on_release = on_release

    @property
    def owned(self) -> bool:
        return self._callback is not None

    def move(self) -> CallbackHandle:
        """Transfer ownership to a new handle."""
        if self._callback is None:
            raise HandleReleasedError("callback handle has already been released")
        moved = CallbackHandle(self._callback, self._on_release)
        self._callback = None
        self._on_release = None
        return moved

    def invoke(self, response: Response, value: Any) -> Any:
        if self._callback is None:
            raise HandleReleasedError("callback handle has already been released")
        return self._callback(response, value)

    def release(self) -> None:
        callback, self._callback = self._callback, None
        on_release, self._on_release = self._on_release, None
        if callback is not None and on_release is not None:
            on_release(callback)

    def __enter__(self) -> CallbackHandle:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.release()


@dataclass(frozen=True)
class CompletionItem:
    """The packaged result of one transfer, queued for delivery."""

    handle: CallbackHandle
    response: Response
    value: Any = None


class CompletionQueue:
    """Thread-safe FIFO of CompletionItems; many producers, one consumer.

    Usage:
        queue = CompletionQueue()
        # worker threads
        queue.enqueue(item)
        # host main thread, once per tick
        queue.drain_and_dispatch()
    """

    def __init__(self) -> None:
        self._items: deque[CompletionItem] = deque()
        self._lock = Lock()
        self._draining = False

    def enqueue(self, item: CompletionItem) -> None:
        with self._lock:
            self._items.append(item)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def drain_and_dispatch(self) -> int:
        """Dispatch every item queued so far, in enqueue order.

        Items enqueued while dispatching wait for the next call. A handler
        that raises is logged; the remaining items are still dispatched.

        Returns:
            Number of items dispatched.

        Raises:
            RuntimeError: If called while a drain is already in progress.
        """
        with self._lock:
            if self._draining:
                raise RuntimeError("drain_and_dispatch() is already running")
            if not self._items:
                return 0
            items, self._items = self._items, deque()
            self._draining = True

        try:
            for item in items:
                with item.handle:
                    try:
                        item.handle.invoke(item.response, item.value)
                    except Exception:
                        logger.exception("Completion handler raised")
        finally:
            with self._lock:
                self._draining = False

        logger.debug("Dispatched %d completion(s)", len(items))
        return len(items)
