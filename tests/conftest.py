"""Pytest configuration and fixtures for tickhttp tests.

This file provides:
- ScriptedSession: A transport session that replays a scripted exchange
- InlinePool: A worker pool that runs tasks synchronously on the caller
- Builders for requests, responses, and completion items
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import replace
from typing import Any, Callable

import httpx
import pytest

from tickhttp.completion import CallbackHandle, CompletionItem, CompletionQueue
from tickhttp.models import HTTPMethod, Request, Response
from tickhttp.transport import HttpxSession, TransferCallbacks, TransferOptions, TransferResult


def make_request(
    method: HTTPMethod | str = HTTPMethod.GET,
    body: bytes | None = None,
    endpoint: str = "http://api.test",
    path: str = "items",
    headers: dict[str, str] | None = None,
) -> Request:
    """Create a Request for testing.

    Prefer this over constructing Request directly - it provides sensible
    defaults and documents which fields are typically varied in tests.
    """
    return Request(
        method=method,
        endpoint=endpoint,
        path=path,
        headers=headers or {},
        body=body,
    )


def make_item(
    callback: Callable[[Response, Any], Any],
    value: Any = None,
    status: int = 200,
) -> CompletionItem:
    """Create a CompletionItem wrapping a fresh Response."""
    return CompletionItem(CallbackHandle(callback), Response(status=status), value)


class ScriptedSession:
    """Transport session that replays a fixed exchange through the callbacks.

    Pulls the whole request body (in read_chunk_size pieces) when the options
    ask for one, then delivers header_lines and chunks. If error is set, the
    exchange fails after the upload with that message.
    """

    def __init__(
        self,
        *,
        status: int = 200,
        header_lines: list[bytes] | None = None,
        chunks: list[bytes] | None = None,
        error: str | None = None,
        read_chunk_size: int = 4,
    ) -> None:
        self.status = status
        self.header_lines = header_lines or []
        self.chunks = chunks or []
        self.error = error
        self.read_chunk_size = read_chunk_size
        self.options: TransferOptions | None = None
        self.uploaded = b""
        self.read_calls: list[int] = []
        self.closed = False

    def perform(self, options: TransferOptions, callbacks: TransferCallbacks) -> TransferResult:
        self.options = replace(options, headers=list(options.headers))

        if options.sends_body and callbacks.read is not None:
            buffer = bytearray(self.read_chunk_size)
            view = memoryview(buffer)
            while True:
                count = callbacks.read(view)
                self.read_calls.append(count)
                if count == 0:
                    break
                self.uploaded += bytes(view[:count])

        if self.error is not None:
            return TransferResult(ok=False, error=self.error)

        for line in self.header_lines:
            callbacks.header(line)
        for chunk in self.chunks:
            if callbacks.write(chunk) != len(chunk):
                return TransferResult(ok=False, error="Failed writing received data")

        return TransferResult(ok=True, status=self.status)

    def close(self) -> None:
        self.closed = True


class InlinePool:
    """WorkerPool that runs each task immediately and returns a settled Future."""

    def __init__(self) -> None:
        self.submitted: list[Callable[[], Any]] = []

    def submit(self, fn: Callable[[], Any]) -> Future:
        self.submitted.append(fn)
        future: Future = Future()
        try:
            future.set_result(fn())
        except Exception as e:
            future.set_exception(e)
        return future


def mock_session_factory(handler: Callable[[httpx.Request], httpx.Response]) -> Callable[[], HttpxSession]:
    """Session factory whose sessions answer every exchange with handler."""
    return lambda: HttpxSession(transport=httpx.MockTransport(handler))


@pytest.fixture
def queue() -> CompletionQueue:
    return CompletionQueue()


@pytest.fixture
def inline_pool() -> InlinePool:
    return InlinePool()
