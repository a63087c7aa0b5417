"""Transfer Engine - Drives one HTTP exchange per request on a worker thread.

The engine maps a Request onto TransferOptions (method mapping plus the fixed
policy applied to every exchange), binds the read/write/header callbacks to
the request and a fresh Response, performs the exchange, and maps the outcome:
a transport failure raises TransferError; success parses the body as JSON and
records the status code.

HTTPRequestTask is the per-request execution unit submitted to the worker
pool. It owns the request, the completion handler handle, and the opaque
value, and either enqueues exactly one CompletionItem (success) or logs the
failure and releases the handle unused.
"""

from __future__ import annotations

import json
import logging
from contextlib import closing
from functools import partial
from typing import TYPE_CHECKING, Any, Callable

from tickhttp.completion import CallbackHandle, CompletionItem
from tickhttp.models import HTTPMethod, Request, Response, ResponseBody
from tickhttp.transport import (
    HttpxSession,
    TransferCallbacks,
    TransferError,
    TransferOptions,
    TransportInitError,
    TransportSession,
)

if TYPE_CHECKING:
    from tickhttp.client import HTTPClient


logger = logging.getLogger(__name__)

# Fixed policy applied to every exchange (seconds)
CONNECT_TIMEOUT = 10
TRANSFER_TIMEOUT = 30


# =============================================================================
# Transport Callbacks
# =============================================================================


def read_request_body(buffer: memoryview, request: Request) -> int:
    """Copy the next min(len(buffer), remaining) body bytes into buffer.

    Returns the number of bytes copied; 0 signals end of body.
    """
    body = request.body
    to_copy = min(len(buffer), body.remaining)
    if to_copy == 0:
        return 0

    buffer[:to_copy] = body.view(to_copy)
    body.advance(to_copy)
    return to_copy


def write_response_body(chunk: bytes, response: Response) -> int:
    """Append chunk to the response body.

    Returns len(chunk) on success. On allocation failure returns 0, which the
    transport treats as a fatal write error.
    """
    try:
        response.body.append(chunk)
    except MemoryError:
        return 0
    return len(chunk)


def receive_response_header(line: bytes, response: Response) -> int:
    """Store one raw header line in the response's header table.

    Lines without a `name: value` structure (status line, blank terminator)
    are ignored. Always consumes the whole line.
    """
    response.headers.receive_line(line)
    return len(line)


def parse_json_document(body: ResponseBody) -> Any:
    """Parse the response body as JSON. Returns None if empty or malformed."""
    try:
        return json.loads(body.getvalue())
    except (ValueError, RecursionError):
        return None


# =============================================================================
# Engine
# =============================================================================


def apply_method(options: TransferOptions, method: HTTPMethod) -> None:
    """Configure the transport verb and body mode for method.

    PATCH carries a body like POST, so it sets both the custom verb and
    body-upload mode. DELETE is a verb override only.
    """
    if method is HTTPMethod.POST:
        options.post = True
    elif method is HTTPMethod.PUT:
        options.upload = True
    elif method is HTTPMethod.PATCH:
        options.custom_request = method.value
        options.post = True
    elif method is HTTPMethod.DELETE:
        options.custom_request = method.value


class TransferEngine:
    """Performs one blocking exchange per call to perform().

    Usage:
        engine = TransferEngine()
        response = engine.perform(request, url, header_lines, ca_bundle)
    """

    def __init__(
        self,
        session_factory: Callable[[], TransportSession] | None = None,
        max_response_bytes: int | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            session_factory: Creates a transport session per exchange. May
                             raise TransportInitError. Defaults to HttpxSession.
            max_response_bytes: Cap on a response body. Exceeding it fails
                                the write callback and so the transfer.
        """
        self._session_factory = session_factory or HttpxSession
        self._max_response_bytes = max_response_bytes

    def build_options(
        self,
        request: Request,
        url: str,
        header_lines: list[str],
        ca_bundle: str | None,
    ) -> TransferOptions:
        options = TransferOptions(
            url=url,
            headers=header_lines,
            accept_encoding="",
            ca_info=ca_bundle,
            connect_timeout=CONNECT_TIMEOUT,
            timeout=TRANSFER_TIMEOUT,
            follow_location=True,
            no_signal=True,
        )
        apply_method(options, request.method)
        if options.sends_body:
            options.upload_size = request.body.size
        return options

    def perform(
        self,
        request: Request,
        url: str,
        header_lines: list[str],
        ca_bundle: str | None = None,
    ) -> Response:
        """Execute request and return its populated Response.

        The request body is released before returning, whatever the outcome.

        Raises:
            TransportInitError: If the transport session cannot be created.
            TransferError: If the exchange fails at the transport level.
        """
        try:
            session = self._session_factory()
            response = Response(body=ResponseBody(limit=self._max_response_bytes))
            options = self.build_options(request, url, header_lines, ca_bundle)
            callbacks = TransferCallbacks(
                read=partial(read_request_body, request=request),
                write=partial(write_response_body, response=response),
                header=partial(receive_response_header, response=response),
            )

            logger.debug("%s %s", options.method, url)
            with closing(session):
                result = session.perform(options, callbacks)
        finally:
            request.body.release()

        if not result.ok:
            raise TransferError(result.error)

        response.data = parse_json_document(response.body)
        response.status = result.status
        logger.debug("%s %s -> %d (%d bytes)", options.method, url, response.status, response.body.size)
        return response


# =============================================================================
# Worker Task
# =============================================================================


class HTTPRequestTask:
    """Execution unit for one request, run on a worker thread.

    The task owns its completion handle. On success the handle is moved into
    the enqueued CompletionItem; on every other path it is released unused
    when run() exits.
    """

    def __init__(
        self,
        client: HTTPClient,
        request: Request,
        handle: CallbackHandle,
        value: Any = None,
    ) -> None:
        self.client = client
        self.request = request
        self.handle = handle
        self.value = value

    def __call__(self) -> None:
        self.run()

    def run(self) -> None:
        with self.handle:
            url = self.client.build_url(self.request)
            header_lines = self.client.build_headers(self.request)

            try:
                response = self.client.engine.perform(
                    self.request, url, header_lines, self.client.ca_bundle_path()
                )
            except TransportInitError as e:
                logger.error("Could not initialize HTTP session: %s", e)
                return
            except TransferError as e:
                logger.error("HTTP request failed: %s", e)
                return

            self.client.queue.enqueue(CompletionItem(self.handle.move(), response, self.value))
