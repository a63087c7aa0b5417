"""Transport - Performs one blocking HTTP exchange driven by callbacks.

The transport is configured with TransferOptions and a set of callbacks:
a pull-based read callback for the request body, a push-based write callback
for the response body, and a push-based header callback that receives one raw
header line at a time. perform() returns a TransferResult: a binary outcome,
the transport's diagnostic message on failure, and the final status code on
success.

HttpxSession is the httpx-backed implementation. It builds one httpx.Client
per exchange; nothing is pooled or reused across transfers.
"""

from __future__ import annotations

import ssl
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Protocol

import httpx


# Bytes pulled from the read callback per call (curl's default buffer size)
READ_CHUNK_SIZE = 16384

ReadCallback = Callable[[memoryview], int]
WriteCallback = Callable[[bytes], int]
HeaderCallback = Callable[[bytes], int]


class TransportError(Exception):
    """Base class for transport errors."""


class TransportInitError(TransportError):
    """Raised when a transport session cannot be created."""


class TransferError(TransportError):
    """Raised when an exchange fails at the connection/timeout/TLS/protocol level."""


@dataclass
class TransferOptions:
    """Transport configuration for one exchange.

    Verb resolution: custom_request if set, else PUT when upload, else POST
    when post, else GET. A request body is sent only with post or upload.
    """

    url: str
    headers: list[str] = field(default_factory=list)
    custom_request: str | None = None
    post: bool = False
    upload: bool = False
    upload_size: int | None = None
    # "" enables every encoding the transport supports; None disables negotiation
    accept_encoding: str | None = None
    ca_info: str | None = None
    connect_timeout: float | None = None
    timeout: float | None = None
    follow_location: bool = False
    no_signal: bool = False

    @property
    def method(self) -> str:
        if self.custom_request:
            return self.custom_request
        if self.upload:
            return "PUT"
        if self.post:
            return "POST"
        return "GET"

    @property
    def sends_body(self) -> bool:
        return self.post or self.upload


@dataclass
class TransferCallbacks:
    """Callbacks bound to one exchange's request and response state."""

    read: ReadCallback | None = None
    write: WriteCallback | None = None
    header: HeaderCallback | None = None


@dataclass
class TransferResult:
    """Outcome of one exchange."""

    ok: bool
    status: int = 0
    error: str = ""


class TransportSession(Protocol):
    """A transport session capable of performing blocking exchanges."""

    def perform(self, options: TransferOptions, callbacks: TransferCallbacks) -> TransferResult:
        ...

    def close(self) -> None:
        ...


class _WriteAborted(Exception):
    """Internal signal that the write callback refused a chunk."""


class _DeadlineExceeded(Exception):
    """Internal signal that the overall transfer timeout elapsed."""


def _split_header_lines(lines: list[str]) -> list[tuple[bytes, bytes]]:
    """Convert "Name: value" lines to raw (name, value) byte pairs for httpx.

    Values go on the wire as UTF-8 bytes rather than through httpx's ASCII
    encoding, so non-ASCII header text is sent as-is.

    Raises:
        UnicodeEncodeError: If a line holds text with no UTF-8 encoding.
    """
    pairs: list[tuple[bytes, bytes]] = []
    for line in lines:
        name, sep, value = line.partition(":")
        if not sep or not name.strip():
            continue
        pairs.append((name.strip().encode("utf-8"), value.strip().encode("utf-8")))
    return pairs


def _iter_request_body(read: ReadCallback) -> Iterator[bytes]:
    """Pull the request body from the read callback until it returns 0."""
    buffer = bytearray(READ_CHUNK_SIZE)
    view = memoryview(buffer)
    while True:
        count = read(view)
        if count <= 0:
            return
        yield bytes(view[:count])


def _status_line(response: httpx.Response) -> bytes:
    return f"{response.http_version} {response.status_code} {response.reason_phrase}\r\n".encode(
        "latin-1", errors="replace"
    )


def _deliver_headers(response: httpx.Response, header: HeaderCallback) -> None:
    """Feed one response's header block to the header callback, line by line."""
    header(_status_line(response))
    for name, value in response.headers.raw:
        header(name + b": " + value + b"\r\n")
    header(b"\r\n")


class HttpxSession:
    """Transport session backed by httpx.

    Usage:
        with HttpxSession() as session:
            result = session.perform(options, callbacks)

    An explicit httpx transport (e.g. httpx.MockTransport) may be supplied for
    in-process exchanges.
    """

    def __init__(self, transport: httpx.BaseTransport | None = None) -> None:
        self._transport = transport

    def __enter__(self) -> "HttpxSession":
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        """Nothing persists between exchanges, so there is nothing to close."""

    def _build_client_kwargs(self, options: TransferOptions) -> dict[str, Any]:
        """Build kwargs for httpx.Client from transfer options.

        Raises:
            OSError, ssl.SSLError: If the trust bundle cannot be loaded.
        """
        kwargs: dict[str, Any] = {
            "follow_redirects": options.follow_location,
            "timeout": httpx.Timeout(options.timeout, connect=options.connect_timeout),
        }

        # Like curl, the trust bundle is only consulted for TLS connections
        if options.ca_info and options.url.lower().startswith("https:"):
            kwargs["verify"] = ssl.create_default_context(cafile=options.ca_info)

        if self._transport is not None:
            kwargs["transport"] = self._transport

        return kwargs

    def _build_request_kwargs(
        self, options: TransferOptions, callbacks: TransferCallbacks
    ) -> dict[str, Any]:
        headers = _split_header_lines(options.headers)

        if options.accept_encoding is None:
            headers.append((b"Accept-Encoding", b"identity"))
        elif options.accept_encoding:
            headers.append((b"Accept-Encoding", options.accept_encoding.encode("latin-1")))
        # else: keep httpx's default, which lists every decoder it has

        content: bytes | Iterator[bytes] | None = None
        if options.sends_body:
            if callbacks.read is None:
                content = b""
            else:
                content = _iter_request_body(callbacks.read)
                # Without an explicit length httpx falls back to chunked encoding
                if options.upload_size is not None:
                    headers.append((b"Content-Length", str(options.upload_size).encode("ascii")))

        return {"headers": headers, "content": content}

    def perform(self, options: TransferOptions, callbacks: TransferCallbacks) -> TransferResult:
        """Perform one blocking exchange.

        Never raises for transport-level failures; they are returned as
        TransferResult(ok=False, error=...).
        """
        try:
            client_kwargs = self._build_client_kwargs(options)
        except (OSError, ssl.SSLError) as e:
            return TransferResult(
                ok=False, error=f"error setting certificate verify locations: {e}"
            )

        # httpx timeouts are per operation; the overall limit is enforced between chunks
        deadline = time.monotonic() + options.timeout if options.timeout is not None else None

        try:
            request_kwargs = self._build_request_kwargs(options, callbacks)
            with httpx.Client(**client_kwargs) as client:
                with client.stream(options.method, options.url, **request_kwargs) as response:
                    if callbacks.header is not None:
                        for hop in (*response.history, response):
                            _deliver_headers(hop, callbacks.header)

                    for chunk in response.iter_bytes():
                        if deadline is not None and time.monotonic() > deadline:
                            raise _DeadlineExceeded()
                        if callbacks.write is not None and callbacks.write(chunk) != len(chunk):
                            raise _WriteAborted()

                    return TransferResult(ok=True, status=response.status_code)

        except _WriteAborted:
            return TransferResult(ok=False, error="Failed writing received data")
        except _DeadlineExceeded:
            return TransferResult(
                ok=False, error=f"Timeout was reached: transfer exceeded {options.timeout} seconds"
            )
        except httpx.TimeoutException as e:
            return TransferResult(ok=False, error=f"Timeout was reached: {e}")
        except httpx.ConnectError as e:
            return TransferResult(ok=False, error=f"Couldn't connect to server: {e}")
        except httpx.TooManyRedirects as e:
            return TransferResult(ok=False, error=f"Number of redirects hit maximum amount: {e}")
        except httpx.RequestError as e:
            return TransferResult(ok=False, error=f"Request error: {e}")
        except (httpx.InvalidURL, httpx.StreamError) as e:
            return TransferResult(ok=False, error=f"Malformed request: {e}")
        except ValueError as e:
            # Header text httpx cannot put on the wire (UnicodeEncodeError included)
            return TransferResult(ok=False, error=f"Malformed request: {e}")
