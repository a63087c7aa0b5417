"""Internal data models for tickhttp.

Request and configuration models use Pydantic v2. Transfer-time state that is
mutated from transport callbacks (body cursor, growable response buffer,
header table) lives in plain classes owned by exactly one thread at a time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import certifi
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tickhttp.headers import HeaderTable


# Mozilla bundle shipped with certifi; hosts may point ca_bundle at their own
# file, relative to data_dir
DEFAULT_CA_BUNDLE = certifi.where()


# =============================================================================
# Body Buffers
# =============================================================================


class RequestBody:
    """Immutable request payload with a forward-only read cursor.

    Invariant: 0 <= pos <= size. The cursor only advances; there is no
    rewind, so a body can be streamed exactly once. After release() the
    payload is dropped and further reads raise.
    """

    __slots__ = ("_data", "_size", "_pos")

    def __init__(self, data: bytes = b"") -> None:
        self._data: bytes | None = bytes(data)
        self._size = len(data)
        self._pos = 0

    @property
    def size(self) -> int:
        return self._size

    @property
    def pos(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return self._size - self._pos

    @property
    def released(self) -> bool:
        return self._data is None

    def view(self, length: int) -> memoryview:
        """Return up to `length` unread bytes without advancing the cursor."""
        if self._data is None:
            raise RuntimeError("request body has been released")
        return memoryview(self._data)[self._pos:self._pos + length]

    def advance(self, count: int) -> None:
        """Move the cursor forward by count bytes."""
        if count < 0:
            raise ValueError(f"cannot rewind request body (advance by {count})")
        if self._pos + count > self._size:
            raise ValueError(
                f"cannot advance past end of body (pos={self._pos}, count={count}, size={self._size})"
            )
        self._pos += count

    def release(self) -> None:
        self._data = None

    def __bytes__(self) -> bytes:
        if self._data is None:
            raise RuntimeError("request body has been released")
        return self._data

    def __repr__(self) -> str:
        state = "released" if self._data is None else f"pos={self._pos}"
        return f"RequestBody(size={self._size}, {state})"


class ResponseBody:
    """Growable response buffer, NUL-terminated after every append.

    `size` counts payload bytes only. `raw` includes the trailing NUL.
    If `limit` is set, an append that would exceed it raises MemoryError,
    the same way a failed allocation would.
    """

    __slots__ = ("_buffer", "limit")

    def __init__(self, limit: int | None = None) -> None:
        self._buffer = bytearray(b"\0")
        self.limit = limit

    @property
    def size(self) -> int:
        return len(self._buffer) - 1

    @property
    def raw(self) -> bytes:
        return bytes(self._buffer)

    def append(self, chunk: bytes) -> None:
        if self.limit is not None and self.size + len(chunk) > self.limit:
            raise MemoryError(
                f"response body exceeds {self.limit} bytes"
            )
        # Overwrite the terminator, then re-terminate
        self._buffer[-1:] = chunk
        self._buffer.append(0)

    def getvalue(self) -> bytes:
        return bytes(self._buffer[:-1])

    def __len__(self) -> int:
        return self.size

    def __repr__(self) -> str:
        return f"ResponseBody(size={self.size})"


# =============================================================================
# Core HTTP Models
# =============================================================================


class HTTPMethod(str, Enum):
    """Supported request methods. GET needs no transport configuration."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class Request(BaseModel):
    """One outbound HTTP request.

    endpoint and path are combined by the URL builder; headers are passed to
    the header builder verbatim. The body is owned by the request for a single
    transfer and released when that transfer ends.
    """

    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    method: HTTPMethod = Field(default=HTTPMethod.GET, description="HTTP method")
    endpoint: str = Field(description="Base URL the path is joined onto")
    path: str = Field(default="", description="Path relative to endpoint")
    headers: dict[str, str] = Field(
        default_factory=dict, description="Caller-supplied request headers"
    )
    body: RequestBody = Field(default_factory=RequestBody, description="Request payload")

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("body", mode="before")
    @classmethod
    def coerce_body(cls, v: Any) -> Any:
        if v is None:
            return RequestBody()
        if isinstance(v, str):
            return RequestBody(v.encode("utf-8"))
        if isinstance(v, (bytes, bytearray, memoryview)):
            return RequestBody(bytes(v))
        return v


@dataclass
class Response:
    """One inbound HTTP response, built fresh for each transfer.

    status is valid only after a successful transfer. data holds the parsed
    JSON document, or None when the body was empty or not valid JSON.
    """

    status: int = 0
    body: ResponseBody = field(default_factory=ResponseBody)
    headers: HeaderTable = field(default_factory=HeaderTable)
    data: Any = None

    def get_header(self, name: str) -> str | None:
        return self.headers.get(name)

    @property
    def text(self) -> str:
        return self.body.getvalue().decode("utf-8", errors="replace")


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class EndpointConfig(BaseModel):
    """Configuration for a single named endpoint."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(description="Base URL requests are joined onto")
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Default headers (supports ${ENV_VAR} substitution)",
    )


class RuntimeConfig(BaseModel):
    """Top-level runtime configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    data_dir: str = Field(default=".", description="Host application data directory")
    ca_bundle: str = Field(
        default=DEFAULT_CA_BUNDLE,
        description="Trust bundle path, relative to data_dir unless absolute",
    )
    max_workers: int | None = Field(
        default=None, ge=1, description="Worker threads for in-flight requests"
    )
    max_response_bytes: int | None = Field(
        default=None, ge=0, description="Cap on a single response body"
    )
    endpoints: dict[str, EndpointConfig] = Field(
        default_factory=dict, description="Endpoint name -> config mapping"
    )
