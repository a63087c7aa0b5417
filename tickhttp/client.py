"""HTTP Client - Caller-facing entry point for asynchronous requests.

HTTPClient builds a Request for each call, wraps it in an HTTPRequestTask
together with the completion handler and an opaque value, and submits the
task to the injected worker pool. Results arrive later through the shared
CompletionQueue when the host drains it.

The client is also the URL/header builder the engine consumes: build_url()
joins the endpoint and path, build_headers() produces transport-ready
"Name: value" lines.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

from tickhttp.completion import CallbackHandle, CompletionCallback, CompletionQueue
from tickhttp.config_loader import get_endpoint, resolve_ca_bundle
from tickhttp.engine import HTTPRequestTask, TransferEngine
from tickhttp.models import DEFAULT_CA_BUNDLE, HTTPMethod, Request, RuntimeConfig
from tickhttp.pool import WorkerPool


# Every request advertises and sends JSON unless overridden
BASE_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
}


def build_url(endpoint: str, path: str) -> str:
    """Join endpoint and path with exactly one slash."""
    path = path.lstrip("/")
    if not path:
        return endpoint
    return f"{endpoint.rstrip('/')}/{path}"


def build_header_lines(*header_maps: dict[str, str]) -> list[str]:
    """Merge header maps (later wins, by exact name) into "Name: value" lines."""
    merged: dict[str, str] = dict(BASE_HEADERS)
    for headers in header_maps:
        merged.update(headers)
    return [f"{name}: {value}" for name, value in merged.items()]


def encode_body(data: Any) -> bytes:
    """Serialize a request payload. bytes/str pass through; anything else is JSON."""
    if data is None:
        return b""
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    return json.dumps(data, separators=(",", ":")).encode("utf-8")


class HTTPClient:
    """Issues requests against one endpoint without blocking the caller.

    Usage:
        queue = CompletionQueue()
        with ThreadWorkerPool() as pool:
            client = HTTPClient("https://api.example.com", pool=pool, queue=queue)
            client.get("status", on_status)
            ...
            queue.drain_and_dispatch()  # once per host tick
    """

    def __init__(
        self,
        endpoint: str,
        *,
        pool: WorkerPool,
        queue: CompletionQueue,
        data_dir: str | Path = ".",
        ca_bundle: str = DEFAULT_CA_BUNDLE,
        headers: dict[str, str] | None = None,
        engine: TransferEngine | None = None,
        on_release: Callable[[CompletionCallback], None] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            endpoint: Base URL that request paths are joined onto.
            pool: Worker pool request tasks are submitted to.
            queue: Completion queue finished requests are delivered through.
            data_dir: Host data directory the trust bundle is resolved against.
            ca_bundle: Trust bundle path, relative to data_dir unless absolute.
                       Defaults to the certifi bundle.
            headers: Default headers sent with every request.
            engine: Transfer engine to use. Defaults to an httpx-backed engine.
            on_release: Called with the handler when a completion handle is
                        released, whether or not it was invoked.
        """
        self.endpoint = endpoint
        self.pool = pool
        self.queue = queue
        self.data_dir = data_dir
        self.ca_bundle = ca_bundle
        self.engine = engine or TransferEngine()
        self._headers: dict[str, str] = dict(headers or {})
        self._on_release = on_release

    @classmethod
    def from_config(
        cls,
        config: RuntimeConfig,
        endpoint_name: str,
        *,
        pool: WorkerPool,
        queue: CompletionQueue,
        engine: TransferEngine | None = None,
    ) -> HTTPClient:
        """Build a client for a named endpoint in a runtime config.

        Raises:
            ConfigError: If the endpoint is not defined.
        """
        endpoint = get_endpoint(config, endpoint_name)
        return cls(
            endpoint.base_url,
            pool=pool,
            queue=queue,
            data_dir=config.data_dir,
            ca_bundle=config.ca_bundle,
            headers=endpoint.headers,
            engine=engine or TransferEngine(max_response_bytes=config.max_response_bytes),
        )

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def set_header(self, name: str, value: str) -> None:
        self._headers[name] = value

    def build_url(self, request: Request) -> str:
        return build_url(request.endpoint, request.path)

    def build_headers(self, request: Request) -> list[str]:
        return build_header_lines(self._headers, request.headers)

    def ca_bundle_path(self) -> str:
        """Resolve the trust bundle path. Not cached; resolved per transfer."""
        return resolve_ca_bundle(self.data_dir, self.ca_bundle)

    def request(
        self,
        method: HTTPMethod | str,
        path: str,
        callback: CompletionCallback,
        value: Any = None,
        data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Submit a request. Returns whatever the pool's submit() returns.

        callback(response, value) fires on the consumer thread once the
        response is drained from the queue. It never fires if the transfer
        fails at the transport level.
        """
        request = Request(
            method=method,
            endpoint=self.endpoint,
            path=path,
            headers=headers or {},
            body=encode_body(data),
        )
        handle = CallbackHandle(callback, self._on_release)
        return self.pool.submit(HTTPRequestTask(self, request, handle, value))

    def get(self, path: str, callback: CompletionCallback, value: Any = None) -> Any:
        return self.request(HTTPMethod.GET, path, callback, value)

    def post(self, path: str, data: Any, callback: CompletionCallback, value: Any = None) -> Any:
        return self.request(HTTPMethod.POST, path, callback, value, data=data)

    def put(self, path: str, data: Any, callback: CompletionCallback, value: Any = None) -> Any:
        return self.request(HTTPMethod.PUT, path, callback, value, data=data)

    def patch(self, path: str, data: Any, callback: CompletionCallback, value: Any = None) -> Any:
        return self.request(HTTPMethod.PATCH, path, callback, value, data=data)

    def delete(self, path: str, callback: CompletionCallback, value: Any = None) -> Any:
        return self.request(HTTPMethod.DELETE, path, callback, value)
