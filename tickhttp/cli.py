"""CLI entry point for tickhttp.

Runs a single request through the worker pool and emulates a host tick loop
that drains the completion queue until the request settles.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from tickhttp.client import HTTPClient
from tickhttp.completion import CompletionQueue
from tickhttp.config_loader import ConfigError, load_runtime_config
from tickhttp.models import DEFAULT_CA_BUNDLE, HTTPMethod, Response
from tickhttp.pool import ThreadWorkerPool


DEFAULT_TICK = 0.05
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class RequestArgs:
    """Parsed arguments for request mode."""

    method: HTTPMethod
    path: str
    config: Path | None
    endpoint: str | None
    url: str | None
    data: Any
    headers: list[tuple[str, str]]
    data_dir: Path | None
    tick: float
    log_level: str


def positive_float(value: str) -> float:
    """Parse a positive float argument.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def parse_header(value: str) -> tuple[str, str]:
    """Parse a "Name: value" header argument.

    Raises:
        argparse.ArgumentTypeError: If the argument has no name or no colon.
    """
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(
            f"Invalid header '{value}'. Expected 'Name: value'."
        )
    return name.strip(), header_value.strip()


def parse_json_data(value: str) -> Any:
    """Parse a JSON request body argument.

    Raises:
        argparse.ArgumentTypeError: If value is not valid JSON.
    """
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"Invalid JSON body: {e}")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="tickhttp",
        description="Run HTTP requests on worker threads and deliver results on a host tick.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Execution mode")

    request_parser = subparsers.add_parser(
        "request",
        help="Send one request and print the delivered response",
    )
    request_parser.add_argument(
        "method",
        type=str.upper,
        choices=[m.value for m in HTTPMethod],
        help="HTTP method",
    )
    request_parser.add_argument(
        "path",
        help="Path relative to the endpoint",
    )
    request_parser.add_argument(
        "--config",
        type=Path,
        help="Path to runtime config YAML file",
    )
    request_parser.add_argument(
        "--endpoint",
        help="Endpoint name from the config file",
    )
    request_parser.add_argument(
        "--url",
        help="Base URL to use instead of a configured endpoint",
    )
    request_parser.add_argument(
        "--data",
        type=parse_json_data,
        default=None,
        help="JSON request body",
    )
    request_parser.add_argument(
        "--header",
        type=parse_header,
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        dest="headers",
        help="Extra request header (can be repeated)",
    )
    request_parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Host data directory the trust bundle is resolved against",
    )
    request_parser.add_argument(
        "--tick",
        type=positive_float,
        default=DEFAULT_TICK,
        help=f"Seconds between queue drains (default: {DEFAULT_TICK})",
    )
    request_parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default="WARNING",
        help="Logging level (default: WARNING)",
    )

    return parser


def parse_request_args(
    namespace: argparse.Namespace, parser: argparse.ArgumentParser
) -> RequestArgs:
    """Convert parsed namespace to RequestArgs, checking target selection."""
    if namespace.url is None and namespace.config is None:
        parser.error("one of --url or --config is required")
    if namespace.url is not None and namespace.config is not None:
        parser.error("--url and --config are mutually exclusive")
    if namespace.config is not None and namespace.endpoint is None:
        parser.error("--endpoint is required with --config")

    return RequestArgs(
        method=HTTPMethod(namespace.method),
        path=namespace.path,
        config=namespace.config,
        endpoint=namespace.endpoint,
        url=namespace.url,
        data=namespace.data,
        headers=namespace.headers or [],
        data_dir=namespace.data_dir,
        tick=namespace.tick,
        log_level=namespace.log_level,
    )


def parse_args(args: list[str] | None = None) -> RequestArgs:
    """Parse command-line arguments and return typed args dataclass.

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)
    return parse_request_args(namespace, parser)


def main() -> int:
    """Main entry point."""
    try:
        parsed = parse_args()
        logging.basicConfig(
            level=parsed.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        return run_request(parsed)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def _build_client(args: RequestArgs, pool: ThreadWorkerPool, queue: CompletionQueue) -> HTTPClient:
    """Create the client for the selected target.

    Raises:
        ConfigError: If the config file or endpoint is invalid.
    """
    if args.config is not None:
        config = load_runtime_config(args.config)
        if args.data_dir is not None:
            config = config.model_copy(update={"data_dir": str(args.data_dir)})
        client = HTTPClient.from_config(config, args.endpoint, pool=pool, queue=queue)
    else:
        client = HTTPClient(
            args.url,
            pool=pool,
            queue=queue,
            data_dir=args.data_dir or Path("."),
            ca_bundle=DEFAULT_CA_BUNDLE,
        )

    for name, value in args.headers:
        client.set_header(name, value)
    return client


def _print_response(response: Response) -> None:
    print(f"Status: {response.status}")
    for name, value in response.headers.items():
        print(f"{name}: {value}")
    print()
    if response.data is not None:
        print(json.dumps(response.data, indent=2))
    else:
        print(response.text)


def run_request(args: RequestArgs) -> int:
    """Run request mode. Returns 0 if the completion handler fired."""
    delivered: list[Response] = []

    def on_complete(response: Response, value: Any) -> None:
        delivered.append(response)

    queue = CompletionQueue()
    with ThreadWorkerPool(max_workers=1) as pool:
        try:
            client = _build_client(args, pool, queue)
        except ConfigError as e:
            print(f"Error loading config: {e}", file=sys.stderr)
            return 1

        future = client.request(args.method, args.path, on_complete, data=args.data)

        # Host tick loop: the main thread only ever drains, never blocks on I/O
        while not future.done():
            queue.drain_and_dispatch()
            time.sleep(args.tick)
        future.result()

    queue.drain_and_dispatch()

    if not delivered:
        print("Request failed: no response was delivered (see log)", file=sys.stderr)
        return 1

    _print_response(delivered[0])
    return 0


if __name__ == "__main__":
    sys.exit(main())
