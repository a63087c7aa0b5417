"""Tests for tickhttp.cli.

Tests cover:
- Request subcommand argument parsing and validation
- Argument type helpers (headers, JSON bodies, tick interval)
- run_request end to end against an in-process transport
"""

from __future__ import annotations

import argparse
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from tickhttp.cli import (
    DEFAULT_TICK,
    RequestArgs,
    parse_args,
    parse_header,
    parse_json_data,
    positive_float,
    run_request,
)
from tickhttp.models import HTTPMethod
from tickhttp.transport import HttpxSession


# =============================================================================
# Argument Parsing
# =============================================================================


class TestParseArgs:
    def test_url_mode(self) -> None:
        args = parse_args(["request", "get", "items", "--url", "http://api.test"])
        assert isinstance(args, RequestArgs)
        assert args.method is HTTPMethod.GET
        assert args.path == "items"
        assert args.url == "http://api.test"
        assert args.config is None
        assert args.tick == DEFAULT_TICK
        assert args.log_level == "WARNING"

    def test_config_mode(self) -> None:
        args = parse_args(
            ["request", "POST", "items", "--config", "cfg.yaml", "--endpoint", "api", "--data", '{"a": 1}']
        )
        assert args.config == Path("cfg.yaml")
        assert args.endpoint == "api"
        assert args.data == {"a": 1}

    def test_repeated_headers(self) -> None:
        args = parse_args(
            ["request", "GET", "x", "--url", "http://a", "--header", "X-A: 1", "--header", "X-B:2"]
        )
        assert args.headers == [("X-A", "1"), ("X-B", "2")]

    def test_unknown_method(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["request", "TRACE", "x", "--url", "http://a"])
        assert exc_info.value.code == 2

    def test_target_required(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["request", "GET", "x"])
        assert exc_info.value.code == 2

    def test_url_and_config_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["request", "GET", "x", "--url", "http://a", "--config", "c.yaml", "--endpoint", "e"])

    def test_config_requires_endpoint(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["request", "GET", "x", "--config", "c.yaml"])

    def test_subcommand_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args([])


class TestArgumentTypes:
    def test_parse_header(self) -> None:
        assert parse_header("Authorization: Bearer a:b") == ("Authorization", "Bearer a:b")

    @pytest.mark.parametrize("value", ["no-colon", ": value"])
    def test_parse_header_invalid(self, value: str) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            parse_header(value)

    def test_parse_json_data(self) -> None:
        assert parse_json_data("[1, 2]") == [1, 2]

    def test_parse_json_data_invalid(self) -> None:
        with pytest.raises(argparse.ArgumentTypeError, match="Invalid JSON"):
            parse_json_data("{oops")

    @pytest.mark.parametrize("value", ["0", "-1", "abc"])
    def test_positive_float_invalid(self, value: str) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            positive_float(value)


# =============================================================================
# run_request
# =============================================================================


def _args(**overrides) -> RequestArgs:
    defaults = dict(
        method=HTTPMethod.GET,
        path="status",
        config=None,
        endpoint=None,
        url="http://api.test",
        data=None,
        headers=[],
        data_dir=None,
        tick=0.01,
        log_level="WARNING",
    )
    defaults.update(overrides)
    return RequestArgs(**defaults)


def _patched_session(handler):
    return patch(
        "tickhttp.engine.HttpxSession",
        lambda: HttpxSession(transport=httpx.MockTransport(handler)),
    )


class TestRunRequest:
    def test_success_prints_response(self, capsys: pytest.CaptureFixture[str]) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, headers=[("X-Test", "value")], content=b'{"ok": true}')

        with _patched_session(handler):
            code = run_request(_args(headers=[("Authorization", "Bearer t")]))

        out = capsys.readouterr().out
        assert code == 0
        assert "Status: 200" in out
        assert "X-Test: value" in out
        assert '"ok": true' in out
        assert seen["auth"] == "Bearer t"

    def test_failure_exits_nonzero(self, capsys: pytest.CaptureFixture[str]) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused")

        with _patched_session(handler):
            code = run_request(_args(method=HTTPMethod.POST, data={"a": 1}))

        assert code == 1
        assert "no response was delivered" in capsys.readouterr().err

    def test_config_endpoint(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        config = tmp_path / "cfg.yaml"
        config.write_text("endpoints:\n  api:\n    base_url: http://configured.test\n", encoding="utf-8")
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(200, content=b"plain text")

        with _patched_session(handler):
            code = run_request(_args(url=None, config=config, endpoint="api", path="/v1/ping"))

        assert code == 0
        assert seen["url"] == "http://configured.test/v1/ping"
        assert "plain text" in capsys.readouterr().out

    def test_config_error(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        code = run_request(_args(url=None, config=tmp_path / "missing.yaml", endpoint="api"))
        assert code == 1
        assert "Error loading config" in capsys.readouterr().err
