from __future__ import annotations

import asyncio
import os
import signal
from unittest.mock import AsyncMock, MagicMock

import pytest

from coordbridge import cli
from coordbridge.config import LOCK_PORT_ENV, PERMISSION_PORT_ENV, BridgeConfig
from coordbridge.errors import ConfigurationError
from coordbridge.shutdown import ShutdownHandler

_ENV_VARS = (
    LOCK_PORT_ENV,
    PERMISSION_PORT_ENV,
    "COORDBRIDGE_ISSUE_ID",
    "COORDBRIDGE_LOCK_RETRY_MS",
    "COORDBRIDGE_HOST",
    "COORDBRIDGE_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_from_env_defaults(monkeypatch) -> None:
    monkeypatch.setenv(LOCK_PORT_ENV, "47100")

    config = BridgeConfig.from_env(LOCK_PORT_ENV)

    assert config.port == 47100
    assert config.url == "ws://127.0.0.1:47100"
    assert config.issue_id == "unknown"
    assert config.retry_interval_seconds == 10.0
    assert config.request_timeout_seconds == 30.0
    assert config.reconnect_delay_seconds == 1.0


def test_from_env_overrides(monkeypatch) -> None:
    monkeypatch.setenv(PERMISSION_PORT_ENV, "5000")
    monkeypatch.setenv("COORDBRIDGE_ISSUE_ID", "issue-42")
    monkeypatch.setenv("COORDBRIDGE_LOCK_RETRY_MS", "250")

    config = BridgeConfig.from_env(PERMISSION_PORT_ENV)

    assert config.port == 5000
    assert config.issue_id == "issue-42"
    assert config.retry_interval_seconds == 0.25


def test_explicit_port_wins_over_environment() -> None:
    config = BridgeConfig.from_env(LOCK_PORT_ENV, port=6000)
    assert config.port == 6000


@pytest.mark.parametrize("value", [None, "", "abc", "0", "70000"])
def test_bad_port_is_a_configuration_error(monkeypatch, value) -> None:
    if value is not None:
        monkeypatch.setenv(LOCK_PORT_ENV, value)

    with pytest.raises(ConfigurationError) as exc_info:
        BridgeConfig.from_env(LOCK_PORT_ENV)
    assert exc_info.value.setting == LOCK_PORT_ENV


def test_bad_retry_interval_is_a_configuration_error(monkeypatch) -> None:
    monkeypatch.setenv(LOCK_PORT_ENV, "47100")
    monkeypatch.setenv("COORDBRIDGE_LOCK_RETRY_MS", "soon")

    with pytest.raises(ConfigurationError):
        BridgeConfig.from_env(LOCK_PORT_ENV)


@pytest.mark.parametrize("mode", [cli.LOCKS, cli.PERMISSIONS])
def test_cli_exits_1_without_port(mode, capsys) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.main([], mode=mode)

    assert exc_info.value.code == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "environment variable not set" in captured.err


def _handler(release_result=None, release_error=None):
    release_all = AsyncMock(return_value=release_result or {"success": True})
    if release_error is not None:
        release_all.side_effect = release_error
    link = MagicMock()
    link.close = AsyncMock()
    return ShutdownHandler(release_all, link), release_all, link


@pytest.mark.asyncio
async def test_cleanup_runs_once() -> None:
    shutdown, release_all, link = _handler()

    first = await shutdown.run()
    second = await shutdown.run()

    assert first == second == {"success": True}
    release_all.assert_awaited_once()
    link.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_cleanup_closes_link_even_if_release_fails() -> None:
    shutdown, _, link = _handler(release_error=RuntimeError("boom"))

    assert await shutdown.run() is None
    link.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_cleanup_cancels_in_flight_calls_first() -> None:
    shutdown, release_all, _ = _handler()
    order: list[str] = []
    server = MagicMock()
    server.cancel_pending = AsyncMock(side_effect=lambda: order.append("cancel"))
    release_all.side_effect = lambda: order.append("release") or {"success": True}
    shutdown.attach(server)

    await shutdown.run()

    assert order == ["cancel", "release"]


@pytest.mark.asyncio
async def test_sigterm_requests_shutdown() -> None:
    shutdown, _, _ = _handler()
    shutdown.install_signal_handlers()
    try:
        os.kill(os.getpid(), signal.SIGTERM)
        await asyncio.wait_for(shutdown.wait(), 5)
    finally:
        shutdown.remove_signal_handlers()

    assert shutdown.requested
    assert shutdown.reason == "SIGTERM"


def test_request_keeps_first_reason() -> None:
    shutdown, _, _ = _handler()

    shutdown.request("stdin EOF")
    shutdown.request("SIGINT")

    assert shutdown.reason == "stdin EOF"
