"""Configuration loaded from environment variables.

The coordinator port is required; everything else has a default.
Override via COORDBRIDGE_* env vars or the matching CLI flags.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

LOCK_PORT_ENV = "COORDBRIDGE_LOCK_PORT"
PERMISSION_PORT_ENV = "COORDBRIDGE_PERMISSION_PORT"


@dataclass
class BridgeConfig:
    """Settings for one bridge process."""

    port: int
    host: str = "127.0.0.1"
    # Session/issue identity sent with every coordinator request
    issue_id: str = "unknown"
    # Delay between lock acquisition attempts
    retry_interval_seconds: float = 10.0
    # Per-attempt bound on a lock round trip. Approvals never time out.
    request_timeout_seconds: float = 30.0
    reconnect_delay_seconds: float = 1.0
    log_level: str = "INFO"

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    @classmethod
    def from_env(
        cls,
        port_env: str,
        port: int | None = None,
    ) -> BridgeConfig:
        """Load configuration from COORDBRIDGE_* environment variables.

        ``port_env`` names the variable holding the coordinator port
        (each bridge flavour has its own). An explicit ``port`` wins
        over the environment.
        """
        if port is None:
            port = _parse_port(port_env, os.getenv(port_env))

        retry_raw = os.getenv("COORDBRIDGE_LOCK_RETRY_MS", "10000")
        try:
            retry_ms = int(retry_raw)
        except ValueError:
            raise ConfigurationError(
                "COORDBRIDGE_LOCK_RETRY_MS",
                f"expected milliseconds, got {retry_raw!r}",
            ) from None
        if retry_ms < 0:
            raise ConfigurationError(
                "COORDBRIDGE_LOCK_RETRY_MS", "must not be negative",
            )

        config = cls(
            port=port,
            host=os.getenv("COORDBRIDGE_HOST", cls.host),
            issue_id=os.getenv("COORDBRIDGE_ISSUE_ID") or cls.issue_id,
            retry_interval_seconds=retry_ms / 1000.0,
            log_level=os.getenv("COORDBRIDGE_LOG_LEVEL", cls.log_level),
        )
        logger.debug(
            "BridgeConfig.from_env: url=%s issue_id=%s retry=%.1fs",
            config.url, config.issue_id, config.retry_interval_seconds,
        )
        return config


def _parse_port(name: str, raw: str | None) -> int:
    if not raw:
        raise ConfigurationError(name, "environment variable not set")
    try:
        port = int(raw)
    except ValueError:
        raise ConfigurationError(name, f"not an integer: {raw!r}") from None
    if not 0 < port < 65536:
        raise ConfigurationError(name, f"port out of range: {port}")
    return port
