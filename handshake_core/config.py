"""
Process configuration read from the environment.

Read once at process bootstrap; CLI options read the same variables
through click ``envvar=``.
"""

import os
from dataclasses import dataclass

from .store.constants import DEFAULT_CONNECTION_TTL, DEFAULT_TABLE_NAME

DEFAULT_BROADCAST_WORKERS = 16


@dataclass(frozen=True)
class Settings:
    table_name: str = DEFAULT_TABLE_NAME
    region: str | None = None
    dynamodb_endpoint: str | None = None
    websocket_endpoint: str | None = None
    connection_ttl_seconds: int = DEFAULT_CONNECTION_TTL
    broadcast_workers: int = DEFAULT_BROADCAST_WORKERS
    log_verbosity: int = 0

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Settings instance

        Raises:
            ValueError: If a numeric variable is not a positive integer
        """
        env = os.environ if environ is None else environ
        return cls(
            table_name=env.get("HANDSHAKE_TABLE", DEFAULT_TABLE_NAME),
            region=env.get("AWS_REGION") or None,
            dynamodb_endpoint=env.get("DYNAMODB_ENDPOINT") or None,
            websocket_endpoint=env.get("WEBSOCKET_ENDPOINT") or None,
            connection_ttl_seconds=_positive_int(
                env, "CONNECTION_TTL_SECONDS", DEFAULT_CONNECTION_TTL
            ),
            broadcast_workers=_positive_int(env, "BROADCAST_WORKERS", DEFAULT_BROADCAST_WORKERS),
            log_verbosity=_positive_int(env, "LOG_VERBOSITY", 0, allow_zero=True),
        )


def _positive_int(env, name: str, default: int, allow_zero: bool = False) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from None
    if value < 0 or (value == 0 and not allow_zero):
        raise ValueError(f"{name} must be positive, got {value}")
    return value
