"""
Settings for reklog-storage clients.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Mapping

from .types import ConfigurationError

__all__ = ["DEFAULT_ENDPOINT", "DEFAULT_ENVIRONMENT", "StorageSettings"]

DEFAULT_ENDPOINT = "https://api.reklog.com/api"
DEFAULT_ENVIRONMENT = "development"


@dataclass(frozen=True)
class StorageSettings:
    """Configuration settings for a storage client.

    Attributes:
        environment: Environment tag selecting the logical database that the
            API key resolves to (default: "development").
        endpoint: Base URL of the storage API (default: the hosted API).
            A trailing slash is stripped.
        timeout: Timeout in seconds for each request to the storage API
            (default: 30.0).
        validation_timeout: Deadline in seconds for the API key handshake.
            None waits indefinitely (default: 30.0).
    """

    environment: str = DEFAULT_ENVIRONMENT
    endpoint: str = DEFAULT_ENDPOINT
    timeout: float = 30.0
    validation_timeout: float | None = 30.0

    def __post_init__(self) -> None:
        if not self.environment:
            raise ConfigurationError("environment must be a non-empty string")
        if not self.endpoint:
            raise ConfigurationError("endpoint must be a non-empty string")
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        if self.validation_timeout is not None and self.validation_timeout <= 0:
            raise ConfigurationError("validation_timeout must be positive or None")
        object.__setattr__(self, "endpoint", self.endpoint.rstrip("/"))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StorageSettings:
        """Build settings from REKLOG_* environment variables.

        Reads REKLOG_API_URL, REKLOG_ENVIRONMENT and REKLOG_TIMEOUT; unset
        variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        options: dict[str, Any] = {}
        if env.get("REKLOG_API_URL"):
            options["endpoint"] = env["REKLOG_API_URL"]
        if env.get("REKLOG_ENVIRONMENT"):
            options["environment"] = env["REKLOG_ENVIRONMENT"]
        if env.get("REKLOG_TIMEOUT"):
            try:
                options["timeout"] = float(env["REKLOG_TIMEOUT"])
            except ValueError as e:
                raise ConfigurationError(
                    f"REKLOG_TIMEOUT must be a number, got {env['REKLOG_TIMEOUT']!r}"
                ) from e
        return cls(**options)

    def replace(self, **changes: Any) -> StorageSettings:
        """Return a copy with the given fields replaced."""
        known = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(unknown)}")
        return dataclasses.replace(self, **changes)
