"""Client configuration.

Settings come from, in increasing precedence: model defaults, an optional
YAML file, and ``CLINIC_CLIENT_*`` environment variables.

Classes
-------
- ClientConfig  — validated client settings

Functions
---------
- load_config   — build a ``ClientConfig`` from YAML and the environment
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator

_ENV_PREFIX = "CLINIC_CLIENT_"
_ENV_FIELDS: dict[str, str] = {
    "BASE_URL": "base_url",
    "TIMEOUT": "timeout_seconds",
    "DATA_DIR": "data_dir",
}


class ClientConfig(BaseModel):
    """Settings shared by the transport, session and offline layers.

    Parameters
    ----------
    base_url:
        Root URL of the clinical backend API.
    timeout_seconds:
        Default per-call timeout.  Generous to tolerate slow mobile links.
    refresh_path:
        Path of the token refresh endpoint.
    access_token_key:
        Credential store key for the access token.
    refresh_token_key:
        Credential store key for the refresh token.
    cache_prefix:
        Key prefix for read-through cache entries.
    queue_key:
        Key holding the offline booking queue.
    default_headers:
        Headers sent with every request.
    data_dir:
        Directory for the durable SQLite store used by the CLI.
    """

    base_url: str = "http://localhost:8000/api/v1"
    timeout_seconds: float = Field(default=45.0, gt=0)
    refresh_path: str = "/auth/refresh"
    access_token_key: str = "access_token"
    refresh_token_key: str = "refresh_token"
    cache_prefix: str = "cache_"
    queue_key: str = "queue_bookings"
    default_headers: dict[str, str] = Field(
        default_factory=lambda: {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
    )
    data_dir: Path = Field(default_factory=lambda: Path.home() / ".clinic-client")

    model_config = {"frozen": True}

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def store_path(self) -> Path:
        return self.data_dir / "store.db"


def load_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ClientConfig:
    """Build a ``ClientConfig`` from an optional YAML file and the environment.

    Parameters
    ----------
    path:
        YAML file with a mapping of ``ClientConfig`` fields.  Missing files
        are an error; pass None to skip.
    environ:
        Environment mapping.  Defaults to ``os.environ``.

    Returns
    -------
    ClientConfig

    Raises
    ------
    ValueError
        If the YAML document is not a mapping.
    pydantic.ValidationError
        If any value fails validation.
    """
    data: dict[str, Any] = {}
    if path is not None:
        loaded = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        if loaded is not None and not isinstance(loaded, dict):
            raise ValueError(f"Config file {str(path)!r} must contain a mapping.")
        data.update(loaded or {})

    env = os.environ if environ is None else environ
    for suffix, field_name in _ENV_FIELDS.items():
        value = env.get(f"{_ENV_PREFIX}{suffix}")
        if value:
            data[field_name] = value

    return ClientConfig.model_validate(data)


__all__ = ["ClientConfig", "load_config"]
