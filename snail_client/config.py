"""Configuration for the interpreter client."""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from snail_client.reassembler import DEFAULT_MAX_BUFFER_BYTES

ENV_PREFIX = "SNAIL_"
TOML_TABLE = "snail"


class ClientConfig(BaseModel):
    """Connection, timing and framing settings."""

    host: str = Field(default="localhost", description="Interpreter host")
    port: int = Field(default=10011, ge=1, le=65535, description="Interpreter port")
    max_attempts: int = Field(default=5, ge=1, description="Connect attempts before giving up")
    retry_delay: float = Field(default=0.5, ge=0, description="Seconds between connect attempts")
    connect_timeout: float = Field(default=5.0, gt=0, description="Per-attempt socket timeout")
    poll_interval: float = Field(
        default=0.05, gt=0, description="Longest single wait slice of a synchronous call"
    )
    sync_timeout: float = Field(
        default=20.0, gt=0, description="Seconds a synchronous call waits for its response"
    )
    max_buffer_bytes: int = Field(
        default=DEFAULT_MAX_BUFFER_BYTES,
        ge=1024,
        description="Largest partial response kept per connection",
    )
    recv_size: int = Field(default=65536, ge=1, description="Bytes requested per socket read")
    inline_limit: int = Field(
        default=65536, ge=0, description="Largest request body (bytes) sent inline"
    )
    include_template: str = Field(
        default="include({path})",
        description="Code sent instead of a large body; {path} is the quoted temp file path",
    )
    tmp_suffix: str = Field(default=".jl", description="Suffix of request temp files")
    show_errors: bool = Field(default=True, description="Default error-display policy")
    fail_on_teardown: bool = Field(
        default=False,
        description="Fail outstanding requests on teardown instead of abandoning them",
    )
    transcript_size: int = Field(default=500, ge=0, description="Sent messages kept for inspection")

    @field_validator("include_template")
    @classmethod
    def _check_template(cls, value: str) -> str:
        if "{path}" not in value:
            raise ValueError("include_template must contain '{path}'")
        return value

    @classmethod
    def load(
        cls,
        path: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> ClientConfig:
        """Build a config from a TOML file, environment and explicit overrides.

        Later sources win. The TOML file may hold the settings at top level
        or under a ``[snail]`` table. Environment variables are named
        ``SNAIL_<FIELD>``, e.g. ``SNAIL_PORT``.
        """
        values: dict[str, Any] = {}
        if path is not None:
            with Path(path).open("rb") as handle:
                document = tomllib.load(handle)
            table = document.get(TOML_TABLE, document)
            values.update({k: v for k, v in table.items() if k in cls.model_fields})

        env = os.environ if env is None else env
        for name in cls.model_fields:
            key = ENV_PREFIX + name.upper()
            if key in env:
                values[name] = env[key]

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
