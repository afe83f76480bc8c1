from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cached_docker_build.errors import ConfigError


CACHE_DIR_NAME = "cached-docker-build"
DEFAULT_STORE_DIR_NAME = "cached-docker-build"

ENV_MAP = {
    "args": "INPUT_ARGS",
    "cache_key": "INPUT_CACHE_KEY",
    "expires": "INPUT_EXPIRES",
    "invalidate": "INPUT_INVALIDATE",
    "cache_store": "INPUT_CACHE_STORE",
    "cache_token": "INPUT_CACHE_TOKEN",
    "docker_bin": "INPUT_DOCKER_BIN",
    "scratch_dir": "RUNNER_TEMP",
}
VERBATIM_FIELDS = ("cache_key", "expires")


class ActionInputs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    args: str = Field(..., description="docker build argument string, passed through verbatim")
    cache_key: str = Field("", description="Optional key fragment mixed into the fingerprint")
    expires: str = Field("", description="Optional expiry duration such as 7d or 12h")
    invalidate: Literal["expires", "dockerfile"] = Field("expires", description="Invalidation strategy")
    cache_store: Optional[str] = Field(None, description="HTTP base URL or directory for cache entries")
    cache_token: Optional[str] = Field(None, description="Bearer token for the HTTP cache store")
    docker_bin: str = Field("docker", description="docker executable")
    scratch_dir: str = Field(..., description="Job-scoped scratch directory (RUNNER_TEMP)")

    @field_validator("args", "scratch_dir")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    def cache_root(self) -> Path:
        return Path(self.scratch_dir) / CACHE_DIR_NAME

    def store_location(self) -> str:
        if self.cache_store:
            return self.cache_store
        cache_home = os.environ.get("XDG_CACHE_HOME") or str(Path.home() / ".cache")
        return str(Path(cache_home) / DEFAULT_STORE_DIR_NAME)


def _clean(field_name: str, value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    # Key material is hashed as given, whitespace included.
    if field_name not in VERBATIM_FIELDS and not value.strip():
        return None
    return value


def read_inputs(env: Mapping[str, str] | None = None, overrides: Mapping[str, Any] | None = None) -> ActionInputs:
    """Merge environment inputs with CLI overrides; empty strings count as unset."""
    env = os.environ if env is None else env
    raw: dict[str, Any] = {}
    for field_name, env_name in ENV_MAP.items():
        value = _clean(field_name, env.get(env_name))
        if value is not None:
            raw[field_name] = value
    for field_name, value in (overrides or {}).items():
        if isinstance(value, str):
            value = _clean(field_name, value)
        if value is not None:
            raw[field_name] = value

    if not raw.get("scratch_dir", "").strip():
        raise ConfigError("RUNNER_TEMP env var missing")
    if not raw.get("args", "").strip():
        raise ConfigError("docker build args missing")

    try:
        return ActionInputs(**raw)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}" for item in exc.errors()
        )
        raise ConfigError(f"invalid inputs: {details}") from exc
