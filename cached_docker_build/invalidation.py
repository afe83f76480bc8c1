from __future__ import annotations

from pathlib import Path
from typing import Protocol

from cached_docker_build.build_args import BuildSpec
from cached_docker_build.duration import parse_duration_ms
from cached_docker_build.errors import ConfigError
from cached_docker_build.fingerprint import sha256_file


EXPIRES_FILE = ".meta.expires"


class InvalidationStrategy(Protocol):
    """Decides what feeds the cache key and when a restored entry is stale."""

    name: str
    requires_dockerfile: bool

    def cache_suffix(self, spec: BuildSpec, workdir: Path) -> str:
        ...

    def is_expired(self, entry_dir: Path, now_ms: int) -> bool:
        ...

    def write_metadata(self, entry_dir: Path, now_ms: int) -> int | None:
        ...


def read_expires(entry_dir: Path) -> int:
    path = entry_dir / EXPIRES_FILE
    try:
        raw = path.read_text(encoding="utf-8").strip()
    except OSError:
        return 0
    try:
        return int(float(raw))
    except (ValueError, OverflowError):
        return 0


class ExpiryInvalidation:
    name = "expires"
    requires_dockerfile = False

    def __init__(self, expires: str = "") -> None:
        self.expires = expires
        self.duration_ms = 0
        if expires:
            try:
                self.duration_ms = parse_duration_ms(expires)
            except ValueError as exc:
                raise ConfigError(str(exc)) from exc
            if self.duration_ms <= 0:
                raise ConfigError(f"expires must be a positive duration, got '{expires}'")

    def cache_suffix(self, spec: BuildSpec, workdir: Path) -> str:
        # Dockerfile content does not feed this key.
        return self.expires

    def is_expired(self, entry_dir: Path, now_ms: int) -> bool:
        expires = read_expires(entry_dir)
        return expires > 0 and now_ms >= expires

    def write_metadata(self, entry_dir: Path, now_ms: int) -> int | None:
        if self.duration_ms <= 0:
            return None
        expires_at = now_ms + self.duration_ms
        (entry_dir / EXPIRES_FILE).write_text(str(expires_at), encoding="utf-8")
        return expires_at


class DockerfileInvalidation:
    name = "dockerfile"
    requires_dockerfile = True

    def cache_suffix(self, spec: BuildSpec, workdir: Path) -> str:
        if not spec.dockerfile:
            raise ConfigError("docker build args require --file")
        path = Path(spec.dockerfile)
        if not path.is_absolute():
            path = workdir / path
        try:
            return sha256_file(path)
        except OSError as exc:
            raise ConfigError(f"could not read Dockerfile '{spec.dockerfile}': {exc}") from exc

    def is_expired(self, entry_dir: Path, now_ms: int) -> bool:
        return False

    def write_metadata(self, entry_dir: Path, now_ms: int) -> int | None:
        return None


STRATEGIES = ("expires", "dockerfile")


def select_strategy(name: str, expires: str = "") -> InvalidationStrategy:
    if name == "expires":
        return ExpiryInvalidation(expires)
    if name == "dockerfile":
        if expires:
            raise ConfigError("expires is not supported with the dockerfile invalidation strategy")
        return DockerfileInvalidation()
    raise ConfigError(f"unknown invalidation strategy '{name}' (expected one of: {', '.join(STRATEGIES)})")
