from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, field

from cached_docker_build.errors import ConfigError


TAG_FLAGS = ("-t", "--tag")
FILE_FLAGS = ("-f", "--file")
SHORT_GROUP = re.compile(r"-[A-Za-z]{2,}")


@dataclass(frozen=True)
class BuildSpec:
    raw: str
    tags: list[str] = field(default_factory=list)
    dockerfile: str | None = None


def _split(raw: str) -> list[str]:
    try:
        return shlex.split(raw)
    except ValueError as exc:
        raise ConfigError(f"could not parse docker build args: {exc}") from exc


def _match_flag(token: str, flags: tuple[str, ...]) -> tuple[bool, str | None]:
    """Return (matched, inline value) for a token against short/long flag spellings."""
    short, long = flags
    if token in flags:
        return True, None
    if token.startswith(long + "="):
        return True, token[len(long) + 1 :]
    if token.startswith(short) and not token.startswith("--") and len(token) > len(short):
        value = token[len(short) :]
        if value.startswith("="):
            value = value[1:]
        return True, value
    # Grouped short flags such as -qt take the value from the next token.
    if SHORT_GROUP.fullmatch(token) and token[-1] == short[1]:
        return True, None
    return False, None


def _collect(tokens: list[str], flags: tuple[str, ...]) -> list[str]:
    values: list[str] = []
    idx = 0
    while idx < len(tokens):
        token = tokens[idx]
        if token == "--":
            break
        matched, inline = _match_flag(token, flags)
        if not matched:
            idx += 1
            continue
        if inline is not None:
            values.append(inline)
            idx += 1
            continue
        if idx + 1 < len(tokens):
            values.append(tokens[idx + 1])
            idx += 2
            continue
        idx += 1
    return values


def parse_build_args(raw: str, *, require_dockerfile: bool = False) -> BuildSpec:
    tokens = _split(raw)
    tags = _collect(tokens, TAG_FLAGS)
    if not tags:
        raise ConfigError("docker build args require at least one --tag")

    files = _collect(tokens, FILE_FLAGS)
    dockerfile = files[-1] if files else None
    if require_dockerfile and not dockerfile:
        raise ConfigError("docker build args require --file")

    return BuildSpec(raw=raw, tags=tags, dockerfile=dockerfile)
