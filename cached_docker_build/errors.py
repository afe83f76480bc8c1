from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONFIG = "config"
    VALIDATION = "validation"
    TRANSIENT = "transient"
    ENGINE = "engine"

    @property
    def is_fatal(self) -> bool:
        return self is not ErrorKind.TRANSIENT


class BuildCacheError(Exception):
    kind: ErrorKind = ErrorKind.ENGINE

    def __init__(self, message: str, *, kind: ErrorKind | None = None) -> None:
        if kind is not None:
            self.kind = kind
        self.message = message
        super().__init__(message)

    @property
    def is_fatal(self) -> bool:
        return self.kind.is_fatal


class ConfigError(BuildCacheError):
    kind = ErrorKind.CONFIG


class CacheValidationError(BuildCacheError):
    kind = ErrorKind.VALIDATION


class CacheServiceError(BuildCacheError):
    kind = ErrorKind.TRANSIENT


class EngineError(BuildCacheError):
    kind = ErrorKind.ENGINE
