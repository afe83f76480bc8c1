from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from cached_docker_build import actions
from cached_docker_build.build_args import BuildSpec, parse_build_args
from cached_docker_build.engine import ContainerEngine
from cached_docker_build.errors import BuildCacheError, CacheServiceError, EngineError
from cached_docker_build.fingerprint import derive_fingerprint
from cached_docker_build.inputs import ActionInputs
from cached_docker_build.invalidation import InvalidationStrategy
from cached_docker_build.runtime import format_http_date, now_ms
from cached_docker_build.store import CacheStore


IMAGE_ARCHIVE = "image.tar"


class RunState(str, Enum):
    LOAD_SUCCESS = "load_success"
    UPLOAD_OK = "upload_ok"
    UPLOAD_SOFT_FAIL = "upload_soft_fail"


@dataclass(frozen=True)
class CachePlan:
    spec: BuildSpec
    key_fragment: str
    fingerprint: str
    entry_dir: Path

    @property
    def archive_path(self) -> Path:
        return self.entry_dir / IMAGE_ARCHIVE


@dataclass
class RunResult:
    fingerprint: str
    tags: list[str]
    cache_hit: bool
    state: RunState
    expires_at: int | None = None
    restore_error: str | None = None
    upload_error: str | None = None
    notes: list[str] = field(default_factory=list)

    def as_json(self) -> dict[str, Any]:
        return {
            "cache_hit": self.cache_hit,
            "expires_at": self.expires_at,
            "fingerprint": self.fingerprint,
            "notes": self.notes,
            "restore_error": self.restore_error,
            "state": self.state.value,
            "tags": self.tags,
            "upload_error": self.upload_error,
        }


def plan_build(inputs: ActionInputs, strategy: InvalidationStrategy, workdir: Path) -> CachePlan:
    """Validate inputs and derive the cache key without touching docker or the store."""
    spec = parse_build_args(inputs.args, require_dockerfile=strategy.requires_dockerfile)
    suffix = strategy.cache_suffix(spec, workdir)
    fingerprint = derive_fingerprint(inputs.cache_key, inputs.args, suffix)
    return CachePlan(
        spec=spec,
        key_fragment=inputs.cache_key,
        fingerprint=fingerprint,
        entry_dir=inputs.cache_root() / fingerprint,
    )


class CacheGateway:
    def __init__(
        self,
        engine: ContainerEngine,
        store: CacheStore,
        strategy: InvalidationStrategy,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.engine = engine
        self.store = store
        self.strategy = strategy
        self.clock = clock

    def _restore(self, plan: CachePlan) -> tuple[bool, str | None]:
        try:
            matched = self.store.restore([plan.entry_dir], plan.fingerprint, [])
        except BuildCacheError as exc:
            if exc.is_fatal:
                raise
            actions.error(exc.message)
            return False, exc.message
        except Exception as exc:
            wrapped = CacheServiceError(str(exc))
            actions.error(wrapped.message)
            return False, wrapped.message
        return matched is not None, None

    def _upload(self, plan: CachePlan) -> str | None:
        try:
            self.store.save([plan.entry_dir], plan.fingerprint)
        except BuildCacheError as exc:
            if exc.is_fatal:
                raise
            actions.error(exc.message)
            return exc.message
        except Exception as exc:
            wrapped = CacheServiceError(str(exc))
            actions.error(wrapped.message)
            return wrapped.message
        return None

    def run(self, plan: CachePlan) -> RunResult:
        tags = list(plan.spec.tags)
        notes: list[str] = []

        restored, restore_error = self._restore(plan)
        if restored:
            if self.strategy.is_expired(plan.entry_dir, self.clock()):
                actions.info("Cache is expired")
                notes.append("Restored cache entry was expired; rebuilding.")
            else:
                self.engine.load(plan.archive_path)
                actions.info(f"{', '.join(tags)} successfully loaded from cache")
                return RunResult(
                    fingerprint=plan.fingerprint,
                    tags=tags,
                    cache_hit=True,
                    state=RunState.LOAD_SUCCESS,
                    notes=notes,
                )

        self.engine.build(plan.spec.raw)
        try:
            plan.entry_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise EngineError(f"could not create {plan.entry_dir}: {exc}") from exc
        self.engine.save(tags, plan.archive_path)

        try:
            expires_at = self.strategy.write_metadata(plan.entry_dir, self.clock())
        except OSError as exc:
            raise EngineError(f"could not write cache metadata: {exc}") from exc

        upload_error = self._upload(plan)
        if expires_at is not None:
            actions.info(f"Cache expires {format_http_date(expires_at)}")

        return RunResult(
            fingerprint=plan.fingerprint,
            tags=tags,
            cache_hit=False,
            state=RunState.UPLOAD_SOFT_FAIL if upload_error else RunState.UPLOAD_OK,
            expires_at=expires_at,
            restore_error=restore_error,
            upload_error=upload_error,
            notes=notes,
        )
