from __future__ import annotations

import os
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import Iterable, Protocol, Sequence
from urllib.parse import quote, unquote

import requests

from cached_docker_build import actions
from cached_docker_build.errors import CacheServiceError, CacheValidationError


MAX_KEY_LENGTH = 512
ARCHIVE_SUFFIX = ".tgz"
DEFAULT_HTTP_TIMEOUT_SEC = 300
WORKFLOW_STORE = "actions"


class CacheStore(Protocol):
    """Key/value store for directory trees.

    ``restore`` materializes the entry for the first matching key and
    returns that key, or None on a miss. Malformed keys or paths raise
    CacheValidationError; anything else that goes wrong talking to the
    backend raises CacheServiceError.
    """

    def restore(self, paths: Sequence[Path], primary_key: str, restore_keys: Sequence[str] = ()) -> str | None:
        ...

    def save(self, paths: Sequence[Path], key: str) -> None:
        ...


def validate_key(key: str) -> None:
    if not key:
        raise CacheValidationError("Key Validation Error: cache key must not be empty.")
    if len(key) > MAX_KEY_LENGTH:
        raise CacheValidationError(
            f"Key Validation Error: {key} cannot be larger than {MAX_KEY_LENGTH} characters."
        )
    if "," in key:
        raise CacheValidationError(f"Key Validation Error: {key} cannot contain commas.")


def _relative_members(paths: Sequence[Path], base_dir: Path) -> list[str]:
    if not paths:
        raise CacheValidationError("Path Validation Error: at least one directory or file path is required.")
    members: list[str] = []
    for path in paths:
        resolved = Path(path).resolve()
        if not resolved.is_relative_to(base_dir):
            raise CacheValidationError(f"Path Validation Error: {path} is outside of {base_dir}.")
        if resolved == base_dir:
            raise CacheValidationError(f"Path Validation Error: {path} must be below {base_dir}.")
        members.append(resolved.relative_to(base_dir).as_posix())
    return members


def write_archive(paths: Sequence[Path], base_dir: Path, handle) -> None:
    members = _relative_members(paths, base_dir)
    with tarfile.open(fileobj=handle, mode="w:gz") as archive:
        for member in members:
            source = base_dir / member
            if not source.exists():
                raise CacheValidationError(f"Path Validation Error: {source} does not exist.")
            archive.add(str(source), arcname=member)


def _safe_members(archive: tarfile.TarFile, base_dir: Path) -> Iterable[tarfile.TarInfo]:
    for member in archive.getmembers():
        target = (base_dir / member.name).resolve()
        if Path(member.name).is_absolute() or not target.is_relative_to(base_dir):
            raise CacheServiceError(f"refusing to extract '{member.name}' outside of {base_dir}")
        if member.islnk() or member.issym():
            link_target = (target.parent / member.linkname).resolve()
            if member.islnk():
                link_target = (base_dir / member.linkname).resolve()
            if not link_target.is_relative_to(base_dir):
                raise CacheServiceError(f"refusing to extract link '{member.name}' pointing outside of {base_dir}")
        yield member


def extract_archive(archive_path: Path, base_dir: Path) -> None:
    base_dir.mkdir(parents=True, exist_ok=True)
    try:
        with tarfile.open(archive_path, mode="r:gz") as archive:
            archive.extractall(
                path=str(base_dir),
                members=list(_safe_members(archive, base_dir)),
                filter="data",
            )
    except (tarfile.TarError, EOFError, OSError) as exc:
        raise CacheServiceError(f"cache archive {archive_path.name} is corrupt: {exc}") from exc


class DirectoryCacheStore:
    """Keeps one gzip tarball per key in a local (or mounted) directory."""

    def __init__(self, root: Path, base_dir: Path) -> None:
        self.root = Path(root)
        self.base_dir = Path(base_dir).resolve()

    def _archive_path(self, key: str) -> Path:
        return self.root / f"{quote(key, safe='')}{ARCHIVE_SUFFIX}"

    def _find_prefix(self, prefix: str) -> Path | None:
        if not self.root.is_dir():
            return None
        matches = [
            path
            for path in self.root.glob(f"*{ARCHIVE_SUFFIX}")
            if unquote(path.name[: -len(ARCHIVE_SUFFIX)]).startswith(prefix)
        ]
        if not matches:
            return None
        return max(matches, key=lambda item: item.stat().st_mtime)

    def restore(self, paths: Sequence[Path], primary_key: str, restore_keys: Sequence[str] = ()) -> str | None:
        _relative_members(paths, self.base_dir)
        for key in [primary_key, *restore_keys]:
            validate_key(key)

        candidate = self._archive_path(primary_key)
        if candidate.is_file():
            extract_archive(candidate, self.base_dir)
            return primary_key

        for key in restore_keys:
            candidate = self._archive_path(key)
            if candidate.is_file():
                extract_archive(candidate, self.base_dir)
                return key
            candidate = self._find_prefix(key)
            if candidate is not None:
                extract_archive(candidate, self.base_dir)
                return unquote(candidate.name[: -len(ARCHIVE_SUFFIX)])
        return None

    def save(self, paths: Sequence[Path], key: str) -> None:
        validate_key(key)
        _relative_members(paths, self.base_dir)
        target = self._archive_path(key)
        tmp_path = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "wb", dir=self.root, delete=False, prefix=f".{target.name}.", suffix=".tmp"
            ) as handle:
                tmp_path = Path(handle.name)
                write_archive(paths, self.base_dir, handle)
            os.replace(tmp_path, target)
        except OSError as exc:
            raise CacheServiceError(f"failed to write cache entry {key}: {exc}") from exc
        finally:
            if tmp_path and tmp_path.exists():
                tmp_path.unlink()


class HttpCacheStore:
    """Stores entries as blobs at ``<base_url>/<key>`` using GET and PUT."""

    def __init__(
        self,
        base_url: str,
        base_dir: Path,
        *,
        token: str | None = None,
        timeout: int = DEFAULT_HTTP_TIMEOUT_SEC,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.base_dir = Path(base_dir).resolve()
        self.timeout = timeout
        self.session = session or requests.Session()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _url(self, key: str) -> str:
        return f"{self.base_url}/{quote(key, safe='')}"

    def _download(self, key: str, destination: Path) -> bool:
        url = self._url(key)
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as response:
                if response.status_code == 404:
                    return False
                if response.status_code != 200:
                    raise CacheServiceError(f"cache service returned {response.status_code} for GET {url}")
                with open(destination, "wb") as handle:
                    for chunk in response.iter_content(chunk_size=65536):
                        handle.write(chunk)
        except requests.RequestException as exc:
            raise CacheServiceError(f"cache service request failed: {exc}") from exc
        return True

    def restore(self, paths: Sequence[Path], primary_key: str, restore_keys: Sequence[str] = ()) -> str | None:
        _relative_members(paths, self.base_dir)
        keys = [primary_key, *restore_keys]
        for key in keys:
            validate_key(key)

        workdir = Path(tempfile.mkdtemp(prefix="cached-docker-build-"))
        try:
            archive_path = workdir / f"entry{ARCHIVE_SUFFIX}"
            for key in keys:
                actions.debug(f"Trying cache key {key}")
                if self._download(key, archive_path):
                    extract_archive(archive_path, self.base_dir)
                    return key
            return None
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    def save(self, paths: Sequence[Path], key: str) -> None:
        validate_key(key)
        _relative_members(paths, self.base_dir)
        url = self._url(key)
        with tempfile.TemporaryFile() as handle:
            write_archive(paths, self.base_dir, handle)
            handle.seek(0)
            try:
                response = self.session.put(
                    url,
                    data=handle,
                    headers={"Content-Type": "application/gzip"},
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                raise CacheServiceError(f"cache service request failed: {exc}") from exc
        if response.status_code not in (200, 201, 204):
            raise CacheServiceError(f"cache service returned {response.status_code} for PUT {url}")


class WorkflowCacheStore:
    """Entries restored and saved by actions/cache steps around the run.

    A restore hits when every path is already on disk; saving only
    validates, since the workflow uploads the entry after this process exits.
    """

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = Path(base_dir).resolve()

    def restore(self, paths: Sequence[Path], primary_key: str, restore_keys: Sequence[str] = ()) -> str | None:
        _relative_members(paths, self.base_dir)
        validate_key(primary_key)
        if all(Path(path).exists() for path in paths):
            return primary_key
        return None

    def save(self, paths: Sequence[Path], key: str) -> None:
        validate_key(key)
        for member in _relative_members(paths, self.base_dir):
            if not (self.base_dir / member).exists():
                raise CacheValidationError(f"Path Validation Error: {self.base_dir / member} does not exist.")
        actions.debug(f"Cache entry {key} is left for the workflow to upload")


def open_store(location: str, base_dir: Path, token: str | None = None) -> CacheStore:
    if location == WORKFLOW_STORE:
        return WorkflowCacheStore(base_dir)
    if location.startswith(("http://", "https://")):
        return HttpCacheStore(location, base_dir, token=token)
    return DirectoryCacheStore(Path(location).expanduser(), base_dir)
