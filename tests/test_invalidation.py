from __future__ import annotations

import pytest

from cached_docker_build.build_args import parse_build_args
from cached_docker_build.errors import ConfigError
from cached_docker_build.fingerprint import sha256_file
from cached_docker_build.invalidation import (
    EXPIRES_FILE,
    DockerfileInvalidation,
    ExpiryInvalidation,
    select_strategy,
)


NOW = 1_700_000_000_000


def test_expiry_suffix_is_raw_expiry_string(tmp_path) -> None:
    spec = parse_build_args("-t demo:1 -f Dockerfile .")
    assert ExpiryInvalidation("7d").cache_suffix(spec, tmp_path) == "7d"
    assert ExpiryInvalidation("").cache_suffix(spec, tmp_path) == ""


def test_expiry_writes_absolute_timestamp(tmp_path) -> None:
    strategy = ExpiryInvalidation("1h")
    expires_at = strategy.write_metadata(tmp_path, NOW)
    assert expires_at == NOW + 3_600_000
    assert (tmp_path / EXPIRES_FILE).read_text(encoding="utf-8") == str(NOW + 3_600_000)


def test_no_expiry_writes_no_metadata(tmp_path) -> None:
    assert ExpiryInvalidation("").write_metadata(tmp_path, NOW) is None
    assert not (tmp_path / EXPIRES_FILE).exists()


def test_entry_expires_at_or_after_timestamp(tmp_path) -> None:
    strategy = ExpiryInvalidation("1h")
    (tmp_path / EXPIRES_FILE).write_text(str(NOW), encoding="utf-8")
    assert strategy.is_expired(tmp_path, NOW + 1) is True
    assert strategy.is_expired(tmp_path, NOW) is True
    assert strategy.is_expired(tmp_path, NOW - 1) is False


@pytest.mark.parametrize("content", [None, "", "not-a-number", "0", "-5", "inf", "1e999"])
def test_missing_or_unusable_metadata_never_expires(tmp_path, content) -> None:
    if content is not None:
        (tmp_path / EXPIRES_FILE).write_text(content, encoding="utf-8")
    assert ExpiryInvalidation("").is_expired(tmp_path, NOW) is False


def test_invalid_expiry_is_a_config_error() -> None:
    with pytest.raises(ConfigError):
        ExpiryInvalidation("eventually")
    with pytest.raises(ConfigError):
        ExpiryInvalidation("0s")


def test_dockerfile_suffix_tracks_file_bytes(tmp_path) -> None:
    dockerfile = tmp_path / "Dockerfile"
    dockerfile.write_bytes(b"FROM alpine:3.19\n")
    spec = parse_build_args("-t demo:1 -f Dockerfile .", require_dockerfile=True)
    strategy = DockerfileInvalidation()

    first = strategy.cache_suffix(spec, tmp_path)
    assert first == sha256_file(dockerfile)

    dockerfile.write_bytes(b"FROM alpine:3.19 \n")
    assert strategy.cache_suffix(spec, tmp_path) != first


def test_dockerfile_absolute_path_ignores_workdir(tmp_path) -> None:
    dockerfile = tmp_path / "build" / "Dockerfile"
    dockerfile.parent.mkdir()
    dockerfile.write_text("FROM scratch\n", encoding="utf-8")
    spec = parse_build_args(f"-t demo:1 -f {dockerfile} .", require_dockerfile=True)
    assert DockerfileInvalidation().cache_suffix(spec, tmp_path / "elsewhere") == sha256_file(dockerfile)


def test_missing_dockerfile_is_a_config_error(tmp_path) -> None:
    spec = parse_build_args("-t demo:1 -f Nope.Dockerfile .")
    with pytest.raises(ConfigError):
        DockerfileInvalidation().cache_suffix(spec, tmp_path)


def test_dockerfile_strategy_never_expires(tmp_path) -> None:
    (tmp_path / EXPIRES_FILE).write_text("1", encoding="utf-8")
    strategy = DockerfileInvalidation()
    assert strategy.is_expired(tmp_path, NOW) is False
    assert strategy.write_metadata(tmp_path, NOW) is None


def test_select_strategy() -> None:
    assert isinstance(select_strategy("expires", "2d"), ExpiryInvalidation)
    assert isinstance(select_strategy("dockerfile"), DockerfileInvalidation)
    with pytest.raises(ConfigError):
        select_strategy("dockerfile", "2d")
    with pytest.raises(ConfigError):
        select_strategy("sometimes")
