from __future__ import annotations

from pathlib import Path

import pytest

from cached_docker_build.errors import ConfigError
from cached_docker_build.fingerprint import derive_fingerprint
from cached_docker_build.inputs import read_inputs


def _env(tmp_path: Path, **extra: str) -> dict[str, str]:
    env = {"INPUT_ARGS": "--tag demo:1 .", "RUNNER_TEMP": str(tmp_path)}
    env.update(extra)
    return env


def test_reads_action_inputs_from_env(tmp_path) -> None:
    inputs = read_inputs(
        _env(tmp_path, INPUT_CACHE_KEY="v1", INPUT_EXPIRES="7d", INPUT_CACHE_STORE="https://cache.example/api")
    )
    assert inputs.args == "--tag demo:1 ."
    assert inputs.cache_key == "v1"
    assert inputs.expires == "7d"
    assert inputs.invalidate == "expires"
    assert inputs.store_location() == "https://cache.example/api"
    assert inputs.cache_root() == tmp_path / "cached-docker-build"


def test_empty_env_values_fall_back_to_defaults(tmp_path) -> None:
    inputs = read_inputs(_env(tmp_path, INPUT_CACHE_KEY="", INPUT_EXPIRES="", INPUT_INVALIDATE=""))
    assert inputs.cache_key == ""
    assert inputs.expires == ""
    assert inputs.invalidate == "expires"
    assert inputs.docker_bin == "docker"


def test_whitespace_cache_key_is_kept_verbatim(tmp_path) -> None:
    inputs = read_inputs(_env(tmp_path, INPUT_CACHE_KEY=" ", INPUT_DOCKER_BIN="  "))
    assert inputs.cache_key == " "
    assert inputs.docker_bin == "docker"
    assert derive_fingerprint(inputs.cache_key, inputs.args, "") != derive_fingerprint("", inputs.args, "")


def test_overrides_win_over_env(tmp_path) -> None:
    inputs = read_inputs(
        _env(tmp_path, INPUT_CACHE_KEY="from-env"),
        overrides={"cache_key": "from-cli", "invalidate": "dockerfile"},
    )
    assert inputs.cache_key == "from-cli"
    assert inputs.invalidate == "dockerfile"


def test_missing_scratch_dir_fails_first(tmp_path) -> None:
    with pytest.raises(ConfigError, match="RUNNER_TEMP env var missing"):
        read_inputs({"INPUT_ARGS": "--tag demo:1 ."})


def test_missing_build_args_fails(tmp_path) -> None:
    with pytest.raises(ConfigError, match="docker build args missing"):
        read_inputs({"RUNNER_TEMP": str(tmp_path), "INPUT_ARGS": "   "})


def test_unknown_strategy_is_a_config_error(tmp_path) -> None:
    with pytest.raises(ConfigError, match="invalidate"):
        read_inputs(_env(tmp_path, INPUT_INVALIDATE="sometimes"))


def test_default_store_is_under_xdg_cache_home(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg"))
    inputs = read_inputs(_env(tmp_path))
    assert inputs.store_location() == str(tmp_path / "xdg" / "cached-docker-build")
