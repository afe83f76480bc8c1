from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from cached_docker_build import actions
from cached_docker_build.engine import DockerCliEngine, docker_available
from cached_docker_build.errors import BuildCacheError, ConfigError
from cached_docker_build.gateway import CacheGateway, plan_build
from cached_docker_build.inputs import ENV_MAP, read_inputs
from cached_docker_build.invalidation import STRATEGIES, select_strategy
from cached_docker_build.store import open_store


def _add_json_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print a machine-readable summary JSON to stdout after the human log.",
    )


def _add_input_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--args", required=False, help=f"docker build arguments (env: {ENV_MAP['args']})")
    parser.add_argument("--cache-key", required=False, help=f"Extra cache key fragment (env: {ENV_MAP['cache_key']})")
    parser.add_argument("--expires", required=False, help=f"Expiry duration, e.g. 7d (env: {ENV_MAP['expires']})")
    parser.add_argument(
        "--invalidate",
        choices=STRATEGIES,
        required=False,
        help=f"Cache invalidation strategy (env: {ENV_MAP['invalidate']}, default: expires)",
    )
    parser.add_argument(
        "--scratch-dir",
        required=False,
        help=f"Scratch directory for cache entries (env: {ENV_MAP['scratch_dir']})",
    )
    parser.add_argument(
        "--workdir",
        default=".",
        help="Directory that relative --file paths resolve against (default: current directory)",
    )


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    names = ["args", "cache_key", "expires", "invalidate", "scratch_dir", "cache_store", "docker_bin"]
    return {name: getattr(args, name) for name in names if getattr(args, name, None) is not None}


def _plan(args: argparse.Namespace):
    inputs = read_inputs(overrides=_overrides(args))
    strategy = select_strategy(inputs.invalidate, inputs.expires)
    plan = plan_build(inputs, strategy, Path(args.workdir).resolve())
    return inputs, strategy, plan


def run_cached_build(args: argparse.Namespace) -> int:
    try:
        inputs, strategy, plan = _plan(args)
    except ConfigError as exc:
        return actions.set_failed(exc.message)

    actions.info(f"Cached key: {plan.fingerprint}")
    actions.set_output("cache-key", plan.fingerprint)

    engine = DockerCliEngine(docker_bin=inputs.docker_bin)
    store = open_store(inputs.store_location(), Path(inputs.scratch_dir), token=inputs.cache_token)
    gateway = CacheGateway(engine, store, strategy)
    try:
        result = gateway.run(plan)
    except BuildCacheError as exc:
        return actions.set_failed(exc.message)

    actions.set_output("cache-hit", "true" if result.cache_hit else "false")
    if args.json:
        print(json.dumps(result.as_json(), indent=2, sort_keys=True))
    return 0


def print_key(args: argparse.Namespace) -> int:
    try:
        inputs, strategy, plan = _plan(args)
    except ConfigError as exc:
        return actions.set_failed(exc.message)

    actions.set_output("cache-key", plan.fingerprint)
    actions.set_output("entry-dir", str(plan.entry_dir))
    if args.json:
        payload = {
            "entry_dir": str(plan.entry_dir),
            "fingerprint": plan.fingerprint,
            "invalidate": strategy.name,
            "tags": plan.spec.tags,
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
    else:
        print(plan.fingerprint)
    return 0


def doctor(args: argparse.Namespace) -> int:
    ok, detail = docker_available()
    if args.json:
        print(json.dumps({"docker": {"available": ok, "detail": detail}}, indent=2, sort_keys=True))
    elif ok:
        actions.info(detail)
    else:
        actions.error(detail)
    return 0 if ok else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cached-docker-build",
        description="Cache docker image builds across CI runs",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Restore the image from cache or build, save and upload it")
    _add_input_args(run_parser)
    run_parser.add_argument(
        "--cache-store",
        required=False,
        help=(
            "HTTP(S) base URL, directory, or 'actions' for entries restored and saved by actions/cache "
            f"(env: {ENV_MAP['cache_store']})"
        ),
    )
    run_parser.add_argument("--docker-bin", required=False, help=f"docker executable (env: {ENV_MAP['docker_bin']})")
    _add_json_arg(run_parser)
    run_parser.set_defaults(handler=run_cached_build)

    key_parser = subparsers.add_parser("key", help="Print the cache key for the given inputs and exit")
    _add_input_args(key_parser)
    _add_json_arg(key_parser)
    key_parser.set_defaults(handler=print_key)

    doctor_parser = subparsers.add_parser("doctor", help="Check that the docker daemon is reachable")
    _add_json_arg(doctor_parser)
    doctor_parser.set_defaults(handler=doctor)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
