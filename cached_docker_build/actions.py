from __future__ import annotations

import os
import sys
from pathlib import Path


def _escape_data(message: str) -> str:
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def info(message: str) -> None:
    print(message, flush=True)


def error(message: str) -> None:
    print(f"::error::{_escape_data(message)}", flush=True)


def set_failed(message: str) -> int:
    error(message)
    return 1


def set_output(name: str, value: str) -> None:
    output_path = os.environ.get("GITHUB_OUTPUT")
    if not output_path:
        return
    with open(Path(output_path), "a", encoding="utf-8") as handle:
        handle.write(f"{name}={value}\n")


def debug(message: str) -> None:
    if os.environ.get("RUNNER_DEBUG") == "1":
        print(f"::debug::{_escape_data(message)}", file=sys.stdout, flush=True)
