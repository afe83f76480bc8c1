from __future__ import annotations

import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path


def now_ms() -> int:
    return int(datetime.now(tz=timezone.utc).timestamp() * 1000)


def format_http_date(timestamp_ms: int) -> str:
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.strftime("%a, %d %b %Y %H:%M:%S GMT")


@dataclass
class CommandResult:
    cmd: list[str]
    exit_code: int
    stdout: str
    stderr: str


def run_command(cmd: list[str], cwd: Path | None = None) -> CommandResult:
    completed = subprocess.run(
        cmd,
        cwd=str(cwd) if cwd else None,
        capture_output=True,
        text=True,
        check=False,
    )
    return CommandResult(
        cmd=cmd,
        exit_code=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )


def stream_command(cmd: list[str], cwd: Path | None = None) -> CommandResult:
    """Run with stdout/stderr inherited so output lands in the job log."""
    completed = subprocess.run(cmd, cwd=str(cwd) if cwd else None, check=False)
    return CommandResult(cmd=cmd, exit_code=completed.returncode, stdout="", stderr="")
