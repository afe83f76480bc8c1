from __future__ import annotations

import hashlib
from pathlib import Path


CHUNK_SIZE = 65536


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def sha256_file(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        while chunk := handle.read(CHUNK_SIZE):
            digest.update(chunk)
    return digest.hexdigest()


def derive_fingerprint(key_fragment: str, build_args: str, suffix: str) -> str:
    """Cache key for one build: sha256 of "<key> <args> <suffix>"."""
    return sha256_text(f"{key_fragment} {build_args} {suffix}")
