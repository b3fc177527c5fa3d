from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterable, Mapping

from .cache import hash_bytes, list_files
from .models import Page


def atomic_write(path: Path, data: bytes) -> None:
    """Write through a temp file in the same directory, then rename over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def collect_files(pages: Iterable[Page], static_dir: Path) -> dict[str, bytes]:
    """Map output paths to file contents; user static files override theme assets."""
    files = {page.path: page.text.encode("utf-8") for page in pages}
    if static_dir.is_dir():
        for item in list_files(static_dir):
            files[f"_static/{item.relative_to(static_dir).as_posix()}"] = item.read_bytes()
    return files


def write_files(output_dir: Path, files: Mapping[str, bytes], previous: Mapping[str, str]) -> tuple[dict[str, str], int]:
    """Commit ``files`` under ``output_dir``; unchanged files already on disk are left alone.

    Returns the content hash of every file and the number actually written.
    """
    hashes: dict[str, str] = {}
    written = 0
    for rel in sorted(files):
        data = files[rel]
        digest = hash_bytes(data)
        hashes[rel] = digest
        target = output_dir / rel
        if previous.get(rel) == digest and target.is_file():
            continue
        atomic_write(target, data)
        written += 1
    return hashes, written


def prune(output_dir: Path, keep: Iterable[str], previous: Iterable[str]) -> list[str]:
    """Delete files the previous build wrote that this build no longer produces."""
    keep_set = set(keep)
    removed = []
    for rel in sorted(set(previous) - keep_set):
        path = output_dir / rel
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        removed.append(rel)
        parent = path.parent
        while parent != output_dir and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent
    return removed
