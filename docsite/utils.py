from __future__ import annotations

import posixpath
from pathlib import Path

from .errors import ConfigError


def parse_bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return False


def parse_int(value: object, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def parse_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    value = str(value).strip()
    if value.startswith("[") and value.endswith("]"):
        inner = value[1:-1]
        items = [item.strip().strip("'\"") for item in inner.split(",")]
    else:
        items = [item.strip() for item in value.split(",")]
    return [item for item in items if item]


def page_path(docname: str) -> str:
    return f"{docname}.html"


def relative_url(from_docname: str, to_path: str, anchor: str = "") -> str:
    """URL of output path ``to_path`` as seen from the page of ``from_docname``."""
    base = posixpath.dirname(from_docname) or "."
    url = posixpath.relpath(to_path, base)
    return f"{url}#{anchor}" if anchor else url


def root_prefix(docname: str) -> str:
    depth = docname.count("/")
    return "/".join([".."] * depth) if depth else "."


def check_output_dir(output_dir: Path, source_dir: Path) -> None:
    output_resolved = output_dir.resolve()
    source_resolved = source_dir.resolve()
    if output_resolved == source_resolved:
        raise ConfigError("Refusing to write output into the source directory.")
    if source_resolved.is_relative_to(output_resolved):
        raise ConfigError("Refusing to write output into a parent of the source directory.")
