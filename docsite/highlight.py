from __future__ import annotations

import html
from pathlib import Path
from typing import Sequence

from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.styles import get_style_by_name
from pygments.util import ClassNotFound

from .errors import ConfigError

CSS_CLASS = "highlight"
PLAIN_LANGUAGES = {"", "text", "none", "plain"}


def get_lang(file_path: Path) -> str:
    ext = file_path.suffix.lstrip(".")
    if ext == "py":
        return "python"
    if ext in ("c", "h"):
        return "c"
    if ext in ("cpp", "hpp", "cxx"):
        return "cpp"
    if ext == "java":
        return "java"
    if ext in ("kt", "kts"):
        return "kotlin"
    if ext == "gradle":
        return "groovy"
    if ext in ("js", "ts"):
        return "javascript" if ext == "js" else "typescript"
    if ext in ("xml", "json", "yaml", "toml"):
        return ext
    if ext == "yml":
        return "yaml"
    if ext == "sh":
        return "bash"
    if ext == "rst":
        return "rst"
    return "text"


def highlight_code(code: str, language: str, linenos: bool = False, emphasize: Sequence[int] = ()) -> str:
    """Render ``code`` as highlighted HTML. The code is never executed."""
    lang = language if language not in PLAIN_LANGUAGES else "text"
    try:
        lexer = get_lexer_by_name(lang, stripnl=False)
    except ClassNotFound:
        return f'<div class="{CSS_CLASS}"><pre>{html.escape(code)}</pre></div>'
    formatter = HtmlFormatter(
        cssclass=CSS_CLASS,
        linenos="inline" if linenos else False,
        hl_lines=list(emphasize),
    )
    return highlight(code, lexer, formatter)


def style_css(style: str) -> str:
    try:
        get_style_by_name(style)
    except ClassNotFound:
        raise ConfigError(f"Unknown Pygments style: {style}") from None
    return HtmlFormatter(style=style, cssclass=CSS_CLASS).get_style_defs(f".{CSS_CLASS}")


def parse_line_ranges(value: str, limit: int = 0) -> list[int]:
    """Parse ``"1,3-5"`` into ``[1, 3, 4, 5]``. Raises ValueError on bad input."""
    lines: list[int] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start_text, end_text = part.split("-", 1)
            start = int(start_text) if start_text.strip() else 1
            end = int(end_text) if end_text.strip() else limit
            if start < 1 or end < start:
                raise ValueError(f"invalid line range {part!r}")
            lines.extend(range(start, end + 1))
        else:
            number = int(part)
            if number < 1:
                raise ValueError(f"invalid line number {part!r}")
            lines.append(number)
    if not lines:
        raise ValueError("empty line specification")
    return lines


def read_include(path: Path, lines: str = "") -> str:
    text = path.read_text(encoding="utf-8")
    if not lines:
        return text
    source_lines = text.splitlines()
    selected = parse_line_ranges(lines, len(source_lines))
    return "\n".join(source_lines[number - 1] for number in selected if number <= len(source_lines))
