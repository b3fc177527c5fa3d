from __future__ import annotations

import re
from pathlib import Path
from typing import Union

from .errors import ParseError
from .models import Emphasis, ExternalLink, HyperlinkRef, Inline, Literal, RoleRef, Strong, Text

INLINE_RE = re.compile(
    r"\\(?P<escaped>.)"
    r"|``(?P<literal>.+?)``"
    r"|:(?P<role>[A-Za-z][\w+-]*):`(?P<role_body>[^`]+)`"
    r"|`(?P<link_body>[^`]+)`__?(?!\w)"
    r"|`(?P<interpreted>[^`]+)`"
    r"|\*\*(?P<strong>[^*\s](?:[^*]*[^*\s])?)\*\*"
    r"|\*(?P<emphasis>[^*\s](?:[^*]*[^*\s])?)\*"
)
EXPLICIT_TITLE_RE = re.compile(r"^(?P<title>.*?)\s*<(?P<target>[^<>]+)>$", re.DOTALL)
URL_RE = re.compile(r"^(?:[a-z][a-z0-9+.-]*://|mailto:)", re.IGNORECASE)

REFERENCE_ROLES = {"ref", "doc"}
LITERAL_ROLES = {"code", "file", "kbd"}
KNOWN_ROLES = REFERENCE_ROLES | LITERAL_ROLES


def is_url(target: str) -> bool:
    return bool(URL_RE.match(target))


def split_explicit_title(text: str) -> tuple[str, str, bool]:
    match = EXPLICIT_TITLE_RE.match(text.strip())
    if match and match.group("title"):
        return match.group("title").strip(), match.group("target").strip(), True
    if match:
        return "", match.group("target").strip(), False
    return text.strip(), text.strip(), False


def _role(name: str, body: str, path: Union[str, Path], line: int) -> Inline:
    if name not in KNOWN_ROLES:
        raise ParseError(ParseError.UNKNOWN_ROLE, path, line, f"unknown role :{name}:")
    if name in LITERAL_ROLES:
        return Literal(body)
    title, target, explicit = split_explicit_title(body)
    if not target:
        raise ParseError(ParseError.UNKNOWN_ROLE, path, line, f"empty target in :{name}:")
    if name == "ref":
        target = target.lower()
    return RoleRef(name, target, title if explicit else "", explicit)


def _link(body: str) -> Inline:
    title, target, explicit = split_explicit_title(body)
    if explicit or (title == "" and target):
        if is_url(target):
            return ExternalLink(title or target, target)
        return HyperlinkRef(title or target, target.rstrip("_"))
    return HyperlinkRef(title, title)


def _append_text(out: list[Inline], text: str) -> None:
    if not text:
        return
    if out and isinstance(out[-1], Text):
        out[-1] = Text(out[-1].text + text)
    else:
        out.append(Text(text))


def parse_inline(text: str, path: Union[str, Path] = "<string>", line: int = 0) -> tuple[Inline, ...]:
    out: list[Inline] = []
    pos = 0
    for match in INLINE_RE.finditer(text):
        _append_text(out, text[pos : match.start()])
        pos = match.end()
        if match.group("escaped") is not None:
            _append_text(out, match.group("escaped"))
        elif match.group("literal") is not None:
            out.append(Literal(match.group("literal")))
        elif match.group("role") is not None:
            out.append(_role(match.group("role"), match.group("role_body"), path, line))
        elif match.group("link_body") is not None:
            out.append(_link(match.group("link_body")))
        elif match.group("interpreted") is not None:
            out.append(Emphasis(match.group("interpreted")))
        elif match.group("strong") is not None:
            out.append(Strong(match.group("strong")))
        else:
            out.append(Emphasis(match.group("emphasis")))
    _append_text(out, text[pos:])
    return tuple(out)


def plain_text(inlines) -> str:
    parts = []
    for node in inlines:
        if isinstance(node, RoleRef):
            parts.append(node.text or node.target)
        else:
            parts.append(node.text)
    return "".join(parts)
