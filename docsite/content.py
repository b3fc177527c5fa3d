from __future__ import annotations

import fnmatch
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Sequence

from .errors import ParseError
from .highlight import get_lang, parse_line_ranges, read_include
from .inline import is_url, parse_inline, plain_text, split_explicit_title
from .models import (
    Block,
    BulletList,
    CodeBlock,
    Directive,
    Document,
    Heading,
    HyperlinkRef,
    Label,
    LabelMarker,
    Paragraph,
    Reference,
    RoleRef,
)

SOURCE_SUFFIX = ".rst"
DEFAULT_INCLUDE = ("**/*.rst",)
DEFAULT_EXCLUDE = ("_build/*", ".*", "*/.*")

ADORNMENT_RE = re.compile(r"^(?P<char>[=\-~^\"'+#*`:._])(?P=char)+\s*$")
LABEL_RE = re.compile(r"^\.\.\s+_(?P<name>[^:`][^:]*):\s*$")
TARGET_RE = re.compile(r"^\.\.\s+_(?P<name>[^:`][^:]*):\s+(?P<url>\S+)\s*$")
DIRECTIVE_RE = re.compile(r"^\.\.\s+(?P<kind>[A-Za-z][\w+.-]*)::(?:\s+(?P<arg>.*?))?\s*$")
SUBSTITUTION_RE = re.compile(r"^\.\.\s+\|(?P<name>[^|]+)\|")
FOOTNOTE_RE = re.compile(r"^\.\.\s+\[(?P<label>[^\]]+)\]")
OPTION_RE = re.compile(r"^:(?P<name>[A-Za-z][\w-]*):(?:\s+(?P<value>.*?))?\s*$")
BULLET_RE = re.compile(r"^(?P<marker>[-*+])(?P<space>\s+)(?P<text>\S.*)$")
GLOB_CHARS_RE = re.compile(r"[*?\[]")


def slugify(text: str) -> str:
    text = text.lower()
    text = re.sub(r"[^\w]+", "-", text, flags=re.UNICODE)
    text = text.strip("-_").replace("_", "-")
    return text or "section"


def docname_for(path: Path, root: Path, suffix: str = SOURCE_SUFFIX) -> str:
    rel = path.relative_to(root).as_posix()
    if rel.endswith(suffix):
        rel = rel[: -len(suffix)]
    return rel


def has_glob(pattern: str) -> bool:
    return bool(GLOB_CHARS_RE.search(pattern))


def discover_sources(
    root: Path,
    include: Sequence[str] = DEFAULT_INCLUDE,
    exclude: Sequence[str] = DEFAULT_EXCLUDE,
) -> list[Path]:
    """Return matching source files sorted by their posix path relative to ``root``."""
    found: dict[str, Path] = {}
    for pattern in include:
        for path in root.glob(pattern):
            if not path.is_file():
                continue
            rel = path.relative_to(root).as_posix()
            if any(fnmatch.fnmatchcase(rel, pat) for pat in exclude):
                continue
            found[rel] = path
    return [found[rel] for rel in sorted(found)]


# Directive option converters raise ValueError on bad values.


def flag(value: str) -> str:
    if value:
        raise ValueError("takes no value")
    return ""


def unchanged_required(value: str) -> str:
    if not value:
        raise ValueError("requires a value")
    return value


def positive_int(value: str) -> str:
    number = int(value)
    if number < 1:
        raise ValueError("must be a positive integer")
    return str(number)


def line_ranges(value: str) -> str:
    parse_line_ranges(value)
    return value


TOCTREE_OPTIONS = {
    "glob": flag,
    "hidden": flag,
    "caption": unchanged_required,
    "maxdepth": positive_int,
    "reversed": flag,
    "numbered": flag,
    "titlesonly": flag,
}
CODE_OPTIONS = {
    "caption": unchanged_required,
    "linenos": flag,
    "emphasize-lines": line_ranges,
    "name": unchanged_required,
}
INCLUDE_OPTIONS = {
    "language": unchanged_required,
    "caption": unchanged_required,
    "linenos": flag,
    "emphasize-lines": line_ranges,
    "lines": line_ranges,
}
ADMONITIONS = ("note", "warning", "tip", "important", "seealso")

# kind -> (option converters, argument required, argument allowed)
DIRECTIVES: dict[str, tuple[dict[str, Callable[[str], str]], bool, bool]] = {
    "toctree": (TOCTREE_OPTIONS, False, False),
    "code-block": (CODE_OPTIONS, True, True),
    "code": (CODE_OPTIONS, True, True),
    "sourcecode": (CODE_OPTIONS, True, True),
    "literalinclude": (INCLUDE_OPTIONS, True, True),
}
for _kind in ADMONITIONS:
    DIRECTIVES[_kind] = ({}, False, True)


@dataclass
class ParseState:
    path: Path
    docname: str
    root: Path
    styles: list[tuple[str, bool]] = field(default_factory=list)
    level: int = 0
    anchors: set[str] = field(default_factory=set)
    pending_labels: list[tuple[str, int]] = field(default_factory=list)
    labels: list[Label] = field(default_factory=list)
    targets: dict[str, str] = field(default_factory=dict)
    references: list[Reference] = field(default_factory=list)

    def error(self, kind: str, line: int, message: str) -> ParseError:
        return ParseError(kind, self.path, line, message)

    def unique_anchor(self, text: str) -> str:
        base = slugify(text)
        anchor = base
        counter = 1
        while anchor in self.anchors:
            anchor = f"{base}-{counter}"
            counter += 1
        self.anchors.add(anchor)
        return anchor

    def inline(self, text: str, line: int):
        nodes = parse_inline(text, self.path, line)
        for node in nodes:
            if isinstance(node, RoleRef) and node.role in {"ref", "doc"}:
                self.references.append(Reference(self.docname, line, node.role, node.target))
            elif isinstance(node, HyperlinkRef):
                self.references.append(Reference(self.docname, line, "hyperlink", node.target))
        return nodes


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _is_adornment(line: str) -> bool:
    if line.strip() in ("..", "::"):
        return False
    return bool(ADORNMENT_RE.match(line)) and _indent(line) == 0


def _dedent(lines: list[str]) -> list[str]:
    widths = [_indent(line) for line in lines if line.strip()]
    cut = min(widths) if widths else 0
    return [line[cut:] if line.strip() else "" for line in lines]


def _trim_blank(lines: list[str]) -> list[str]:
    start, end = 0, len(lines)
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    return lines[start:end]


def _indented_block(lines: list[str], start: int, base: int) -> int:
    """Index just past the block of blank or deeper-indented lines at ``start``."""
    end = start
    while end < len(lines):
        line = lines[end]
        if line.strip() and _indent(line) <= base:
            break
        end += 1
    return end


def _heading(state: ParseState, char: str, overline: bool, title: str, line: int) -> Heading:
    style = (char, overline)
    if style in state.styles:
        level = state.styles.index(style) + 1
    else:
        level = len(state.styles) + 1
        if level > state.level + 1:
            raise state.error(ParseError.MALFORMED_HEADING, line, f"title level inconsistent: {title!r}")
        state.styles.append(style)
    state.level = level
    text = plain_text(state.inline(title, line))
    return Heading(level, text, state.unique_anchor(text), line)


def _attach_labels(state: ParseState, block: Optional[Block], out: list[Block]) -> None:
    if not state.pending_labels:
        return
    for name, line in state.pending_labels:
        if isinstance(block, Heading):
            anchor, title = block.anchor, block.text
        else:
            anchor = state.unique_anchor(name)
            title = block.caption if isinstance(block, CodeBlock) else ""
            out.append(LabelMarker(anchor, line))
        state.labels.append(Label(name.lower(), state.docname, anchor, line, title))
    state.pending_labels = []


def _options(state: ParseState, kind: str, lines: list[str], first: int):
    converters = DIRECTIVES[kind][0]
    options: dict[str, str] = {}
    idx = 0
    while idx < len(lines):
        match = OPTION_RE.match(lines[idx])
        if not match:
            break
        name, value = match.group("name"), (match.group("value") or "").strip()
        line = first + idx
        if name not in converters:
            raise state.error(ParseError.MALFORMED_DIRECTIVE, line, f"unknown option :{name}: for {kind}")
        if name in options:
            raise state.error(ParseError.MALFORMED_DIRECTIVE, line, f"duplicate option :{name}: for {kind}")
        try:
            options[name] = converters[name](value)
        except ValueError as exc:
            raise state.error(ParseError.MALFORMED_DIRECTIVE, line, f"option :{name}: {exc}") from None
        idx += 1
    return options, idx


def _directive(state: ParseState, lines: list[str], i: int, offset: int) -> tuple[Block, int]:
    match = DIRECTIVE_RE.match(lines[i].strip())
    line = offset + i + 1
    kind = match.group("kind")
    argument = (match.group("arg") or "").strip()
    if kind not in DIRECTIVES:
        raise state.error(ParseError.UNKNOWN_DIRECTIVE, line, f"unknown directive type {kind!r}")
    _, arg_required, arg_allowed = DIRECTIVES[kind]
    if arg_required and not argument:
        raise state.error(ParseError.MALFORMED_DIRECTIVE, line, f"{kind} requires an argument")
    if argument and not arg_allowed:
        raise state.error(ParseError.MALFORMED_DIRECTIVE, line, f"{kind} takes no argument")

    end = _indented_block(lines, i + 1, _indent(lines[i]))
    block_lines = _dedent(lines[i + 1 : end])
    options, used = _options(state, kind, block_lines, line + 1)
    body_start = used
    while body_start < len(block_lines) and not block_lines[body_start].strip():
        body_start += 1
    body = _trim_blank(block_lines[body_start:])
    body_line = line + 1 + body_start

    if kind in {"code-block", "code", "sourcecode"}:
        if not body:
            raise state.error(ParseError.UNTERMINATED_CODE_BLOCK, line, f"{kind} has no content")
        return _code_block(state, argument, "\n".join(body), options, line), end
    if kind == "literalinclude":
        if body:
            raise state.error(ParseError.MALFORMED_DIRECTIVE, body_line, "literalinclude takes no content")
        return _literal_include(state, argument, options, line), end
    if kind == "toctree":
        entries = tuple(entry.strip() for entry in body if entry.strip())
        _toctree_references(state, entries, options, body_line)
        return Directive(kind, "", options, entries, line), end

    content = ([argument] if argument else []) + body
    if not content:
        raise state.error(ParseError.MALFORMED_DIRECTIVE, line, f"{kind} has no content")
    children = _parse_blocks(state, _dedent(content), (line if argument else body_line) - 1)
    return Directive(kind, argument, options, tuple(body), line, tuple(children)), end


def _code_block(state: ParseState, language: str, code: str, options: dict, line: int) -> CodeBlock:
    emphasize = tuple(parse_line_ranges(options["emphasize-lines"])) if "emphasize-lines" in options else ()
    anchor = ""
    if "name" in options:
        anchor = state.unique_anchor(options["name"])
        state.labels.append(
            Label(options["name"].lower(), state.docname, anchor, line, options.get("caption", ""))
        )
    return CodeBlock(
        language=language,
        code=code,
        line=line,
        caption=options.get("caption", ""),
        linenos="linenos" in options,
        emphasize=emphasize,
        anchor=anchor,
    )


def _literal_include(state: ParseState, argument: str, options: dict, line: int) -> CodeBlock:
    if argument.startswith("/"):
        path = state.root / argument.lstrip("/")
    else:
        path = state.path.parent / argument
    if not path.is_file():
        raise state.error(ParseError.MISSING_INCLUDE, line, f"included file not found: {argument}")
    try:
        code = read_include(path, options.get("lines", ""))
    except UnicodeDecodeError:
        raise state.error(ParseError.MISSING_INCLUDE, line, f"included file is not UTF-8 text: {argument}") from None
    language = options.get("language") or get_lang(path)
    return _code_block(state, language, code.rstrip("\n"), options, line)


def _toctree_references(state: ParseState, entries: tuple[str, ...], options: dict, line: int) -> None:
    for idx, entry in enumerate(entries):
        _, target, explicit = split_explicit_title(entry)
        if is_url(target):
            continue
        if "glob" in options and has_glob(target) and not explicit:
            state.references.append(Reference(state.docname, line + idx, "toctree-glob", target))
        else:
            state.references.append(Reference(state.docname, line + idx, "toctree", target))


def _literal_block(state: ParseState, lines: list[str], start: int, base: int, offset: int) -> tuple[CodeBlock, int]:
    idx = start
    while idx < len(lines) and not lines[idx].strip():
        idx += 1
    if idx >= len(lines) or _indent(lines[idx]) <= base:
        raise state.error(ParseError.UNTERMINATED_CODE_BLOCK, offset + start, "literal block expected after '::'")
    end = _indented_block(lines, idx, base)
    code = "\n".join(_trim_blank(_dedent(lines[idx:end])))
    return CodeBlock(language="text", code=code, line=offset + idx + 1), end


def _bullet_list(state: ParseState, lines: list[str], i: int, offset: int) -> tuple[BulletList, int]:
    items = []
    first_line = offset + i + 1
    while i < len(lines):
        match = BULLET_RE.match(lines[i])
        if not match:
            break
        width = len(match.group("marker")) + len(match.group("space"))
        text = [match.group("text")]
        item_line = offset + i + 1
        i += 1
        while i < len(lines) and lines[i].strip() and _indent(lines[i]) >= width:
            text.append(lines[i].strip())
            i += 1
        items.append(state.inline(" ".join(text), item_line))
        if i < len(lines) and not lines[i].strip():
            nxt = i
            while nxt < len(lines) and not lines[nxt].strip():
                nxt += 1
            if nxt < len(lines) and BULLET_RE.match(lines[nxt]):
                i = nxt
    return BulletList(tuple(items), first_line), i


def _parse_blocks(state: ParseState, lines: list[str], offset: int) -> list[Block]:
    out: list[Block] = []
    i = 0
    n = len(lines)

    def emit(block: Block) -> None:
        _attach_labels(state, block, out)
        out.append(block)

    while i < n:
        line = lines[i]
        stripped = line.strip()
        if not stripped:
            i += 1
            continue
        lineno = offset + i + 1

        if _is_adornment(line) and i + 2 < n and lines[i + 1].strip() and _is_adornment(lines[i + 2]):
            title = lines[i + 1].strip()
            char = line.strip()[0]
            if lines[i + 2].strip() != line.strip():
                raise state.error(ParseError.MALFORMED_HEADING, lineno, "overline and underline do not match")
            if len(line.strip()) < len(title):
                raise state.error(ParseError.MALFORMED_HEADING, lineno, f"title overline too short: {title!r}")
            emit(_heading(state, char, True, title, lineno + 1))
            i += 3
            continue

        if (
            _indent(line) == 0
            and i + 1 < n
            and _is_adornment(lines[i + 1])
            and not _is_adornment(line)
            and not line.startswith("..")
        ):
            underline = lines[i + 1].strip()
            if len(underline) < len(stripped):
                raise state.error(ParseError.MALFORMED_HEADING, lineno + 1, f"title underline too short: {stripped!r}")
            emit(_heading(state, underline[0], False, stripped, lineno))
            i += 2
            continue

        if _is_adornment(line):
            raise state.error(ParseError.MALFORMED_HEADING, lineno, "section adornment without a title")

        if stripped == ".." or stripped.startswith(".. "):
            target = TARGET_RE.match(stripped)
            if target:
                state.targets[target.group("name").strip().lower()] = target.group("url")
                i += 1
                continue
            label = LABEL_RE.match(stripped)
            if label:
                state.pending_labels.append((label.group("name").strip(), lineno))
                i += 1
                continue
            substitution = SUBSTITUTION_RE.match(stripped)
            if substitution:
                raise state.error(
                    ParseError.UNKNOWN_DIRECTIVE,
                    lineno,
                    f"substitution definitions are not supported: |{substitution.group('name')}|",
                )
            footnote = FOOTNOTE_RE.match(stripped)
            if footnote:
                raise state.error(
                    ParseError.UNKNOWN_DIRECTIVE,
                    lineno,
                    f"footnotes and citations are not supported: [{footnote.group('label')}]",
                )
            directive = DIRECTIVE_RE.match(stripped)
            if directive:
                if directive.group("kind") in ADMONITIONS:
                    # labels before an admonition mark the admonition, not its first child
                    _attach_labels(state, None, out)
                block, i = _directive(state, lines, i, offset)
                emit(block)
                continue
            # comment: the marker line and everything indented under it
            i = _indented_block(lines, i + 1, _indent(line))
            continue

        if BULLET_RE.match(line):
            block, i = _bullet_list(state, lines, i, offset)
            emit(block)
            continue

        base = _indent(line)
        para = []
        while i < n and lines[i].strip():
            para.append(lines[i].strip())
            i += 1
        text = " ".join(para)
        if text.endswith("::"):
            if text == "::":
                text = ""
            elif text.endswith(" ::"):
                text = text[:-3].rstrip()
            else:
                text = text[:-1]
            if text:
                emit(Paragraph(state.inline(text, lineno), lineno))
            block, i = _literal_block(state, lines, i, base, offset)
            emit(block)
            continue
        emit(Paragraph(state.inline(text, lineno), lineno))

    if state.pending_labels:
        _attach_labels(state, None, out)
    return out


def parse_text(text: str, path: Path, docname: str, root: Optional[Path] = None) -> Document:
    clean_text = text.lstrip("\ufeff")
    lines = [line.expandtabs(8).rstrip() for line in clean_text.splitlines()]
    state = ParseState(path=path, docname=docname, root=root or path.parent)
    blocks = _parse_blocks(state, lines, 0)
    headings = [block for block in blocks if isinstance(block, Heading)]
    title = headings[0].text if headings else docname
    return Document(
        docname=docname,
        source=path,
        title=title,
        blocks=tuple(blocks),
        labels=tuple(state.labels),
        targets=dict(state.targets),
        references=tuple(state.references),
        raw=clean_text,
    )


def parse_document(path: Path, root: Path, suffix: str = SOURCE_SUFFIX) -> Document:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise ParseError(ParseError.UNREADABLE_SOURCE, path, 1, exc.strerror or str(exc)) from None
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        line = data.count(b"\n", 0, exc.start) + 1
        raise ParseError(
            ParseError.UNREADABLE_SOURCE, path, line, f"invalid UTF-8 byte 0x{data[exc.start]:02x}"
        ) from None
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return parse_text(text, path, docname_for(path, root, suffix), root)


def load_documents(paths: Sequence[Path], root: Path, suffix: str = SOURCE_SUFFIX, workers: int = 1) -> list[Document]:
    """Parse every path; the result keeps the order of ``paths``."""

    def parse(path: Path) -> Document:
        return parse_document(path, root, suffix)

    workers = max(1, int(workers or 1))
    if workers <= 1 or len(paths) <= 1:
        return [parse(path) for path in paths]
    with ThreadPoolExecutor(max_workers=min(workers, len(paths))) as executor:
        return list(executor.map(parse, paths))
