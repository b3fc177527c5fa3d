from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Union


# Inline nodes


@dataclass(frozen=True)
class Text:
    text: str


@dataclass(frozen=True)
class Emphasis:
    text: str


@dataclass(frozen=True)
class Strong:
    text: str


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class RoleRef:
    role: str
    target: str
    text: str
    explicit_title: bool = False


@dataclass(frozen=True)
class HyperlinkRef:
    """`` `name`_ ``: a document-local target or a section title."""

    text: str
    target: str


@dataclass(frozen=True)
class ExternalLink:
    text: str
    url: str


Inline = Union[Text, Emphasis, Strong, Literal, RoleRef, HyperlinkRef, ExternalLink]


# Blocks


@dataclass(frozen=True)
class Heading:
    level: int
    text: str
    anchor: str
    line: int


@dataclass(frozen=True)
class Paragraph:
    inlines: tuple[Inline, ...]
    line: int


@dataclass(frozen=True)
class BulletList:
    items: tuple[tuple[Inline, ...], ...]
    line: int


@dataclass(frozen=True)
class CodeBlock:
    language: str
    code: str
    line: int
    caption: str = ""
    linenos: bool = False
    emphasize: tuple[int, ...] = ()
    anchor: str = ""


@dataclass(frozen=True)
class Directive:
    kind: str
    argument: str
    options: Mapping[str, str]
    body: tuple[str, ...]
    line: int
    children: tuple["Block", ...] = ()

    def flag(self, name: str) -> bool:
        return name in self.options


@dataclass(frozen=True)
class LabelMarker:
    """Position of an explicit label that does not precede a heading."""

    anchor: str
    line: int


Block = Union[Heading, Paragraph, BulletList, CodeBlock, Directive, LabelMarker]


# Document-level records


@dataclass(frozen=True)
class Label:
    name: str
    docname: str
    anchor: str
    line: int
    title: str


@dataclass(frozen=True)
class Reference:
    docname: str
    line: int
    kind: str
    target: str


@dataclass(frozen=True)
class TocEntry:
    """One expanded toctree entry: a document or an external URL."""

    title: str
    docname: str
    url: str = ""


@dataclass(frozen=True)
class Document:
    docname: str
    source: Path
    title: str
    blocks: tuple[Block, ...]
    labels: tuple[Label, ...] = ()
    targets: Mapping[str, str] = field(default_factory=dict)
    references: tuple[Reference, ...] = ()
    raw: str = ""

    @property
    def toctrees(self) -> tuple[Directive, ...]:
        return tuple(iter_toctrees(self.blocks))

    @property
    def headings(self) -> tuple[Heading, ...]:
        return tuple(block for block in iter_blocks(self.blocks) if isinstance(block, Heading))


def iter_blocks(blocks):
    for block in blocks:
        yield block
        if isinstance(block, Directive) and block.children:
            yield from iter_blocks(block.children)


def iter_toctrees(blocks):
    for block in iter_blocks(blocks):
        if isinstance(block, Directive) and block.kind == "toctree":
            yield block


# Resolution and navigation


@dataclass(frozen=True)
class ResolvedTarget:
    docname: str
    anchor: str
    title: str
    url: str = ""

    @property
    def external(self) -> bool:
        return bool(self.url)


@dataclass(frozen=True)
class NavNode:
    docname: Optional[str]
    title: str
    depth: int
    children: tuple["NavNode", ...] = ()
    number: str = ""
    hidden: bool = False
    caption: str = ""
    url: str = ""

    @property
    def is_group(self) -> bool:
        return self.docname is None and not self.url


@dataclass(frozen=True)
class Page:
    path: str
    text: str
