from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from .content import SOURCE_SUFFIX, has_glob, slugify
from .errors import AmbiguousReferenceError, ReferenceProblem, ResolutionError, UnresolvedReferenceError
from .inline import is_url, split_explicit_title
from .models import Document, Label, ResolvedTarget, TocEntry


@dataclass(frozen=True)
class ReferenceTable:
    """Frozen result of resolution; shared read-only by every render worker."""

    docnames: tuple[str, ...]
    titles: Mapping[str, str]
    labels: Mapping[str, ResolvedTarget]
    targets: Mapping[tuple[str, str, str], ResolvedTarget]
    globs: Mapping[tuple[str, str], tuple[str, ...]]
    toctrees: Mapping[str, tuple[tuple[TocEntry, ...], ...]]
    sections: Mapping[str, tuple[tuple[str, str], ...]]

    def lookup(self, docname: str, kind: str, target: str) -> ResolvedTarget:
        return self.targets[(docname, kind, target)]

    def toctree_entries(self, docname: str, index: int) -> tuple[TocEntry, ...]:
        return self.toctrees[docname][index]

    def __contains__(self, docname: str) -> bool:
        return docname in self.titles


def join_docname(current: str, target: str, suffix: str = SOURCE_SUFFIX) -> str:
    """Resolve ``target`` relative to the directory of ``current``; ``/x`` is root-relative."""
    if target.endswith(suffix):
        target = target[: -len(suffix)]
    if target.startswith("/"):
        return posixpath.normpath(target.lstrip("/"))
    base = posixpath.dirname(current)
    return posixpath.normpath(posixpath.join(base, target)) if base else posixpath.normpath(target)


def glob_regex(pattern: str) -> re.Pattern:
    """``*`` and ``?`` stay inside one path segment, ``**`` crosses segments."""
    out = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if pattern.startswith("**", i):
            out.append(".*")
            i += 2
            continue
        if char == "*":
            out.append("[^/]*")
        elif char == "?":
            out.append("[^/]")
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(char))
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end + 1
                continue
        else:
            out.append(re.escape(char))
        i += 1
    return re.compile("^" + "".join(out) + "$")


def _collect_labels(documents: Iterable[Document], problems: list[ReferenceProblem]) -> dict[str, ResolvedTarget]:
    owners: dict[str, tuple[Label, str]] = {}
    labels: dict[str, ResolvedTarget] = {}
    for doc in documents:
        for label in doc.labels:
            if label.name in owners:
                first, first_path = owners[label.name]
                problems.append(
                    AmbiguousReferenceError(label.name, (first_path, first.line), (str(doc.source), label.line))
                )
                continue
            owners[label.name] = (label, str(doc.source))
            labels[label.name] = ResolvedTarget(label.docname, label.anchor, label.title or label.name)
    return labels


def resolve(documents: Iterable[Document]) -> ReferenceTable:
    """Collect every anchor, then resolve every reference against them.

    All problems in the corpus are reported together in one ResolutionError.
    """
    docs = sorted(documents, key=lambda doc: doc.source.as_posix())
    by_name = {doc.docname: doc for doc in docs}
    order = [doc.docname for doc in docs]
    problems: list[ReferenceProblem] = []

    # pass 1: anchors
    labels = _collect_labels(docs, problems)
    titles = {doc.docname: doc.title for doc in docs}
    anchors = {doc.docname: {heading.anchor: heading.text for heading in doc.headings} for doc in docs}
    sections = {
        doc.docname: tuple((heading.anchor, heading.text) for heading in doc.headings if heading.level == 2)
        for doc in docs
    }

    # pass 2: references
    targets: dict[tuple[str, str, str], ResolvedTarget] = {}
    globs: dict[tuple[str, str], tuple[str, ...]] = {}
    for doc in docs:
        for ref in doc.references:
            found: Optional[ResolvedTarget] = None
            if ref.kind == "ref":
                found = labels.get(ref.target)
            elif ref.kind in {"doc", "toctree"}:
                name = join_docname(doc.docname, ref.target)
                if name in by_name:
                    found = ResolvedTarget(name, "", titles[name])
            elif ref.kind == "hyperlink":
                url = doc.targets.get(ref.target.lower())
                anchor = slugify(ref.target)
                if url:
                    found = ResolvedTarget("", "", ref.target, url=url)
                elif anchor in anchors[doc.docname]:
                    found = ResolvedTarget(doc.docname, anchor, anchors[doc.docname][anchor])
            elif ref.kind == "toctree-glob":
                regex = glob_regex(join_docname(doc.docname, ref.target))
                matches = tuple(name for name in order if name != doc.docname and regex.match(name))
                if matches:
                    globs[(doc.docname, ref.target)] = matches
                    continue
            if found is None:
                problems.append(UnresolvedReferenceError(doc.source, ref.line, ref.target, ref.kind))
                continue
            targets[(doc.docname, ref.kind, ref.target)] = found

    if problems:
        raise ResolutionError(problems)

    toctrees = {
        doc.docname: tuple(_expand_toctree(doc, directive, targets, globs, order) for directive in doc.toctrees)
        for doc in docs
    }
    return ReferenceTable(
        docnames=tuple(order),
        titles=MappingProxyType(titles),
        labels=MappingProxyType(labels),
        targets=MappingProxyType(targets),
        globs=MappingProxyType(globs),
        toctrees=MappingProxyType(toctrees),
        sections=MappingProxyType(sections),
    )


def _expand_toctree(doc: Document, directive, targets, globs, order) -> tuple[TocEntry, ...]:
    remaining = set(order)
    remaining.discard(doc.docname)
    entries: list[TocEntry] = []
    for raw in directive.body:
        title, target, explicit = split_explicit_title(raw)
        if is_url(target):
            entries.append(TocEntry(title if explicit else target, "", url=target))
            continue
        if directive.flag("glob") and has_glob(target) and not explicit:
            for name in globs[(doc.docname, target)]:
                if name in remaining:
                    remaining.discard(name)
                    entries.append(TocEntry("", name))
            continue
        name = targets[(doc.docname, "toctree", target)].docname
        remaining.discard(name)
        entries.append(TocEntry(title if explicit else "", name))
    if directive.flag("reversed"):
        entries.reverse()
    return tuple(entries)
