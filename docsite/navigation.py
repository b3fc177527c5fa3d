from __future__ import annotations

import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

from .errors import ConfigError, CyclicNavigationError
from .models import Document, NavNode
from .resolve import ReferenceTable

# (docname, depth, number, hidden): everything that shapes a document's subtree.
_Key = tuple[str, int, str, bool]


class _Expander:
    """Builds toctree subtrees, sharing the nodes of every key already built."""

    def __init__(self, table: ReferenceTable, docs: Mapping[str, Document]) -> None:
        self.table = table
        self.docs = docs
        self.memo: dict[_Key, tuple[tuple[NavNode, ...], ...]] = {}
        self.lock = threading.Lock()

    def _layout(self, key: _Key) -> list:
        docname, depth, prefix, hidden = key
        layout = []
        counter = 0
        for index, directive in enumerate(self.docs[docname].toctrees):
            numbered = bool(prefix) or directive.flag("numbered")
            bucket_hidden = hidden or directive.flag("hidden")
            entries = []
            for entry in self.table.toctree_entries(docname, index):
                if entry.url:
                    entries.append((entry.title, entry.url, None))
                    continue
                counter += 1
                number = ""
                if numbered:
                    number = f"{prefix}.{counter}" if prefix else str(counter)
                title = entry.title or self.table.titles[entry.docname]
                entries.append((title, "", (entry.docname, depth + 1, number, bucket_hidden)))
            layout.append((directive.options.get("caption", ""), bucket_hidden, entries))
        return layout

    def _freeze(self, key: _Key, layout: list) -> tuple[tuple[NavNode, ...], ...]:
        depth = key[1] + 1
        buckets = []
        for caption, hidden, entries in layout:
            nodes = []
            for title, url, child in entries:
                if child is None:
                    nodes.append(NavNode(None, title, depth, hidden=hidden, url=url))
                    continue
                children = tuple(node for bucket in self.memo[child] for node in bucket)
                nodes.append(NavNode(child[0], title, depth, children, number=child[2], hidden=hidden))
            if caption:
                nodes = [NavNode(None, caption, depth, tuple(nodes), hidden=hidden, caption=caption)]
            buckets.append(tuple(nodes))
        return tuple(buckets)

    def buckets(self, docname: str) -> tuple[tuple[NavNode, ...], ...]:
        # Callers run check_cycles first, so expansion always terminates.
        start: _Key = (docname, 0, "", False)
        with self.lock:
            stack: list = [(start, None)]
            while stack:
                key, layout = stack.pop()
                if key in self.memo:
                    continue
                if layout is None:
                    layout = self._layout(key)
                    stack.append((key, layout))
                    stack.extend(
                        (child, None)
                        for _, _, entries in layout
                        for _, _, child in entries
                        if child is not None and child not in self.memo
                    )
                    continue
                self.memo[key] = self._freeze(key, layout)
            return self.memo[start]


@dataclass(frozen=True)
class NavTree:
    root: str
    order: tuple[str, ...]
    parents: Mapping[str, str]
    orphans: tuple[str, ...]
    expander: _Expander = field(repr=False, compare=False)
    positions: Mapping[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        positions = {docname: idx for idx, docname in enumerate(self.order)}
        object.__setattr__(self, "positions", MappingProxyType(positions))

    @property
    def nodes(self) -> tuple[NavNode, ...]:
        """Top-level entries of the site navigation."""
        return tuple(node for bucket in self.expander.buckets(self.root) for node in bucket)

    def local(self, docname: str, index: int) -> tuple[NavNode, ...]:
        return self.expander.buckets(docname)[index]

    def neighbours(self, docname: str) -> tuple[Optional[str], Optional[str]]:
        idx = self.positions.get(docname)
        if idx is None:
            return None, None
        prev_doc = self.order[idx - 1] if idx > 0 else None
        next_doc = self.order[idx + 1] if idx + 1 < len(self.order) else None
        return prev_doc, next_doc

    def ancestors(self, docname: str) -> list[str]:
        chain = []
        current = self.parents.get(docname)
        while current is not None and current not in chain:
            chain.append(current)
            current = self.parents.get(current)
        chain.reverse()
        return chain


def _edges(table: ReferenceTable, docname: str) -> list[str]:
    return [entry.docname for bucket in table.toctrees[docname] for entry in bucket if not entry.url]


def check_cycles(table: ReferenceTable, docs: Mapping[str, Document], first: str = "") -> None:
    """Reject any document that includes itself, directly or transitively."""
    on_path, done = set(), set()
    starts = ([first] if first else []) + list(table.docnames)
    for start in starts:
        if start in done:
            continue
        path = [start]
        on_path.add(start)
        pending = [iter(_edges(table, start))]
        while pending:
            child = next(pending[-1], None)
            if child is None:
                pending.pop()
                finished = path.pop()
                on_path.discard(finished)
                done.add(finished)
                continue
            if child in on_path:
                cycle = path[path.index(child) :] + [child]
                raise CyclicNavigationError(cycle, str(docs[path[-1]].source))
            if child not in done:
                path.append(child)
                on_path.add(child)
                pending.append(iter(_edges(table, child)))


def walk(nodes: Iterable[NavNode]) -> Iterator[NavNode]:
    """Depth-first, pre-order."""
    stack = list(reversed(list(nodes)))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def build_navigation(table: ReferenceTable, documents: Iterable[Document], root_doc: str) -> NavTree:
    docs = {doc.docname: doc for doc in documents}
    if root_doc not in docs:
        raise ConfigError(f"Root document not found: {root_doc!r}")
    check_cycles(table, docs, root_doc)
    expander = _Expander(table, docs)

    order = [root_doc]
    parents: dict[str, str] = {}
    seen = {root_doc}
    parent_stack: list[tuple[NavNode, str]] = [
        (node, root_doc) for bucket in reversed(expander.buckets(root_doc)) for node in reversed(bucket)
    ]
    while parent_stack:
        node, parent = parent_stack.pop()
        if node.docname is not None:
            # A repeated document has the same children as its first occurrence.
            if node.docname in seen:
                continue
            seen.add(node.docname)
            order.append(node.docname)
            parents[node.docname] = parent
        owner = node.docname if node.docname is not None else parent
        parent_stack.extend((child, owner) for child in reversed(node.children))

    orphans = tuple(name for name in table.docnames if name not in seen)
    return NavTree(
        root=root_doc,
        order=tuple(order),
        parents=MappingProxyType(parents),
        orphans=orphans,
        expander=expander,
    )
