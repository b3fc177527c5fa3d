from __future__ import annotations

import html
import json
from concurrent.futures import ThreadPoolExecutor
from typing import Optional, Sequence

from .config import Theme
from .models import Document, NavNode, Page
from .navigation import NavTree
from .render import render_body, render_template, target_url
from .resolve import ReferenceTable
from .utils import page_path, relative_url, root_prefix


def source_path(document: Document) -> str:
    return f"_sources/{document.docname}{document.source.suffix}.txt"


def build_nav_list(
    nodes: Sequence[NavNode],
    docname: str,
    current: set[str],
    max_depth: int,
    expanded: Optional[set[str]] = None,
) -> str:
    """Sidebar list; a document listed twice shows its children only the first time."""
    if expanded is None:
        expanded = set()
    items = []
    for node in nodes:
        if node.depth > max_depth:
            continue
        if node.is_group:
            items.append(
                f'<li class="caption-group"><p class="caption">{html.escape(node.title)}</p>'
                f"{build_nav_list(node.children, docname, current, max_depth, expanded)}</li>"
            )
            continue
        title = html.escape(node.title)
        if node.number:
            title = f"{node.number}. {title}"
        if node.url:
            items.append(f'<li><a class="reference external" href="{html.escape(node.url)}">{title}</a></li>')
            continue
        classes = [f"toctree-l{node.depth}"]
        if node.docname in current:
            classes.append("current")
        url = relative_url(docname, page_path(node.docname))
        children = ""
        if node.docname not in expanded:
            expanded.add(node.docname)
            children = build_nav_list(node.children, docname, current, max_depth, expanded)
        items.append(
            f'<li class="{" ".join(classes)}"><a class="reference internal" href="{url}">{title}</a>{children}</li>'
        )
    return f"<ul>{''.join(items)}</ul>" if items else ""


def build_sidebar(nav: NavTree, docname: str, theme: Theme) -> str:
    current = set(nav.ancestors(docname)) | {docname}
    panels = [
        '<div class="panel panel-nav">'
        f"{build_nav_list(nav.nodes, docname, current, theme.nav_depth)}"
        "</div>"
    ]
    if theme.about_html:
        panels.append(
            '<div class="panel">'
            "<h3>About</h3>"
            f"{theme.about_html}"
            "</div>"
        )
    return "".join(panels)


def build_breadcrumbs(nav: NavTree, docname: str, table: ReferenceTable) -> str:
    crumbs = []
    for ancestor in nav.ancestors(docname):
        url = relative_url(docname, page_path(ancestor))
        crumbs.append(f'<a href="{url}">{html.escape(table.titles[ancestor])}</a>')
    crumbs.append(f"<span>{html.escape(table.titles[docname])}</span>")
    return " &raquo; ".join(crumbs)


def build_relbar(nav: NavTree, document: Document, table: ReferenceTable, theme: Theme) -> tuple[str, str]:
    docname = document.docname
    links = []
    head = []
    if theme.show_prev_next:
        prev_doc, next_doc = nav.neighbours(docname)
        for rel, other, label in (("prev", prev_doc, "Previous"), ("next", next_doc, "Next")):
            if other is None:
                continue
            url = relative_url(docname, page_path(other))
            title = html.escape(table.titles[other])
            links.append(f'<a class="relbar-{rel}" rel="{rel}" href="{url}">{label}: {title}</a>')
            head.append(f'  <link rel="{rel}" title="{title}" href="{url}">')
    if theme.show_source_link:
        url = relative_url(docname, source_path(document))
        links.append(f'<a class="relbar-source" href="{url}" rel="nofollow">Show source</a>')
    relbar = f'<nav class="relbar">{"".join(links)}</nav>' if links else ""
    return relbar, "\n".join(head)


def build_page(document: Document, nav: NavTree, table: ReferenceTable, theme: Theme) -> Page:
    """Render one document. Output depends only on the arguments."""
    docname = document.docname
    root = root_prefix(docname)
    relbar, extra_head = build_relbar(nav, document, table, theme)
    content = (
        f'<article class="body" role="main">{render_body(document.blocks, docname, nav, table)}</article>'
    )
    footer = html.escape(theme.copyright) if theme.copyright else ""
    html_doc = render_template(
        theme.template,
        title=html.escape(f"{document.title} | {theme.project}"),
        root=root,
        root_page=page_path(nav.root),
        project=html.escape(theme.project),
        breadcrumbs=build_breadcrumbs(nav, docname, table),
        relbar=relbar,
        footer=footer,
        extra_head=extra_head,
        content=content,
        sidebar=build_sidebar(nav, docname, theme),
    )
    return Page(page_path(docname), html_doc)


def render_pages(
    documents: Sequence[Document],
    nav: NavTree,
    table: ReferenceTable,
    theme: Theme,
    workers: int = 1,
) -> list[Page]:
    def render(document: Document) -> Page:
        return build_page(document, nav, table, theme)

    workers = max(1, int(workers or 1))
    if workers <= 1 or len(documents) <= 1:
        return [render(document) for document in documents]
    with ThreadPoolExecutor(max_workers=min(workers, len(documents))) as executor:
        return list(executor.map(render, documents))


def build_source_pages(documents: Sequence[Document]) -> list[Page]:
    return [Page(source_path(document), document.raw) for document in documents]


def _node_entry(node: NavNode, parent: Optional[int]) -> dict:
    entry = {"title": node.title, "depth": node.depth, "parent": parent}
    if node.docname is not None:
        entry["docname"] = node.docname
        entry["url"] = page_path(node.docname)
    if node.url:
        entry["url"] = node.url
    if node.caption:
        entry["caption"] = node.caption
    if node.number:
        entry["number"] = node.number
    if node.hidden:
        entry["hidden"] = True
    return entry


def flatten_tree(nodes: Sequence[NavNode]) -> list[dict]:
    """Pre-order list of nodes; ``parent`` is the index of the enclosing entry.

    A document listed more than once is expanded at its first entry only; later
    entries point back to it with ``same_as``.
    """
    entries: list[dict] = []
    first: dict[str, int] = {}
    stack: list[tuple[NavNode, Optional[int]]] = [(node, None) for node in reversed(nodes)]
    while stack:
        node, parent = stack.pop()
        index = len(entries)
        entry = _node_entry(node, parent)
        entries.append(entry)
        if node.docname is not None:
            if node.docname in first:
                entry["same_as"] = first[node.docname]
                continue
            first[node.docname] = index
        stack.extend((child, index) for child in reversed(node.children))
    return entries


def build_navigation_index(nav: NavTree, table: ReferenceTable) -> Page:
    labels = {}
    for name in sorted(table.labels):
        target = table.labels[name]
        labels[name] = {"title": target.title, "url": target_url("", target)}
    index = {
        "root": nav.root,
        "pages": {name: {"title": table.titles[name], "url": page_path(name)} for name in table.docnames},
        "order": list(nav.order),
        "tree": flatten_tree(nav.nodes),
        "labels": labels,
        "orphans": list(nav.orphans),
    }
    return Page("navigation.json", json.dumps(index, indent=2, ensure_ascii=True) + "\n")


def theme_assets(theme: Theme) -> list[Page]:
    return [
        Page("_static/docsite.css", theme.stylesheet),
        Page("_static/pygments.css", theme.pygments_css),
    ]
