from __future__ import annotations

import html
import itertools
from pathlib import Path
from typing import Iterator, Sequence

from .highlight import highlight_code
from .models import (
    Block,
    BulletList,
    CodeBlock,
    Directive,
    Emphasis,
    ExternalLink,
    Heading,
    HyperlinkRef,
    LabelMarker,
    Literal,
    NavNode,
    Paragraph,
    ResolvedTarget,
    RoleRef,
    Strong,
    Text,
)
from .navigation import NavTree
from .resolve import ReferenceTable
from .utils import page_path, relative_url

ADMONITION_TITLES = {
    "note": "Note",
    "warning": "Warning",
    "tip": "Tip",
    "important": "Important",
    "seealso": "See also",
}


def render_template(template: str, **context: str) -> str:
    output = template
    late_keys = {"content", "sidebar"}
    for key, value in context.items():
        if key in late_keys:
            continue
        output = output.replace(f"{{{{{key}}}}}", value)
    for key in late_keys:
        if key in context:
            output = output.replace(f"{{{{{key}}}}}", context[key])
    return output


def read_template(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def target_url(docname: str, target: ResolvedTarget) -> str:
    if target.external:
        return target.url
    if target.docname == docname:
        return f"#{target.anchor}" if target.anchor else relative_url(docname, page_path(docname))
    return relative_url(docname, page_path(target.docname), target.anchor)


def _link(href: str, text: str, internal: bool = True) -> str:
    kind = "internal" if internal else "external"
    return f'<a class="reference {kind}" href="{html.escape(href)}">{text}</a>'


def render_inline(inlines, docname: str, table: ReferenceTable) -> str:
    parts = []
    for node in inlines:
        if isinstance(node, Text):
            parts.append(html.escape(node.text))
        elif isinstance(node, Emphasis):
            parts.append(f"<em>{html.escape(node.text)}</em>")
        elif isinstance(node, Strong):
            parts.append(f"<strong>{html.escape(node.text)}</strong>")
        elif isinstance(node, Literal):
            parts.append(f'<code class="literal">{html.escape(node.text)}</code>')
        elif isinstance(node, ExternalLink):
            parts.append(_link(node.url, html.escape(node.text), internal=False))
        elif isinstance(node, RoleRef):
            target = table.lookup(docname, node.role, node.target)
            parts.append(_link(target_url(docname, target), html.escape(node.text or target.title)))
        elif isinstance(node, HyperlinkRef):
            target = table.lookup(docname, "hyperlink", node.target)
            parts.append(_link(target_url(docname, target), html.escape(node.text), internal=not target.external))
    return "".join(parts)


def render_code_block(block: CodeBlock) -> str:
    anchor = f' id="{block.anchor}"' if block.anchor else ""
    caption = ""
    if block.caption:
        caption = f'<div class="code-block-caption">{html.escape(block.caption)}</div>'
    highlighted = highlight_code(block.code, block.language, block.linenos, block.emphasize)
    return f'<div class="code-block literal-block-wrapper"{anchor}>{caption}{highlighted}</div>'


def _nav_title(node: NavNode) -> str:
    title = html.escape(node.title)
    return f"{node.number}. {title}" if node.number else title


def render_toc_nodes(
    nodes: Sequence[NavNode],
    docname: str,
    table: ReferenceTable,
    maxdepth: int = 0,
    titlesonly: bool = False,
) -> str:
    """Nested ``<ul>`` listing of ``nodes``; iterative so any depth renders.

    A document listed more than once has its children expanded the first time only.
    """
    parts: list[str] = []
    expanded: set[str] = set()
    # Work items are literal HTML strings, node tuples still to expand, or a
    # document node whose children are listed unless already shown.
    stack: list = [tuple(nodes)]
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            parts.append(item)
            continue
        if isinstance(item, NavNode):
            if item.docname not in expanded:
                expanded.add(item.docname)
                stack.append(item.children)
            continue
        visible = [node for node in item if not (maxdepth and node.depth > maxdepth)]
        if not visible:
            continue
        work: list = ["<ul>"]
        for node in visible:
            if node.is_group:
                work += [
                    f'<li class="toctree-caption"><span class="caption">{html.escape(node.title)}</span>',
                    node.children,
                    "</li>",
                ]
                continue
            if node.url:
                work.append(
                    f'<li class="toctree-l{node.depth}">{_link(node.url, html.escape(node.title), False)}</li>'
                )
                continue
            href = relative_url(docname, page_path(node.docname))
            opening = f'<li class="toctree-l{node.depth}">{_link(href, _nav_title(node))}'
            if not titlesonly and (not maxdepth or node.depth < maxdepth):
                sections = [
                    f'<li class="toctree-l{node.depth + 1}">'
                    f"{_link(relative_url(docname, page_path(node.docname), anchor), html.escape(text))}</li>"
                    for anchor, text in table.sections.get(node.docname, ())
                ]
                if sections:
                    opening += f"<ul>{''.join(sections)}</ul>"
            work += [opening, node, "</li>"]
        work.append("</ul>")
        stack.extend(reversed(work))
    return "".join(parts)


def render_toctree(directive: Directive, index: int, docname: str, nav: NavTree, table: ReferenceTable) -> str:
    if directive.flag("hidden"):
        return ""
    nodes = nav.local(docname, index)
    caption = directive.options.get("caption", "")
    if caption and nodes and nodes[0].is_group:
        nodes = nodes[0].children
    maxdepth = int(directive.options.get("maxdepth", "0"))
    body = render_toc_nodes(nodes, docname, table, maxdepth, directive.flag("titlesonly"))
    caption_html = f'<p class="caption">{html.escape(caption)}</p>' if caption else ""
    return f'<div class="toctree-wrapper compound">{caption_html}{body}</div>'


def render_blocks(
    blocks: Sequence[Block],
    docname: str,
    nav: NavTree,
    table: ReferenceTable,
    toctree_index: Iterator[int],
) -> str:
    parts = []
    for block in blocks:
        if isinstance(block, Heading):
            level = min(block.level, 6)
            parts.append(
                f'<h{level} id="{block.anchor}">{html.escape(block.text)}'
                f'<a class="headerlink" href="#{block.anchor}" title="Link to this heading">¶</a></h{level}>'
            )
        elif isinstance(block, Paragraph):
            parts.append(f"<p>{render_inline(block.inlines, docname, table)}</p>")
        elif isinstance(block, BulletList):
            items = "".join(f"<li>{render_inline(item, docname, table)}</li>" for item in block.items)
            parts.append(f"<ul>{items}</ul>")
        elif isinstance(block, CodeBlock):
            parts.append(render_code_block(block))
        elif isinstance(block, LabelMarker):
            parts.append(f'<span id="{block.anchor}"></span>')
        elif isinstance(block, Directive) and block.kind == "toctree":
            parts.append(render_toctree(block, next(toctree_index), docname, nav, table))
        elif isinstance(block, Directive):
            title = ADMONITION_TITLES[block.kind]
            body = render_blocks(block.children, docname, nav, table, toctree_index)
            parts.append(
                f'<div class="admonition {block.kind}"><p class="admonition-title">{title}</p>{body}</div>'
            )
    return "\n".join(parts)


def render_body(blocks: Sequence[Block], docname: str, nav: NavTree, table: ReferenceTable) -> str:
    return render_blocks(blocks, docname, nav, table, itertools.count())
