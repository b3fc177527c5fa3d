"""
Tests for HTML rendering of pages, toctrees and the navigation index.
"""

import json

import pytest

from docsite.highlight import highlight_code, parse_line_ranges
from docsite.pages import (
    build_nav_list,
    build_navigation_index,
    build_page,
    build_source_pages,
    flatten_tree,
    render_pages,
)
from docsite.render import render_template, render_toc_nodes

SITE = {
    "index.rst": """
    Welcome
    =======

    Read :ref:`install-guide` or :doc:`guide/usage`.

    .. toctree::
       :maxdepth: 2

       guide/install
       guide/usage

    .. code-block:: python

       print("hi")
    """,
    "guide/install.rst": """
    .. _install-guide:

    Installing
    ==========

    Back to :doc:`/index`.

    Requirements
    ------------

    Text.
    """,
    "guide/usage.rst": """
    Usage
    =====

    .. note::

       Careful <tags> & stuff.

    .. toctree::
       :hidden:

       /extra
    """,
    "extra.rst": "Extra\n=====\n",
}


@pytest.fixture
def rendered(site, theme):
    documents, table, nav = site(SITE)
    pages = render_pages(documents, nav, table, theme)
    return {page.path: page.text for page in pages}


def test_cross_references_become_relative_links(rendered):
    index = rendered["index.html"]
    assert '<a class="reference internal" href="guide/install.html#installing">Installing</a>' in index
    assert '<a class="reference internal" href="guide/usage.html">Usage</a>' in index
    install = rendered["guide/install.html"]
    assert '<a class="reference internal" href="../index.html">Welcome</a>' in install


def test_toctree_listing_includes_sections(rendered):
    index = rendered["index.html"]
    assert '<div class="toctree-wrapper compound">' in index
    assert 'href="guide/install.html#requirements"' in index


def test_hidden_toctree_is_not_in_body(rendered):
    usage = rendered["guide/usage.html"]
    body = usage.split('<article class="body" role="main">', 1)[1]
    assert "toctree-wrapper" not in body


def test_admonition_and_escaping(rendered):
    usage = rendered["guide/usage.html"]
    assert '<div class="admonition note"><p class="admonition-title">Note</p>' in usage
    assert "Careful &lt;tags&gt; &amp; stuff." in usage


def test_code_is_highlighted(rendered):
    assert '<div class="highlight">' in rendered["index.html"]


def test_page_chrome(rendered):
    install = rendered["guide/install.html"]
    assert '<link rel="stylesheet" href="../_static/docsite.css">' in install
    assert "<title>Installing | Demo Project</title>" in install
    assert 'class="toctree-l1 current"' in install
    assert 'rel="prev" href="../index.html">Previous: Welcome</a>' in install
    assert 'rel="next" href="usage.html">Next: Usage</a>' in install
    assert 'href="../_sources/guide/install.rst.txt"' in install
    assert "2024 Demo" in install


def test_breadcrumbs(rendered):
    usage = rendered["guide/usage.html"]
    assert '<a href="../index.html">Welcome</a> &raquo; <span>Usage</span>' in usage


def test_rendering_is_deterministic(site, theme):
    """Serial and parallel rendering give byte-identical pages."""
    documents, table, nav = site(SITE)
    serial = render_pages(documents, nav, table, theme, workers=1)
    parallel = render_pages(documents, nav, table, theme, workers=4)
    assert serial == parallel
    again = build_page(documents[0], nav, table, theme)
    assert again == serial[0]


def test_navigation_index(site):
    _, table, nav = site(SITE)
    page = build_navigation_index(nav, table)
    assert page.path == "navigation.json"
    data = json.loads(page.text)
    assert data["root"] == "index"
    assert data["order"] == ["index", "guide/install", "guide/usage", "extra"]
    assert data["labels"]["install-guide"] == {"title": "Installing", "url": "guide/install.html#installing"}
    tree = data["tree"]
    assert [entry["docname"] for entry in tree] == ["guide/install", "guide/usage", "extra"]
    assert tree[2]["parent"] == 1
    assert tree[2]["hidden"] is True


SHARED = {
    "index.rst": "Home\n====\n\n.. toctree::\n\n   alpha\n   beta\n",
    "alpha.rst": "Alpha\n=====\n\n.. toctree::\n\n   shared\n",
    "beta.rst": "Beta\n====\n\n.. toctree::\n\n   shared\n",
    "shared.rst": "Shared\n======\n\n.. toctree::\n\n   leaf\n",
    "leaf.rst": "Leaf\n====\n",
}


def test_shared_document_is_expanded_once(site):
    """A document listed under two parents shows its children under the first only."""
    _, table, nav = site(SHARED)
    tree = flatten_tree(nav.nodes)
    assert [entry["docname"] for entry in tree] == ["alpha", "shared", "leaf", "beta", "shared"]
    assert tree[4]["same_as"] == 1
    assert "same_as" not in tree[1]
    assert render_toc_nodes(nav.nodes, "index", table).count('href="leaf.html"') == 1
    assert build_nav_list(nav.nodes, "index", set(), 5).count('href="leaf.html"') == 1


def test_source_pages(site):
    documents, _, _ = site(SITE)
    paths = [page.path for page in build_source_pages(documents)]
    assert "_sources/guide/install.rst.txt" in paths


def test_render_template_fills_content_last():
    assert render_template("{{title}} {{content}}", title="T", content="{{title}}") == "T {{title}}"


def test_unknown_language_falls_back_to_plain_text():
    assert highlight_code("<x>", "no-such-language") == '<div class="highlight"><pre>&lt;x&gt;</pre></div>'


def test_parse_line_ranges():
    assert parse_line_ranges("1,3-5") == [1, 3, 4, 5]
    assert parse_line_ranges("2-", limit=4) == [2, 3, 4]
    with pytest.raises(ValueError):
        parse_line_ranges("5-2")
