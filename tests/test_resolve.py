"""
Tests for cross-reference resolution: labels, documents, hyperlinks and toctree globs.
"""

import pytest

from docsite.errors import AmbiguousReferenceError, ResolutionError, UnresolvedReferenceError
from docsite.models import TocEntry
from docsite.resolve import glob_regex, join_docname, resolve


def _docnames(entries):
    return [entry.docname for entry in entries]


GLOB_INDEX = """
Index
=====

.. toctree::
   :glob:

   guide/*
"""


# ===== Name resolution =====


def test_join_docname():
    assert join_docname("guide/index", "install") == "guide/install"
    assert join_docname("guide/index", "/api/ref") == "api/ref"
    assert join_docname("index", "guide/setup.rst") == "guide/setup"
    assert join_docname("guide/index", "../faq") == "faq"


def test_glob_regex_segments():
    assert glob_regex("guide/*").match("guide/a")
    assert not glob_regex("guide/*").match("guide/a/b")
    assert glob_regex("guide/**").match("guide/a/b")
    assert glob_regex("ch?").match("ch1")
    assert not glob_regex("ch?").match("ch10")
    assert not glob_regex("[!a]*").match("abc")
    assert glob_regex("[!a]*").match("bcd")


# ===== Successful lookups =====


def test_labels_docs_and_hyperlinks(corpus):
    documents = corpus(
        {
            "index.rst": """
            Index
            =====

            .. _Python: https://python.org

            Read :ref:`install-guide`, :doc:`Guide <guide/index>`, `Python`_ and `Section One`_.

            Section One
            -----------
            """,
            "guide/index.rst": """
            Guide Title
            ===========

            .. _install-guide:

            Installing
            ----------
            """,
        }
    )
    table = resolve(documents)
    label = table.lookup("index", "ref", "install-guide")
    assert (label.docname, label.anchor, label.title) == ("guide/index", "installing", "Installing")
    assert table.lookup("index", "doc", "guide/index").title == "Guide Title"
    assert table.lookup("index", "hyperlink", "Python").url == "https://python.org"
    assert table.lookup("index", "hyperlink", "Section One").anchor == "section-one"
    assert dict(table.titles) == {"guide/index": "Guide Title", "index": "Index"}
    assert table.sections["index"] == (("section-one", "Section One"),)


def test_relative_toctree_entries(corpus):
    documents = corpus(
        {
            "index.rst": "Index\n=====\n\n.. toctree::\n\n   guide/index\n",
            "guide/index.rst": "Guide\n=====\n\n.. toctree::\n\n   install\n   Home </index>\n",
            "guide/install.rst": "Install\n=======\n",
        }
    )
    table = resolve(documents)
    assert table.toctree_entries("guide/index", 0) == (
        TocEntry("", "guide/install"),
        TocEntry("Home", "index"),
    )


def test_url_entries_and_reversed(corpus):
    documents = corpus(
        {
            "index.rst": """
            Index
            =====

            .. toctree::
               :reversed:

               a
               b
               Project home <https://example.com>
            """,
            "a.rst": "Alpha\n=====\n",
            "b.rst": "Beta\n====\n",
        }
    )
    entries = resolve(documents).toctree_entries("index", 0)
    assert entries == (
        TocEntry("Project home", "", url="https://example.com"),
        TocEntry("", "b"),
        TocEntry("", "a"),
    )


# ===== Globs =====


def test_glob_matches_are_lexicographic(corpus):
    documents = corpus(
        {
            "index.rst": GLOB_INDEX,
            "guide/zeta.rst": "Zeta\n====\n",
            "guide/alpha.rst": "Alpha\n=====\n",
            "guide/mid.rst": "Mid\n===\n",
        }
    )
    table = resolve(documents)
    assert _docnames(table.toctree_entries("index", 0)) == ["guide/alpha", "guide/mid", "guide/zeta"]


def test_glob_ignores_input_order(corpus):
    """Resolution does not depend on the order documents are handed in."""
    documents = corpus(
        {
            "index.rst": GLOB_INDEX,
            "guide/b.rst": "B\n==\n",
            "guide/a.rst": "A\n==\n",
            "guide/c.rst": "C\n==\n",
        }
    )
    forward = resolve(documents)
    backward = resolve(list(reversed(documents)))
    assert forward.toctree_entries("index", 0) == backward.toctree_entries("index", 0)
    assert forward.docnames == backward.docnames


def test_glob_skips_entries_already_listed(corpus):
    documents = corpus(
        {
            "index.rst": "Index\n=====\n\n.. toctree::\n   :glob:\n\n   guide/mid\n   guide/*\n",
            "guide/zeta.rst": "Zeta\n====\n",
            "guide/alpha.rst": "Alpha\n=====\n",
            "guide/mid.rst": "Mid\n===\n",
        }
    )
    entries = resolve(documents).toctree_entries("index", 0)
    assert _docnames(entries) == ["guide/mid", "guide/alpha", "guide/zeta"]


def test_glob_star_stays_in_one_directory(corpus):
    documents = corpus(
        {
            "index.rst": GLOB_INDEX,
            "guide/a.rst": "A\n==\n",
            "guide/deep/b.rst": "B\n==\n",
        }
    )
    assert _docnames(resolve(documents).toctree_entries("index", 0)) == ["guide/a"]


def test_glob_without_matches_is_unresolved(corpus):
    documents = corpus({"index.rst": GLOB_INDEX})
    with pytest.raises(ResolutionError) as excinfo:
        resolve(documents)
    (error,) = excinfo.value.errors
    assert isinstance(error, UnresolvedReferenceError)
    assert error.kind == "toctree-glob"
    assert error.target == "guide/*"


# ===== Failures =====


def test_unresolved_ref_names_file_line_and_label(corpus):
    documents = corpus({"index.rst": "Index\n=====\n\nSee :ref:`missing-label`.\n"})
    with pytest.raises(ResolutionError) as excinfo:
        resolve(documents)
    (error,) = excinfo.value.of_type(UnresolvedReferenceError)
    assert error.path.endswith("index.rst")
    assert error.line == 4
    assert error.target == "missing-label"
    assert "index.rst:4" in str(error)
    assert "missing-label" in str(error)


def test_reference_in_section_title_must_resolve(corpus):
    documents = corpus({"index.rst": "See :ref:`nowhere`\n====================\n"})
    with pytest.raises(ResolutionError) as excinfo:
        resolve(documents)
    (error,) = excinfo.value.of_type(UnresolvedReferenceError)
    assert (error.line, error.target) == (1, "nowhere")


def test_duplicate_label_is_ambiguous(corpus):
    documents = corpus(
        {
            "a.rst": ".. _shared:\n\nAlpha\n=====\n",
            "b.rst": ".. _shared:\n\nBeta\n====\n",
        }
    )
    with pytest.raises(ResolutionError) as excinfo:
        resolve(documents)
    (error,) = excinfo.value.of_type(AmbiguousReferenceError)
    assert error.label == "shared"
    first, second = error.sources
    assert first.endswith("a.rst")
    assert second.endswith("b.rst")
    assert "a.rst" in str(error) and "b.rst" in str(error)


def test_all_problems_are_reported_together(corpus):
    documents = corpus(
        {
            "index.rst": "Index\n=====\n\n:ref:`nope` and :doc:`missing`\n\n.. toctree::\n\n   ghost\n",
            "a.rst": ".. _dup:\n\nAlpha\n=====\n",
            "b.rst": ".. _dup:\n\nBeta\n====\n",
        }
    )
    with pytest.raises(ResolutionError) as excinfo:
        resolve(documents)
    error = excinfo.value
    assert len(error.errors) == 4
    assert len(error.of_type(UnresolvedReferenceError)) == 3
    assert len(error.diagnostics()) == 4
