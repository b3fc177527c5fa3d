import argparse
import textwrap
from pathlib import Path

import pytest

from docsite.config import load_theme
from docsite.content import discover_sources, load_documents, parse_text
from docsite.navigation import build_navigation
from docsite.resolve import resolve


def write_tree(root: Path, files: dict) -> Path:
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text).lstrip("\n"), encoding="utf-8")
    return root


@pytest.fixture
def parse():
    """Parse a dedented snippet as the document ``page``."""

    def _parse(text, docname="page"):
        return parse_text(textwrap.dedent(text).lstrip("\n"), Path(f"{docname}.rst"), docname)

    return _parse


@pytest.fixture
def corpus(tmp_path):
    """Write files under a source dir and return the parsed documents."""

    def _corpus(files):
        source = write_tree(tmp_path / "src", files)
        return load_documents(discover_sources(source), source)

    return _corpus


@pytest.fixture
def site(corpus):
    """Parsed, resolved and navigated corpus: (documents, table, nav)."""

    def _site(files, root_doc="index"):
        documents = corpus(files)
        table = resolve(documents)
        return documents, table, build_navigation(table, documents, root_doc)

    return _site


@pytest.fixture
def theme_args():
    return argparse.Namespace(
        config="docsite.toml",
        theme="default",
        templates="",
        project="Demo Project",
        copyright="2024 Demo",
        about_html="",
        about_file="",
        about_text="",
    )


@pytest.fixture
def theme(theme_args):
    return load_theme(theme_args)
