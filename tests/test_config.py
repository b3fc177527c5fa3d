import pytest

from docsite.config import load_config, load_theme, parse_theme_options, resolve_about_html
from docsite.errors import ConfigError


def test_missing_config_is_empty(tmp_path):
    assert load_config(tmp_path / "docsite.toml") == {}


def test_toml_yaml_and_json(tmp_path):
    toml_path = tmp_path / "docsite.toml"
    toml_path.write_text('project = "Docs"\nbuild_workers = 2\n', encoding="utf-8")
    yaml_path = tmp_path / "docsite.yaml"
    yaml_path.write_text("project: Docs\nexclude:\n  - drafts/*\n", encoding="utf-8")
    json_path = tmp_path / "docsite.json"
    json_path.write_text('{"project": "Docs"}', encoding="utf-8")
    assert load_config(toml_path) == {"project": "Docs", "build_workers": 2}
    assert load_config(yaml_path) == {"project": "Docs", "exclude": ["drafts/*"]}
    assert load_config(json_path) == {"project": "Docs"}


def test_invalid_toml(tmp_path):
    path = tmp_path / "docsite.toml"
    path.write_text("project = \n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(path)


def test_unknown_key_rejected(tmp_path):
    path = tmp_path / "docsite.json"
    path.write_text('{"projcet": "typo"}', encoding="utf-8")
    with pytest.raises(ConfigError, match="projcet"):
        load_config(path)


def test_theme_defaults(theme):
    assert theme.name == "default"
    assert theme.nav_depth == 3
    assert theme.show_prev_next is True
    assert "{{content}}" in theme.template
    assert ".highlight" in theme.pygments_css


def test_theme_options_are_validated(theme_args):
    theme = load_theme(theme_args, parse_theme_options(["nav_depth=1", "show_prev_next=no"]))
    assert theme.nav_depth == 1
    assert theme.show_prev_next is False
    with pytest.raises(ConfigError, match="must be an integer"):
        load_theme(theme_args, {"nav_depth": "deep"})
    with pytest.raises(ConfigError, match="must be a boolean"):
        load_theme(theme_args, {"show_source_link": "maybe"})
    with pytest.raises(ConfigError, match="Unknown Pygments style"):
        load_theme(theme_args, {"pygments_style": "no-such-style"})


def test_unknown_theme(theme_args):
    theme_args.theme = "fancy"
    with pytest.raises(ConfigError, match="Unknown theme: fancy"):
        load_theme(theme_args)


def test_theme_option_pairs_need_equals():
    with pytest.raises(ConfigError):
        parse_theme_options(["nav_depth"])


def test_template_override(tmp_path, theme_args):
    (tmp_path / "base.html").write_text("<main>{{content}}</main>", encoding="utf-8")
    theme_args.templates = str(tmp_path)
    assert load_theme(theme_args).template == "<main>{{content}}</main>"
    theme_args.templates = str(tmp_path / "missing")
    with pytest.raises(ConfigError, match="Template not found"):
        load_theme(theme_args)


def test_about_markdown_file(tmp_path, theme_args):
    about = tmp_path / "about.md"
    about.write_text("Built with **care**.\n", encoding="utf-8")
    theme_args.about_file = str(about)
    assert resolve_about_html(theme_args) == "<p>Built with <strong>care</strong>.</p>"


def test_about_text_is_escaped(theme_args):
    theme_args.about_text = "a < b\nnext"
    assert resolve_about_html(theme_args) == "<p>a &lt; b<br>next</p>"


def test_about_file_missing(tmp_path, theme_args):
    theme_args.about_file = str(tmp_path / "nope.md")
    with pytest.raises(ConfigError, match="About file not found"):
        resolve_about_html(theme_args)
