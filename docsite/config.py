from __future__ import annotations

import html
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import markdown

from .errors import ConfigError
from .highlight import style_css
from .render import read_template

try:
    import tomllib as toml
except ImportError:
    try:
        import tomli as toml
    except ImportError:  # pragma: no cover - optional dependency
        toml = None

try:
    import yaml
except ImportError:  # pragma: no cover - optional dependency
    yaml = None

PACKAGE_DIR = Path(__file__).resolve().parent
THEMES = {"default": PACKAGE_DIR / "templates"}
THEME_DEFAULTS = {
    "nav_depth": 3,
    "show_prev_next": True,
    "show_source_link": True,
    "pygments_style": "default",
}
CONFIG_KEYS = {
    "source",
    "output",
    "static",
    "templates",
    "root_doc",
    "project",
    "copyright",
    "source_suffix",
    "include",
    "exclude",
    "build_workers",
    "clean",
    "incremental",
    "lock_file",
    "about_text",
    "about_html",
    "about_file",
    "theme",
    "theme_options",
}


def load_config(path: Path) -> dict:
    if not path.exists():
        return {}
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        if toml is None:
            raise ConfigError("TOML config requires tomllib (Python 3.11+) or tomli.")
        try:
            data = toml.loads(text)
        except toml.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in config file {path}: {exc}") from None
    elif suffix in {".yml", ".yaml"}:
        if yaml is None:
            raise ConfigError("YAML config requires PyYAML.")
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in config file {path}: {exc}") from None
        if data is None:
            return {}
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from None
    if not isinstance(data, dict):
        raise ConfigError(f"Config must be a mapping: {path}")
    unknown = sorted(set(data) - CONFIG_KEYS)
    if unknown:
        raise ConfigError(f"Unknown config option(s) in {path}: {', '.join(unknown)}")
    return data


def _config_relative(args: object, value: str) -> Path:
    path = Path(value)
    if not path.is_absolute():
        config_path = Path(getattr(args, "config", "docsite.toml")).resolve()
        path = config_path.parent / path
    return path


def resolve_about_html(args: object) -> str:
    html_snippet = (getattr(args, "about_html", "") or "").strip()
    if html_snippet:
        return html_snippet

    file_value = (getattr(args, "about_file", "") or "").strip()
    if file_value:
        path = _config_relative(args, file_value)
        if not path.exists():
            raise ConfigError(f"About file not found: {path}")
        text = path.read_text(encoding="utf-8")
        suffix = path.suffix.lower()
        if suffix in {".html", ".htm"}:
            return text
        if suffix == ".md":
            md = markdown.Markdown(extensions=["fenced_code", "tables"])
            return md.convert(text)
        escaped = html.escape(text).replace("\n", "<br>")
        return f"<p>{escaped}</p>"

    text_value = (getattr(args, "about_text", "") or "").strip()
    if text_value:
        escaped = html.escape(text_value).replace("\n", "<br>")
        return f"<p>{escaped}</p>"
    return ""


def _strict_bool(name: str, value: object) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false", "yes", "no", "on", "off", "1", "0"}:
        return value.strip().lower() in {"true", "yes", "on", "1"}
    raise ConfigError(f"Theme option {name} must be a boolean, got {value!r}")


def _strict_int(name: str, value: object) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"Theme option {name} must be an integer, got {value!r}")
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ConfigError(f"Theme option {name} must be an integer, got {value!r}") from None
    if number < 1:
        raise ConfigError(f"Theme option {name} must be at least 1, got {number}")
    return number


@dataclass(frozen=True)
class Theme:
    """Everything the renderer needs besides the document and navigation."""

    name: str
    template: str
    stylesheet: str
    pygments_css: str
    project: str
    copyright: str
    about_html: str
    nav_depth: int
    show_prev_next: bool
    show_source_link: bool
    pygments_style: str


def parse_theme_options(pairs: Optional[list[str]]) -> dict:
    options = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise ConfigError(f"Theme option must be key=value: {pair!r}")
        key, value = pair.split("=", 1)
        options[key.strip()] = value.strip()
    return options


def load_theme(args: object, options: Optional[dict] = None) -> Theme:
    name = getattr(args, "theme", "default") or "default"
    if name not in THEMES:
        raise ConfigError(f"Unknown theme: {name}")
    options = dict(options or {})
    unknown = sorted(set(options) - set(THEME_DEFAULTS))
    if unknown:
        raise ConfigError(f"Unknown theme option(s): {', '.join(unknown)}")
    merged = {**THEME_DEFAULTS, **options}

    theme_dir = THEMES[name]
    templates_value = (getattr(args, "templates", "") or "").strip()
    template_path = theme_dir / "base.html"
    if templates_value:
        override = _config_relative(args, templates_value) / "base.html"
        if not override.exists():
            raise ConfigError(f"Template not found: {override}")
        template_path = override

    pygments_style = str(merged["pygments_style"])
    return Theme(
        name=name,
        template=read_template(template_path),
        stylesheet=read_template(theme_dir / "docsite.css"),
        pygments_css=style_css(pygments_style),
        project=str(getattr(args, "project", "") or "Documentation"),
        copyright=str(getattr(args, "copyright", "") or ""),
        about_html=resolve_about_html(args),
        nav_depth=_strict_int("nav_depth", merged["nav_depth"]),
        show_prev_next=_strict_bool("show_prev_next", merged["show_prev_next"]),
        show_source_link=_strict_bool("show_source_link", merged["show_source_link"]),
        pygments_style=pygments_style,
    )
