from __future__ import annotations

import argparse
import datetime as dt
import json
import os
import sys
import time
from pathlib import Path
from typing import Optional, Sequence

from .cache import LOCK_VERSION, generator_hash, hash_paths, hash_text, list_files, load_lock, write_lock
from .config import load_config, load_theme, parse_theme_options
from .content import DEFAULT_EXCLUDE, discover_sources, load_documents
from .errors import BuildError, ConfigError, ParseError
from .navigation import build_navigation
from .output import collect_files, prune, write_files
from .pages import build_navigation_index, build_source_pages, render_pages, theme_assets
from .resolve import resolve
from .utils import check_output_dir, parse_bool, parse_int, parse_list

SETTINGS_IGNORED = {"quiet", "incremental", "build_workers", "lock_file"}


def _worker_count(value: object) -> int:
    workers = parse_int(value, 0)
    if workers <= 0:
        workers = os.cpu_count() or 1
    return max(1, min(workers, 32))


def build_site(args: argparse.Namespace) -> bool:
    """Run one build. Returns False when nothing changed since the last build."""
    quiet = parse_bool(getattr(args, "quiet", False))

    def info(message: str) -> None:
        if not quiet:
            print(message)

    source_dir = Path(args.source)
    output_dir = Path(args.output)
    if not source_dir.is_dir():
        raise ConfigError(f"Source directory not found: {source_dir}")
    check_output_dir(output_dir, source_dir)
    static_dir = Path(args.static) if args.static else source_dir / "_static"
    config_path = Path(args.config).resolve()
    lock_path = Path(args.lock_file)
    if not lock_path.is_absolute():
        lock_path = config_path.parent / lock_path

    theme_options = dict(getattr(args, "theme_options", None) or {})
    theme = load_theme(args, theme_options)
    build_workers = _worker_count(getattr(args, "build_workers", 0))
    incremental = parse_bool(getattr(args, "incremental", True))

    suffix = args.source_suffix
    include = args.include or [f"**/*{suffix}"]
    exclude = list(DEFAULT_EXCLUDE) + ["_static/*"] + list(args.exclude or [])
    output_resolved = output_dir.resolve()
    if output_resolved.is_relative_to(source_dir.resolve()):
        exclude.append(f"{output_resolved.relative_to(source_dir.resolve()).as_posix()}/*")

    paths = discover_sources(source_dir, include, exclude)
    if not paths:
        raise ConfigError(f"No source documents found in {source_dir}")
    info(f"Found {len(paths)} source documents in {source_dir}.")

    settings = {key: value for key, value in sorted(vars(args).items()) if key not in SETTINGS_IGNORED}
    settings_hash = hash_text(json.dumps(settings, sort_keys=True, default=str))
    static_files = list_files(static_dir) if static_dir.is_dir() else []
    try:
        sources_hash = hash_paths(paths, source_dir)
    except OSError as exc:
        raise ParseError(ParseError.UNREADABLE_SOURCE, exc.filename, 1, exc.strerror or str(exc)) from None
    inputs_hash = hash_text(
        "\0".join(
            [
                sources_hash,
                hash_paths(static_files, static_dir),
                generator_hash(),
                settings_hash,
                hash_text(theme.template),
                hash_text(theme.about_html),
            ]
        )
    )

    # The lock is read even without --incremental: pruning needs the previous outputs.
    previous_state = load_lock(lock_path)
    previous_outputs = previous_state.get("outputs", {})
    outputs_present = bool(previous_outputs) and all((output_dir / rel).is_file() for rel in previous_outputs)
    if incremental and outputs_present and previous_state.get("inputs_hash") == inputs_hash:
        info("No changes detected. Build skipped.")
        return False

    documents = load_documents(paths, source_dir, suffix, build_workers)
    table = resolve(documents)
    info(f"Resolved references across {len(documents)} documents.")
    nav = build_navigation(table, documents, args.root_doc)
    sources = {doc.docname: doc.source for doc in documents}
    for orphan in nav.orphans:
        print(f"warning: {sources[orphan]}: document isn't included in any toctree", file=sys.stderr)

    pages = render_pages(documents, nav, table, theme, workers=build_workers)
    pages.append(build_navigation_index(nav, table))
    pages.extend(theme_assets(theme))
    if theme.show_source_link:
        pages.extend(build_source_pages(documents))
    files = collect_files(pages, static_dir)

    output_dir.mkdir(parents=True, exist_ok=True)
    hashes, written = write_files(output_dir, files, previous_outputs if incremental else {})
    info(f"Wrote {written} of {len(files)} files.")
    if parse_bool(args.clean):
        removed = prune(output_dir, hashes.keys(), previous_outputs)
        if removed:
            info(f"Removed {len(removed)} stale files.")

    write_lock(
        lock_path,
        {
            "version": LOCK_VERSION,
            "built_at": dt.datetime.now().replace(microsecond=0).isoformat(),
            "inputs_hash": inputs_hash,
            "outputs": hashes,
        },
    )
    return True


def build_parser(config: dict, config_default: str) -> argparse.ArgumentParser:
    def cfg_value(key: str, default: object) -> object:
        value = config.get(key)
        return default if value is None else value

    def cfg_str(key: str, default: str) -> str:
        value = cfg_value(key, default)
        return default if value is None else str(value)

    def cfg_bool(key: str, default: bool) -> bool:
        value = cfg_value(key, default)
        return parse_bool(value) if value is not None else default

    def cfg_int(key: str, default: int) -> int:
        value = cfg_value(key, default)
        return parse_int(value, default)

    parser = argparse.ArgumentParser(description="Build static HTML documentation from reStructuredText sources.")
    parser.add_argument("--config", default=config_default, help="Path to config file (TOML/YAML/JSON).")
    parser.add_argument("--source", default=cfg_str("source", "docs"), help="Directory containing source documents.")
    parser.add_argument("--output", default=cfg_str("output", "build/html"), help="Output directory for the site.")
    parser.add_argument(
        "--static",
        default=cfg_str("static", ""),
        help="Directory of static assets copied to _static/ (default: <source>/_static).",
    )
    parser.add_argument(
        "--templates",
        default=cfg_str("templates", ""),
        help="Directory holding a base.html that replaces the theme template.",
    )
    parser.add_argument("--root-doc", default=cfg_str("root_doc", "index"), help="Document at the top of the toctree.")
    parser.add_argument("--project", default=cfg_str("project", "Documentation"), help="Project name.")
    parser.add_argument("--copyright", default=cfg_str("copyright", ""), help="Footer copyright line.")
    parser.add_argument("--source-suffix", default=cfg_str("source_suffix", ".rst"), help="Source file suffix.")
    parser.add_argument(
        "--include",
        action="append",
        default=parse_list(config.get("include")) or None,
        help="Glob of source files to include, relative to the source directory (repeatable).",
    )
    parser.add_argument(
        "--exclude",
        action="append",
        default=parse_list(config.get("exclude")) or None,
        help="Glob of source files to skip (repeatable).",
    )
    parser.add_argument(
        "--build-workers",
        default=cfg_int("build_workers", 0),
        type=int,
        help="Number of worker threads for parsing/rendering (0 = auto).",
    )
    parser.add_argument(
        "--clean",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("clean", True),
        help="Remove output files left over from the previous build.",
    )
    parser.add_argument(
        "--incremental",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("incremental", True),
        help="Skip unchanged builds and unchanged files using the lock file.",
    )
    parser.add_argument(
        "--lock-file",
        default=cfg_str("lock_file", ".docsite.lock.json"),
        help="Path to build lock JSON, relative to the config file directory.",
    )
    parser.add_argument("--about-text", default=cfg_str("about_text", ""), help="Text for the sidebar About panel.")
    parser.add_argument("--about-html", default=cfg_str("about_html", ""), help="HTML for the sidebar About panel.")
    parser.add_argument(
        "--about-file",
        default=cfg_str("about_file", ""),
        help="Path to file used for the sidebar About panel (.html, .md or text).",
    )
    parser.add_argument("--theme", default=cfg_str("theme", "default"), help="Theme name.")
    parser.add_argument(
        "--theme-option",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Theme option override (repeatable).",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print warnings and errors.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument(
        "--config",
        default="docsite.toml",
        help="Path to config file (TOML/YAML/JSON).",
    )
    pre_args, _ = pre_parser.parse_known_args(argv)
    try:
        config = load_config(Path(pre_args.config))
        theme_options = config.get("theme_options") or {}
        if not isinstance(theme_options, dict):
            raise ConfigError("theme_options must be a mapping")
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    parser = build_parser(config, pre_args.config)
    args = parser.parse_args(argv)
    start = time.perf_counter()
    try:
        args.theme_options = {**theme_options, **parse_theme_options(args.theme_option)}
        built = build_site(args)
    except BuildError as exc:
        for line in exc.diagnostics():
            print(f"error: {line}", file=sys.stderr)
        print("Build failed.", file=sys.stderr)
        return 1
    elapsed = time.perf_counter() - start
    if not args.quiet:
        print(f"Build completed in {elapsed:.2f}s.")
        if built:
            print(f"Site generated in: {args.output}")
    return 0
