"""Command-line interface for html2llms."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .version import __version__

HTML_SUFFIXES = (".html", ".htm")
RAW_SUFFIXES = (".mdx",)


def _get_usage() -> str:
    return (
        f"html2llms {__version__}\n"
        "Usage:\n"
        "  html2llms [--help] [--version|--ver]\n"
        "  html2llms --from-file FILE [--to-file FILE] [options]\n"
        "  html2llms --from-dir FROM_DIR --to-dir TO_DIR [options]\n\n"
        "Options:\n"
        "  --minify                     Strip asides, details and extra whitespace\n"
        "  --config PATH                Load options JSON (minify, rawMDX)\n"
        "  --write-config PATH          Write default options JSON and exit\n"
        "  --verbose                    Verbose progress logs\n"
        "  --debug                      Debug logs"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--help", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--ver", action="store_true")
    parser.add_argument("--from-file", help="Rendered HTML page to convert")
    parser.add_argument("--to-file", help="Markdown output file (default: stdout)")
    parser.add_argument("--from-dir", help="Directory of rendered HTML pages and raw .mdx sources")
    parser.add_argument("--to-dir", help="Output directory")
    parser.add_argument("--minify", action="store_true", help="Minify the generated Markdown")
    parser.add_argument("--config", help="Path to a JSON file with minify and rawMDX options")
    parser.add_argument("--write-config", help="Write the default options JSON to the given path and exit")
    parser.add_argument("--verbose", action="store_true", help="Verbose progress logs")
    parser.add_argument("--debug", action="store_true", help="Debug logs")
    return parser


def _render_prerendered(entry) -> str:
    return entry.body or ""


def _with_final_newline(markdown: str) -> str:
    return markdown if markdown.endswith("\n") else f"{markdown}\n"


def _collect_entries(from_dir: Path) -> list[Path]:
    suffixes = HTML_SUFFIXES + RAW_SUFFIXES
    return [path for path in sorted(from_dir.rglob("*")) if path.is_file() and path.suffix.lower() in suffixes]


def _convert_dir(core, from_dir: Path, to_dir: Path, *, minify: bool, config) -> int:
    entries = _collect_entries(from_dir)
    if not entries:
        core.LOG.warning("No .html or .mdx entries found in %s", from_dir)
    for index, path in enumerate(entries, start=1):
        rel = path.relative_to(from_dir)
        try:
            body = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            print(f"Unable to read {path}: {exc}", file=sys.stderr)
            return 6
        entry = core.DocEntry(id=rel.as_posix(), body=body)
        try:
            markdown = core.entry_to_simple_markdown(entry, _render_prerendered, minify, config)
        except RuntimeError as exc:
            print(f"Conversion failed for {path}: {exc}", file=sys.stderr)
            return 6
        target = to_dir / rel.with_suffix(".md")
        try:
            core.safe_write_text(target, _with_final_newline(markdown))
        except OSError as exc:
            print(f"Unable to write {target}: {exc}", file=sys.stderr)
            return 7
        core.LOG.info("[%d/%d] %s -> %s", index, len(entries), rel.as_posix(), target)
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    args, unknown = parser.parse_known_args(argv)
    if unknown:
        print(_get_usage())
        return 2

    if not argv or args.help:
        print(_get_usage())
        return 0

    if args.version or args.ver:
        print(__version__)
        return 0

    try:
        from html2llms import core
    except Exception as exc:
        print(f"Unable to import html2llms core: {exc}", file=sys.stderr)
        return 6

    core.setup_logging(args.verbose, args.debug)

    if args.write_config:
        target = Path(args.write_config).expanduser().resolve()
        try:
            core.write_default_config(target)
        except OSError as exc:
            print(f"Unable to write config file {target}: {exc}", file=sys.stderr)
            return 6
        if args.verbose:
            print(f"Default config written to {target}")
        return 0

    if args.from_file and args.from_dir:
        print("Options --from-file and --from-dir are mutually exclusive", file=sys.stderr)
        return 6

    if not args.from_file and not (args.from_dir and args.to_dir):
        print(_get_usage())
        print("Option --from-file, or both --from-dir and --to-dir, are required", file=sys.stderr)
        return 6

    config = core.DEFAULT_CONFIG
    if args.config:
        config_path = Path(args.config).expanduser().resolve()
        if not config_path.exists() or not config_path.is_file():
            print(f"Config file not found: {config_path}", file=sys.stderr)
            return 6
        try:
            config = core.load_config_file(config_path)
        except ValueError as exc:
            print(str(exc), file=sys.stderr)
            return 6

    if args.from_file:
        source = Path(args.from_file).expanduser().resolve()
        if not source.exists() or not source.is_file():
            print(f"Source file not found: {source}", file=sys.stderr)
            return 6
        try:
            body = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            print(f"Unable to read {source}: {exc}", file=sys.stderr)
            return 6
        entry = core.DocEntry(id=source.name, body=body)
        try:
            markdown = core.entry_to_simple_markdown(entry, _render_prerendered, args.minify, config)
        except RuntimeError as exc:
            print(f"Conversion failed for {source}: {exc}", file=sys.stderr)
            return 6
        if args.to_file:
            target = Path(args.to_file).expanduser().resolve()
            if target.exists() and target.is_dir():
                print(f"Output path is a directory: {target}", file=sys.stderr)
                return 7
            try:
                core.safe_write_text(target, _with_final_newline(markdown))
            except OSError as exc:
                print(f"Unable to write {target}: {exc}", file=sys.stderr)
                return 7
            core.LOG.info("Markdown written to %s", target)
        else:
            print(markdown)
        return 0

    from_dir = Path(args.from_dir).expanduser().resolve()
    to_dir = Path(args.to_dir).expanduser().resolve()

    if not from_dir.exists() or not from_dir.is_dir():
        print(f"Source directory not found: {from_dir}", file=sys.stderr)
        return 6

    if to_dir.exists():
        if not to_dir.is_dir():
            print(f"Output path is not a directory: {to_dir}", file=sys.stderr)
            return 7
        if any(to_dir.iterdir()):
            print(f"Output directory must be empty: {to_dir}", file=sys.stderr)
            return 7

    return _convert_dir(core, from_dir, to_dir, minify=args.minify, config=config)


if __name__ == "__main__":
    raise SystemExit(main())
