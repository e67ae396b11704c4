"""CLI entrypoint for the mapstatic renderer."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from .basemaps import list_basemaps
from .config import AppConfig, load_config, normalize_format
from .render import format_render_lines, run_render
from .util import setup_logging
from .validate import Validator, format_report_lines

LOGGER = logging.getLogger("mapstatic.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mapstatic",
        description="Render static map images from tiles and vector features.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    render_p = subparsers.add_parser("render", help="Render the configured map to an image file.")
    add_common(render_p)
    render_p.add_argument("--output", default=None, help="Override output.path.")
    render_p.add_argument(
        "--format",
        default=None,
        help="Override output.format (png, jpeg, webp, pdf).",
    )
    render_p.add_argument(
        "--no-cache",
        action="store_true",
        help="Bypass the in-memory tile cache for this run.",
    )

    validate_p = subparsers.add_parser("validate", help="Validate config, tile sources and features.")
    add_common(validate_p)

    basemaps_p = subparsers.add_parser("basemaps", help="List built-in basemap presets.")
    basemaps_p.add_argument("--verbose", action="store_true", help="Enable debug logs.")
    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    setup_logging(cfg.output.log_file, verbose=args.verbose)
    return cfg


def _run_render(cfg: AppConfig, *, output: str | None, fmt: str | None, no_cache: bool) -> int:
    out_format = normalize_format(fmt) if fmt else None
    report = run_render(
        cfg,
        output_path=Path(output).resolve() if output else None,
        fmt=out_format,
        use_cache=not no_cache,
    )
    for line in format_render_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_validate(cfg: AppConfig) -> int:
    report = Validator(cfg).run()
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


def _run_basemaps() -> int:
    for basemap in list_basemaps():
        print(f"{basemap.name:<26} {basemap.url}")
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    command = str(args.command)
    if command == "basemaps":
        setup_logging(None, verbose=args.verbose)
        return _run_basemaps()
    cfg = _load_and_setup(args)
    if command == "render":
        return _run_render(cfg, output=args.output, fmt=args.format, no_cache=bool(args.no_cache))
    if command == "validate":
        return _run_validate(cfg)
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
