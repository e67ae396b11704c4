"""Pre-render checks for a loaded config: tile sources, features and tooling."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .config import AppConfig, TileLayerConfig
from .image import svg_backend_error


_PLACEHOLDER_RE = re.compile(r"\{([a-z]+)\}")
_KNOWN_PLACEHOLDERS = {"z", "x", "y", "s", "quadkey"}


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class Validator:
    """Check that a config can render before any network work starts."""

    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def run(self) -> ValidationReport:
        report = ValidationReport()
        self._validate_view(report)
        self._validate_tile_layers(report)
        self._validate_markers(report)
        self._validate_texts(report)
        self._validate_svg_support(report)
        return report

    def _validate_view(self, report: ValidationReport) -> None:
        render = self.cfg.render
        features = self.cfg.features
        report.add_info(
            f"Canvas {render.width}x{render.height}px, tile size {render.tile_size}, "
            f"zoom range {render.zoom_range.min}..{render.zoom_range.max}"
        )
        if features.is_empty and render.center is None:
            report.add_error("Nothing to render: config has no center and no features.")
        if render.zoom is not None and render.zoom_range.clamp(render.zoom) != render.zoom:
            report.add_warning(
                f"render.zoom={render.zoom} is outside the zoom range and will be clamped."
            )
        if render.padding_x * 2 >= render.width or render.padding_y * 2 >= render.height:
            report.add_warning("Padding leaves no room on the canvas; zoom will fall back to the minimum.")
        report.add_info(
            "Features: " + ", ".join(f"{key}={value}" for key, value in features.summary().items())
        )

    def _validate_tile_layers(self, report: ValidationReport) -> None:
        layers = self.cfg.render.tile_layers
        if not layers:
            report.add_warning("No tile layers configured; map background will be transparent.")
        for idx, layer in enumerate(layers):
            for msg, is_error in _check_layer(layer):
                text = f"render.tile_layers[{idx}]: {msg}"
                if is_error:
                    report.add_error(text)
                else:
                    report.add_warning(text)

    def _validate_markers(self, report: ValidationReport) -> None:
        remote = 0
        for idx, marker in enumerate(self.cfg.features.markers):
            if marker.coord is None:
                report.add_error(f"features.markers[{idx}] has no coord.")
            if marker.img is None:
                continue
            if marker.img.startswith(("http://", "https://")):
                remote += 1
            elif not Path(marker.img).expanduser().exists():
                report.add_warning(f"features.markers[{idx}] icon not found: {marker.img}")
        if remote:
            report.add_info(f"{remote} marker icon(s) will be fetched over HTTP.")

    def _validate_texts(self, report: ValidationReport) -> None:
        for idx, text in enumerate(self.cfg.features.texts):
            if text.coord is None:
                report.add_error(f"features.text[{idx}] has no coord.")

    def _validate_svg_support(self, report: ValidationReport) -> None:
        features = self.cfg.features
        needs_svg = bool(features.lines or features.multipolygons or features.circles or features.texts)
        needs_svg = needs_svg or (self.cfg.attribution.show and bool(
            self.cfg.attribution.resolve_text(self.cfg.render.attribution)
        ))
        if not needs_svg:
            return
        error = svg_backend_error()
        if error is not None:
            report.add_error(error)


def _check_layer(layer: TileLayerConfig) -> Iterable[tuple[str, bool]]:
    url = layer.tile_url
    if not url:
        yield ("no tile_url; layer will be skipped", False)
        return
    path = url.split("?", 1)[0].lower()
    if path.endswith((".pbf", ".pmtiles")):
        yield ("vector tiles (.pbf/.pmtiles) are not supported for rendering", True)
    placeholders = set(_PLACEHOLDER_RE.findall(url))
    unknown = sorted(placeholders - _KNOWN_PLACEHOLDERS)
    if unknown:
        yield (f"unknown URL placeholder(s): {', '.join(unknown)}", True)
    if "quadkey" not in placeholders and not {"z", "x", "y"} <= placeholders:
        yield ("URL needs {z}/{x}/{y} or {quadkey}", True)
    if "s" in placeholders and not layer.subdomains:
        yield ("URL uses {s} but no subdomains are configured", True)


def format_report_lines(report: ValidationReport) -> list[str]:
    lines: list[str] = []
    lines.extend(f"[INFO] {msg}" for msg in report.infos)
    lines.extend(f"[WARN] {msg}" for msg in report.warnings)
    lines.extend(f"[ERROR] {msg}" for msg in report.errors)
    if report.ok:
        lines.append("[OK] Validation passed with no errors.")
    return lines
