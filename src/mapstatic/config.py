"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, cast

import yaml

from .basemaps import DEFAULT_BASEMAP, resolve_basemap
from .models import FeatureSet
from .tiles import DEFAULT_USER_AGENT


OUTPUT_FORMATS = ("png", "jpeg", "webp", "pdf")
_FORMAT_ALIASES = {
    "jpg": "jpeg",
    "image/png": "png",
    "image/jpeg": "jpeg",
    "image/jpg": "jpeg",
    "image/webp": "webp",
    "application/pdf": "pdf",
}


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _bool(value: Any, field_name: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"Expected bool for '{field_name}'")
    return value


def _str_list(value: Any, field_name: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Expected list for '{field_name}'")
    out: list[str] = []
    for idx, item in enumerate(value):
        out.append(_str(item, f"{field_name}[{idx}]"))
    return tuple(out)


def _non_negative(value: int, field_name: str) -> int:
    if value < 0:
        raise ValueError(f"'{field_name}' must be >= 0")
    return value


def _positive(value: int, field_name: str) -> int:
    if value < 1:
        raise ValueError(f"'{field_name}' must be >= 1")
    return value


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


def normalize_format(value: str) -> str:
    key = value.strip().lower()
    key = _FORMAT_ALIASES.get(key, key)
    if key not in OUTPUT_FORMATS:
        raise ValueError(f"Unsupported image format: '{value}' (expected one of: {', '.join(OUTPUT_FORMATS)})")
    return key


@dataclass(frozen=True, slots=True)
class ZoomRange:
    min: int = 1
    max: int = 17

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], field_name: str = "render.zoom_range") -> ZoomRange:
        zmin = _int(raw.get("min", 1), f"{field_name}.min")
        zmax = _int(raw.get("max", 17), f"{field_name}.max")
        if zmin < 0 or zmax > 24:
            raise ValueError(f"'{field_name}' must stay within 0..24")
        if zmin > zmax:
            raise ValueError(f"'{field_name}.min' must be <= '{field_name}.max'")
        return cls(min=zmin, max=zmax)

    def clamp(self, zoom: int) -> int:
        return max(self.min, min(self.max, zoom))


@dataclass(frozen=True, slots=True)
class TileLayerConfig:
    tile_url: str | None
    subdomains: tuple[str, ...] = ()
    attribution: str = ""

    @classmethod
    def from_basemap(cls, name: str) -> TileLayerConfig:
        basemap = resolve_basemap(name)
        return cls(tile_url=basemap.url, subdomains=basemap.subdomains, attribution=basemap.attribution)

    @classmethod
    def from_value(cls, raw: Any, field_name: str) -> TileLayerConfig:
        if isinstance(raw, str):
            text = _str(raw, field_name)
            if "{" in text:
                return cls(tile_url=text)
            return cls._basemap(text, field_name)
        data = _mapping(raw, field_name)
        if data.get("basemap") is not None:
            return cls._basemap(_str(data.get("basemap"), f"{field_name}.basemap"), f"{field_name}.basemap")
        url_raw = data.get("tile_url", data.get("url"))
        subdomains_raw = data.get("subdomains", data.get("tile_subdomains"))
        attribution_raw = data.get("attribution")
        return cls(
            tile_url=None if url_raw is None else _str(url_raw, f"{field_name}.tile_url"),
            subdomains=() if subdomains_raw is None else _str_list(subdomains_raw, f"{field_name}.subdomains"),
            attribution="" if attribution_raw is None else _str(attribution_raw, f"{field_name}.attribution"),
        )

    @classmethod
    def _basemap(cls, name: str, field_name: str) -> TileLayerConfig:
        try:
            return cls.from_basemap(name)
        except ValueError as exc:
            raise ValueError(f"{exc} (at '{field_name}')") from exc


def _parse_center(raw: Any, field_name: str) -> tuple[float, ...]:
    if not isinstance(raw, list) or len(raw) not in (2, 4):
        raise ValueError(f"Expected [lon, lat] or [min_lon, min_lat, max_lon, max_lat] for '{field_name}'")
    values = tuple(_float(v, f"{field_name}[{idx}]") for idx, v in enumerate(raw))
    if not all(math.isfinite(v) for v in values):
        raise ValueError(f"Expected finite numbers for '{field_name}'")
    return values


def _parse_headers(raw: Any, field_name: str) -> dict[str, str]:
    data = _mapping(raw, field_name)
    return {_str(k, f"{field_name} key"): str(v) for k, v in data.items()}


@dataclass(frozen=True, slots=True)
class RenderOptions:
    """Canvas, zoom and tile source settings for one map."""

    width: int = 800
    height: int = 600
    padding_x: int = 0
    padding_y: int = 0
    tile_size: int = 256
    zoom_range: ZoomRange = ZoomRange()
    reverse_y: bool = False
    tile_request_limit: int = 2
    tile_request_timeout_s: float | None = None
    tile_request_headers: Mapping[str, str] = field(default_factory=dict)
    tile_layers: tuple[TileLayerConfig, ...] = (
        TileLayerConfig(tile_url="https://tile.openstreetmap.org/{z}/{x}/{y}.png",
                        attribution="© OpenStreetMap contributors"),
    )
    zoom: int | None = None
    center: tuple[float, ...] | None = None

    @property
    def attribution(self) -> str:
        texts = [layer.attribution for layer in self.tile_layers if layer.attribution]
        return " | ".join(dict.fromkeys(texts))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], field_name: str = "render") -> RenderOptions:
        def opt(key: str, default: Any) -> Any:
            value = raw.get(key)
            return default if value is None else value

        layers = cls._parse_layers(raw, field_name)
        zoom_raw = raw.get("zoom")
        timeout_raw = raw.get("tile_request_timeout_s")
        center_raw = raw.get("center")
        return cls(
            width=_positive(_int(opt("width", 800), f"{field_name}.width"), f"{field_name}.width"),
            height=_positive(_int(opt("height", 600), f"{field_name}.height"), f"{field_name}.height"),
            padding_x=_non_negative(_int(opt("padding_x", 0), f"{field_name}.padding_x"), f"{field_name}.padding_x"),
            padding_y=_non_negative(_int(opt("padding_y", 0), f"{field_name}.padding_y"), f"{field_name}.padding_y"),
            tile_size=_positive(_int(opt("tile_size", 256), f"{field_name}.tile_size"), f"{field_name}.tile_size"),
            zoom_range=ZoomRange.from_mapping(
                _mapping(opt("zoom_range", {}), f"{field_name}.zoom_range"), f"{field_name}.zoom_range"
            ),
            reverse_y=_bool(opt("reverse_y", False), f"{field_name}.reverse_y"),
            tile_request_limit=_non_negative(
                _int(opt("tile_request_limit", 2), f"{field_name}.tile_request_limit"),
                f"{field_name}.tile_request_limit",
            ),
            tile_request_timeout_s=(
                None if timeout_raw is None else _float(timeout_raw, f"{field_name}.tile_request_timeout_s")
            ),
            tile_request_headers=_parse_headers(
                opt("tile_request_headers", {}), f"{field_name}.tile_request_headers"
            ),
            tile_layers=layers,
            zoom=None if zoom_raw is None else _int(zoom_raw, f"{field_name}.zoom"),
            center=None if center_raw is None else _parse_center(center_raw, f"{field_name}.center"),
        )

    @staticmethod
    def _parse_layers(raw: Mapping[str, Any], field_name: str) -> tuple[TileLayerConfig, ...]:
        if raw.get("tile_layers") is not None:
            layers_raw = raw.get("tile_layers")
            if not isinstance(layers_raw, list):
                raise ValueError(f"Expected list for '{field_name}.tile_layers'")
            return tuple(
                TileLayerConfig.from_value(item, f"{field_name}.tile_layers[{idx}]")
                for idx, item in enumerate(layers_raw)
            )
        # Single-layer shorthand.
        if raw.get("tile_url") is not None:
            subdomains_raw = raw.get("tile_subdomains", raw.get("subdomains"))
            return (
                TileLayerConfig(
                    tile_url=_str(raw.get("tile_url"), f"{field_name}.tile_url"),
                    subdomains=(
                        () if subdomains_raw is None
                        else _str_list(subdomains_raw, f"{field_name}.tile_subdomains")
                    ),
                ),
            )
        name = _str(raw.get("basemap") or DEFAULT_BASEMAP, f"{field_name}.basemap")
        return (TileLayerConfig._basemap(name, f"{field_name}.basemap"),)


def _env_enabled(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class CacheConfig:
    enabled: bool = True
    ttl_s: float = 3600.0
    max_entries: int | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], env: Mapping[str, str] | None = None) -> CacheConfig:
        env = os.environ if env is None else env
        enabled = _bool(raw.get("enabled", True), "cache.enabled")
        ttl_s = _float(raw.get("ttl_s", 3600), "cache.ttl_s")
        max_raw = raw.get("max_entries")
        max_entries = None if max_raw is None else _positive(_int(max_raw, "cache.max_entries"), "cache.max_entries")

        ttl_env = env.get("TILE_CACHE_TTL")
        if ttl_env is not None and ttl_env.strip():
            try:
                ttl_s = float(ttl_env)
            except ValueError as exc:
                raise ValueError(f"Expected seconds in environment variable TILE_CACHE_TTL, got '{ttl_env}'") from exc
        if _env_enabled(env.get("DISABLE_TILE_CACHE", "")):
            enabled = False
        if ttl_s < 0:
            raise ValueError("'cache.ttl_s' must be >= 0")
        return cls(enabled=enabled, ttl_s=ttl_s, max_entries=max_entries)


@dataclass(frozen=True, slots=True)
class FetchConfig:
    max_retries: int = 2
    retry_backoff_s: float = 0.5
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> FetchConfig:
        return cls(
            max_retries=_non_negative(_int(raw.get("max_retries", 2), "fetch.max_retries"), "fetch.max_retries"),
            retry_backoff_s=_float(raw.get("retry_backoff_s", 0.5), "fetch.retry_backoff_s"),
            user_agent=_str(raw.get("user_agent", DEFAULT_USER_AGENT), "fetch.user_agent"),
        )


@dataclass(frozen=True, slots=True)
class OutputConfig:
    path: Path
    format: str = "png"
    quality: int = 100
    log_file: Path | None = None
    frame_px: int = 0
    frame_color: str = "#ffffff"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> OutputConfig:
        fmt = normalize_format(_str(raw.get("format", "png"), "output.format"))
        quality = _int(raw.get("quality", 100), "output.quality")
        if not 1 <= quality <= 100:
            raise ValueError("'output.quality' must be within 1..100")
        log_raw = raw.get("log_file")
        return cls(
            path=_path_from_cfg(raw.get("path", f"map.{fmt}"), "output.path", root_dir),
            format=fmt,
            quality=quality,
            log_file=None if log_raw is None else _path_from_cfg(log_raw, "output.log_file", root_dir),
            frame_px=_non_negative(_int(raw.get("frame_px", 0), "output.frame_px"), "output.frame_px"),
            frame_color=_str(raw.get("frame_color", "#ffffff"), "output.frame_color"),
        )


@dataclass(frozen=True, slots=True)
class AttributionConfig:
    show: bool = True
    text: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> AttributionConfig:
        text_raw = raw.get("text")
        return cls(
            show=_bool(raw.get("show", True), "attribution.show"),
            text=None if text_raw is None else _str(text_raw, "attribution.text"),
        )

    def resolve_text(self, fallback: str) -> str | None:
        text = self.text or fallback
        return text or None


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path
    render: RenderOptions
    cache: CacheConfig
    fetch: FetchConfig
    output: OutputConfig
    attribution: AttributionConfig
    features: FeatureSet

    @classmethod
    def from_mapping(
        cls,
        raw: Mapping[str, Any],
        source_path: Path,
        env: Mapping[str, str] | None = None,
    ) -> AppConfig:
        root_dir = source_path.parent.resolve()

        def section(name: str) -> Mapping[str, Any]:
            value = raw.get(name)
            return {} if value is None else _mapping(value, name)

        return cls(
            source_path=source_path.resolve(),
            render=RenderOptions.from_mapping(_mapping(raw.get("render"), "render")),
            cache=CacheConfig.from_mapping(section("cache"), env),
            fetch=FetchConfig.from_mapping(section("fetch")),
            output=OutputConfig.from_mapping(section("output"), root_dir),
            attribution=AttributionConfig.from_mapping(section("attribution")),
            features=FeatureSet.from_mapping(section("features")),
        )


def load_config(path: str | Path, env: Mapping[str, str] | None = None) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path, env)
