from pathlib import Path

import pytest
import yaml

from mapstatic.config import (
    AppConfig,
    CacheConfig,
    RenderOptions,
    TileLayerConfig,
    ZoomRange,
    load_config,
    normalize_format,
)


def _write_cfg(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


def test_load_minimal_config_uses_defaults(tmp_path):
    cfg = load_config(_write_cfg(tmp_path, {"render": {"center": [2.35, 48.85]}}), env={})
    assert cfg.render.width == 800
    assert cfg.render.height == 600
    assert cfg.render.zoom_range == ZoomRange(1, 17)
    assert cfg.render.center == (2.35, 48.85)
    assert cfg.render.tile_layers[0].tile_url == "https://tile.openstreetmap.org/{z}/{x}/{y}.png"
    assert cfg.render.attribution == "© OpenStreetMap contributors"
    assert cfg.cache.enabled and cfg.cache.ttl_s == 3600
    assert cfg.output.path == tmp_path.resolve() / "map.png"
    assert cfg.features.is_empty


def test_sample_config_loads():
    sample = Path(__file__).resolve().parents[1] / "config.yaml"
    cfg = load_config(sample, env={})
    assert cfg.features.summary()["markers"] == 2
    assert cfg.features.lines[1].is_polygon
    assert cfg.render.tile_request_headers == {"Accept": "image/png,image/*"}


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_top_level_must_be_mapping(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Top-level"):
        load_config(path)


def test_render_section_required(tmp_path):
    with pytest.raises(ValueError, match="'render'"):
        AppConfig.from_mapping({}, tmp_path / "config.yaml", env={})


@pytest.mark.parametrize(
    "render, message",
    [
        ({"width": "wide"}, "render.width"),
        ({"width": 0}, "render.width"),
        ({"padding_x": -1}, "render.padding_x"),
        ({"zoom_range": {"min": 10, "max": 5}}, "render.zoom_range.min"),
        ({"reverse_y": "yes"}, "render.reverse_y"),
        ({"center": [1, 2, 3]}, "render.center"),
        ({"tile_layers": "https://t/{z}/{x}/{y}.png"}, "render.tile_layers"),
        ({"tile_layers": [{"basemap": "does-not-exist"}]}, "render.tile_layers\\[0\\].basemap"),
    ],
)
def test_invalid_render_values_name_the_field(render, message):
    with pytest.raises(ValueError, match=message):
        RenderOptions.from_mapping(render)


def test_bool_is_not_an_integer():
    with pytest.raises(ValueError, match="render.tile_size"):
        RenderOptions.from_mapping({"tile_size": True})


def test_legacy_single_tile_url():
    opts = RenderOptions.from_mapping({"tile_url": "https://{s}.t/{z}/{x}/{y}.png", "tile_subdomains": ["a", "b"]})
    assert opts.tile_layers == (TileLayerConfig(tile_url="https://{s}.t/{z}/{x}/{y}.png", subdomains=("a", "b")),)


def test_tile_layer_values():
    assert TileLayerConfig.from_value("https://t/{z}/{x}/{y}.png", "l").tile_url == "https://t/{z}/{x}/{y}.png"
    topo = TileLayerConfig.from_value("topo", "l")
    assert "World_Topo_Map" in topo.tile_url
    assert topo.attribution == "Tiles © Esri"
    mapping = TileLayerConfig.from_value({"url": "https://t/{quadkey}", "attribution": "Bing"}, "l")
    assert mapping.tile_url == "https://t/{quadkey}"
    assert mapping.attribution == "Bing"


def test_attribution_deduplicated():
    opts = RenderOptions.from_mapping({"tile_layers": ["osm", "osm", "carto-dark"]})
    assert opts.attribution == "© OpenStreetMap contributors | © OpenStreetMap contributors © CARTO"


class TestCacheEnv:
    def test_ttl_override(self):
        assert CacheConfig.from_mapping({"ttl_s": 10}, env={"TILE_CACHE_TTL": "120"}).ttl_s == 120.0

    def test_disable_flag(self):
        assert not CacheConfig.from_mapping({}, env={"DISABLE_TILE_CACHE": "true"}).enabled
        assert CacheConfig.from_mapping({}, env={"DISABLE_TILE_CACHE": "0"}).enabled

    def test_bad_ttl_env(self):
        with pytest.raises(ValueError, match="TILE_CACHE_TTL"):
            CacheConfig.from_mapping({}, env={"TILE_CACHE_TTL": "soon"})


@pytest.mark.parametrize(
    "raw, expected",
    [("PNG", "png"), ("jpg", "jpeg"), ("image/jpeg", "jpeg"), ("webp", "webp"), ("application/pdf", "pdf")],
)
def test_normalize_format(raw, expected):
    assert normalize_format(raw) == expected


def test_unknown_format():
    with pytest.raises(ValueError, match="Unsupported image format"):
        normalize_format("gif")


def test_output_quality_range(tmp_path):
    with pytest.raises(ValueError, match="output.quality"):
        AppConfig.from_mapping(
            {"render": {}, "output": {"quality": 0}}, tmp_path / "config.yaml", env={}
        )
