"""Named basemap presets and lookup of xyzservices providers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any


_LOGGER = logging.getLogger("mapstatic.basemaps")

_ARCGIS = "https://server.arcgisonline.com/ArcGIS/rest/services"
_STAMEN = "https://stamen-tiles.a.ssl.fastly.net"
_CARTO = "https://cartodb-basemaps-a.global.ssl.fastly.net"
_ESRI_ATTRIBUTION = "Tiles © Esri"
_STAMEN_ATTRIBUTION = "Map tiles by Stamen Design, under CC BY 3.0. Data by OpenStreetMap"
_CARTO_ATTRIBUTION = "© OpenStreetMap contributors © CARTO"


@dataclass(frozen=True, slots=True)
class Basemap:
    name: str
    url: str
    attribution: str = ""
    subdomains: tuple[str, ...] = ()


DEFAULT_BASEMAP = "osm"

BASEMAPS: dict[str, Basemap] = {
    b.name: b
    for b in (
        Basemap(
            "streets",
            "https://services.arcgisonline.com/ArcGIS/rest/services/World_Street_Map/MapServer/tile/{z}/{y}/{x}",
            _ESRI_ATTRIBUTION,
        ),
        Basemap("satellite", f"{_ARCGIS}/World_Imagery/MapServer/tile/{{z}}/{{y}}/{{x}}", _ESRI_ATTRIBUTION),
        Basemap("topo", f"{_ARCGIS}/World_Topo_Map/MapServer/tile/{{z}}/{{y}}/{{x}}", _ESRI_ATTRIBUTION),
        Basemap(
            "gray-background",
            f"{_ARCGIS}/Canvas/World_Light_Gray_Base/MapServer/tile/{{z}}/{{y}}/{{x}}",
            _ESRI_ATTRIBUTION,
        ),
        Basemap("oceans", f"{_ARCGIS}/Ocean_Basemap/MapServer/tile/{{z}}/{{y}}/{{x}}", _ESRI_ATTRIBUTION),
        Basemap(
            "national-geographic",
            f"{_ARCGIS}/NatGeo_World_Map/MapServer/tile/{{z}}/{{y}}/{{x}}",
            _ESRI_ATTRIBUTION,
        ),
        Basemap("osm", "https://tile.openstreetmap.org/{z}/{x}/{y}.png", "© OpenStreetMap contributors"),
        Basemap(
            "otm",
            "https://tile.opentopomap.org/{z}/{x}/{y}.png",
            "© OpenStreetMap contributors, SRTM | © OpenTopoMap (CC-BY-SA)",
        ),
        Basemap("stamen-toner", f"{_STAMEN}/toner/{{z}}/{{x}}/{{y}}.png", _STAMEN_ATTRIBUTION),
        Basemap(
            "stamen-toner-background",
            f"{_STAMEN}/toner-background/{{z}}/{{x}}/{{y}}.png",
            _STAMEN_ATTRIBUTION,
        ),
        Basemap("stamen-toner-lite", f"{_STAMEN}/toner-lite/{{z}}/{{x}}/{{y}}.png", _STAMEN_ATTRIBUTION),
        Basemap("stamen-terrain", f"{_STAMEN}/terrain/{{z}}/{{x}}/{{y}}.png", _STAMEN_ATTRIBUTION),
        Basemap(
            "stamen-terrain-background",
            f"{_STAMEN}/terrain-background/{{z}}/{{x}}/{{y}}.png",
            _STAMEN_ATTRIBUTION,
        ),
        Basemap("stamen-watercolor", f"{_STAMEN}/watercolor/{{z}}/{{x}}/{{y}}.png", _STAMEN_ATTRIBUTION),
        Basemap("carto-light", f"{_CARTO}/light_all/{{z}}/{{x}}/{{y}}.png", _CARTO_ATTRIBUTION),
        Basemap("carto-dark", f"{_CARTO}/dark_all/{{z}}/{{x}}/{{y}}.png", _CARTO_ATTRIBUTION),
        Basemap("carto-voyager", f"{_CARTO}/rastertiles/voyager/{{z}}/{{x}}/{{y}}.png", _CARTO_ATTRIBUTION),
    )
}


@lru_cache(maxsize=1)
def _require_xyzservices_providers() -> Any:
    try:
        from xyzservices import providers
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("xyzservices is required to look up provider basemaps") from exc
    return providers


def _from_xyzservices(name: str) -> Basemap | None:
    providers = _require_xyzservices_providers()
    try:
        provider = providers.query_name(name)
    except ValueError:
        return None
    try:
        url = provider.build_url(fill_subdomain=False)
    except ValueError as exc:
        # Providers needing an API key cannot be built without one.
        _LOGGER.warning("Basemap provider %s is unusable: %s", name, exc)
        return None
    # Standard-resolution tiles only.
    url = url.replace("{r}", "")
    subdomains: tuple[str, ...] = ()
    if "{s}" in url:
        subdomains = tuple(provider.get("subdomains", "abc"))
    attribution = provider.get("attribution", "") or provider.get("html_attribution", "")
    return Basemap(name=name, url=url, attribution=str(attribution), subdomains=subdomains)


def resolve_basemap(name: str) -> Basemap:
    """Resolve a preset name or an xyzservices provider name such as ``CartoDB.Positron``."""
    key = name.strip()
    preset = BASEMAPS.get(key)
    if preset is not None:
        return preset
    found = _from_xyzservices(key)
    if found is None:
        raise ValueError(f"Unknown basemap: {name}")
    return found


def list_basemaps() -> list[Basemap]:
    return sorted(BASEMAPS.values(), key=lambda b: b.name)
