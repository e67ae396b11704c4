"""Raster canvas and image helpers backed by Pillow.

SVG overlays and SVG marker icons are rasterized with CairoSVG, which is
imported on first use.
"""

from __future__ import annotations

import io
import logging
from functools import lru_cache
from typing import Any, Iterable

from PIL import Image, ImageColor, ImageDraw, ImageOps, UnidentifiedImageError

from .tiles import TileResult


_LOGGER = logging.getLogger("mapstatic.image")

_PIN_SUPERSAMPLE = 4
_TRANSPARENT = (0, 0, 0, 0)


@lru_cache(maxsize=1)
def _require_cairosvg() -> Any:
    try:
        import cairosvg
    except (ImportError, OSError) as exc:  # pragma: no cover - missing libcairo raises OSError
        raise RuntimeError("cairosvg is required to rasterize SVG overlays") from exc
    return cairosvg


def svg_backend_error() -> str | None:
    """Why SVG rasterizing is unavailable, or ``None`` when it works."""
    try:
        _require_cairosvg()
    except RuntimeError as exc:
        return str(exc)
    return None


def _is_svg(data: bytes) -> bool:
    head = data[:512].lstrip().lower()
    return head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in data[:2048].lower())


def rasterize_svg(svg: str | bytes, *, width: int | None = None, height: int | None = None) -> Image.Image:
    cairosvg = _require_cairosvg()
    data = svg.encode("utf-8") if isinstance(svg, str) else svg
    png = cairosvg.svg2png(bytestring=data, output_width=width, output_height=height)
    with Image.open(io.BytesIO(png)) as img:
        return img.convert("RGBA")


def load_image(data: bytes) -> Image.Image:
    """Decode raster or SVG bytes into an RGBA image."""
    if _is_svg(data):
        return rasterize_svg(data)
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return img.convert("RGBA")


def image_size(data: bytes) -> tuple[int, int] | None:
    """Intrinsic size of an encoded image, or ``None`` when it cannot be read."""
    try:
        if _is_svg(data):
            return rasterize_svg(data).size
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        _LOGGER.debug("Could not read image size: %s", exc)
        return None


def resize_image(source: bytes | Image.Image, width: int, height: int, fit: str = "cover") -> Image.Image:
    """Resize to ``width`` x ``height`` using a sharp-style fit mode.

    ``cover`` crops to fill, ``contain`` letterboxes on transparency, ``fill``
    stretches, ``inside`` shrinks to fit within the box, and ``outside``
    scales until the box is covered without cropping.
    """
    img = source if isinstance(source, Image.Image) else load_image(source)
    img = img.convert("RGBA")
    size = (max(int(width), 1), max(int(height), 1))
    if img.size == size:
        return img
    if fit == "fill":
        return img.resize(size, Image.Resampling.LANCZOS)
    if fit == "contain":
        return ImageOps.pad(img, size, method=Image.Resampling.LANCZOS, color=_TRANSPARENT)
    if fit == "inside":
        return ImageOps.contain(img, size, method=Image.Resampling.LANCZOS)
    if fit == "outside":
        scale = max(size[0] / img.width, size[1] / img.height)
        target = (max(round(img.width * scale), 1), max(round(img.height * scale), 1))
        return img.resize(target, Image.Resampling.LANCZOS)
    return ImageOps.fit(img, size, method=Image.Resampling.LANCZOS)


def default_pin(width: int, height: int, color: str) -> Image.Image:
    """Map pin in ``color`` with a white dot, drawn on a 24x24 design grid."""
    w = max(int(width), 1) * _PIN_SUPERSAMPLE
    h = max(int(height), 1) * _PIN_SUPERSAMPLE
    sx = w / 24.0
    sy = h / 24.0
    rgba = ImageColor.getcolor(color, "RGBA")

    img = Image.new("RGBA", (w, h), _TRANSPARENT)
    draw = ImageDraw.Draw(img)
    draw.ellipse((5 * sx, 2 * sy, 19 * sx, 16 * sy), fill=rgba)
    draw.polygon([(5.4 * sx, 11 * sy), (18.6 * sx, 11 * sy), (12 * sx, 22 * sy)], fill=rgba)
    draw.ellipse((9.5 * sx, 6.5 * sy, 14.5 * sx, 11.5 * sy), fill=(255, 255, 255, 255))
    return img.resize((max(int(width), 1), max(int(height), 1)), Image.Resampling.LANCZOS)


class Canvas:
    """RGBA drawing surface for one render.

    Every drawing call happens on the calling thread. Sources that hang
    past an edge are clipped before compositing.
    """

    def __init__(self, image: Image.Image) -> None:
        self.image = image.convert("RGBA") if image.mode != "RGBA" else image

    @classmethod
    def blank(cls, width: int, height: int) -> Canvas:
        return cls(Image.new("RGBA", (int(width), int(height)), _TRANSPARENT))

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size

    def composite(self, source: Image.Image, left: int = 0, top: int = 0) -> bool:
        """Alpha-composite ``source`` with its top-left at ``(left, top)``.

        Returns ``False`` when no part of the source lands on the canvas.
        """
        src = source.convert("RGBA") if source.mode != "RGBA" else source
        crop_left = max(0, -left)
        crop_top = max(0, -top)
        dest_left = max(0, left)
        dest_top = max(0, top)
        w = min(src.width - crop_left, self.width - dest_left)
        h = min(src.height - crop_top, self.height - dest_top)
        if w <= 0 or h <= 0:
            return False
        part = src.crop((crop_left, crop_top, crop_left + w, crop_top + h))
        self.image.alpha_composite(part, dest=(dest_left, dest_top))
        return True

    def draw_tiles(self, tiles: Iterable[TileResult]) -> int:
        drawn = 0
        for tile in tiles:
            if not tile.success or tile.body is None or tile.box is None:
                continue
            try:
                with Image.open(io.BytesIO(tile.body)) as img:
                    img.load()
                    tile_img = img.convert("RGBA")
            except (UnidentifiedImageError, OSError) as exc:
                _LOGGER.debug("Skipping undecodable tile %s: %s", tile.url, exc)
                continue
            left, top = tile.box[0], tile.box[1]
            if self.composite(tile_img, int(round(left)), int(round(top))):
                drawn += 1
        return drawn

    def composite_svg(self, svg: str | bytes, *, left: int = 0, top: int = 0) -> None:
        overlay = rasterize_svg(svg, width=self.width, height=self.height)
        self.composite(overlay, left, top)

    def add_frame(self, width: int = 10, color: str = "#ffffff") -> None:
        if width <= 0:
            return
        self.image = ImageOps.expand(self.image, border=width, fill=ImageColor.getcolor(color, "RGBA"))

    def encode(self, fmt: str = "png", quality: int = 100) -> bytes:
        key = fmt.strip().lower()
        buf = io.BytesIO()
        if key == "png":
            self.image.save(buf, format="PNG", optimize=True)
        elif key in {"jpeg", "jpg"}:
            self._flattened().save(buf, format="JPEG", quality=quality)
        elif key == "webp":
            self.image.save(buf, format="WEBP", quality=quality)
        elif key == "pdf":
            self._flattened().save(buf, format="PDF", resolution=72.0)
        else:
            _LOGGER.error('Unsupported image format: "%s"', fmt)
            raise ValueError(f'Unsupported image format: "{fmt}"')
        return buf.getvalue()

    def _flattened(self) -> Image.Image:
        background = Image.new("RGBA", self.image.size, (255, 255, 255, 255))
        background.alpha_composite(self.image)
        return background.convert("RGB")
