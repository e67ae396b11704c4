import io

import pytest
from conftest import make_png
from PIL import Image

from mapstatic.attribution import MARGIN, attribution_box, create_attribution_svg
from mapstatic.image import Canvas, default_pin, image_size, resize_image, svg_backend_error
from mapstatic.tiles import TileRequest, TileResult

needs_cairo = pytest.mark.skipif(svg_backend_error() is not None, reason="cairosvg/libcairo unavailable")


class TestCanvas:
    def test_composite_clips_at_edges(self):
        canvas = Canvas.blank(10, 10)
        red = Image.new("RGBA", (6, 6), (255, 0, 0, 255))
        assert canvas.composite(red, -3, 7)
        assert canvas.image.getpixel((0, 9)) == (255, 0, 0, 255)
        assert canvas.image.getpixel((3, 9))[3] == 0
        assert not canvas.composite(red, 10, 0)
        assert not canvas.composite(red, -6, 0)

    def test_draw_tiles_skips_failures_and_garbage(self):
        canvas = Canvas.blank(512, 256)
        good = TileResult(TileRequest("a", (0, 0, 256, 256)), True, make_png())
        garbage = TileResult(TileRequest("b", (256, 0, 512, 256)), True, b"junk")
        failed = TileResult(TileRequest("c", (256, 0, 512, 256)), False, error="HTTP 500")
        assert canvas.draw_tiles([good, garbage, failed]) == 1
        assert canvas.image.getpixel((10, 10))[3] == 255
        assert canvas.image.getpixel((300, 10))[3] == 0

    def test_add_frame(self):
        canvas = Canvas.blank(20, 10)
        canvas.add_frame(3, "#ff0000")
        assert canvas.size == (26, 16)
        assert canvas.image.getpixel((0, 0)) == (255, 0, 0, 255)
        canvas.add_frame(0)
        assert canvas.size == (26, 16)

    @pytest.mark.parametrize("fmt, magic", [("png", b"\x89PNG"), ("jpeg", b"\xff\xd8"), ("pdf", b"%PDF")])
    def test_encode(self, fmt, magic):
        assert Canvas.blank(8, 8).encode(fmt, 80).startswith(magic)

    def test_encode_unknown_format(self):
        with pytest.raises(ValueError, match="Unsupported image format"):
            Canvas.blank(8, 8).encode("bmp")


class TestResize:
    @pytest.mark.parametrize(
        "fit, expected",
        [("cover", (10, 10)), ("contain", (10, 10)), ("fill", (10, 10)), ("inside", (10, 5)), ("outside", (20, 10))],
    )
    def test_fit_modes(self, fit, expected):
        wide = Image.new("RGBA", (40, 20), (0, 128, 0, 255))
        assert resize_image(wide, 10, 10, fit).size == expected

    def test_accepts_bytes(self):
        assert resize_image(make_png(30, 30), 15, 15).size == (15, 15)


def test_image_size():
    assert image_size(make_png(7, 9)) == (7, 9)
    assert image_size(b"nope") is None


def test_default_pin_is_opaque_in_the_middle():
    pin = default_pin(20, 20, "#d9534f")
    assert pin.size == (20, 20)
    assert pin.getpixel((10, 4))[3] > 200
    assert pin.getpixel((0, 0))[3] == 0


class TestAttribution:
    def test_box_sits_in_bottom_right(self):
        x, y, w, h = attribution_box("© OSM", 800, 600)
        assert x + w == pytest.approx(800 - MARGIN)
        assert y + h == pytest.approx(600 - MARGIN)

    def test_text_is_escaped(self):
        svg = create_attribution_svg("A & B <c>", 200, 100)
        assert "A &amp; B &lt;c&gt;" in svg
        assert 'text-anchor="end"' in svg

    @needs_cairo
    def test_rasterizes_onto_canvas(self):
        canvas = Canvas.blank(300, 100)
        canvas.composite_svg(create_attribution_svg("© OpenStreetMap contributors", 300, 100))
        assert canvas.image.getpixel((295 - 3, 95 - 3))[3] > 0
        assert canvas.image.getpixel((2, 2))[3] == 0

    @needs_cairo
    def test_encode_after_svg_overlay(self):
        canvas = Canvas.blank(50, 50)
        canvas.composite_svg('<svg width="50" height="50" xmlns="http://www.w3.org/2000/svg">'
                             '<rect width="50" height="50" fill="#00ff00"/></svg>')
        with Image.open(io.BytesIO(canvas.encode("png"))) as img:
            assert img.convert("RGBA").getpixel((25, 25)) == (0, 255, 0, 255)
