"""Attribution box drawn in the bottom-right corner of a finished map."""

from __future__ import annotations

from html import escape


FONT_SIZE = 12
PADDING_X = 10
PADDING_Y = 4
MARGIN = 5
# Rough average glyph width of Arial relative to the font size.
CHAR_WIDTH_RATIO = 0.48


def _num(value: float) -> str:
    return f"{value:.2f}".rstrip("0").rstrip(".")


def attribution_box(text: str, width: int, height: int) -> tuple[float, float, float, float]:
    """Background rectangle ``(x, y, w, h)`` for ``text`` on a ``width`` x ``height`` canvas."""
    rect_w = len(text) * FONT_SIZE * CHAR_WIDTH_RATIO + PADDING_X * 2
    rect_h = FONT_SIZE + PADDING_Y * 2
    return (width - MARGIN - rect_w, height - MARGIN - rect_h, rect_w, rect_h)


def create_attribution_svg(text: str, width: int, height: int) -> str:
    rect_x, rect_y, rect_w, rect_h = attribution_box(text, width, height)
    text_x = width - MARGIN - PADDING_X
    text_y = rect_y + rect_h / 2 + FONT_SIZE / 2.8
    return (
        f'<svg width="{width}" height="{height}" version="1.1" xmlns="http://www.w3.org/2000/svg">'
        f'<rect x="{_num(rect_x)}" y="{_num(rect_y)}" width="{_num(rect_w)}" height="{_num(rect_h)}"'
        ' rx="4" ry="4" fill="#000000" fill-opacity="0.5"/>'
        f'<text x="{_num(text_x)}" y="{_num(text_y)}" font-family="Arial, sans-serif"'
        f' font-size="{FONT_SIZE}px" fill="#ffffff" fill-opacity="0.95" text-anchor="end">'
        f"{escape(text)}</text>"
        "</svg>"
    )
