from __future__ import annotations

import io
import threading
import time
from typing import Callable

import pytest
import requests
from PIL import Image


def make_png(width: int = 256, height: int = 256, color: tuple[int, int, int, int] = (200, 220, 240, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"", headers: dict[str, str] | None = None):
        self.status_code = status_code
        self.content = content
        self.headers = headers if headers is not None else {"Content-Type": "image/png"}
        self.closed = False

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Stand-in for ``requests.Session`` that records calls and concurrency."""

    def __init__(self, responder: Callable[[str], FakeResponse], delay_s: float = 0.0):
        self._responder = responder
        self._delay_s = delay_s
        self._lock = threading.Lock()
        self.calls: list[str] = []
        self.headers_seen: list[dict[str, str] | None] = []
        self.timeouts_seen: list[float | None] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def get(self, url: str, headers=None, timeout=None) -> FakeResponse:
        with self._lock:
            self.calls.append(url)
            self.headers_seen.append(headers)
            self.timeouts_seen.append(timeout)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._delay_s:
                time.sleep(self._delay_s)
            return self._responder(url)
        finally:
            with self._lock:
                self.in_flight -= 1


@pytest.fixture
def png_tile() -> bytes:
    return make_png()


@pytest.fixture
def tile_session(png_tile: bytes) -> FakeSession:
    return FakeSession(lambda url: FakeResponse(200, png_tile))
