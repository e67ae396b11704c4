"""Tile acquisition: cache lookup, HTTP fetch with retries, bounded concurrency."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Mapping, Sequence

import requests

from .cache import TileCache
from .util import bounded_map


_LOGGER = logging.getLogger("mapstatic.tiles")
_RETRYABLE_HTTP_STATUS = {429, 500, 502, 503, 504}
_UNSUPPORTED_SUFFIXES = (".pbf", ".pmtiles")
_MAX_RETRY_DELAY_S = 60.0
DEFAULT_USER_AGENT = "mapstatic/0.1 (static map renderer)"

Box = tuple[int, int, int, int]


@dataclass(frozen=True, slots=True)
class TileRequest:
    url: str
    box: Box | None = None

    @property
    def cache_key(self) -> str:
        return f"GET:{self.url}"


@dataclass(frozen=True, slots=True)
class TileResult:
    request: TileRequest
    success: bool
    body: bytes | None = None
    error: str | None = None
    from_cache: bool = False

    @property
    def url(self) -> str:
        return self.request.url

    @property
    def box(self) -> Box | None:
        return self.request.box


def tile_xy_to_quadkey(x: int, y: int, z: int) -> str:
    """Bing-style quadkey: one base-4 digit per zoom level, most significant first."""
    digits: list[str] = []
    for level in range(z, 0, -1):
        digit = 0
        mask = 1 << (level - 1)
        if x & mask:
            digit += 1
        if y & mask:
            digit += 2
        digits.append(str(digit))
    return "".join(digits)


class _RetryableStatus(Exception):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


class TileFetcher:
    """Fetch raster tiles and marker icons, consulting a shared ``TileCache``.

    Failures never raise: every outcome is a ``TileResult``. The session is
    injectable so callers can share connection pools or substitute a double.
    """

    def __init__(
        self,
        cache: TileCache,
        *,
        session: requests.Session | None = None,
        headers: Mapping[str, str] | None = None,
        timeout_s: float | None = None,
        request_limit: int = 2,
        max_retries: int = 0,
        retry_backoff_s: float = 0.5,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.cache = cache
        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": user_agent})
        self._session = session
        self._headers = dict(headers or {})
        self._timeout_s = timeout_s
        self.request_limit = max(int(request_limit), 0)
        self._max_retries = max(int(max_retries), 0)
        self._retry_backoff_s = max(float(retry_backoff_s), 0.0)

    def get_tile(self, request: TileRequest) -> TileResult:
        cached = self.cache.get(request.cache_key)
        if cached is not None:
            return TileResult(request=request, success=True, body=cached, from_cache=True)

        path = request.url.split("?", 1)[0].lower()
        if path.endswith(_UNSUPPORTED_SUFFIXES):
            return TileResult(
                request=request,
                success=False,
                error="Vector tiles (.pbf/.pmtiles) are not supported for rendering.",
            )

        try:
            response = self._request_get(request.url)
        except (requests.RequestException, _RetryableStatus) as exc:
            return TileResult(request=request, success=False, error=f"Failed to fetch tile: {exc}")

        content_type = response.headers.get("Content-Type")
        if content_type and not content_type.strip().lower().startswith("image/"):
            return TileResult(
                request=request,
                success=False,
                error=f"Tile server responded with non-image content ({content_type})",
            )

        body = response.content
        _LOGGER.debug("Fetched tile: %s", request.url)
        self.cache.set(request.cache_key, body)
        return TileResult(request=request, success=True, body=body)

    def get_tiles(self, requests_: Sequence[TileRequest]) -> list[TileResult]:
        """Fetch every request, in order, with at most ``request_limit`` in flight."""
        return bounded_map(self.get_tile, requests_, self.request_limit)

    def _request_get(self, url: str) -> requests.Response:
        attempts = self._max_retries + 1
        for attempt in range(attempts):
            response = self._session.get(url, headers=self._headers or None, timeout=self._timeout_s)
            if response.status_code not in _RETRYABLE_HTTP_STATUS:
                response.raise_for_status()
                return response
            if attempt >= self._max_retries:
                response.close()
                raise _RetryableStatus(response.status_code)
            delay_s = self._compute_retry_delay_s(response=response, attempt=attempt)
            _LOGGER.warning(
                "Retryable response %s for %s; retrying in %.1fs (%d/%d)",
                response.status_code,
                url,
                delay_s,
                attempt + 1,
                self._max_retries,
            )
            response.close()
            time.sleep(delay_s)
        raise RuntimeError("Unreachable retry loop in tile fetcher")

    def _compute_retry_delay_s(self, *, response: requests.Response, attempt: int) -> float:
        retry_after_s = _parse_retry_after_seconds(response.headers.get("Retry-After"))
        exponential_s = self._retry_backoff_s * (2**attempt)
        return min(max(exponential_s, retry_after_s), _MAX_RETRY_DELAY_S)


def _parse_retry_after_seconds(raw: str | None) -> float:
    if raw is None:
        return 0.0
    value = raw.strip()
    if not value:
        return 0.0
    try:
        parsed = float(value)
    except ValueError:
        return 0.0
    return max(parsed, 0.0)
