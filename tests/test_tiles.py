import itertools

from conftest import FakeResponse, FakeSession

from mapstatic.cache import TileCache
from mapstatic.tiles import TileFetcher, TileRequest, tile_xy_to_quadkey


def test_quadkey():
    assert tile_xy_to_quadkey(3, 5, 3) == "213"
    assert tile_xy_to_quadkey(0, 0, 0) == ""


def test_cache_key_uses_url():
    assert TileRequest("https://t/1/2/3.png", (0, 0, 256, 256)).cache_key == "GET:https://t/1/2/3.png"


def test_cache_hit_skips_network(tile_session, png_tile):
    cache = TileCache()
    cache.set("GET:https://t/0/0/0.png", png_tile)
    fetcher = TileFetcher(cache, session=tile_session)
    result = fetcher.get_tile(TileRequest("https://t/0/0/0.png"))
    assert result.success
    assert result.from_cache
    assert tile_session.calls == []


def test_successful_fetch_populates_cache(tile_session, png_tile):
    cache = TileCache()
    fetcher = TileFetcher(cache, session=tile_session)
    first = fetcher.get_tile(TileRequest("https://t/1/0/0.png"))
    second = fetcher.get_tile(TileRequest("https://t/1/0/0.png"))
    assert first.success and not first.from_cache
    assert first.body == png_tile
    assert second.from_cache
    assert len(tile_session.calls) == 1


def test_request_limit_bounds_in_flight(png_tile):
    session = FakeSession(lambda url: FakeResponse(200, png_tile), delay_s=0.05)
    fetcher = TileFetcher(TileCache(), session=session, request_limit=2)
    requests_ = [TileRequest(f"https://t/2/{i}/0.png") for i in range(4)]
    results = fetcher.get_tiles(requests_)
    assert [r.url for r in results] == [r.url for r in requests_]
    assert all(r.success for r in results)
    assert len(session.calls) == 4
    assert session.max_in_flight <= 2


def test_zero_request_limit_is_unlimited(png_tile):
    session = FakeSession(lambda url: FakeResponse(200, png_tile), delay_s=0.2)
    fetcher = TileFetcher(TileCache(), session=session, request_limit=0)
    requests_ = [TileRequest(f"https://t/3/{i}/0.png") for i in range(5)]
    results = fetcher.get_tiles(requests_)
    assert all(r.success for r in results)
    assert len(session.calls) == 5
    assert session.max_in_flight == 5


def test_vector_tiles_rejected_without_request(tile_session):
    fetcher = TileFetcher(TileCache(), session=tile_session)
    result = fetcher.get_tile(TileRequest("https://t/1/0/0.pbf?key=abc"))
    assert not result.success
    assert "Vector tiles" in result.error
    assert tile_session.calls == []


def test_non_image_content_type_fails():
    session = FakeSession(lambda url: FakeResponse(200, b"<html>", {"Content-Type": "text/html"}))
    cache = TileCache()
    fetcher = TileFetcher(cache, session=session)
    result = fetcher.get_tile(TileRequest("https://t/1/0/0.png"))
    assert not result.success
    assert "non-image" in result.error
    assert cache.size == 0


def test_http_error_is_a_failed_result():
    session = FakeSession(lambda url: FakeResponse(404))
    fetcher = TileFetcher(TileCache(), session=session)
    result = fetcher.get_tile(TileRequest("https://t/1/0/0.png"))
    assert not result.success
    assert result.error.startswith("Failed to fetch tile")


def test_retryable_status_is_retried(png_tile):
    statuses = itertools.chain([503], itertools.repeat(200))
    session = FakeSession(lambda url: FakeResponse(next(statuses), png_tile))
    fetcher = TileFetcher(TileCache(), session=session, max_retries=2, retry_backoff_s=0)
    result = fetcher.get_tile(TileRequest("https://t/1/0/0.png"))
    assert result.success
    assert len(session.calls) == 2


def test_retries_exhausted():
    session = FakeSession(lambda url: FakeResponse(429))
    fetcher = TileFetcher(TileCache(), session=session, max_retries=1, retry_backoff_s=0)
    result = fetcher.get_tile(TileRequest("https://t/1/0/0.png"))
    assert not result.success
    assert "HTTP 429" in result.error
    assert len(session.calls) == 2


def test_headers_and_timeout_forwarded(tile_session):
    fetcher = TileFetcher(
        TileCache(),
        session=tile_session,
        headers={"Authorization": "Bearer x"},
        timeout_s=2.5,
    )
    fetcher.get_tile(TileRequest("https://t/1/0/0.png"))
    assert tile_session.headers_seen == [{"Authorization": "Bearer x"}]
    assert tile_session.timeouts_seen == [2.5]
