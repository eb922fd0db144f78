"""Integration tests for page cache hits, misses and conditional requests.

This module tests the decorator end to end:
- A cached page is replayed (200 OK) without re-executing the endpoint
- Validator headers are sent and a matching client copy gets 304
- Write failures and dry run mode still serve the live response
"""

import fcntl
from datetime import datetime
from datetime import timezone
from email.utils import format_datetime

import pytest
from fastapi import FastAPI
from fastapi import Request
from fastapi import Response
from fastapi.responses import HTMLResponse
from fastapi.testclient import TestClient

from fastapi_pagecache import PageCache
from fastapi_pagecache import PageCacheConfig
from fastapi_pagecache.exceptions import CacheWriteError
from fastapi_pagecache.exceptions import DirectoryCreateError
from fastapi_pagecache.types import WriteOutcome


@pytest.fixture
def app() -> FastAPI:
    return FastAPI()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def make_page_cache(cache_dir, **options) -> PageCache:
    return PageCache(PageCacheConfig(cache_path=cache_dir, **options))


def make_request(path: str, query: bytes = b"") -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": path,
            "query_string": query,
            "headers": [(b"host", b"testserver")],
        }
    )


def test_cache_hit_returns_cached_content(app, client, cache_dir):
    """Second request is served from the cache file, not the endpoint."""
    page_cache = make_page_cache(cache_dir)
    call_count = {"value": 0}

    @app.get("/page")
    @page_cache.cache()
    async def page():
        call_count["value"] += 1
        return HTMLResponse(f"<html><body>visit {call_count['value']}</body></html>")

    response1 = client.get("/page")
    assert response1.status_code == 200
    assert response1.text == "<html><body>visit 1</body></html>"

    response2 = client.get("/page")
    assert response2.status_code == 200
    assert response2.text == "<html><body>visit 1</body></html>"
    assert response2.headers["content-type"].startswith("text/html")
    assert call_count["value"] == 1


def test_sync_endpoint_and_plain_return_value(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir)
    call_count = {"value": 0}

    @app.get("/items")
    @page_cache.cache()
    def items():
        call_count["value"] += 1
        return {"items": [1, 2, 3], "generated": call_count["value"]}

    assert client.get("/items").json() == {"items": [1, 2, 3], "generated": 1}
    response = client.get("/items")
    assert response.json() == {"items": [1, 2, 3], "generated": 1}
    assert response.headers["content-type"] == "application/json"


def test_query_params_are_separate_pages(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir)
    call_log = []

    @app.get("/query-variant")
    @page_cache.cache()
    async def query_variant(user_id: int):
        call_log.append(user_id)
        return {"user_id": user_id, "call_number": len(call_log)}

    assert client.get("/query-variant?user_id=1").json() == {"user_id": 1, "call_number": 1}
    assert client.get("/query-variant?user_id=2").json() == {"user_id": 2, "call_number": 2}
    assert client.get("/query-variant?user_id=1").json() == {"user_id": 1, "call_number": 1}
    assert len(call_log) == 2


def test_post_is_not_cached(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir)
    execution_log = {"post": 0}

    @app.post("/submit")
    @page_cache.cache()
    async def submit():
        execution_log["post"] += 1
        return {"count": execution_log["post"]}

    assert client.post("/submit").json() == {"count": 1}
    assert client.post("/submit").json() == {"count": 2}
    assert list(cache_dir.iterdir()) == []


def test_endpoint_with_request_parameter(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir)
    call_count = {"value": 0}

    @app.get("/whoami")
    @page_cache.cache()
    async def whoami(request: Request):
        call_count["value"] += 1
        return {"path": request.url.path}

    assert client.get("/whoami").json() == {"path": "/whoami"}
    assert client.get("/whoami").json() == {"path": "/whoami"}
    assert call_count["value"] == 1


def test_error_responses_are_not_cached(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir)
    call_count = {"value": 0}

    @app.get("/broken")
    @page_cache.cache()
    async def broken():
        call_count["value"] += 1
        return Response(content=b"temporarily unavailable", status_code=503)

    assert client.get("/broken").status_code == 503
    assert client.get("/broken").status_code == 503
    assert call_count["value"] == 2


def test_validator_headers_sent(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir, send_headers=True)

    @app.get("/page")
    @page_cache.cache()
    async def page():
        return HTMLResponse("<html><body>hello</body></html>")

    response1 = client.get("/page")
    assert response1.status_code == 200
    assert response1.headers["etag"].startswith('"')
    assert response1.headers["last-modified"].endswith("GMT")
    assert response1.headers["expires"].endswith("GMT")

    response2 = client.get("/page")
    assert response2.status_code == 200
    assert response2.headers["etag"] == response1.headers["etag"]
    assert response2.headers["last-modified"] == response1.headers["last-modified"]


def test_matching_etag_returns_304(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir, send_headers=True)

    @app.get("/page")
    @page_cache.cache()
    async def page():
        return HTMLResponse("<html><body>hello</body></html>")

    etag = client.get("/page").headers["etag"]

    response = client.get("/page", headers={"If-None-Match": etag})
    assert response.status_code == 304
    assert response.content == b""
    assert response.headers["etag"] == etag


def test_if_modified_since_returns_304(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir, send_headers=True)

    @app.get("/page")
    @page_cache.cache()
    async def page():
        return HTMLResponse("<html><body>hello</body></html>")

    last_modified = client.get("/page").headers["last-modified"]

    response = client.get("/page", headers={"If-Modified-Since": last_modified})
    assert response.status_code == 304

    response = client.get(
        "/page", headers={"If-Modified-Since": "Mon, 01 Jan 2001 00:00:00 GMT"}
    )
    assert response.status_code == 200
    assert response.text == "<html><body>hello</body></html>"


def test_no_304_without_send_headers(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir)

    @app.get("/page")
    @page_cache.cache()
    async def page():
        return HTMLResponse("<html><body>hello</body></html>")

    response1 = client.get("/page")
    assert "etag" not in response1.headers

    response2 = client.get("/page", headers={"If-Modified-Since": "Fri, 01 Jan 2100 00:00:00 GMT"})
    assert response2.status_code == 200


def test_forwarded_headers(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir, send_headers=True, forward_headers=True)
    last_modified = format_datetime(datetime(2020, 5, 17, 10, 0, 0, tzinfo=timezone.utc), usegmt=True)

    @app.get("/page")
    @page_cache.cache()
    async def page():
        return HTMLResponse(
            "<html><body>hello</body></html>",
            headers={"ETag": '"from-app"', "Last-Modified": last_modified},
        )

    response1 = client.get("/page")
    assert response1.headers["etag"] == '"from-app"'
    assert response1.headers["last-modified"] == last_modified

    response2 = client.get("/page", headers={"If-None-Match": '"from-app"'})
    assert response2.status_code == 304


def test_dry_run_always_returns_live_response(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir, dry_run_mode=True, send_headers=True)
    call_count = {"value": 0}

    @app.get("/page")
    @page_cache.cache()
    async def page():
        call_count["value"] += 1
        return HTMLResponse(f"<html><body>visit {call_count['value']}</body></html>")

    response1 = client.get("/page")
    assert response1.text == "<html><body>visit 1</body></html>"

    response2 = client.get("/page", headers={"If-None-Match": "anything"})
    assert response2.status_code == 200
    assert response2.text == "<html><body>visit 2</body></html>"
    assert call_count["value"] == 2


def test_dry_run_still_writes_cache(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir, dry_run_mode=True)

    @app.get("/page")
    @page_cache.cache()
    async def page():
        return HTMLResponse("<html><body>hello</body></html>")

    client.get("/page")

    item = page_cache.storage.get(page_cache.resolve_key(make_request("/page")))
    assert item is not None
    assert item.content == b"<html><body>hello</body></html>"


def test_lock_contention_serves_live_response(app, client, cache_dir):
    page_cache = make_page_cache(cache_dir)
    adapter = page_cache.storage.adapter
    call_count = {"value": 0}

    @app.get("/page")
    @page_cache.cache()
    async def page():
        call_count["value"] += 1
        return HTMLResponse(f"<html><body>visit {call_count['value']}</body></html>")

    # Another request is in the middle of writing this page
    key = page_cache.resolve_key(make_request("/page"))
    entry = adapter.hash_directory.full_path(adapter._filename(key))
    with open(entry, "wb") as fp:
        fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)

        response1 = client.get("/page")
        response2 = client.get("/page")

    assert response1.text == "<html><body>visit 1</body></html>"
    assert response2.text == "<html><body>visit 2</body></html>"
    assert call_count["value"] == 2


def test_write_error_serves_live_response(app, client, cache_dir, monkeypatch):
    page_cache = make_page_cache(cache_dir)

    def failing_set(item):
        raise CacheWriteError("disk full", WriteOutcome.ERROR_WRITE)

    monkeypatch.setattr(page_cache.storage, "set", failing_set)

    @app.get("/page")
    @page_cache.cache()
    async def page():
        return HTMLResponse("<html><body>hello</body></html>")

    response = client.get("/page")
    assert response.status_code == 200
    assert response.text == "<html><body>hello</body></html>"


def test_directory_error_serves_live_response(app, client, cache_dir, monkeypatch):
    page_cache = make_page_cache(cache_dir)

    def failing_set(item):
        raise DirectoryCreateError("permission denied")

    monkeypatch.setattr(page_cache.storage, "set", failing_set)

    @app.get("/page")
    @page_cache.cache()
    async def page():
        return HTMLResponse("<html><body>hello</body></html>")

    assert client.get("/page").status_code == 200
