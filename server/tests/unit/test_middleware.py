"""Unit tests for the request-processing middleware stack."""

import pytest
from fastapi import FastAPI, Request
from httpx import ASGITransport, AsyncClient

from natours.core.middleware import (
    BodySizeLimitMiddleware,
    CORSMiddleware,
    GZipMiddleware,
    LoggingMiddleware,
    RequestIDMiddleware,
    RequestTimeMiddleware,
    SanitizationMiddleware,
    SecurityHeadersMiddleware,
    build_middleware_stack,
    dedupe_query_string,
)


def _echo_app() -> FastAPI:
    app = FastAPI(middleware=build_middleware_stack())

    @app.post("/echo")
    async def echo(request: Request):
        body = await request.body()
        return {"size": len(body), "request_time": request.state.request_time}

    @app.post("/echo-json")
    async def echo_json(payload: dict):
        return payload

    @app.get("/params")
    async def params(request: Request):
        return request.query_params.multi_items()

    return app


def test_stack_order():
    """Test the stack is built outermost first."""
    classes = [middleware.cls for middleware in build_middleware_stack()]

    assert classes == [
        RequestIDMiddleware,
        RequestTimeMiddleware,
        SecurityHeadersMiddleware,
        BodySizeLimitMiddleware,
        SanitizationMiddleware,
        LoggingMiddleware,
        GZipMiddleware,
        CORSMiddleware,
    ]


@pytest.mark.asyncio
async def test_headers_and_request_time():
    transport = ASGITransport(app=_echo_app())
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/echo", content=b"x" * 100, headers={"X-Request-ID": "abc-123"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "abc-123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "Content-Security-Policy" in response.headers
    assert response.json()["size"] == 100
    assert response.json()["request_time"].endswith("Z")


@pytest.mark.asyncio
async def test_generated_request_id():
    transport = ASGITransport(app=_echo_app())
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/echo", content=b"{}")

    assert len(response.headers["X-Request-ID"]) == 36


@pytest.mark.asyncio
async def test_body_limit():
    """Test bodies over 10 kB are rejected before reaching the route."""
    transport = ASGITransport(app=_echo_app())
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        accepted = await client.post("/echo", content=b"x" * (10 * 1024))
        rejected = await client.post("/echo", content=b"x" * (10 * 1024 + 1))

    assert accepted.status_code == 200
    assert rejected.status_code == 413
    assert rejected.json()["title"] == "Payload Too Large"
    assert "X-Request-ID" in rejected.headers


@pytest.mark.asyncio
async def test_large_responses_are_compressed():
    app = FastAPI(middleware=build_middleware_stack())

    @app.get("/big")
    async def big():
        return {"data": "natours " * 500}

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/big", headers={"Accept-Encoding": "gzip"})

    assert response.headers["Content-Encoding"] == "gzip"
    assert response.json()["data"].startswith("natours")


@pytest.mark.asyncio
async def test_markup_is_stripped_from_json_strings():
    transport = ASGITransport(app=_echo_app())
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.post("/echo-json", json={
            "review": "<script>alert(1)</script>Great tour",
            "images": ["<b>tour-1.jpg</b>"],
            "summary": "Fish & Chips, 3 > 2",
            "rating": 5,
        })

    assert response.status_code == 200
    assert response.json() == {
        "review": "Great tour",
        "images": ["tour-1.jpg"],
        "summary": "Fish & Chips, 3 > 2",
        "rating": 5,
    }


@pytest.mark.asyncio
async def test_repeated_parameters_keep_last_unless_whitelisted():
    transport = ASGITransport(app=_echo_app())
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get(
            "/params?sort=price&sort=-duration&duration=5&duration=9&price[lt]=900&price[lt]=500"
        )

    assert response.json() == [
        ["sort", "-duration"],
        ["duration", "5"],
        ["duration", "9"],
        ["price[lt]", "900"],
        ["price[lt]", "500"],
    ]


@pytest.mark.parametrize("raw, expected", [
    (b"sort=price&fields=name", b"sort=price&fields=name"),
    (b"name=a&name=b", b"name=b"),
    (b"difficulty=easy&difficulty=medium", b"difficulty=easy&difficulty=medium"),
    (b"", b""),
])
def test_dedupe_query_string(raw, expected):
    assert dedupe_query_string(raw) == expected
