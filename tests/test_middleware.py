"""
Request ID propagation and degraded-status header tests.
"""
import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient

from spacenexus.core.context import get_request_id
from spacenexus.middleware import DegradedInjectorMiddleware, RequestIDMiddleware
from spacenexus.services.circuit_breaker_service import create_circuit_breaker


@pytest.fixture
async def test_app():
    app = FastAPI()

    @app.get("/test")
    async def test_endpoint():
        return JSONResponse(content={"request_id": get_request_id()})

    app.add_middleware(DegradedInjectorMiddleware)
    app.add_middleware(RequestIDMiddleware)
    return app


@pytest.fixture
async def client(test_app):
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def test_request_id_generated(client):
    response = await client.get("/test")
    assert response.status_code == 200
    request_id = response.headers["X-Request-ID"]
    assert len(request_id) == 36
    assert response.json()["request_id"] == request_id


async def test_request_id_propagated(client):
    response = await client.get("/test", headers={"X-Request-ID": "launch-42"})
    assert response.headers["X-Request-ID"] == "launch-42"
    assert response.json()["request_id"] == "launch-42"


async def test_oversized_request_id_replaced(client):
    response = await client.get("/test", headers={"X-Request-ID": "x" * 500})
    assert response.headers["X-Request-ID"] != "x" * 500


async def test_no_degraded_header_when_healthy(client):
    create_circuit_breaker("launch-library")
    response = await client.get("/test")
    assert "X-System-Status" not in response.headers


async def test_degraded_header_when_circuit_open(client):
    breaker = create_circuit_breaker("noaa-swpc", fail_max=1, reset_timeout=60)
    breaker.execute(lambda: 1 / 0, fallback=None)

    response = await client.get("/test")
    assert response.headers["X-System-Status"] == "degraded"
