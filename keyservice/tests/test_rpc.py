"""
Test cases for the RPC endpoint.
"""
import asyncio

import pytest
from httpx import AsyncClient, ASGITransport

from keyservice.auth.registry import MemoryRegistry
from keyservice.config import Settings
from keyservice.main import create_app
from keyservice.tests.conftest import FailingGenerator


def rpc_body(method, user=None, request_id=1):
    params = [{"User": user}] if user is not None else [{"Request": ""}]
    return {"method": method, "params": params, "id": request_id}


async def call(ac, method, user=None):
    return await ac.post("/rpc", json=rpc_body(method, user))


@pytest.mark.asyncio
async def test_auth_lifecycle(app):
    """Generate, fetch and reset one user, then check the failure cases."""
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        resp = await call(ac, "Auth.Generate", "newuser")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/json"
        body = resp.json()
        assert body["error"] is None
        assert body["id"] == 1
        reply = body["result"]
        assert reply["Name"] == "newuser"
        assert len(reply["AccessKeyID"]) == 20
        assert len(reply["SecretAccessKey"]) == 40

        resp = await call(ac, "Auth.Fetch", "newuser")
        assert resp.status_code == 200
        fetched = resp.json()["result"]
        assert fetched == reply

        resp = await call(ac, "Auth.Reset", "newuser")
        assert resp.status_code == 200
        reset = resp.json()["result"]
        assert reset["Name"] == "newuser"
        assert reset["AccessKeyID"] != reply["AccessKeyID"]
        assert reset["SecretAccessKey"] != reply["SecretAccessKey"]

        resp = await call(ac, "Auth.Fetch", "newuser")
        assert resp.json()["result"] == reset

        # generating access for an existing user fails
        resp = await call(ac, "Auth.Generate", "newuser")
        assert resp.status_code == 400
        assert resp.json()["result"] is None
        assert resp.json()["error"]["code"] == "AlreadyExists"

        # empty user is invalid
        resp = await call(ac, "Auth.Generate", "")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "InvalidArgument"


@pytest.mark.asyncio
@pytest.mark.parametrize("method, user, code", [
    ("Auth.Fetch", "", "InvalidArgument"),
    ("Auth.Reset", "", "InvalidArgument"),
    ("Auth.Fetch", "ghost", "NotFound"),
    ("Auth.Reset", "ghost", "NotFound"),
])
async def test_auth_client_errors(app, method, user, code):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        resp = await call(ac, method, user)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == code


@pytest.mark.asyncio
async def test_missing_user_is_invalid(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        resp = await ac.post("/rpc", json={"method": "Auth.Generate", "params": [{}], "id": 7})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "InvalidArgument"
        assert resp.json()["id"] == 7


@pytest.mark.asyncio
async def test_bare_object_params(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        resp = await ac.post("/rpc", json={"method": "Auth.Generate", "params": {"User": "alice"}})
        assert resp.status_code == 200
        assert resp.json()["result"]["Name"] == "alice"
        assert resp.json()["id"] is None


@pytest.mark.asyncio
async def test_concurrent_generate_over_http(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        responses = await asyncio.gather(*[call(ac, "Auth.Generate", "newuser") for _ in range(8)])
        statuses = sorted(r.status_code for r in responses)
        assert statuses == [200] + [400] * 7

        winner = next(r for r in responses if r.status_code == 200).json()["result"]
        resp = await call(ac, "Auth.Fetch", "newuser")
        assert resp.json()["result"] == winner


@pytest.mark.asyncio
async def test_mem_stats(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        resp = await call(ac, "Server.MemStats")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/json"
        reply = resp.json()["result"]
        assert reply["MaxRSS"] > 0
        assert reply["Objects"] > 0
        assert reply["GCCounts"]


@pytest.mark.asyncio
async def test_sys_info(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        resp = await call(ac, "Server.SysInfo")
        assert resp.status_code == 200
        reply = resp.json()["result"]
        assert reply["Hostname"]
        assert reply["SysCPUS"] >= 1
        assert reply["PythonVersion"]
        assert reply["MemStats"]["MaxRSS"] > 0


@pytest.mark.asyncio
async def test_content_type_required(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        resp = await ac.post(
            "/rpc",
            content='{"method": "Server.MemStats", "params": [{}]}',
            headers={"Content-Type": "text/plain"},
        )
        assert resp.status_code == 415
        assert resp.json()["error"]["code"] == "UnsupportedMediaType"


@pytest.mark.asyncio
async def test_content_type_with_charset(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        resp = await ac.post(
            "/rpc",
            content='{"method": "Server.MemStats", "params": [{}]}',
            headers={"Content-Type": "application/json; charset=utf-8"},
        )
        assert resp.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("content, code", [
    ("{not json", "ParseError"),
    ("[1, 2]", "InvalidRequest"),
    ('{"params": []}', "InvalidRequest"),
    ('{"method": "Auth.Generate", "params": ["alice"]}', "InvalidRequest"),
    ('{"method": "Auth.Generate", "params": [{"User": 5}]}', "InvalidRequest"),
    ('{"method": "Auth.Delete", "params": [{"User": "alice"}]}', "MethodNotFound"),
])
async def test_malformed_requests(app, content, code):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        resp = await ac.post("/rpc", content=content, headers={"Content-Type": "application/json"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == code


@pytest.mark.asyncio
async def test_randomness_failure_aborts_request(caplog):
    app = create_app(Settings(), MemoryRegistry(FailingGenerator()))
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        with caplog.at_level("ERROR"):
            resp = await call(ac, "Auth.Generate", "alice")
        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "InternalError"
        assert "randomness source unavailable" in caplog.text

        # nothing was stored and the registry lock was released
        resp = await call(ac, "Auth.Fetch", "alice")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "NotFound"


@pytest.mark.asyncio
async def test_sql_backend_over_http(sql_registry):
    app = create_app(Settings(registry_backend="sql"), sql_registry)
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        generated = (await call(ac, "Auth.Generate", "alice")).json()["result"]
        fetched = (await call(ac, "Auth.Fetch", "alice")).json()["result"]
        assert fetched == generated

        resp = await call(ac, "Auth.Generate", "alice")
        assert resp.json()["error"]["code"] == "AlreadyExists"

        resp = await ac.get("/health")
        assert resp.json() == {"status": "ok", "backend": "sql", "credentials": 1}


@pytest.mark.asyncio
async def test_custom_rpc_path(memory_registry):
    app = create_app(Settings(rpc_path="/controller/rpc"), memory_registry)
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        resp = await ac.post("/controller/rpc", json=rpc_body("Auth.Generate", "alice"))
        assert resp.status_code == 200
        resp = await ac.post("/rpc", json=rpc_body("Auth.Fetch", "alice"))
        assert resp.status_code == 404


@pytest.mark.asyncio
async def test_root_and_health(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(base_url="http://test", transport=transport) as ac:
        resp = await ac.get("/")
        assert resp.status_code == 200
        assert resp.json()["name"] == "keyservice"

        resp = await ac.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "backend": "memory", "credentials": 0}


@pytest.mark.asyncio
async def test_lifespan_initializes_sql_backend(database_url, caplog):
    app = create_app(Settings(registry_backend="sql", database_url=database_url))
    transport = ASGITransport(app=app)
    with caplog.at_level("INFO"):
        async with app.router.lifespan_context(app):
            async with AsyncClient(base_url="http://test", transport=transport) as ac:
                resp = await call(ac, "Auth.Generate", "alice")
                assert resp.status_code == 200
                resp = await ac.get("/health")
                assert resp.json()["credentials"] == 1
    assert "service.startup" in caplog.text
    assert "service.shutdown" in caplog.text
