from __future__ import annotations

import structlog

from easyroute.router import Router


async def test_profiling_endpoints_are_mounted_when_enabled(client_for) -> None:
    router = Router(lambda ctx: False, profiling=True)

    async with client_for(router) as client:
        index = await client.get("/debug/pprof/")
        cmdline = await client.get("/debug/pprof/cmdline")
        heap = await client.get("/debug/pprof/heap?limit=5")
        threads = await client.get("/debug/pprof/threads")
        tasks = await client.get("/debug/pprof/tasks")

    assert index.status_code == 200
    for name in ("cmdline", "heap", "threads", "tasks"):
        assert name in index.text
    assert cmdline.status_code == 200
    assert heap.status_code == 200
    assert heap.text.startswith("# tracemalloc")
    assert "thread" in threads.text
    assert tasks.status_code == 200


def test_profiling_endpoints_are_listed_in_routes() -> None:
    router = Router(lambda ctx: False, profiling=True)
    paths = {route.path for route in router.routes()}
    assert "/debug/pprof/heap" in paths
    assert "/debug/vars" in paths


async def test_debug_vars_reports_dispatch_metrics(client_for) -> None:
    router = Router(profiling=True)
    router.get("/ok", lambda ctx: None)

    async with client_for(router) as client:
        await client.get("/ok")
        await client.get("/ok")
        resp = await client.get("/debug/vars")

    payload = resp.json()
    assert payload["counters"]["requests_total"] == 2
    assert payload["latency_ms"]["dispatch_ms"]["count"] == 2
    assert set(payload["latency_ms"]["dispatch_ms"]) == {"count", "min_ms", "mean_ms", "max_ms"}


async def test_profiling_endpoints_absent_by_default(client_for) -> None:
    router = Router()

    async with client_for(router) as client:
        resp = await client.get("/debug/pprof/")

    assert resp.status_code == 404


async def test_profiling_enabled_from_settings(client_for, monkeypatch) -> None:
    monkeypatch.setenv("EASYROUTE_PROFILING_ENABLED", "true")
    router = Router()

    async with client_for(router) as client:
        resp = await client.get("/debug/pprof/cmdline")

    assert resp.status_code == 200


async def test_tracing_sets_request_id_and_binds_service(client_for, recording_log) -> None:
    bound: list[dict] = []

    async def handler(ctx) -> None:
        bound.append(structlog.contextvars.get_contextvars())

    router = Router(logger=recording_log.logger(), service_name="orders", tracing=True)
    router.get("/traced", handler)

    async with client_for(router) as client:
        fresh = await client.get("/traced")
        echoed = await client.get("/traced", headers={"X-Request-ID": "abc-123"})

    assert fresh.headers.get("x-request-id")
    assert echoed.headers["x-request-id"] == "abc-123"
    assert bound[1]["request_id"] == "abc-123"
    assert bound[1]["service"] == "orders"


async def test_no_request_id_without_tracing(client_for) -> None:
    router = Router()
    router.get("/plain", lambda ctx: None)

    async with client_for(router) as client:
        resp = await client.get("/plain")

    assert "x-request-id" not in resp.headers
