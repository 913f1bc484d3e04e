from __future__ import annotations

import functools
from time import perf_counter
from typing import TYPE_CHECKING, Awaitable, Callable

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from easyroute.context import RequestContext
from easyroute.gates import Handler, invoke, run_gate
from easyroute.observability.metrics import get_metrics

if TYPE_CHECKING:
    from easyroute.router import Router


Endpoint = Callable[[Request], Awaitable[Response]]


class DispatchPipeline:
    """Wraps user handlers for one router node.

    Gate, logger and crash reporting are read from the node on every exchange,
    so enabling reporting after routes were registered still applies to them.
    """

    def __init__(self, router: Router) -> None:
        self._router = router

    def wrap(self, handler: Handler) -> Endpoint:
        @functools.wraps(handler)
        async def endpoint(request: Request) -> Response:
            return await self.dispatch(handler, request)

        return endpoint

    async def dispatch(self, handler: Handler, request: Request) -> Response:
        factory = self._router.reporter_factory
        if factory is None:
            return await self._run(handler, request)

        reporter = await run_in_threadpool(factory)
        try:
            return await self._run(handler, request)
        except Exception as exc:
            await run_in_threadpool(reporter.notify_fault, exc)
            raise
        finally:
            await run_in_threadpool(reporter.close)

    async def _run(self, handler: Handler, request: Request) -> Response:
        logger = self._router.logger
        start = perf_counter()

        # Buffered once; the handler and the access log see the same bytes.
        body = await request.body()
        ctx = RequestContext(request, body, logger=logger)

        passed = False
        try:
            passed = await run_gate(self._router.before_handler, ctx)
            if passed:
                await invoke(handler, ctx)
        except Exception as exc:
            elapsed_ms = (perf_counter() - start) * 1000.0
            get_metrics().observe_dispatch(elapsed_ms=elapsed_ms, fault=True)
            if logger.error is not None:
                logger.error(
                    "http_request_failed",
                    origin=ctx.origin,
                    method=ctx.method,
                    path=ctx.path,
                    user_uuid=ctx.user_uuid,
                    error=repr(exc),
                    elapsed_ms=round(elapsed_ms, 2),
                )
            raise

        elapsed_ms = (perf_counter() - start) * 1000.0
        get_metrics().observe_dispatch(elapsed_ms=elapsed_ms, rejected=not passed)

        if not passed and logger.debug is not None:
            logger.debug("http_request_rejected", method=ctx.method, path=ctx.path)

        if logger.info is not None:
            logger.info(
                "http_request",
                origin=ctx.origin,
                method=ctx.method,
                path=ctx.path,
                body=ctx.loggable_body(self._router.log_body_limit),
                user_uuid=ctx.user_uuid,
                elapsed_ms=round(elapsed_ms, 2),
            )

        return ctx.writer.to_response()
