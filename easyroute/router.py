from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

from starlette.routing import BaseRoute, Mount, Route
from starlette.routing import Router as StarletteRouter
from starlette.types import ASGIApp, Receive, Scope, Send

from easyroute.config import Settings, get_settings
from easyroute.dispatch import DispatchPipeline
from easyroute.gates import Gate, Handler, allow_all, compose
from easyroute.observability.logging import Logger
from easyroute.observability.middleware import TracingMiddleware
from easyroute.reporting import ReporterFactory, airbrake_factory


@dataclass(frozen=True)
class RouteInfo:
    path: str
    methods: frozenset[str]


class Router:
    """Route registration facade over a Starlette router.

    Every registered handler runs through the node's gate, then timing,
    logging and (when enabled) crash reporting. The root router is an ASGI
    application.

    Example:
        >>> router = Router(require_user, Logger.from_structlog())
        >>> @router.get("/users/{id}")
        ... def show_user(ctx):
        ...     ctx.json(200, {"id": ctx.vars["id"]})
    """

    def __init__(
        self,
        before_handler: Gate | None = None,
        logger: Logger | None = None,
        service_name: str | None = None,
        *,
        tracing: bool | None = None,
        profiling: bool | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()

        self.before_handler: Gate = before_handler or allow_all
        self.logger = logger or Logger()
        self.service_name = service_name or settings.service_name
        self.log_body_limit = settings.log_body_limit
        self.reporter_factory: ReporterFactory | None = None
        self._router = StarletteRouter()
        self._pipeline = DispatchPipeline(self)

        if tracing is None:
            tracing = settings.tracing_enabled
        if profiling is None:
            profiling = settings.profiling_enabled

        self._app: ASGIApp = self._router
        if tracing:
            self._app = TracingMiddleware(self._router, service_name=self.service_name)
        if profiling:
            from easyroute.debug import debug_routes

            self._router.routes.extend(debug_routes())

        project_id = settings.airbrake_project_id_int
        if settings.airbrake_enabled and project_id is not None:
            self.enable_crash_reporting(
                project_id,
                settings.airbrake_project_key,
                environment=settings.airbrake_environment,
            )

    @classmethod
    def _child(cls, parent: Router, router: StarletteRouter, before_handler: Gate) -> Router:
        child = cls.__new__(cls)
        child.before_handler = before_handler
        child.logger = parent.logger
        child.service_name = parent.service_name
        child.log_body_limit = parent.log_body_limit
        child.reporter_factory = None
        child._router = router
        child._pipeline = DispatchPipeline(child)
        child._app = router
        return child

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self._app(scope, receive, send)

    @property
    def crash_reporting_enabled(self) -> bool:
        return self.reporter_factory is not None

    def enable_crash_reporting(
        self,
        project_id: int,
        project_key: str,
        *,
        environment: str | None = None,
        factory: ReporterFactory | None = None,
    ) -> None:
        """Report handler exceptions on this node only; sub-routers start disabled."""

        self.reporter_factory = factory or airbrake_factory(project_id, project_key, environment)

    def sub_route(self, prefix: str) -> Router:
        """Child router under ``prefix`` sharing this router's gate."""

        return self._mount(prefix, self.before_handler)

    def sub_route_with(self, prefix: str, before_handler: Gate) -> Router:
        """Child router under ``prefix`` whose routes pass this router's gate, then ``before_handler``."""

        return self._mount(prefix, compose(self.before_handler, before_handler))

    def _mount(self, prefix: str, before_handler: Gate) -> Router:
        router = StarletteRouter()
        self._router.routes.append(Mount(prefix, app=router))
        return Router._child(self, router, before_handler)

    def get(self, path: str, handler: Handler | None = None) -> Any:
        return self._register("GET", path, handler)

    def put(self, path: str, handler: Handler | None = None) -> Any:
        return self._register("PUT", path, handler)

    def post(self, path: str, handler: Handler | None = None) -> Any:
        return self._register("POST", path, handler)

    def delete(self, path: str, handler: Handler | None = None) -> Any:
        return self._register("DELETE", path, handler)

    def _register(self, method: str, path: str, handler: Handler | None) -> Any:
        if handler is None:
            def decorator(fn: Handler) -> Handler:
                self._add_route(method, path, fn)
                return fn

            return decorator

        self._add_route(method, path, handler)
        return handler

    def _add_route(self, method: str, path: str, handler: Handler) -> None:
        route = Route(path, self._pipeline.wrap(handler), methods=[method])
        # Starlette adds HEAD to GET routes; only the registered method may reach the handler.
        route.methods = {method}
        self._router.routes.append(route)

    def routes(self) -> Iterator[RouteInfo]:
        """Walk every registered route, sub-routers included, with full path templates."""

        yield from _walk(self._router.routes, "")


def _walk(routes: list[BaseRoute], prefix: str) -> Iterator[RouteInfo]:
    for route in routes:
        if isinstance(route, Mount):
            yield from _walk(route.routes, prefix + route.path)
        elif isinstance(route, Route):
            yield RouteInfo(path=prefix + route.path, methods=frozenset(route.methods or ()))
