"""Runtime introspection endpoints, mounted when profiling is enabled.

Served straight by Starlette: they bypass the dispatch pipeline, so no gate
applies to them.
"""

from __future__ import annotations

import asyncio
import gc
import io
import sys
import threading
import traceback
import tracemalloc
from collections import Counter

from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import BaseRoute, Mount, Route

from easyroute.observability.metrics import get_metrics


PPROF_PREFIX = "/debug/pprof"

_PROFILES = {
    "cmdline": "The command line invoking the current process.",
    "heap": "Top allocation sites (tracemalloc) or live object counts by type.",
    "threads": "Stack traces of all threads.",
    "tasks": "Stack traces of all asyncio tasks on the serving loop.",
}


async def index(request: Request) -> Response:
    lines = [f"{PPROF_PREFIX}/", ""]
    for name, description in _PROFILES.items():
        lines.append(f"{name}\t{description}")
    lines.append("")
    lines.append("/debug/vars\tDispatch counters and latency as JSON.")
    return PlainTextResponse("\n".join(lines) + "\n")


async def cmdline(request: Request) -> Response:
    return PlainTextResponse("\x00".join(sys.argv))


def heap(request: Request) -> Response:
    try:
        limit = int(request.query_params.get("limit", "25"))
    except ValueError:
        limit = 25

    out = io.StringIO()
    if tracemalloc.is_tracing():
        snapshot = tracemalloc.take_snapshot()
        current, peak = tracemalloc.get_traced_memory()
        out.write(f"# tracemalloc current={current} peak={peak}\n")
        for stat in snapshot.statistics("lineno")[:limit]:
            out.write(f"{stat}\n")
    else:
        counts = Counter(type(obj).__name__ for obj in gc.get_objects())
        out.write(f"# tracemalloc disabled; live gc-tracked objects={sum(counts.values())}\n")
        for name, count in counts.most_common(limit):
            out.write(f"{count}\t{name}\n")
    return PlainTextResponse(out.getvalue())


def threads(request: Request) -> Response:
    names = {thread.ident: thread.name for thread in threading.enumerate()}
    out = io.StringIO()
    for ident, frame in sys._current_frames().items():
        out.write(f"thread {names.get(ident, '?')} ({ident}):\n")
        out.write("".join(traceback.format_stack(frame)))
        out.write("\n")
    return PlainTextResponse(out.getvalue())


async def tasks(request: Request) -> Response:
    out = io.StringIO()
    for task in asyncio.all_tasks():
        out.write(f"{task.get_name()}: {task.get_coro()!r}\n")
        task.print_stack(file=out)
        out.write("\n")
    return PlainTextResponse(out.getvalue())


async def expvars(request: Request) -> Response:
    return JSONResponse(get_metrics().snapshot())


def debug_routes() -> list[BaseRoute]:
    return [
        Mount(
            PPROF_PREFIX,
            routes=[
                Route("/", index, methods=["GET"]),
                Route("/cmdline", cmdline, methods=["GET"]),
                Route("/heap", heap, methods=["GET"]),
                Route("/threads", threads, methods=["GET"]),
                Route("/tasks", tasks, methods=["GET"]),
            ],
        ),
        Route("/debug/vars", expvars, methods=["GET"]),
    ]
