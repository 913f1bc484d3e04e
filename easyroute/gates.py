from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, Union

from starlette.concurrency import run_in_threadpool

from easyroute.context import RequestContext


Handler = Callable[[RequestContext], Union[None, Awaitable[None]]]
Gate = Callable[[RequestContext], Union[bool, Awaitable[bool]]]


async def invoke(fn: Callable[[RequestContext], Any], ctx: RequestContext) -> Any:
    """Await async callables, run sync ones in the threadpool."""

    if inspect.iscoroutinefunction(fn):
        return await fn(ctx)
    result = await run_in_threadpool(fn, ctx)
    if inspect.isawaitable(result):
        return await result
    return result


async def run_gate(gate: Gate, ctx: RequestContext) -> bool:
    return bool(await invoke(gate, ctx))


def allow_all(ctx: RequestContext) -> bool:
    return True


def compose(parent: Gate, child: Gate) -> Gate:
    """``parent AND child``; ``child`` is never evaluated when ``parent`` refuses."""

    async def gate(ctx: RequestContext) -> bool:
        if not await run_gate(parent, ctx):
            return False
        return await run_gate(child, ctx)

    return gate
