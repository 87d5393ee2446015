"""Helpers for driving and combining coroutines."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Coroutine
from concurrent.futures import ThreadPoolExecutor
from typing import Any, TypeVar

T = TypeVar("T")


def run(task: Coroutine[Any, Any, T]) -> T:
    """Drive ``task`` to completion from synchronous code.

    Coverage loading and layer life cycle methods are coroutines. This is the
    blocking entry point used by :func:`pycovmap.datalib.covjson.fetch`.
    Inside a running event loop (a notebook, an async host map), ``task``
    runs on a fresh loop in a worker thread.

    Parameters
    ----------
    task : Coroutine[Any, Any, T]
        Coroutine to run, for example ``layer.add_to(tile_map)``.

    Returns
    -------
    T
        Result of ``task``.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(task)

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="pycovmap") as executor:
        return executor.submit(asyncio.run, task).result()


async def join(*awaitables: Awaitable[Any]) -> list[Any]:
    """Await a fixed number of awaitables together.

    Resolves once every awaitable resolves, in argument order. The first
    exception raised by any awaitable propagates immediately. Awaitables
    that are still pending are left running.

    Parameters
    ----------
    *awaitables : Awaitable[Any]
        Coroutines, tasks or futures.

    Returns
    -------
    list[Any]
        Results in argument order.

    Examples
    --------
    >>> async def double(x):
    ...     return 2 * x
    >>> run(join(double(1), double(2)))
    [2, 4]
    """
    return list(await asyncio.gather(*awaitables))
