"""
Async bridge for the synchronous provider clients.

boto3 and the Cloudflare client are blocking. The batch coordinator runs on
asyncio, so provider calls are offloaded to worker threads with
:func:`asyncio.to_thread`; the event loop stays free to run other groups and
to wake backoff waits on cancellation.

Usage::

    from cloudctl.base.async_support import async_wrap

    resolve = async_wrap(provisioner.resolve_group)
    zone_id = await resolve("example.com")
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Callable, Coroutine, TypeVar

T = TypeVar("T")


def async_wrap(
    fn: Callable[..., T],
) -> Callable[..., Coroutine[Any, Any, T]]:
    """Return an async version of *fn* that runs it in a worker thread.

    The wrapper preserves the original function's name and docstring.

    Args:
        fn: A synchronous callable to wrap.

    Returns:
        An async callable with the same parameters and return type.
    """

    @functools.wraps(fn)
    async def _wrapper(*args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(fn, *args, **kwargs)

    return _wrapper
