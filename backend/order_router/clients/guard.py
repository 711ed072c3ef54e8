"""Timeout and failure guard applied to every external call."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from order_router.core.errors import BackendUnavailable

T = TypeVar("T")


async def guarded(backend: str, awaitable: Awaitable[T], timeout: float) -> T:
    """Await ``awaitable`` within ``timeout`` seconds.

    Timeouts and failures both surface as :class:`BackendUnavailable`, so
    callers degrade the same way for either.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=max(timeout, 0.0))
    except asyncio.TimeoutError as exc:
        raise BackendUnavailable(backend, TimeoutError(f"{backend} timed out after {timeout:.2f}s")) from exc
    except BackendUnavailable:
        raise
    except Exception as exc:
        raise BackendUnavailable(backend, exc) from exc


__all__ = ["guarded"]
