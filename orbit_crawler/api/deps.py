"""Request-scoped helpers shared by the routers."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, TypeVar

from fastapi import Request

T = TypeVar("T")


async def run_browser_task(request: Request, fn: Callable[..., T], *args: Any) -> T:
    """Run *fn* on the app's browser thread and await its result."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(request.app.state.browser_executor, fn, *args)
