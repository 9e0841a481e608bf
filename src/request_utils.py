"""Helpers shared by the HTTP and JSON-RPC collaborators."""

import asyncio
import contextlib
import json
import os
from typing import Any, Optional

import aiohttp


# Maximum duration allowed for each REST call.
REQUEST_TIMEOUT = float(os.getenv("GRID_REQUEST_TIMEOUT", "10"))


async def call_with_timeout(op, *, limiter, timeout: Optional[float] = None):
    """Execute ``op`` once under the rate limiter and a timeout.

    ``op`` is an async function (no-arg lambda) performing the call.  Calls
    are never repeated here: collaborators fail fast and the caller decides
    whether trying again makes sense.
    """

    await limiter.acquire()
    task = asyncio.create_task(op())
    try:
        return await asyncio.wait_for(task, timeout=timeout or REQUEST_TIMEOUT)
    except asyncio.TimeoutError:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        raise


async def read_error_message(resp: Any) -> str:
    """Pull a human readable error out of a failed response body."""
    text = await resp.text()
    if not text:
        return "<empty body>"
    try:
        body = json.loads(text)
    except ValueError:
        return text
    if isinstance(body, dict):
        for key in ("description", "error", "message"):
            value = body.get(key)
            if value:
                return str(value)
    return text


def bearer_headers(api_key: str) -> dict:
    return {
        "Authorization": f"Bearer {api_key}",
        "Accept": "application/json",
        "Content-Type": "application/json",
    }


TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)
