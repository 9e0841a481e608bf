import asyncio
import importlib
import sys
from pathlib import Path

import pytest

# Ensure src/ and the shared fakes are importable
sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))
sys.path.append(str(Path(__file__).resolve().parent))

import request_utils  # noqa: E402
from http_fakes import FakeResponse  # noqa: E402


class DummyLimiter:
    def __init__(self):
        self.acquired = 0

    async def acquire(self):
        self.acquired += 1


def test_timeout_read_from_env(monkeypatch):
    monkeypatch.setenv("GRID_REQUEST_TIMEOUT", "2.5")
    try:
        assert importlib.reload(request_utils).REQUEST_TIMEOUT == 2.5
    finally:
        monkeypatch.delenv("GRID_REQUEST_TIMEOUT")
        importlib.reload(request_utils)


@pytest.mark.asyncio
async def test_timeout_is_not_retried():
    attempts = 0

    async def op():
        nonlocal attempts
        attempts += 1
        await asyncio.sleep(0.2)

    limiter = DummyLimiter()
    with pytest.raises(asyncio.TimeoutError):
        await request_utils.call_with_timeout(op, limiter=limiter, timeout=0.05)

    assert attempts == 1
    assert limiter.acquired == 1


@pytest.mark.asyncio
async def test_errors_propagate_unchanged():
    class StatusError(Exception):
        status_code = 503

    async def op():
        raise StatusError()

    with pytest.raises(StatusError):
        await request_utils.call_with_timeout(op, limiter=DummyLimiter(), timeout=1)


@pytest.mark.asyncio
async def test_result_is_returned():
    async def op():
        return "ok"

    assert await request_utils.call_with_timeout(op, limiter=DummyLimiter(), timeout=1) == "ok"


@pytest.mark.asyncio
async def test_cancel_propagates():
    started = asyncio.Event()

    async def op():
        started.set()
        await asyncio.sleep(1)

    task = asyncio.create_task(request_utils.call_with_timeout(op, limiter=DummyLimiter(), timeout=5))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "text, expected",
    [
        ('{"description": "Invalid signature"}', "Invalid signature"),
        ('{"error": "Bad Request", "statusCode": 400}', "Bad Request"),
        ('{"message": "rate limited"}', "rate limited"),
        ("upstream timeout", "upstream timeout"),
        ("", "<empty body>"),
    ],
)
async def test_read_error_message(text, expected):
    assert await request_utils.read_error_message(FakeResponse(400, text=text)) == expected


def test_bearer_headers():
    headers = request_utils.bearer_headers("abc")
    assert headers["Authorization"] == "Bearer abc"
    assert headers["Accept"] == "application/json"
