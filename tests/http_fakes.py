"""Tiny stand-ins for ``aiohttp.ClientSession`` used across the tests."""

import json


class FakeResponse:
    def __init__(self, status=200, payload=None, text=None):
        self.status = status
        self._payload = payload
        self._text = text if text is not None else (json.dumps(payload) if payload is not None else "")

    async def json(self, **kwargs):
        if self._payload is None:
            raise ValueError("no json body")
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    """Records every request and replays queued responses (or raises them)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def _next(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def post(self, url, **kwargs):
        return self._next("POST", url, kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, kwargs)

    async def close(self):
        self.closed = True
