import asyncio
import json

import pytest


class FakeSocket:
    """Stands in for a websockets client connection."""

    def __init__(self) -> None:
        self._incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []
        self.closed = False

    def feed(self, event: str, data=None) -> None:
        self._incoming.put_nowait(json.dumps({"event": event, "data": data}))

    def feed_raw(self, raw: str) -> None:
        self._incoming.put_nowait(raw)

    def drop(self) -> None:
        self._incoming.put_nowait(None)

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionError("socket closed")
        self.sent.append(json.loads(message))

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is None:
            raise StopAsyncIteration
        return item


class _FakeConnection:
    def __init__(self, outcome) -> None:
        self._outcome = outcome

    async def __aenter__(self):
        if isinstance(self._outcome, BaseException):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeConnect:
    """Replacement for ``websockets.connect`` handing out queued outcomes."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []
        self._outcomes: list = []

    def add_socket(self) -> FakeSocket:
        sock = FakeSocket()
        self._outcomes.append(sock)
        return sock

    def add_failure(self, exc: BaseException) -> None:
        self._outcomes.append(exc)

    def __call__(self, url: str, **kwargs):
        self.calls.append((url, kwargs))
        if self._outcomes:
            return _FakeConnection(self._outcomes.pop(0))
        return _FakeConnection(ConnectionRefusedError("no server"))


@pytest.fixture
def fake_connect() -> FakeConnect:
    return FakeConnect()


@pytest.fixture
def wait_until():
    async def _wait(predicate, timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not reached in time")
            await asyncio.sleep(0.005)

    return _wait
