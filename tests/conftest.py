"""Shared test fixtures for CopilotEdge tests."""

import json
from typing import Any, Callable, Dict, List, Optional, Union
from unittest.mock import AsyncMock

import httpx
import pytest

from copilot_edge.core.config import Settings
from copilot_edge.core.errors import CacheTierError
from copilot_edge.services.provider_client import WorkersAIClient


ACCOUNT_ID = "acct-123"
API_TOKEN = "test-token-abc"


# ============================================================================
# Provider Fixtures
# ============================================================================

ScriptItem = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class ScriptedTransport:
    """httpx.MockTransport handler that replays a list of responses.

    Items may be responses, exceptions (raised from the transport) or
    callables taking the request. The last item repeats once the script
    runs out.
    """

    def __init__(self, script: List[ScriptItem]):
        self.script = list(script)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.script) - 1)
        item = self.script[index]
        if isinstance(item, Exception):
            raise item
        if callable(item) and not isinstance(item, httpx.Response):
            return item(request)
        # Fresh copy so a repeated item can be sent more than once
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def bodies(self) -> List[Dict[str, Any]]:
        return [json.loads(request.content) for request in self.requests]


def run_response(text: str) -> httpx.Response:
    """Body shape of the ``/ai/run/{model}`` endpoint."""
    return httpx.Response(200, json={"result": {"response": text}, "success": True})


def completion_response(text: str) -> httpx.Response:
    """Body shape of the chat completions endpoint."""
    return httpx.Response(
        200,
        json={"choices": [{"index": 0, "message": {"role": "assistant", "content": text}}]},
    )


def sse_response(frames: List[str], done: bool = True) -> httpx.Response:
    body = "".join(f"data: {frame}\n\n" for frame in frames)
    if done:
        body += "data: [DONE]\n\n"
    return httpx.Response(
        200,
        headers={"content-type": "text/event-stream"},
        content=body.encode("utf-8"),
    )


def make_provider(script: List[ScriptItem]) -> tuple:
    transport = ScriptedTransport(script)
    client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
    provider = WorkersAIClient(api_key=API_TOKEN, account_id=ACCOUNT_ID, client=client)
    return provider, transport


@pytest.fixture
def provider_factory():
    """Build a provider client backed by a scripted transport."""
    return make_provider


# ============================================================================
# Storage Fixtures
# ============================================================================

class InMemoryDurableStore:
    """Durable tier double that keeps values in a dict."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.metadata: Dict[str, Dict[str, Any]] = {}
        self.ttls: Dict[str, int] = {}
        self.fail = False

    def _check(self, operation: str) -> None:
        if self.fail:
            raise CacheTierError("durable tier unavailable", operation=operation)

    async def get(self, key: str) -> Optional[str]:
        self._check("get")
        return self.values.get(key)

    async def put(self, key: str, value: str, ttl_seconds: int, metadata=None) -> None:
        self._check("put")
        self.values[key] = value
        self.ttls[key] = ttl_seconds
        self.metadata[key] = metadata or {}

    async def list(self, prefix: str) -> List[str]:
        self._check("list")
        return [key for key in self.values if key.startswith(prefix)]

    async def delete(self, key: str) -> None:
        self._check("delete")
        self.values.pop(key, None)


class FakeRedisPipeline:
    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._ops: List[tuple] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def rpush(self, key, value):
        self._ops.append(("rpush", key, value))

    def ltrim(self, key, start, end):
        self._ops.append(("ltrim", key, start, end))

    def expire(self, key, seconds):
        self._ops.append(("expire", key, seconds))

    async def execute(self):
        for op in self._ops:
            name, key, *args = op
            if name == "rpush":
                self._redis.lists.setdefault(key, []).append(args[0])
            elif name == "ltrim":
                items = self._redis.lists.get(key, [])
                start, end = args
                length = len(items)
                start = max(0, length + start) if start < 0 else start
                end = length + end if end < 0 else end
                self._redis.lists[key] = items[start:end + 1]
            elif name == "expire":
                self._redis.expiries[key] = args[0]
        self._ops = []
        return []


class FakeRedis:
    """Just enough of ``redis.asyncio.Redis`` for the stores under test."""

    def __init__(self):
        self.strings: Dict[str, str] = {}
        self.lists: Dict[str, List[str]] = {}
        self.expiries: Dict[str, Any] = {}
        self.ping = AsyncMock(return_value=True)
        self.close = AsyncMock()

    async def get(self, key):
        return self.strings.get(key)

    async def setex(self, key, ttl, value):
        self.strings[key] = value
        self.expiries[key] = ttl

    async def delete(self, key):
        removed = int(key in self.strings or key in self.lists)
        self.strings.pop(key, None)
        self.lists.pop(key, None)
        return removed

    async def scan_iter(self, match=None):
        prefix = match.rstrip("*") if match else ""
        for key in list(self.strings) + list(self.lists):
            if key.startswith(prefix):
                yield key

    async def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    def pipeline(self, transaction=True):
        return FakeRedisPipeline(self)


@pytest.fixture
def durable_store():
    """In-memory durable tier."""
    return InMemoryDurableStore()


@pytest.fixture
def fake_redis():
    """In-memory stand-in for a redis.asyncio client."""
    return FakeRedis()


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture
def test_settings():
    """Settings for tests: no probing, no backoff sleeps."""
    return Settings(
        _env_file=None,
        api_key=API_TOKEN,
        account_id=ACCOUNT_ID,
        region_probe_enabled=False,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        retry_jitter=0.0,
        rate_limit_requests=60,
        log_format="text",
    )
