"""HTTP client for Cloudflare Workers AI.

Two endpoint families exist: OpenAI-compatible chat completions
(``/ai/v1/chat/completions``, model in the body) and the per-model run
endpoint (``/ai/run/{model}``). The family is chosen by model id prefix.
"""

import asyncio
import json
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import httpx

from copilot_edge.core.errors import UpstreamError, UpstreamFormatError
from copilot_edge.core.logging import get_logger

logger = get_logger(__name__)

UNREACHABLE_LATENCY = float("inf")


class RegionSelector:
    """Picks the lowest-latency API region.

    Every region is probed in parallel with ``HEAD {region}/client/v4``.
    The choice is kept for ``recheck_interval`` seconds or until
    :meth:`invalidate` is called after a failed provider call. When every
    probe fails the first configured region is used.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        regions: Sequence[str],
        api_key: Optional[str] = None,
        probe_timeout: float = 2.0,
        recheck_interval: float = 300.0,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        if not regions:
            raise ValueError("At least one region is required")
        self._client = client
        self.regions = list(regions)
        self._api_key = api_key
        self.probe_timeout = probe_timeout
        self.recheck_interval = recheck_interval
        self.enabled = enabled
        self._clock = clock
        self._selected: Optional[str] = None
        self._selected_at = 0.0
        self._lock = asyncio.Lock()
        self.latencies: Dict[str, float] = {}

    @property
    def default(self) -> str:
        return self.regions[0]

    async def select(self) -> str:
        """Return the base URL to call."""
        if not self.enabled or len(self.regions) == 1:
            return self.default

        if self._selected and self._clock() - self._selected_at < self.recheck_interval:
            return self._selected

        async with self._lock:
            if self._selected and self._clock() - self._selected_at < self.recheck_interval:
                return self._selected

            results = await asyncio.gather(*(self._probe(region) for region in self.regions))
            self.latencies = dict(results)
            fastest, latency = min(results, key=lambda item: item[1])
            if latency == UNREACHABLE_LATENCY:
                logger.warning("All region probes failed, using default region")
                fastest = self.default
            else:
                logger.info(f"Selected region {fastest} ({latency * 1000:.0f}ms)")

            self._selected = fastest
            self._selected_at = self._clock()
            return fastest

    def invalidate(self) -> None:
        self._selected = None

    async def _probe(self, region: str) -> Tuple[str, float]:
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        start = time.perf_counter()
        try:
            response = await self._client.head(
                f"{region}/client/v4",
                headers=headers,
                timeout=self.probe_timeout,
            )
        except httpx.HTTPError as e:
            logger.debug(f"Region probe failed for {region}: {e!r}")
            return region, UNREACHABLE_LATENCY

        if response.is_success:
            return region, time.perf_counter() - start
        return region, UNREACHABLE_LATENCY


class WorkersAIClient:
    """Issues a single provider call. Retrying is the dispatcher's job."""

    def __init__(
        self,
        api_key: str,
        account_id: str,
        client: Optional[httpx.AsyncClient] = None,
        regions: Optional[RegionSelector] = None,
        timeout: float = 30.0,
        chat_completions_prefixes: Sequence[str] = ("@cf/openai/",),
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ):
        self._api_key = api_key
        self.account_id = account_id
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.regions = regions or RegionSelector(
            self._client, ["https://api.cloudflare.com"], api_key=api_key, enabled=False
        )
        self.timeout = timeout
        self.chat_completions_prefixes = tuple(chat_completions_prefixes)
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._client

    def uses_chat_completions(self, model: str) -> bool:
        return model.startswith(self.chat_completions_prefixes)

    def endpoint_for(self, base_url: str, model: str) -> str:
        account_base = f"{base_url}/client/v4/accounts/{self.account_id}/ai"
        if self.uses_chat_completions(model):
            return f"{account_base}/v1/chat/completions"
        return f"{account_base}/run/{model}"

    def build_body(
        self,
        model: str,
        messages: List[Dict[str, str]],
        stream: bool,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        params = params or {}
        body: Dict[str, Any] = {
            "messages": messages,
            "stream": stream,
            "temperature": params.get("temperature", self.temperature),
            "max_tokens": params.get("max_tokens", self.max_tokens),
        }
        if self.uses_chat_completions(model):
            body["model"] = model
        return body

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    async def complete(
        self,
        model: str,
        messages: List[Dict[str, str]],
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """POST a non-streaming request and return the decoded body.

        Raises:
            UpstreamError: on transport failure, timeout or non-2xx status.
            UpstreamFormatError: if the body is not JSON.
        """
        base_url = await self.regions.select()
        url = self.endpoint_for(base_url, model)
        body = self.build_body(model, messages, False, params)

        response = await self._send(
            self._client.build_request("POST", url, json=body, headers=self._headers(), timeout=self.timeout),
            model,
            stream=False,
        )
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise UpstreamFormatError()

    async def open_stream(
        self,
        model: str,
        messages: List[Dict[str, str]],
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """POST a streaming request and return the open response.

        The caller owns the response and must ``aclose`` it.
        """
        base_url = await self.regions.select()
        url = self.endpoint_for(base_url, model)
        body = self.build_body(model, messages, True, params)

        return await self._send(
            self._client.build_request("POST", url, json=body, headers=self._headers(), timeout=self.timeout),
            model,
            stream=True,
        )

    async def _send(self, request: httpx.Request, model: str, stream: bool) -> httpx.Response:
        try:
            response = await self._client.send(request, stream=stream)
        except httpx.TimeoutException as e:
            self.regions.invalidate()
            raise UpstreamError(f"Cloudflare AI request timed out: {e!r}", model=model, timeout=True) from e
        except httpx.HTTPError as e:
            self.regions.invalidate()
            raise UpstreamError(f"Cloudflare AI request failed: {e!r}", model=model) from e

        if response.is_success:
            return response

        detail = ""
        try:
            if stream:
                await response.aread()
            detail = response.text[:500]
        except httpx.HTTPError as e:
            logger.debug(f"Could not read error body: {e!r}")
        finally:
            if stream:
                await response.aclose()

        if response.status_code >= 500:
            self.regions.invalidate()
        raise UpstreamError(
            f"Cloudflare AI error: {response.status_code} {detail}",
            upstream_status=response.status_code,
            model=model,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
