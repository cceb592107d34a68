"""Provider dispatch with retry, model fallback and circuit breaking."""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from copilot_edge.core.errors import EdgeError, UpstreamError, is_retryable
from copilot_edge.core.interfaces import ITelemetrySink
from copilot_edge.core.logging import get_logger
from copilot_edge.models.chat import ChatEnvelope
from copilot_edge.services import normalizer
from copilot_edge.services.circuit_breaker import CircuitBreaker
from copilot_edge.services.provider_client import WorkersAIClient
from copilot_edge.services.telemetry import NullTelemetrySink, SPAN_DISPATCH

logger = get_logger(__name__)


@dataclass
class RetryPolicy:
    """Exponential backoff with additive jitter.

    The delay before retry ``k`` (0-based) is
    ``min(base_delay * 2**k, max_delay) + uniform(0, jitter)``.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 8.0
    jitter: float = 0.5

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def backoff(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay) + rng() * self.jitter


@dataclass
class DispatchResult:
    """A successful dispatch: full text, or an open stream to consume."""

    model: str
    text: Optional[str] = None
    stream: Optional[httpx.Response] = None
    fallback_used: bool = False
    attempts: int = 0

    @property
    def streaming(self) -> bool:
        return self.stream is not None


@dataclass
class DispatchStats:
    total: int = 0
    errors: int = 0
    fallback_used: int = 0
    retries: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "errors": self.errors,
            "fallback_used": self.fallback_used,
            "retries": self.retries,
        }


class Dispatcher:
    """Sends a chat request to the provider.

    Transient failures (network, timeout, 429, 5xx) are retried under the
    policy; other 4xx answers fail at once. A 404 from the primary model
    triggers one more run against ``fallback_model`` with a fresh retry
    budget. When a breaker is configured it wraps each model's retry loop.
    """

    def __init__(
        self,
        provider: WorkersAIClient,
        policy: Optional[RetryPolicy] = None,
        fallback_model: Optional[str] = None,
        breaker: Optional[CircuitBreaker] = None,
        telemetry: Optional[ITelemetrySink] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.provider = provider
        self.policy = policy or RetryPolicy()
        self.fallback_model = fallback_model
        self.breaker = breaker
        self.telemetry = telemetry or NullTelemetrySink()
        self._sleep = sleep
        self._rng = rng
        self.stats = DispatchStats()

    async def dispatch(self, envelope: ChatEnvelope, model: str, stream: bool = False) -> DispatchResult:
        """Run the request against ``model``, falling back on a 404.

        Raises:
            UpstreamError: after retries (and fallback) are exhausted.
            UpstreamFormatError: if the provider body is unrecognized.
            CircuitOpenError: while the breaker refuses calls.
        """
        self.stats.total += 1
        messages = envelope.message_dicts()
        params = envelope.params

        try:
            try:
                return await self._guarded(model, messages, params, stream)
            except UpstreamError as e:
                if not self._should_fall_back(e, model):
                    raise
                logger.warning(
                    f"Model {model} unavailable ({e.upstream_status}), "
                    f"falling back to {self.fallback_model}"
                )
                self.stats.fallback_used += 1
                self.telemetry.increment("fallback_used")
                result = await self._guarded(self.fallback_model, messages, params, stream)
                result.fallback_used = True
                return result
        except EdgeError:
            self.stats.errors += 1
            raise

    def _should_fall_back(self, error: UpstreamError, model: str) -> bool:
        return (
            error.upstream_status == 404
            and bool(self.fallback_model)
            and self.fallback_model != model
        )

    async def _guarded(
        self,
        model: str,
        messages: List[Dict[str, str]],
        params: Dict[str, Any],
        stream: bool,
    ) -> DispatchResult:
        if self.breaker is not None:
            self.breaker.before_call()

        span = self.telemetry.start_span(SPAN_DISPATCH, {"model": model, "stream": stream})
        # None: the caller went away before the provider answered
        provider_up: Optional[bool] = None
        error: Optional[BaseException] = None
        try:
            result = await self._with_retry(model, messages, params, stream)
            provider_up = True
            return result
        except UpstreamError as e:
            # A client-class answer still proves the provider is reachable
            provider_up = e.is_client_error
            error = e
            raise
        except Exception as e:
            provider_up = False
            error = e
            raise
        except asyncio.CancelledError as e:
            error = e
            raise
        finally:
            self.telemetry.end_span(span, error)
            if self.breaker is not None:
                if provider_up is None:
                    self.breaker.release_trial()
                elif provider_up:
                    self.breaker.record_success()
                else:
                    self.breaker.record_failure()

    async def _with_retry(
        self,
        model: str,
        messages: List[Dict[str, str]],
        params: Dict[str, Any],
        stream: bool,
    ) -> DispatchResult:
        attempts = self.policy.max_attempts
        for attempt in range(attempts):
            try:
                if stream:
                    response = await self.provider.open_stream(model, messages, params)
                    return DispatchResult(model=model, stream=response, attempts=attempt + 1)

                raw = await self.provider.complete(model, messages, params)
                text = normalizer.extract_text(raw)
                return DispatchResult(model=model, text=text, attempts=attempt + 1)
            except UpstreamError as e:
                if not is_retryable(e) or attempt == attempts - 1:
                    raise
                delay = self.policy.backoff(attempt, self._rng)
                self.stats.retries += 1
                self.telemetry.increment("retries")
                logger.info(
                    f"Retry {attempt + 1}/{attempts - 1} for {model} "
                    f"after {delay:.2f}s: {e.message}"
                )
                await self._sleep(delay)

        raise AssertionError("unreachable")
