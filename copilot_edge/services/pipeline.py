"""The request-processing pipeline.

validate -> cache key -> cache lookup
  hit:  return the cached answer
  miss: rate limit -> dispatch (retry/fallback/breaker) -> [stream]
        -> cache write -> return

One pipeline instance owns its local cache, rate windows and breaker
state. It is built once by the service container and injected into the
request handlers.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

from copilot_edge.core.config import Settings
from copilot_edge.core.errors import EdgeError, RateLimitError, StreamInterruptedError
from copilot_edge.core.interfaces import IDurableStore, ISessionStore, ITelemetrySink
from copilot_edge.core.logging import get_logger
from copilot_edge.models.chat import CacheTier, ChatEnvelope, ResponseEnvelope, Role
from copilot_edge.services import normalizer
from copilot_edge.services.circuit_breaker import CircuitBreaker
from copilot_edge.services.dispatcher import Dispatcher, RetryPolicy
from copilot_edge.services.encryption import EncryptionService
from copilot_edge.services.provider_client import WorkersAIClient
from copilot_edge.services.rate_limiter import FixedWindowRateLimiter
from copilot_edge.services.session_store import make_entry
from copilot_edge.services.single_flight import SingleFlight
from copilot_edge.services.streaming import StreamAccumulator
from copilot_edge.services.telemetry import NullTelemetrySink, SPAN_CACHE_LOOKUP, SPAN_REQUEST, SPAN_STREAM
from copilot_edge.services.token_utils import TokenCounter
from copilot_edge.services.unified_cache import CacheConfig, CacheKeyGenerator, TwoTierCache
from copilot_edge.services.unified_cache.backends.memory_backend import MemoryBackend
from copilot_edge.services.validator import RequestValidator

logger = get_logger(__name__)

LATENCY_WINDOW = 100


@dataclass
class EdgeMetrics:
    """Request-level counters kept by the pipeline."""

    total_requests: int = 0
    cache_hits: int = 0
    local_hits: int = 0
    durable_hits: int = 0
    errors: int = 0
    latencies_ms: Deque[float] = field(default_factory=lambda: deque(maxlen=LATENCY_WINDOW))

    def record_hit(self, tier: CacheTier) -> None:
        self.cache_hits += 1
        if tier == CacheTier.DURABLE:
            self.durable_hits += 1
        else:
            self.local_hits += 1

    @property
    def avg_latency_ms(self) -> float:
        if not self.latencies_ms:
            return 0.0
        return sum(self.latencies_ms) / len(self.latencies_ms)

    def rate(self, count: int) -> float:
        if self.total_requests == 0:
            return 0.0
        return count / self.total_requests


@dataclass
class EdgeResponse:
    """What the HTTP layer needs to answer one request."""

    kind: str
    body: Optional[Dict[str, Any]] = None
    envelope: Optional[ResponseEnvelope] = None
    prompt: List[Dict[str, str]] = field(default_factory=list)
    thread_id: Optional[str] = None

    @property
    def streaming(self) -> bool:
        return self.envelope is not None and self.envelope.streaming

    def headers(self) -> Dict[str, str]:
        headers = {"X-Powered-By": "CopilotEdge"}
        envelope = self.envelope
        if envelope is None:
            return headers
        headers["X-Cache"] = "HIT" if envelope.cached else "MISS"
        if envelope.cached and envelope.cache_tier is not None:
            headers["X-Cache-Tier"] = envelope.cache_tier.value
        if envelope.model:
            headers["X-Model"] = envelope.model
        if envelope.fallback_used:
            headers["X-Fallback-Used"] = "true"
        return headers


class CopilotEdgePipeline:
    """Validates, caches, rate limits and dispatches chat requests."""

    def __init__(
        self,
        validator: RequestValidator,
        key_generator: CacheKeyGenerator,
        cache: TwoTierCache,
        dispatcher: Dispatcher,
        model: str,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        stream_default: bool = False,
        single_flight: Optional[SingleFlight] = None,
        session_store: Optional[ISessionStore] = None,
        telemetry: Optional[ITelemetrySink] = None,
        token_counter: Optional[TokenCounter] = None,
        on_chunk: Optional[Callable[[str], None]] = None,
    ):
        self.validator = validator
        self.key_generator = key_generator
        self.cache = cache
        self.dispatcher = dispatcher
        self.model = model
        self.rate_limiter = rate_limiter
        self.stream_default = stream_default
        self.single_flight = single_flight
        self.session_store = session_store
        self.telemetry = telemetry or NullTelemetrySink()
        self.token_counter = token_counter
        self.on_chunk = on_chunk
        self.metrics = EdgeMetrics()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: WorkersAIClient,
        durable_store: Optional[IDurableStore] = None,
        session_store: Optional[ISessionStore] = None,
        telemetry: Optional[ITelemetrySink] = None,
        token_counter: Optional[TokenCounter] = None,
    ) -> "CopilotEdgePipeline":
        """Assemble a pipeline from configuration."""
        encryption = None
        if durable_store is not None and settings.durable_encryption_key:
            encryption = EncryptionService(passphrase=settings.durable_encryption_key)

        cache = TwoTierCache(
            MemoryBackend(max_entries=settings.cache_max_entries),
            durable_store,
            CacheConfig(ttl=settings.cache_ttl, key_prefix=settings.cache_key_prefix),
            encryption=encryption,
        )

        breaker = None
        if settings.circuit_breaker_enabled:
            breaker = CircuitBreaker(
                failure_threshold=settings.circuit_breaker_threshold,
                recovery_timeout=settings.circuit_breaker_timeout,
            )

        dispatcher = Dispatcher(
            provider,
            policy=RetryPolicy(
                max_attempts=settings.max_attempts,
                base_delay=settings.retry_base_delay,
                max_delay=settings.retry_max_delay,
                jitter=settings.retry_jitter,
            ),
            fallback_model=settings.fallback_model,
            breaker=breaker,
            telemetry=telemetry,
        )

        rate_limiter = None
        if settings.rate_limit_enabled:
            rate_limiter = FixedWindowRateLimiter(limit=settings.rate_limit_requests)

        return cls(
            validator=RequestValidator.from_settings(settings),
            key_generator=CacheKeyGenerator(
                prefix=settings.cache_key_prefix, secret=settings.cache_key_secret
            ),
            cache=cache,
            dispatcher=dispatcher,
            model=settings.model,
            rate_limiter=rate_limiter,
            stream_default=settings.stream,
            single_flight=SingleFlight() if settings.single_flight_enabled else None,
            session_store=session_store if settings.persist_conversations else None,
            telemetry=telemetry,
            token_counter=token_counter,
        )

    async def handle_request(self, payload: Any, client_id: str = "default") -> EdgeResponse:
        """Run one inbound payload through the pipeline.

        Raises:
            ValidationError: for malformed or oversized input.
            APIError: rate limiting, upstream failures, open circuit.
        """
        start = time.perf_counter()
        self.metrics.total_requests += 1
        self.telemetry.increment("requests")
        span = self.telemetry.start_span(SPAN_REQUEST, {"client": client_id})
        error: Optional[BaseException] = None

        try:
            validated = self.validator.validate(payload)
            if validated.is_passthrough:
                return EdgeResponse(kind="passthrough", body=validated.passthrough)

            return await self._run(validated.envelope, client_id)
        except EdgeError as e:
            error = e
            self.metrics.errors += 1
            self.telemetry.increment("errors")
            logger.info(f"Request failed: {type(e).__name__}: {e.message}")
            raise
        finally:
            latency_ms = (time.perf_counter() - start) * 1000
            self.metrics.latencies_ms.append(latency_ms)
            self.telemetry.end_span(span, error)

    async def _run(self, envelope: ChatEnvelope, client_id: str) -> EdgeResponse:
        model = envelope.model or self.model
        prompt = envelope.message_dicts()
        key = self.key_generator.chat(model, prompt, envelope.params)

        hit = await self._lookup(key)
        if hit is not None:
            value, tier = hit
            self.metrics.record_hit(tier)
            self.telemetry.increment(f"cache.hit.{tier.value}")
            logger.debug(f"Cache hit ({tier.value}) for {CacheKeyGenerator.display(key)}")
            result = ResponseEnvelope(
                text=value["text"],
                model=value.get("model") or model,
                cached=True,
                cache_tier=tier,
                fallback_used=bool(value.get("fallback_used")),
                conversation_id=envelope.conversation_id,
            )
            await self._persist(envelope, result.text)
            return self._render(envelope, prompt, result)

        self.telemetry.increment("cache.miss")
        if self.rate_limiter is not None and not self.rate_limiter.check_and_increment(client_id):
            raise RateLimitError(retry_after=self.rate_limiter.retry_after())

        if self._wants_stream(envelope):
            result = await self._stream(envelope, model, key, prompt)
            return EdgeResponse(kind=envelope.kind, envelope=result, prompt=prompt, thread_id=envelope.thread_id)

        if self.single_flight is not None:
            value = await self.single_flight.run(key, lambda: self._complete(envelope, model, key))
        else:
            value = await self._complete(envelope, model, key)

        self._count_tokens(prompt, value["text"])
        result = ResponseEnvelope(
            text=value["text"],
            model=value["model"],
            fallback_used=value["fallback_used"],
            conversation_id=envelope.conversation_id,
        )
        await self._persist(envelope, result.text)
        return self._render(envelope, prompt, result)

    def _wants_stream(self, envelope: ChatEnvelope) -> bool:
        # Operation clients expect a GraphQL body, never an event stream
        if envelope.kind != "direct":
            return False
        if envelope.stream is not None:
            return envelope.stream
        return self.stream_default

    async def _lookup(self, key: str):
        span = self.telemetry.start_span(SPAN_CACHE_LOOKUP)
        hit = await self.cache.get(key)
        self.telemetry.end_span(span)
        if hit is None or not isinstance(hit.value.get("text"), str):
            return None
        return hit.value, hit.tier

    async def _complete(self, envelope: ChatEnvelope, model: str, key: str) -> Dict[str, Any]:
        result = await self.dispatcher.dispatch(envelope, model)
        value = {
            "text": result.text,
            "model": result.model,
            "fallback_used": result.fallback_used,
        }
        await self.cache.put(key, value)
        return value

    async def _stream(
        self,
        envelope: ChatEnvelope,
        model: str,
        key: str,
        prompt: List[Dict[str, str]],
    ) -> ResponseEnvelope:
        result = await self.dispatcher.dispatch(envelope, model, stream=True)
        response = result.stream

        async def on_complete(text: str) -> None:
            self.telemetry.increment("stream.completed")
            if not text:
                return
            await self.cache.put(
                key,
                {"text": text, "model": result.model, "fallback_used": result.fallback_used},
            )
            self._count_tokens(prompt, text)
            await self._persist(envelope, text)

        span = self.telemetry.start_span(SPAN_STREAM, {"model": result.model})

        async def close() -> None:
            try:
                await response.aclose()
            finally:
                error = None
                if not accumulator.completed:
                    error = StreamInterruptedError(partial_text=accumulator.text)
                self.telemetry.end_span(span, error)

        accumulator = StreamAccumulator(
            response.aiter_text(),
            on_complete=on_complete,
            on_chunk=self.on_chunk,
            close=close,
        )
        return ResponseEnvelope(
            model=result.model,
            streaming=True,
            fallback_used=result.fallback_used,
            conversation_id=envelope.conversation_id,
            stream=accumulator,
        )

    def _render(
        self,
        envelope: ChatEnvelope,
        prompt: List[Dict[str, str]],
        result: ResponseEnvelope,
    ) -> EdgeResponse:
        return EdgeResponse(
            kind=envelope.kind,
            body=normalizer.render(result, envelope.kind, prompt, envelope.thread_id),
            envelope=result,
            prompt=prompt,
            thread_id=envelope.thread_id,
        )

    async def _persist(self, envelope: ChatEnvelope, answer: str) -> None:
        if self.session_store is None or not envelope.conversation_id:
            return

        last = envelope.messages[-1]
        try:
            if last.role == Role.USER.value:
                await self.session_store.append(
                    envelope.conversation_id, make_entry(last.role, last.content)
                )
            await self.session_store.append(
                envelope.conversation_id, make_entry(Role.ASSISTANT.value, answer)
            )
        except Exception as e:
            logger.warning(f"Persisting conversation {envelope.conversation_id} failed: {e}")
            self.telemetry.increment("session.errors")

    def _count_tokens(self, prompt: List[Dict[str, str]], answer: str) -> None:
        if self.token_counter is None:
            return
        self.telemetry.record("tokens.prompt", self.token_counter.count_message_tokens(prompt))
        self.telemetry.record("tokens.completion", self.token_counter.count_tokens(answer))

    async def clear_cache(self, include_durable: bool = False) -> int:
        return await self.cache.clear(include_durable)

    async def get_conversation(self, conversation_id: str) -> List[Dict[str, Any]]:
        if self.session_store is None:
            return []
        return await self.session_store.get(conversation_id)

    async def clear_conversation(self, conversation_id: str) -> None:
        if self.session_store is not None:
            await self.session_store.clear(conversation_id)

    def get_metrics(self) -> Dict[str, Any]:
        """Snapshot of request, cache and dispatch counters."""
        metrics = self.metrics
        dispatch = self.dispatcher.stats
        breaker = self.dispatcher.breaker
        return {
            "total_requests": metrics.total_requests,
            "cache_hits": metrics.cache_hits,
            "cache_hits_local": metrics.local_hits,
            "cache_hits_durable": metrics.durable_hits,
            "cache_hit_rate": round(metrics.rate(metrics.cache_hits), 4),
            "avg_latency_ms": round(metrics.avg_latency_ms, 2),
            "errors": metrics.errors,
            "error_rate": round(metrics.rate(metrics.errors), 4),
            "active_model": self.model,
            "fallback_model": self.dispatcher.fallback_model,
            "fallback_used": dispatch.fallback_used,
            "retries": dispatch.retries,
            "dispatches": dispatch.total,
            "circuit": breaker.to_dict() if breaker is not None else None,
            "cache": self.cache.stats.to_dict(),
        }
