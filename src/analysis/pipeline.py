# src/analysis/pipeline.py - v1
"""Analysis pipeline: top-level orchestrator turning an image into an AnalysisResult.

Request path:
  cache key -> analysis cache hit? -> in-flight for the key? -> durable hit?
  -> scheduled task -> capabilities -> post-processing -> caches

Every failure past the cache key is absorbed into a fallback result
(metadata.fallback=True). Only a resource without a usable identity
(ResourceIdentityError) or a cancelled request (TaskCancelledError)
reaches the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from galleryai.analysis.models import AnalysisResult
from galleryai.analysis.postprocess import build_fallback, build_result
from galleryai.analysis.vocabulary import ZH, Vocabulary
from galleryai.cache.bounded_cache import BoundedCache
from galleryai.cache.keys import compute_cache_key
from galleryai.cache.models import CacheStats
from galleryai.capabilities.base_capability import CapabilityError
from galleryai.capabilities.loader import RetryingLoader
from galleryai.capabilities.models import CapabilityState, Classification, Detection
from galleryai.concurrency.cancellation import (
    SharedCancellation,
    TaskCancelledError,
    wait_cancellable,
)
from galleryai.concurrency.scheduler import (
    Priority,
    PriorityTaskScheduler,
    SchedulerStats,
    Task,
)
from galleryai.concurrency.single_flight import SingleFlightRegistry
from galleryai.events import emitter as events
from galleryai.logging.context import set_capability_context

if TYPE_CHECKING:
    from galleryai.cache.base_durable_store import BaseDurableStore
    from galleryai.capabilities.base_capability import BaseCapability
    from galleryai.capabilities.registry import CapabilityRegistry
    from galleryai.concurrency.cancellation import CancellationToken
    from galleryai.events.emitter import EventEmitter
    from galleryai.resources.models import ImageResource

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 100
DEFAULT_CONFIDENCE_THRESHOLD = 0.3
DEFAULT_INITIALIZE_TIMEOUT_S = 10.0


@dataclass
class AnalysisJob:
    """Payload of one scheduled analysis."""

    cache_key: str
    resource: ImageResource


class PipelineStats(BaseModel):
    initialized: bool
    confidence_threshold: float
    in_flight: int
    cache: CacheStats
    scheduler: SchedulerStats
    capabilities: CapabilityState


class AnalysisPipeline:
    """Cache-fronted, deduplicated, prioritised image analysis.

    Usage:
        pipeline = AnalysisPipeline(CapabilityRegistry([MyClassifier()]))
        await pipeline.initialize()
        result = await pipeline.analyze(resource, priority="high")

    Args:
        registry: The capabilities to run. Only loaded ones are invoked.
        cache: In-memory analysis cache. Defaults to a deep-copying
            BoundedCache of 100 entries.
        durable_store: Optional second-tier cache; failures are logged only.
        loader: Loads the registry's capabilities on initialize().
        emitter: Receives engine and image:analyzed events.
        confidence_threshold: Minimum confidence kept by post-processing.
        worker_count: Concurrent analyses.
        yield_interval_s: Pause between scheduler batches.
        vocabulary: Tag/description vocabulary.
        durable_ttl_s: Durable records older than this are ignored.
        initialize_timeout_s: Overall bound on capability loading.
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        cache: BoundedCache[str, AnalysisResult] | None = None,
        durable_store: BaseDurableStore | None = None,
        loader: RetryingLoader | None = None,
        emitter: EventEmitter | None = None,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        worker_count: int = 2,
        yield_interval_s: float = 0.1,
        vocabulary: Vocabulary = ZH,
        durable_ttl_s: float | None = None,
        initialize_timeout_s: float = DEFAULT_INITIALIZE_TIMEOUT_S,
    ) -> None:
        self._registry = registry
        self._cache = cache if cache is not None else BoundedCache(
            DEFAULT_CACHE_SIZE, copy_on_write=True, name="analysis"
        )
        self._durable_store = durable_store
        self._loader = loader if loader is not None else RetryingLoader(emitter=emitter)
        self._emitter = emitter
        self._confidence_threshold = _clamp(confidence_threshold)
        self._vocabulary = vocabulary
        self._durable_ttl_s = durable_ttl_s
        self._initialize_timeout_s = initialize_timeout_s

        self._in_flight: SingleFlightRegistry[str, AnalysisResult] = SingleFlightRegistry()
        self._shared: dict[str, SharedCancellation] = {}
        self._scheduler: PriorityTaskScheduler[AnalysisJob, AnalysisResult] = (
            PriorityTaskScheduler(
                self._execute,
                worker_count=worker_count,
                yield_interval_s=yield_interval_s,
                on_error=self._on_task_error,
            )
        )
        self._initialized = False
        self._closed = False
        self._init_lock = asyncio.Lock()

    @property
    def registry(self) -> CapabilityRegistry:
        return self._registry

    @property
    def cache(self) -> BoundedCache[str, AnalysisResult]:
        return self._cache

    @property
    def scheduler(self) -> PriorityTaskScheduler[AnalysisJob, AnalysisResult]:
        return self._scheduler

    @property
    def confidence_threshold(self) -> float:
        return self._confidence_threshold

    @property
    def initialized(self) -> bool:
        return self._initialized

    # --- Lifecycle ---

    async def initialize(self) -> CapabilityState:
        """Load the registry's capabilities, bounded by initialize_timeout_s.

        Never raises: with nothing loaded the pipeline keeps answering with
        results built from empty capability output.
        """
        async with self._init_lock:
            if self._initialized:
                return self._loader.state

            try:
                state = await asyncio.wait_for(
                    self._loader.load_registry(self._registry),
                    timeout=self._initialize_timeout_s,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Capability loading timed out after %.1fs, running without models",
                    self._initialize_timeout_s,
                )
                state = self._loader.state
                self._emit(events.ENGINE_FALLBACK, {"reason": "timeout"})
            else:
                if state.any_loaded:
                    logger.info("Analysis engine ready: %s", ", ".join(state.available))
                    self._emit(events.ENGINE_READY, {"capabilities": state.available})
                else:
                    logger.warning("No capability available, analysis results will be degraded")
                    self._emit(events.ENGINE_FALLBACK, {"reason": "no capability loaded"})

            self._initialized = True
            return state

    async def close(self) -> None:
        """Cancel queued work, wait for running analyses, release capabilities."""
        await self._scheduler.close()
        self._registry.dispose_all()
        self._cache.clear()
        if self._durable_store is not None:
            self._durable_store.close()
        self._closed = True
        logger.info("Analysis pipeline closed")

    # --- Analysis ---

    async def analyze(
        self,
        resource: ImageResource,
        priority: Priority | str = Priority.NORMAL,
        cancel_token: CancellationToken | None = None,
    ) -> AnalysisResult:
        """Analyze an image, reusing cached or in-flight work for the same key.

        Cancelling cancel_token releases this caller only. The shared
        analysis is dropped once every caller waiting on it has cancelled.

        Raises:
            ResourceIdentityError: The resource has no stable identity.
            TaskCancelledError: cancel_token was cancelled before the
                analysis settled.
            RuntimeError: The pipeline was closed.
        """
        if self._closed:
            raise RuntimeError("analysis pipeline is closed")
        key = compute_cache_key(resource)

        while True:
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug("Analysis cache hit for %s", key)
                return cached

            if not self._initialized:
                await self.initialize()
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            shared = self._shared.get(key)
            if shared is None or not self._in_flight.in_flight(key):
                shared = self._shared[key] = SharedCancellation()
            future = self._in_flight.join(
                key,
                lambda shared=shared: self._produce(key, resource, priority, shared),
            )

            shared.join()
            left_cancelled = False
            try:
                return await wait_cancellable(asyncio.shield(future), cancel_token)
            except TaskCancelledError:
                if cancel_token is not None and cancel_token.cancelled:
                    left_cancelled = True
                    raise
                if not shared.token.cancelled:
                    raise
                # Joined an analysis every earlier caller had abandoned.
                logger.debug("Abandoned analysis of %s settled, starting again", key)
            except asyncio.CancelledError:
                left_cancelled = True
                raise
            finally:
                shared.leave(
                    cancelled=left_cancelled,
                    reason=cancel_token.reason if cancel_token is not None else None,
                )

    async def lookup_durable(self, key: str) -> AnalysisResult | None:
        """Read a durable result, promoting it into the in-memory cache."""
        if self._durable_store is None:
            return None
        try:
            record = await self._durable_store.get(key)
        except Exception as exc:
            logger.warning("Durable cache read failed for %s: %s", key, exc)
            return None
        if record is None:
            return None

        if record.is_expired(self._durable_ttl_s):
            logger.debug("Durable result for %s expired", key)
            await self._forget_durable(key)
            return None

        try:
            result = AnalysisResult.model_validate(record.value)
        except ValidationError as exc:
            logger.warning("Discarding unreadable durable result for %s: %s", key, exc)
            await self._forget_durable(key)
            return None

        self._cache.set(key, result)
        logger.debug("Promoted durable result for %s", key)
        return result

    def set_confidence_threshold(self, threshold: float) -> float:
        """Set the confidence filter, clamped to [0, 1]. Returns the value applied."""
        self._confidence_threshold = _clamp(threshold)
        logger.info("Confidence threshold set to %.2f", self._confidence_threshold)
        return self._confidence_threshold

    async def clear_cache(self, durable: bool = True) -> None:
        self._cache.clear()
        if durable and self._durable_store is not None:
            try:
                await self._durable_store.clear()
            except Exception as exc:
                logger.warning("Durable cache clear failed: %s", exc)
        logger.info("Analysis cache cleared")

    def stats(self) -> PipelineStats:
        return PipelineStats(
            initialized=self._initialized,
            confidence_threshold=self._confidence_threshold,
            in_flight=len(self._in_flight),
            cache=self._cache.stats(),
            scheduler=self._scheduler.stats(),
            capabilities=self._loader.state,
        )

    # --- Internals ---

    async def _produce(
        self,
        key: str,
        resource: ImageResource,
        priority: Priority | str,
        shared: SharedCancellation,
    ) -> AnalysisResult:
        try:
            durable = await self.lookup_durable(key)
            if durable is not None:
                return durable
            shared.token.raise_if_cancelled()
            future = self._scheduler.submit(
                AnalysisJob(cache_key=key, resource=resource),
                priority=priority,
                key=key,
                cancel_token=shared.token,
            )
            return await future
        finally:
            if self._shared.get(key) is shared:
                del self._shared[key]

    async def _execute(self, task: Task[AnalysisJob, AnalysisResult]) -> AnalysisResult:
        """Scheduler executor: analyze, fall back on failure, remember the result."""
        job = task.payload
        try:
            result = await self._analyze_job(job, task.cancel_token)
        except TaskCancelledError:
            raise
        except Exception as exc:
            logger.error("Analysis failed for %s: %s", job.cache_key, exc)
            result = build_fallback(job.resource, exc, self._vocabulary, job.cache_key)

        await self._remember(job.cache_key, result)
        if not result.fallback:
            self._emit(
                events.IMAGE_ANALYZED,
                {
                    "cache_key": job.cache_key,
                    "result": result,
                    "analysis_time_ms": result.metadata.analysis_time_ms,
                },
            )
        return result

    async def _analyze_job(
        self, job: AnalysisJob, cancel_token: CancellationToken | None
    ) -> AnalysisResult:
        started = time.monotonic()
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        classifications, detections = await self._run_capabilities(job.resource)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        result = build_result(
            classifications,
            detections,
            job.resource,
            threshold=self._confidence_threshold,
            vocabulary=self._vocabulary,
            cache_key=job.cache_key,
            analysis_time_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "Analyzed %s: %d tags, confidence %.2f in %dms",
            job.cache_key, len(result.tags), result.confidence,
            result.metadata.analysis_time_ms,
        )
        return result

    async def _run_capabilities(
        self, resource: ImageResource
    ) -> tuple[list[Classification], list[Detection]]:
        """Run every loaded capability concurrently.

        A failing capability is logged and omitted. Raises CapabilityError
        only when capabilities were invoked and every one of them failed.
        """
        calls: list[tuple[str, BaseCapability, Any]] = []
        for capability in self._registry.loaded():
            if capability.supports_classification:
                calls.append(("classify", capability, capability.classify))
            if capability.supports_detection:
                calls.append(("detect", capability, capability.detect))

        if not calls:
            return [], []

        outcomes = await asyncio.gather(
            *(self._invoke(capability, call, resource) for _, capability, call in calls),
            return_exceptions=True,
        )

        classifications: list[Classification] = []
        detections: list[Detection] = []
        errors: list[str] = []
        for (kind, capability, _), outcome in zip(calls, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Capability '%s' %s failed: %s", capability.name, kind, outcome)
                errors.append(f"{capability.name}.{kind}: {outcome}")
                continue
            target = classifications if kind == "classify" else detections
            target.extend(_with_source(item, capability.name) for item in outcome)

        if len(errors) == len(calls):
            raise CapabilityError("all capabilities failed: " + "; ".join(errors))

        classifications.sort(key=lambda item: item.confidence, reverse=True)
        detections.sort(key=lambda item: item.confidence, reverse=True)
        return classifications, detections

    async def _invoke(
        self, capability: BaseCapability, call: Any, resource: ImageResource
    ) -> list:
        set_capability_context(capability.name)
        try:
            return await call(resource)
        finally:
            set_capability_context(None)

    async def _remember(self, key: str, result: AnalysisResult) -> None:
        self._cache.set(key, result)
        if self._durable_store is None:
            return
        try:
            await self._durable_store.set(key, result.model_dump(mode="json"))
        except Exception as exc:
            logger.warning("Durable cache write failed for %s: %s", key, exc)

    async def _forget_durable(self, key: str) -> None:
        try:
            await self._durable_store.delete(key)
        except Exception as exc:
            logger.warning("Durable cache delete failed for %s: %s", key, exc)

    def _on_task_error(
        self, task: Task[AnalysisJob, AnalysisResult], exc: Exception
    ) -> AnalysisResult:
        job = task.payload
        result = build_fallback(job.resource, exc, self._vocabulary, job.cache_key)
        self._cache.set(job.cache_key, result)
        return result

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        if self._emitter is not None:
            self._emitter.emit(event, payload)


def _with_source(item: Any, source: str) -> Any:
    return item if item.source else item.model_copy(update={"source": source})


def _clamp(threshold: float) -> float:
    return min(1.0, max(0.0, float(threshold)))
