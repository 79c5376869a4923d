import asyncio
import copy
import logging
from collections.abc import Sequence
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from functools import partial

from jsco.cache import create_cache_manager
from jsco.cache.manager import CacheManager, detection_key
from jsco.config import Settings
from jsco.core.compat import CompatibilityDatabase, initialize_database
from jsco.core.engine import FeatureRuleEngine, default_engine, run_detection
from jsco.core.loader import SourceLoader
from jsco.core.parser import TreeSitterParser
from jsco.core.report import aggregate
from jsco.errors import JscoError, LoadError, ParseTimeoutError
from jsco.models import AnalysisReport, AnalyzeOptions, DetectionResult, SourceUnit

logger = logging.getLogger(__name__)

FETCH_CONCURRENCY = 16

BatchResult = AnalysisReport | JscoError


def create_executor(settings: Settings) -> Executor:
    workers = settings.worker_count
    if settings.worker_mode == "thread":
        return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="jsco-detect")
    return ProcessPoolExecutor(max_workers=workers)


def _rebind(result: DetectionResult, identity: str) -> DetectionResult:
    if all(o.source == identity for o in result.occurrences):
        return result
    return result.model_copy(
        update={"occurrences": [o.model_copy(update={"source": identity}) for o in result.occurrences]}
    )


def _rebind_error(error: JscoError, identity: str) -> JscoError:
    rebound = copy.copy(error)
    rebound.source = identity
    rebound.args = (f"{identity}: {error.message}",)
    return rebound


class Analyzer:
    """Single entry point for analyses.

    Hash, cache lookup, parse and detect on a miss (on the worker pool),
    then aggregate against the compatibility database. Owns the pool, the
    loader and the cache manager unless they are passed in.
    """

    def __init__(
        self,
        database: CompatibilityDatabase | None = None,
        cache: CacheManager | None = None,
        engine: FeatureRuleEngine | None = None,
        parser: TreeSitterParser | None = None,
        executor: Executor | None = None,
        loader: SourceLoader | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.database = database if database is not None else initialize_database(self.settings.compat_data)
        self.cache = cache or create_cache_manager(self.settings)
        self.engine = engine or default_engine()
        self.parser = parser or TreeSitterParser()
        self.loader = loader or SourceLoader(cache=self.cache, timeout=self.settings.http_timeout)
        self._executor = executor
        self._owns_executor = executor is None

    @property
    def executor(self) -> Executor:
        if self._executor is None:
            self._executor = create_executor(self.settings)
            logger.debug("Started %s worker pool (%d workers)", self.settings.worker_mode, self.settings.worker_count)
        return self._executor

    def cache_key(self, unit: SourceUnit) -> str:
        return detection_key(self.engine.version, unit.language, unit.content_hash)

    async def _run_detection(self, unit: SourceUnit, timeout: float | None) -> DetectionResult:
        # Workers fall back to their own default engine instead of receiving a pickled copy.
        engine = None if self.engine is default_engine() else self.engine
        job = partial(run_detection, self.parser, engine, unit.content, unit.language, unit.identity)
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.run_in_executor(self.executor, job), timeout)
        except TimeoutError:
            raise ParseTimeoutError(unit.identity, f"parse timed out after {timeout:g}s") from None

    async def _shared_detection(self, unit: SourceUnit, options: AnalyzeOptions) -> DetectionResult:
        return await self.cache.single_flight(
            self.cache_key(unit),
            lambda: self._run_detection(unit, options.timeout),
            use_cache=options.use_cache,
            ttl=options.cache_ttl,
        )

    async def detect(self, unit: SourceUnit, options: AnalyzeOptions | None = None) -> DetectionResult:
        options = options or AnalyzeOptions()
        try:
            try:
                result = await self._shared_detection(unit, options)
            except ParseTimeoutError:
                if options.timeout is not None:
                    raise
                # Joined a detection bounded by another caller's timeout.
                result = await self._shared_detection(unit, options)
        except JscoError as exc:
            if exc.source == unit.identity:
                raise
            raise _rebind_error(exc, unit.identity) from exc
        return _rebind(result, unit.identity)

    async def analyze(self, unit: SourceUnit, options: AnalyzeOptions | None = None) -> AnalysisReport:
        options = options or AnalyzeOptions()
        result = await self.detect(unit, options)
        report = aggregate(
            unit.identity, result, self.engine, self.database, options.environments or None, content=unit.content
        )
        logger.debug("Analyzed %s: %d features", unit.identity, len(report.features))
        return report

    async def load(
        self, ref: str, options: AnalyzeOptions | None = None, language: str | None = None
    ) -> SourceUnit:
        options = options or AnalyzeOptions()
        try:
            return await asyncio.wait_for(
                self.loader.load(ref, language, use_cache=options.use_cache), options.timeout
            )
        except TimeoutError:
            raise LoadError(ref, f"load timed out after {options.timeout:g}s") from None

    async def analyze_batch(
        self,
        refs: Sequence[SourceUnit | str],
        options: AnalyzeOptions | None = None,
    ) -> list[BatchResult]:
        """Analyze many inputs; result ``i`` belongs to ``refs[i]``.

        Loads run on the event loop and feed a queue drained by one consumer
        per pool worker. Failures are returned in their slot as ``JscoError``.
        """
        options = options or AnalyzeOptions()
        if not refs:
            return []

        slots: list[BatchResult | None] = [None] * len(refs)
        consumers_count = max(1, min(self.settings.worker_count, len(refs)))
        queue: asyncio.Queue[tuple[int, SourceUnit] | None] = asyncio.Queue(maxsize=consumers_count * 2)
        fetch_limit = asyncio.Semaphore(FETCH_CONCURRENCY)

        async def produce(index: int, ref: SourceUnit | str) -> None:
            if isinstance(ref, SourceUnit):
                await queue.put((index, ref))
                return
            async with fetch_limit:
                try:
                    unit = await self.load(ref, options)
                except JscoError as exc:
                    slots[index] = exc
                    return
                except Exception as exc:
                    logger.exception("Unexpected failure loading %s", ref)
                    slots[index] = LoadError(ref, f"unexpected error: {exc}")
                    return
            await queue.put((index, unit))

        async def consume() -> None:
            while True:
                item = await queue.get()
                try:
                    if item is None:
                        return
                    index, unit = item
                    try:
                        slots[index] = await self.analyze(unit, options)
                    except JscoError as exc:
                        slots[index] = exc
                    except asyncio.CancelledError:
                        current = asyncio.current_task()
                        if current is not None and current.cancelling():
                            raise
                        logger.warning("Analysis of %s was cancelled", unit.identity)
                        slots[index] = JscoError(unit.identity, "analysis cancelled")
                    except Exception as exc:
                        logger.exception("Unexpected failure analyzing %s", unit.identity)
                        slots[index] = JscoError(unit.identity, f"unexpected error: {exc}")
                finally:
                    queue.task_done()

        consumers = [asyncio.create_task(consume()) for _ in range(consumers_count)]
        try:
            await asyncio.gather(*(produce(i, ref) for i, ref in enumerate(refs)))
            for _ in consumers:
                await queue.put(None)
            await asyncio.gather(*consumers)
        finally:
            for task in consumers:
                task.cancel()

        results: list[BatchResult] = []
        for ref, slot in zip(refs, slots):
            identity = ref.identity if isinstance(ref, SourceUnit) else ref
            results.append(slot if slot is not None else JscoError(identity, "no result"))
        return results

    async def aclose(self) -> None:
        await self.loader.aclose()
        await self.cache.dispose()
        if self._executor is not None and self._owns_executor:
            await asyncio.to_thread(self._executor.shutdown, True, cancel_futures=True)
            self._executor = None

    async def __aenter__(self) -> "Analyzer":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
