"""Bounded-concurrency orchestration of multi-item embedding runs.

An item is one unit of work: a file, or a batch of images. Items are admitted
through an ``asyncio.Semaphore`` and their CPU-bound work (extraction,
chunking, ``Embedder.embed``) runs in a thread pool via ``run_in_executor``,
so the event loop only schedules and delivers.

Results are either collected and returned in item order, or handed to a sink
in slices of ``buffer_size`` records. Sink calls are serialized by a lock, so
a sink never sees two deliveries at once.

Failure isolation
- A failed or timed-out item is logged, counted and skipped
- An item's timeout runs from the moment a worker thread picks it up
- A run in which every attempted item failed raises ``EmbedRunError``
- Cancelling the run cancels every pending item task
"""

import asyncio
import inspect
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Union

import structlog

from ..batching.devices import worker_count
from ..common.config import DEFAULT_BUFFER_SIZE, get_settings
from ..common.errors import EmbedRunError
from ..common.metrics import get_metrics_collector
from ..embeddings.base import EmbedData, Embedder, iter_batches

logger = structlog.get_logger("orchestrator")


class Adapter(Protocol):
    """Sink object receiving records as they are produced."""

    def upsert(self, data: List[EmbedData]) -> Any:
        ...


Sink = Union[Adapter, Callable[[List[EmbedData]], Any], Callable[[List[EmbedData]], Awaitable[Any]]]


class ItemState(Enum):
    """Lifecycle of an item within a run."""
    DISCOVERED = "discovered"
    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ItemReport:
    """Outcome of one item."""
    item: str
    state: ItemState = ItemState.DISCOVERED
    records: int = 0
    duration_seconds: float = 0.0
    error: Optional[str] = None


@dataclass
class RunSummary:
    """Per-item reports of a finished run."""
    reports: List[ItemReport] = field(default_factory=list)

    @property
    def completed(self) -> List[ItemReport]:
        return [r for r in self.reports if r.state == ItemState.COMPLETED]

    @property
    def failed(self) -> List[ItemReport]:
        return [r for r in self.reports if r.state == ItemState.FAILED]

    @property
    def total_records(self) -> int:
        return sum(r.records for r in self.completed)


def describe_item(item: Any) -> str:
    """Label used in reports and logs (image batches show their span)."""
    if isinstance(item, (list, tuple)):
        if not item:
            return "[]"
        return f"{item[0]} .. {item[-1]} ({len(item)} items)" if len(item) > 1 else str(item[0])
    return str(item)


async def deliver(sink: Sink, records: Sequence[EmbedData], buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
    """Hand ``records`` to ``sink`` in slices of ``buffer_size``.

    Coroutine sinks are awaited. Plain callables and ``upsert`` methods run
    in the loop's default executor, off the event-loop thread.
    """
    target = getattr(sink, "upsert", sink)
    loop = asyncio.get_running_loop()
    for batch in iter_batches(list(records), buffer_size):
        if inspect.iscoroutinefunction(target):
            await target(list(batch))
            continue
        result = await loop.run_in_executor(None, target, list(batch))
        if inspect.isawaitable(result):
            await result


def _mark_started(loop: asyncio.AbstractEventLoop, started: asyncio.Event,
                  work: Callable[[Any], List[EmbedData]], item: Any) -> List[EmbedData]:
    loop.call_soon_threadsafe(started.set)
    return work(item)


class EmbeddingOrchestrator:
    """Drives items through a work function concurrently.

    Parameters
    - embedder: backend shared by every item (used for logging)
    - max_concurrency: admission bound; defaults to settings, then CPU count
    - item_timeout: seconds before an item is abandoned and marked failed
    - executor: pool for CPU-bound work; a private one is created per run
      when omitted
    """

    def __init__(
        self,
        embedder: Embedder,
        max_concurrency: Optional[int] = None,
        item_timeout: Optional[float] = None,
        executor: Optional[Executor] = None,
    ):
        settings = get_settings()
        self.embedder = embedder
        self.max_concurrency = max_concurrency or settings.max_concurrency or worker_count()
        self.item_timeout = item_timeout if item_timeout is not None else settings.item_timeout
        self.executor = executor
        self.metrics = get_metrics_collector()
        self.last_summary: Optional[RunSummary] = None

    async def run_items(
        self,
        items: Sequence[Any],
        work: Callable[[Any], List[EmbedData]],
        sink: Optional[Sink] = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        source: str = "file",
    ) -> Optional[List[EmbedData]]:
        """Run ``work`` on each item; collect results or stream them to ``sink``."""
        items = list(items)
        reports = [ItemReport(item=describe_item(item)) for item in items]
        results: List[Optional[List[EmbedData]]] = [None] * len(items)
        failures: Dict[str, str] = {}
        first_error: List[BaseException] = []

        semaphore = asyncio.Semaphore(self.max_concurrency)
        sink_lock = asyncio.Lock()
        loop = asyncio.get_running_loop()
        executor = self.executor or ThreadPoolExecutor(
            max_workers=self.max_concurrency, thread_name_prefix="embed-item"
        )

        async def process(index: int, item: Any) -> None:
            report = reports[index]
            report.state = ItemState.QUEUED
            async with semaphore:
                report.state = ItemState.IN_FLIGHT
                self.metrics.items_in_flight.inc()
                start = time.time()
                try:
                    started = asyncio.Event()
                    future = loop.run_in_executor(executor, _mark_started, loop, started, work, item)
                    if self.item_timeout is not None:
                        try:
                            await started.wait()
                        except asyncio.CancelledError:
                            future.cancel()
                            raise
                        records = await asyncio.wait_for(future, self.item_timeout)
                    else:
                        records = await future
                    if sink is not None:
                        async with sink_lock:
                            await deliver(sink, records, buffer_size)
                    else:
                        results[index] = records
                    report.records = len(records)
                    report.state = ItemState.COMPLETED
                    self.metrics.record_item(source, "completed")
                    self.metrics.record_chunks(source, len(records))
                except asyncio.TimeoutError as e:
                    # The worker thread cannot be interrupted; its result is discarded.
                    self._fail(report, f"timed out after {self.item_timeout}s", source, failures)
                    first_error.append(e)
                except Exception as e:
                    self._fail(report, str(e), source, failures)
                    first_error.append(e)
                finally:
                    report.duration_seconds = time.time() - start
                    self.metrics.items_in_flight.dec()

        tasks = [asyncio.ensure_future(process(i, item)) for i, item in enumerate(items)]
        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.warning("Embedding run cancelled", backend=self.embedder.name, items=len(items))
            raise
        finally:
            if self.executor is None:
                executor.shutdown(wait=False)

        summary = RunSummary(reports=reports)
        self.last_summary = summary
        logger.info(
            "Embedding run finished",
            backend=self.embedder.name,
            source=source,
            items=len(items),
            completed=len(summary.completed),
            failed=len(summary.failed),
            records=summary.total_records,
        )

        if items and not summary.completed:
            raise EmbedRunError(
                f"All {len(items)} items failed", failures=failures
            ) from first_error[0]

        if sink is not None:
            return None
        return [record for item_records in results if item_records for record in item_records]

    def _fail(self, report: ItemReport, error: str, source: str, failures: Dict[str, str]) -> None:
        report.state = ItemState.FAILED
        report.error = error
        failures[report.item] = error
        self.metrics.record_item(source, "failed")
        logger.error("Item failed, skipping", item=report.item, source=source, error=error)
