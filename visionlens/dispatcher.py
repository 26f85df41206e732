"""Parallel dispatch of k inference calls for one image."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from functools import partial
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable

from .config import validate_sample_count
from .consensus.base import SampleResult
from .errors import SampleTimeoutError
from .models.base import Answer

InferenceCall = Callable[[Any], Awaitable[Answer]]

DEFAULT_PER_CALL_TIMEOUT_SECONDS = 30.0


class EventKind(str, Enum):
    COMPLETION = "completion"
    SETTLED = "settled"


@dataclass(slots=True, frozen=True)
class DispatchEvent:
    """One sample reaching a terminal state, or the whole set settling.

    ``results`` is a snapshot of all k samples taken when the event was
    emitted; ``sample`` is the sample that just completed.
    """

    kind: EventKind
    results: tuple[SampleResult, ...]
    sample: SampleResult | None = None

    @property
    def settled(self) -> bool:
        return self.kind is EventKind.SETTLED


def describe_error(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


class InferenceDispatcher:
    """Issues all k calls at once and streams their completions.

    Each call races its own timer. A call that loses the race is not
    cancelled: it keeps running detached and whatever it eventually returns
    is discarded, because its sample already holds a terminal failure.
    """

    def __init__(
        self,
        per_call_timeout_seconds: float = DEFAULT_PER_CALL_TIMEOUT_SECONDS,
        logger: logging.Logger | None = None,
    ) -> None:
        self.per_call_timeout_seconds = per_call_timeout_seconds
        self.logger = logger or logging.getLogger(__name__)
        self._detached: set[asyncio.Future] = set()

    @property
    def detached_calls(self) -> int:
        """Calls that timed out and are still running in the background."""
        return len(self._detached)

    async def dispatch(self, image: Any, k: int, call_inference: InferenceCall) -> AsyncIterator[DispatchEvent]:
        """Yield k completion events in completion order, then one settled event."""
        validate_sample_count(k)
        samples = [SampleResult(index=index) for index in range(1, k + 1)]
        queue: asyncio.Queue[DispatchEvent] = asyncio.Queue()

        def _snapshot() -> tuple[SampleResult, ...]:
            return tuple(sample.snapshot() for sample in samples)

        async def _run_sample(sample: SampleResult) -> None:
            await self._run_one(sample, image, call_inference)
            queue.put_nowait(DispatchEvent(kind=EventKind.COMPLETION, results=_snapshot(), sample=sample.snapshot()))

        workers = [asyncio.create_task(_run_sample(sample)) for sample in samples]
        try:
            for _ in range(k):
                yield await queue.get()
            await asyncio.gather(*workers)
            yield DispatchEvent(kind=EventKind.SETTLED, results=_snapshot())
        finally:
            # A consumer that stops listening early does not stop the calls.
            for worker in workers:
                if not worker.done():
                    self._keep_alive(worker)

    async def _run_one(self, sample: SampleResult, image: Any, call_inference: InferenceCall) -> None:
        sample.start()
        started = time.perf_counter()
        call = asyncio.ensure_future(self._invoke(call_inference, image))
        done, _ = await asyncio.wait({call}, timeout=self.per_call_timeout_seconds)
        elapsed_ms = (time.perf_counter() - started) * 1000

        if call not in done:
            error = SampleTimeoutError(self.per_call_timeout_seconds)
            sample.fail(describe_error(error), elapsed_ms)
            self.logger.warning("Sample %d timed out after %.0fms", sample.index, elapsed_ms)
            self._keep_alive(call, index=sample.index)
            return

        if call.cancelled():
            sample.fail("CancelledError", elapsed_ms)
            self.logger.warning("Sample %d was cancelled", sample.index)
            return

        exc = call.exception()
        if exc is not None:
            sample.fail(describe_error(exc), elapsed_ms)
            self.logger.warning("Sample %d failed: %s", sample.index, sample.error)
            return

        sample.succeed(call.result(), elapsed_ms)
        self.logger.debug("Sample %d succeeded in %.0fms", sample.index, elapsed_ms)

    @staticmethod
    async def _invoke(call_inference: InferenceCall, image: Any) -> Answer:
        return await call_inference(image)

    def _keep_alive(self, future: asyncio.Future, index: int | None = None) -> None:
        self._detached.add(future)
        future.add_done_callback(partial(self._discard_late, index))

    def _discard_late(self, index: int | None, future: asyncio.Future) -> None:
        self._detached.discard(future)
        if index is None or future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            self.logger.debug("Discarded late failure from sample %d: %s", index, describe_error(exc))
        else:
            self.logger.debug("Discarded late result from sample %d", index)

    async def drain(self) -> None:
        """Wait for detached calls to finish; used at shutdown."""
        if self._detached:
            await asyncio.gather(*list(self._detached), return_exceptions=True)
