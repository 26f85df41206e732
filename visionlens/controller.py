"""Task lifecycle: identity, supersession, streaming verdicts and persistence."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from functools import partial
import logging
import time
from typing import Any, AsyncIterator, Callable
import uuid

from .config import AnalysisConfig, validate_sample_count
from .consensus.base import ConsensusVerdict, SampleResult
from .consensus.engine import classify
from .dispatcher import InferenceCall, InferenceDispatcher
from .persistence import HistorySnapshot, InMemoryHistoryStore, PersistenceGate, utc_now_iso


class TaskStatus(str, Enum):
    CREATED = "created"
    DISPATCHING = "dispatching"
    SETTLED = "settled"


@dataclass(slots=True)
class Task:
    """One request for k inference samples over one image."""

    task_id: str
    generation: int
    k: int
    image: Any
    created_at: str
    status: TaskStatus = TaskStatus.CREATED
    saved: bool = False
    record_id: str | None = None
    deadline_expired: bool = False
    results: tuple[SampleResult, ...] = ()
    verdict: ConsensusVerdict | None = None


def new_task_id() -> str:
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass(slots=True, frozen=True)
class VerdictUpdate:
    """Verdict recomputed after a completion (or the final settle) of one task."""

    task_id: str
    verdict: ConsensusVerdict
    results: tuple[SampleResult, ...]
    final: bool = False


class LiveUpdateChannel:
    """Receiver for updates about the current task. Methods default to no-ops."""

    def on_verdict(self, update: VerdictUpdate) -> None:
        return None

    def on_deadline(self, task_id: str) -> None:
        return None

    def on_completed(self, task_id: str, verdict: ConsensusVerdict, after_deadline: bool) -> None:
        return None

    def on_saved(self, task_id: str, record_id: str) -> None:
        return None


class ChannelEventKind(str, Enum):
    VERDICT = "verdict"
    DEADLINE = "deadline"
    COMPLETED = "completed"
    SAVED = "saved"


@dataclass(slots=True, frozen=True)
class ChannelEvent:
    kind: ChannelEventKind
    task_id: str
    update: VerdictUpdate | None = None
    verdict: ConsensusVerdict | None = None
    record_id: str | None = None
    after_deadline: bool = False


class UpdateStream(LiveUpdateChannel):
    """Queue-backed channel consumable with ``async for``.

    Iteration ends after the first ``completed`` event.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[ChannelEvent] = asyncio.Queue()

    def on_verdict(self, update: VerdictUpdate) -> None:
        self._queue.put_nowait(ChannelEvent(ChannelEventKind.VERDICT, update.task_id, update=update))

    def on_deadline(self, task_id: str) -> None:
        self._queue.put_nowait(ChannelEvent(ChannelEventKind.DEADLINE, task_id))

    def on_completed(self, task_id: str, verdict: ConsensusVerdict, after_deadline: bool) -> None:
        self._queue.put_nowait(
            ChannelEvent(ChannelEventKind.COMPLETED, task_id, verdict=verdict, after_deadline=after_deadline)
        )

    def on_saved(self, task_id: str, record_id: str) -> None:
        self._queue.put_nowait(ChannelEvent(ChannelEventKind.SAVED, task_id, record_id=record_id))

    async def __aiter__(self) -> AsyncIterator[ChannelEvent]:
        while True:
            event = await self._queue.get()
            yield event
            if event.kind is ChannelEventKind.COMPLETED:
                return


class SoftDeadline:
    """Display-only timer: fires one callback after ``seconds`` unless cancelled."""

    def __init__(self, seconds: float, on_expire: Callable[[], None]) -> None:
        self.seconds = seconds
        self._on_expire = on_expire
        self._timer: asyncio.Task | None = None
        self.expired = False

    def start(self) -> None:
        self._timer = asyncio.create_task(self._wait())

    async def _wait(self) -> None:
        await asyncio.sleep(self.seconds)
        self.expired = True
        self._on_expire()

    def cancel(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()


class TaskController:
    """Runs tasks against an inference port and keeps one of them current.

    Every task carries the generation number it was created with; updates are
    delivered to the channel only while that number is the controller's
    current generation. A superseded task still runs to completion and is
    still saved.
    """

    def __init__(
        self,
        infer: InferenceCall,
        *,
        config: AnalysisConfig | None = None,
        gate: PersistenceGate | None = None,
        channel: LiveUpdateChannel | None = None,
        dispatcher: InferenceDispatcher | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config or AnalysisConfig()
        self.infer = infer
        self.logger = logger or logging.getLogger(__name__)
        self.gate = gate or PersistenceGate(InMemoryHistoryStore(), logger=self.logger)
        self.channel = channel or LiveUpdateChannel()
        self.dispatcher = dispatcher or InferenceDispatcher(
            per_call_timeout_seconds=self.config.per_call_timeout_seconds,
            logger=self.logger,
        )
        self._generation = 0
        self._current: int | None = None

    def new_task(self, image: Any, *, k: int | None = None) -> Task:
        """Create a task and make it current, superseding any previous one."""
        k = validate_sample_count(self.config.k if k is None else k)
        self._generation += 1
        self._current = self._generation
        return Task(
            task_id=new_task_id(),
            generation=self._generation,
            k=k,
            image=image,
            created_at=utc_now_iso(),
        )

    def is_current(self, task: Task) -> bool:
        return task.generation == self._current

    def release(self) -> None:
        """Stop delivering updates for whichever task is current."""
        self._current = None

    async def analyze(self, image: Any, *, k: int | None = None) -> Task:
        return await self.run(self.new_task(image, k=k))

    async def run(self, task: Task) -> Task:
        """Dispatch the task's samples and stream verdicts until it settles."""
        if task.status is not TaskStatus.CREATED:
            raise ValueError(f"Task {task.task_id} was already started")

        task.status = TaskStatus.DISPATCHING
        started = time.perf_counter()
        self.logger.info("Task %s dispatching %d samples", task.task_id, task.k)

        deadline = SoftDeadline(self.config.soft_deadline_for(task.k), partial(self._on_deadline, task))
        deadline.start()
        try:
            async for event in self.dispatcher.dispatch(task.image, task.k, self.infer):
                task.results = event.results
                task.verdict = classify(
                    event.results,
                    task.k,
                    match_threshold=self.config.match_threshold,
                    strong_match_threshold=self.config.strong_match_threshold,
                )
                self._publish(task, VerdictUpdate(task.task_id, task.verdict, event.results, final=event.settled))
                if not event.settled and task.verdict.success_count > 0:
                    self._save(task)
        finally:
            deadline.cancel()

        task.status = TaskStatus.SETTLED
        self._save(task)

        elapsed = time.perf_counter() - started
        self.logger.info(
            "Task %s settled in %.2fs: %s (ok=%d failed=%d)",
            task.task_id,
            elapsed,
            task.verdict.tag.value,
            task.verdict.success_count,
            task.verdict.failed_count,
        )
        if self.is_current(task):
            self._notify(self.channel.on_completed, task.task_id, task.verdict, task.deadline_expired)
        return task

    def _on_deadline(self, task: Task) -> None:
        if task.status is TaskStatus.SETTLED or not self.is_current(task):
            return
        task.deadline_expired = True
        self.logger.info("Task %s passed its soft deadline, still working", task.task_id)
        self._notify(self.channel.on_deadline, task.task_id)

    def _publish(self, task: Task, update: VerdictUpdate) -> None:
        if not self.is_current(task):
            self.logger.debug("Dropping update for superseded task %s", task.task_id)
            return
        self._notify(self.channel.on_verdict, update)

    def _save(self, task: Task) -> None:
        snapshot = HistorySnapshot(
            task_id=task.task_id,
            image=task.image,
            results=task.results,
            verdict=task.verdict,
            user_id=self.config.user_id,
        )
        if self.gate.try_save(task, snapshot) and self.is_current(task):
            self._notify(self.channel.on_saved, task.task_id, task.record_id)

    def _notify(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            self.logger.exception("Live-update callback %s failed", getattr(callback, "__name__", callback))
