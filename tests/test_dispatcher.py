"""Tests for parallel dispatch, isolation and timeouts."""

from __future__ import annotations

import asyncio
import logging

import pytest

from visionlens.consensus import SampleResult, SampleState, VerdictTag, classify
from visionlens.dispatcher import EventKind, InferenceDispatcher
from visionlens.errors import ProviderError


class ScriptedInference:
    """Fake inference port; the n-th call sleeps and returns (or raises) the n-th step."""

    def __init__(self, steps: list[tuple[float, object]]) -> None:
        self.steps = list(steps)
        self.calls = 0
        self.finished = 0

    async def __call__(self, image):
        delay, outcome = self.steps[self.calls]
        self.calls += 1
        await asyncio.sleep(delay)
        self.finished += 1
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


async def _collect(dispatcher: InferenceDispatcher, k: int, infer) -> list:
    return [event async for event in dispatcher.dispatch("img", k, infer)]


@pytest.mark.parametrize("k", [1, 2, 3, 4, 5])
def test_every_index_settles_exactly_once(k: int) -> None:
    async def _run() -> None:
        infer = ScriptedInference([(0.001 * (k - i), f"answer {i}") for i in range(k)])
        events = await _collect(InferenceDispatcher(), k, infer)

        assert [event.kind for event in events] == [EventKind.COMPLETION] * k + [EventKind.SETTLED]
        final = events[-1].results
        assert len(final) == k
        assert sorted(sample.index for sample in final) == list(range(1, k + 1))
        assert all(sample.state is SampleState.SUCCEEDED for sample in final)
        assert sorted(event.sample.index for event in events[:-1]) == list(range(1, k + 1))

    asyncio.run(_run())


def test_completions_arrive_in_completion_order() -> None:
    async def _run() -> None:
        infer = ScriptedInference([(0.05, "slow"), (0.01, "fast"), (0.03, "middle")])
        events = await _collect(InferenceDispatcher(), 3, infer)

        assert [event.sample.index for event in events[:3]] == [2, 3, 1]
        first = events[0].results
        assert [sample.state for sample in first] == [SampleState.RUNNING, SampleState.SUCCEEDED, SampleState.RUNNING]

    asyncio.run(_run())


def test_failure_is_isolated_to_its_sample() -> None:
    async def _run() -> None:
        infer = ScriptedInference([(0.01, "42"), (0.005, ProviderError("HTTP 503")), (0.02, "42")])
        events = await _collect(InferenceDispatcher(), 3, infer)

        final = {sample.index: sample for sample in events[-1].results}
        assert final[1].state is SampleState.SUCCEEDED
        assert final[3].state is SampleState.SUCCEEDED
        assert final[2].state is SampleState.FAILED
        assert final[2].error == "ProviderError: HTTP 503"
        assert final[2].elapsed_ms is not None

    asyncio.run(_run())


def test_timeout_fails_sample_without_cancelling_call(caplog: pytest.LogCaptureFixture) -> None:
    async def _run() -> None:
        infer = ScriptedInference([(0.01, "x"), (0.2, "late"), (0.01, "x")])
        dispatcher = InferenceDispatcher(per_call_timeout_seconds=0.05)
        events = await _collect(dispatcher, 3, infer)

        timed_out = {sample.index: sample for sample in events[-1].results}[2]
        assert timed_out.state is SampleState.FAILED
        assert timed_out.error.startswith("SampleTimeoutError")
        assert timed_out.answer is None
        assert dispatcher.detached_calls == 1

        await dispatcher.drain()
        assert infer.finished == 3
        assert dispatcher.detached_calls == 0
        assert len(events) == 4

    caplog.set_level(logging.DEBUG, logger="visionlens.dispatcher")
    asyncio.run(_run())
    assert "Discarded late result from sample 2" in caplog.text


def test_late_result_never_overwrites_timed_out_slot() -> None:
    async def _run() -> None:
        dispatcher = InferenceDispatcher(per_call_timeout_seconds=0.02)
        sample = SampleResult(index=1)
        await dispatcher._run_one(sample, "img", ScriptedInference([(0.08, "late answer")]))
        assert sample.state is SampleState.FAILED

        await dispatcher.drain()
        assert dispatcher.detached_calls == 0
        assert sample.state is SampleState.FAILED
        assert sample.answer is None
        assert sample.error.startswith("SampleTimeoutError")

        verdict = classify([sample], 1)
        assert verdict.tag is VerdictTag.ALL_FAILED

    asyncio.run(_run())


def test_synchronous_error_from_port_is_recorded() -> None:
    async def _run() -> None:
        def broken(image):
            raise RuntimeError("no payload available")

        events = await _collect(InferenceDispatcher(), 2, broken)
        assert all(sample.state is SampleState.FAILED for sample in events[-1].results)
        assert events[-1].results[0].error == "RuntimeError: no payload available"

    asyncio.run(_run())


def test_invalid_sample_count_rejected() -> None:
    async def _run() -> None:
        with pytest.raises(ValueError):
            await _collect(InferenceDispatcher(), 6, ScriptedInference([]))

    asyncio.run(_run())
