"""Tests for history stores and the at-most-once persistence gate."""

from __future__ import annotations

from pathlib import Path

from visionlens.consensus import SampleResult, SampleState, classify
from visionlens.controller import TaskController
from visionlens.errors import PersistenceError
from visionlens.models.base import QuestionAnswer
from visionlens.persistence import (
    FileHistoryStore,
    HistorySnapshot,
    HistoryStore,
    InMemoryHistoryStore,
    PersistenceGate,
)


async def _never_called(image):
    raise AssertionError("inference is not used in these tests")


def _snapshot(task, created_at: str = "2026-01-01T00:00:00+00:00", user_id: str | None = None) -> HistorySnapshot:
    results = (
        SampleResult(index=1, state=SampleState.SUCCEEDED, answer=QuestionAnswer("水的分子式？", "H2O"), elapsed_ms=812.0),
        SampleResult(index=2, state=SampleState.FAILED, error="ProviderError: HTTP 429", elapsed_ms=95.0),
    )
    return HistorySnapshot(
        task_id=task.task_id,
        image=task.image,
        results=results,
        verdict=classify(results, 2),
        created_at=created_at,
        user_id=user_id,
    )


class FlakyStore(InMemoryHistoryStore):
    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    def append(self, snapshot: HistorySnapshot) -> str:
        if self.failures > 0:
            self.failures -= 1
            raise PersistenceError("disk full")
        return super().append(snapshot)


def test_try_save_twice_writes_once() -> None:
    task = TaskController(_never_called).new_task("aGVsbG8=")
    store = InMemoryHistoryStore()
    gate = PersistenceGate(store)

    assert gate.try_save(task, _snapshot(task)) is True
    assert gate.try_save(task, _snapshot(task)) is False
    assert len(store.records) == 1
    assert task.saved
    assert store.records[0]["processed_image"] == "data:image/jpeg;base64,aGVsbG8="


def test_failed_write_is_logged_and_retryable() -> None:
    task = TaskController(_never_called).new_task("img")
    store = FlakyStore(failures=1)
    gate = PersistenceGate(store)

    assert gate.try_save(task, _snapshot(task)) is False
    assert not task.saved
    assert gate.try_save(task, _snapshot(task)) is True
    assert len(store.records) == 1


def test_file_store_round_trip_and_ordering(tmp_path: Path) -> None:
    store = FileHistoryStore(tmp_path / "history")
    assert isinstance(store, HistoryStore)
    controller = TaskController(_never_called)

    older = controller.new_task(b"\xff\xd8\xff")
    newer = controller.new_task("abc")
    older_id = store.append(_snapshot(older, created_at="2026-01-01T00:00:00+00:00", user_id="u1"))
    newer_id = store.append(_snapshot(newer, created_at="2026-01-02T00:00:00+00:00", user_id="u1"))
    store.append(_snapshot(newer, created_at="2026-01-03T00:00:00+00:00", user_id="u2"))

    history = store.load_history(user_id="u1")
    assert [record["id"] for record in history] == [newer_id, older_id]
    assert len(store.load_history()) == 3

    record = store.get(older_id)
    assert record["processed_image"] == "data:image/jpeg;base64,/9j/"
    assert record["results"][0]["answer"] == {"question": "水的分子式？", "answer": "H2O"}
    assert record["verdict"]["tag"] == "only_one_success"
    assert store.get("missing") is None
    assert not list((tmp_path / "history").glob("*.tmp"))
