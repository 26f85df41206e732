"""History snapshots, history stores and the at-most-once persistence gate."""

from __future__ import annotations

from abc import ABC, abstractmethod
import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
import logging
import os
from pathlib import Path
import tempfile
from typing import TYPE_CHECKING, Any
import uuid

from .consensus.base import ConsensusVerdict, SampleResult
from .errors import PersistenceError

if TYPE_CHECKING:
    from .controller import Task


def utc_now_iso() -> str:
    """Current UTC timestamp in ISO-8601 format."""
    return datetime.now(tz=timezone.utc).isoformat()


def encode_image(image: Any) -> str:
    """Render an image payload as the data URI stored in history."""
    if isinstance(image, (bytes, bytearray)):
        image = base64.b64encode(bytes(image)).decode("ascii")
    image = str(image)
    if image.startswith("data:"):
        return image
    return f"data:image/jpeg;base64,{image}"


@dataclass(slots=True)
class HistorySnapshot:
    """Results and verdict of one task as written to history."""

    task_id: str
    image: Any
    results: tuple[SampleResult, ...]
    verdict: ConsensusVerdict
    created_at: str = field(default_factory=utc_now_iso)
    user_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "user_id": self.user_id,
            "processed_image": encode_image(self.image),
            "results": [result.to_dict() for result in self.results],
            "verdict": self.verdict.to_dict(),
            "created_at": self.created_at,
        }


class HistoryStore(ABC):
    """Append-only record store for history snapshots."""

    @abstractmethod
    def append(self, snapshot: HistorySnapshot) -> str:
        """Persist one snapshot and return its record id."""

    @abstractmethod
    def load_history(self, user_id: str | None = None) -> list[dict[str, Any]]:
        """Return stored records, newest first, optionally for one user."""

    @abstractmethod
    def get(self, record_id: str) -> dict[str, Any] | None:
        """Return one record or None."""


def _newest_first(records: list[dict[str, Any]], user_id: str | None) -> list[dict[str, Any]]:
    if user_id is not None:
        records = [record for record in records if record.get("user_id") == user_id]
    return sorted(records, key=lambda record: record.get("created_at", ""), reverse=True)


class InMemoryHistoryStore(HistoryStore):
    """Process-local store, used for dry runs and tests."""

    def __init__(self) -> None:
        self.records: list[dict[str, Any]] = []

    def append(self, snapshot: HistorySnapshot) -> str:
        record_id = uuid.uuid4().hex
        self.records.append({"id": record_id, **snapshot.to_dict()})
        return record_id

    def load_history(self, user_id: str | None = None) -> list[dict[str, Any]]:
        return _newest_first(list(self.records), user_id)

    def get(self, record_id: str) -> dict[str, Any] | None:
        for record in self.records:
            if record["id"] == record_id:
                return record
        return None


class FileHistoryStore(HistoryStore):
    """One JSON file per record, written atomically via temp file + rename."""

    def __init__(self, history_dir: Path) -> None:
        self.history_dir = history_dir
        self.history_dir.mkdir(parents=True, exist_ok=True)

    def record_path(self, record_id: str) -> Path:
        return self.history_dir / f"{record_id}.json"

    def append(self, snapshot: HistorySnapshot) -> str:
        record_id = f"{datetime.now(tz=timezone.utc):%Y%m%dT%H%M%S}_{uuid.uuid4().hex[:12]}"
        payload = {"id": record_id, **snapshot.to_dict()}
        try:
            self._atomic_write_json(self.record_path(record_id), payload)
        except OSError as exc:
            raise PersistenceError(f"could not write history record {record_id}: {exc}") from exc
        return record_id

    def load_history(self, user_id: str | None = None) -> list[dict[str, Any]]:
        records = [json.loads(path.read_text(encoding="utf-8")) for path in self.history_dir.glob("*.json")]
        return _newest_first(records, user_id)

    def get(self, record_id: str) -> dict[str, Any] | None:
        path = self.record_path(record_id)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _atomic_write_json(self, target_path: Path, payload: dict[str, Any]) -> None:
        serialized = json.dumps(payload, indent=2, ensure_ascii=False)
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            delete=False,
            dir=str(target_path.parent),
            suffix=".tmp",
        ) as handle:
            handle.write(serialized)
            handle.flush()
            os.fsync(handle.fileno())
            temp_path = Path(handle.name)
        os.replace(temp_path, target_path)


class PersistenceGate:
    """Writes at most one history snapshot per task.

    The ``saved`` flag is checked and set with no await in between, so on a
    single event loop the early-success path and the settle path cannot both
    write. A failed write clears the flag so the settle path may retry.
    """

    def __init__(self, store: HistoryStore, logger: logging.Logger | None = None) -> None:
        self.store = store
        self.logger = logger or logging.getLogger(__name__)

    def try_save(self, task: Task, snapshot: HistorySnapshot) -> bool:
        """Write ``snapshot`` unless ``task`` already has one; True if this call wrote it."""
        if task.saved:
            return False
        task.saved = True
        try:
            record_id = self.store.append(snapshot)
        except Exception:  # store failures never escape the gate
            task.saved = False
            self.logger.exception("History write failed for task %s", task.task_id)
            return False
        task.record_id = record_id
        self.logger.info(
            "Saved history record %s for task %s (%s, %d/%d seen)",
            record_id,
            task.task_id,
            snapshot.verdict.tag.value,
            snapshot.verdict.total_seen,
            snapshot.verdict.expected,
        )
        return True
