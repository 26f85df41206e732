"""Multi-sample vision question answering with consensus voting."""

from .config import AnalysisConfig, load_analysis_config
from .consensus import ConsensusVerdict, SampleResult, SampleState, VerdictTag, classify
from .controller import LiveUpdateChannel, Task, TaskController, UpdateStream, VerdictUpdate
from .dispatcher import DispatchEvent, InferenceDispatcher
from .persistence import FileHistoryStore, HistorySnapshot, InMemoryHistoryStore, PersistenceGate
from .similarity import similarity

__all__ = [
    "AnalysisConfig",
    "load_analysis_config",
    "ConsensusVerdict",
    "SampleResult",
    "SampleState",
    "VerdictTag",
    "classify",
    "LiveUpdateChannel",
    "Task",
    "TaskController",
    "UpdateStream",
    "VerdictUpdate",
    "DispatchEvent",
    "InferenceDispatcher",
    "FileHistoryStore",
    "HistorySnapshot",
    "InMemoryHistoryStore",
    "PersistenceGate",
    "similarity",
]
