from mpilot.domains.run.events import EventBroadcaster, LoggingSink, TaskEvent
from mpilot.domains.run.loop import (
    ControlLoop,
    Outcome,
    RepetitionTracker,
    StepResult,
    TaskResult,
)
from mpilot.domains.run.service import Orchestrator, TaskRecord
from mpilot.domains.run.state import RequestState, TaskStatus

__all__ = [
    "ControlLoop",
    "EventBroadcaster",
    "LoggingSink",
    "Orchestrator",
    "Outcome",
    "RepetitionTracker",
    "RequestState",
    "StepResult",
    "TaskEvent",
    "TaskRecord",
    "TaskResult",
    "TaskStatus",
]
