import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List


logger = logging.getLogger("mpilot.events")

TASK_STARTED = "task_started"
LOG = "log"
SCREENSHOT = "screenshot"
STEP = "step"
TASK_STATUS = "task_status"
TASK_COMPLETED = "task_completed"
TASK_FAILED = "task_failed"


@dataclass(frozen=True)
class TaskEvent:
    type: str
    task_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "task_id": self.task_id,
            "payload": self.payload,
            "timestamp": self.timestamp,
        }


Subscriber = Callable[[TaskEvent], None]


class EventBroadcaster:
    """Fan-out sink. Subscribers run on the emitting thread."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event: TaskEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception("event subscriber failed for %s", event.type)


class LoggingSink:
    def __init__(self, log: logging.Logger = logger):
        self._log = log

    def emit(self, event: TaskEvent) -> None:
        if event.type == SCREENSHOT:
            self._log.debug("[%s] screenshot (%d bytes b64)", event.task_id, len(event.payload.get("image") or ""))
            return
        if event.type == LOG:
            self._log.debug("[%s] %s", event.task_id, event.payload.get("message"))
            return
        self._log.info("[%s] %s %s", event.task_id, event.type, _brief(event.payload))


def _brief(payload: Dict[str, Any]) -> str:
    keys = ("status", "step_id", "success", "outcome", "message", "error")
    return " ".join("{}={}".format(key, payload[key]) for key in keys if key in payload)
