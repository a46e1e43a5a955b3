import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from shared.errors import AdbError, DeviceNotReadyError, PilotError

from mpilot.domains.act.executor import StepExecutor
from mpilot.domains.ports import DeviceDriver, EventSink, Planner
from mpilot.domains.run import events
from mpilot.domains.run.events import TaskEvent
from mpilot.domains.run.loop import ControlLoop, Outcome, TaskResult, finish
from mpilot.domains.run.state import RequestState
from mpilot.settings import LoopConfig


logger = logging.getLogger("mpilot.run")

MAX_FINISHED_TASKS = 100


@dataclass
class TaskRecord:
    task_id: str
    goal: str
    requested_device: Optional[str]
    state: Optional[RequestState]
    device_id: Optional[str] = None
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    result: Optional[TaskResult] = None
    done: threading.Event = field(default_factory=threading.Event)

    @property
    def status(self) -> str:
        if self.result is not None:
            return self.result.outcome.value
        return self.state.status.value

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "task_id": self.task_id,
            "goal": self.goal,
            "device_id": self.device_id or self.requested_device,
            "status": self.status,
            "created_at": self.created_at,
            "finished_at": self.finished_at,
        }
        if self.result is not None:
            payload["success"] = self.result.success
            payload["summary"] = self.result.summary
            payload["message"] = self.result.message
            payload["error"] = self.result.error
        return payload


class Orchestrator:
    """Registry of tasks plus the pause/resume/stop control surface."""

    def __init__(
        self,
        driver: DeviceDriver,
        planner: Planner,
        config: Optional[LoopConfig] = None,
        sink: Optional[EventSink] = None,
        executor: Optional[StepExecutor] = None,
        sleep: Optional[Callable[[float], None]] = None,
        max_finished: int = MAX_FINISHED_TASKS,
    ) -> None:
        self.driver = driver
        self.max_finished = max_finished
        self.planner = planner
        self.config = config or LoopConfig()
        self.sink = sink
        self._loop = ControlLoop(
            driver, planner, config=self.config, sink=sink, executor=executor, sleep=sleep
        )
        self._lock = threading.Lock()
        self._tasks: Dict[str, TaskRecord] = {}

    def _emit(self, event_type: str, task_id: str, **payload) -> None:
        if self.sink is not None:
            self.sink.emit(TaskEvent(event_type, task_id, payload))

    def _new_task_id(self) -> str:
        return "task_{}_{}".format(time.strftime("%Y%m%d_%H%M%S"), uuid.uuid4().hex[:6])

    def _register(self, goal: str, device_id: Optional[str]) -> TaskRecord:
        if not goal or not goal.strip():
            raise ValueError("goal must not be empty")
        task_id = self._new_task_id()
        record = TaskRecord(task_id, goal.strip(), device_id, RequestState(task_id))
        with self._lock:
            self._tasks[task_id] = record
        return record

    def select_device(self, preferred: Optional[str] = None) -> str:
        serials = self.driver.list_serials()
        if not serials:
            raise AdbError("no adb devices found")
        if preferred:
            if preferred in serials:
                return preferred
            logger.warning("device %s not connected, using %s", preferred, serials[0])
        return serials[0]

    def prepare_device(self, device_id: str) -> Dict[str, Any]:
        readiness = self.driver.check_ready(device_id)
        if not readiness.ready:
            raise DeviceNotReadyError(device_id, readiness.issues())
        return self.driver.get_device_info(device_id).to_dict()

    def start_task(self, goal: str, device_id: Optional[str] = None) -> str:
        record = self._register(goal, device_id)
        thread = threading.Thread(
            target=self._execute,
            args=(record,),
            name="mpilot-{}".format(record.task_id),
            daemon=True,
        )
        thread.start()
        return record.task_id

    def run_task(self, goal: str, device_id: Optional[str] = None) -> TaskResult:
        record = self._register(goal, device_id)
        return self._execute(record)

    def _execute(self, record: TaskRecord) -> TaskResult:
        task_id = record.task_id
        self._emit(events.TASK_STARTED, task_id, goal=record.goal, device_id=record.requested_device)
        try:
            device_id = self.select_device(record.requested_device)
            record.device_id = device_id
            device_info = self.prepare_device(device_id)
            self._emit(events.LOG, task_id, level="info", message="device {} ({})".format(
                device_id, device_info.get("model")
            ))
            result = self._loop.run(task_id, record.goal, device_id, device_info, record.state)
        except PilotError as exc:
            logger.error("task %s failed: %s", task_id, exc)
            result = finish(task_id, Outcome.FAILED, [], 0, error=str(exc))
        except Exception as exc:
            logger.exception("task %s crashed", task_id)
            result = finish(task_id, Outcome.FAILED, [], 0, error=str(exc) or exc.__class__.__name__)
        record.result = result
        record.finished_at = time.time()
        record.state = None
        self._emit(events.TASK_STATUS, task_id, status=result.outcome.value)
        payload = result.to_dict()
        payload.pop("task_id")
        self._emit(events.TASK_COMPLETED if result.success else events.TASK_FAILED, task_id, **payload)
        record.done.set()
        self._evict_finished()
        logger.info(
            "task %s finished: %s success=%s %s",
            task_id,
            result.outcome.value,
            result.success,
            result.summary,
        )
        return result

    def _evict_finished(self) -> None:
        with self._lock:
            finished = sorted(
                (record for record in self._tasks.values() if record.finished_at is not None),
                key=lambda item: item.finished_at,
            )
            for record in finished[: max(0, len(finished) - self.max_finished)]:
                del self._tasks[record.task_id]
                logger.debug("evicted finished task %s", record.task_id)

    def _get_record(self, task_id: str) -> Optional[TaskRecord]:
        with self._lock:
            return self._tasks.get(task_id)

    def _control(self, task_id: str, action: str) -> bool:
        record = self._get_record(task_id)
        state = record.state if record is not None else None
        if state is None or record.result is not None:
            return False
        changed = getattr(state, action)()
        if changed:
            logger.info("task %s %s", task_id, state.status.value)
            self._emit(events.TASK_STATUS, task_id, status=state.status.value)
        return changed

    def pause_task(self, task_id: str) -> bool:
        return self._control(task_id, "pause")

    def resume_task(self, task_id: str) -> bool:
        return self._control(task_id, "resume")

    def stop_task(self, task_id: str) -> bool:
        return self._control(task_id, "stop")

    def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        record = self._get_record(task_id)
        if record is None:
            return None
        payload = record.to_dict()
        if record.result is not None:
            payload["steps"] = [step.to_dict() for step in record.result.steps]
        return payload

    def list_tasks(self) -> List[Dict[str, Any]]:
        with self._lock:
            records = sorted(self._tasks.values(), key=lambda item: item.created_at, reverse=True)
        return [record.to_dict() for record in records]

    def wait_task(self, task_id: str, timeout: Optional[float] = None) -> Optional[TaskResult]:
        record = self._get_record(task_id)
        if record is None:
            return None
        record.done.wait(timeout)
        return record.result
