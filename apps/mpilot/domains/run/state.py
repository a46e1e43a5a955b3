import threading
from enum import Enum


class TaskStatus(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


class RequestState:
    """Control status of one task, shared by the loop thread and controllers.

    The condition doubles as the resume signal: pause parks the loop in
    checkpoint() until resume or stop notifies it.
    """

    def __init__(self, task_id: str):
        self.task_id = task_id
        self._status = TaskStatus.RUNNING
        self._cond = threading.Condition()

    @property
    def status(self) -> TaskStatus:
        with self._cond:
            return self._status

    @property
    def stopped(self) -> bool:
        return self.status is TaskStatus.STOPPED

    def pause(self) -> bool:
        with self._cond:
            if self._status is not TaskStatus.RUNNING:
                return False
            self._status = TaskStatus.PAUSED
            return True

    def resume(self) -> bool:
        with self._cond:
            if self._status is not TaskStatus.PAUSED:
                return False
            self._status = TaskStatus.RUNNING
            self._cond.notify_all()
            return True

    def stop(self) -> bool:
        with self._cond:
            if self._status is TaskStatus.STOPPED:
                return False
            self._status = TaskStatus.STOPPED
            self._cond.notify_all()
            return True

    def checkpoint(self) -> bool:
        """Block while paused. False once the task has been stopped."""
        with self._cond:
            while self._status is TaskStatus.PAUSED:
                self._cond.wait()
            return self._status is TaskStatus.RUNNING

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`, waking early on stop. False when stopped."""
        with self._cond:
            if self._status is TaskStatus.STOPPED:
                return False
            self._cond.wait_for(lambda: self._status is TaskStatus.STOPPED, timeout=seconds)
            return self._status is not TaskStatus.STOPPED
