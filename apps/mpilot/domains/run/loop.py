import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from shared.errors import AdbError, PlanError, TranslationError
from shared.text import truncate

from mpilot.contracts import ActionStep, OnFail, Plan, SchemaError, parse_plan
from mpilot.domains.act.executor import StepExecutor, substitute_serial
from mpilot.domains.act.types import CommandResult
from mpilot.domains.observe import gather_state, summarize_elements
from mpilot.domains.ports import DeviceDriver, EventSink, Planner
from mpilot.domains.run import events
from mpilot.domains.run.events import TaskEvent
from mpilot.domains.run.state import RequestState
from mpilot.domains.verify import Verifier, VerifyResult
from mpilot.settings import LoopConfig


logger = logging.getLogger("mpilot.run.loop")

UI_FAILURE_HINT_THRESHOLD = 2
REPEAT_HINT_THRESHOLD = 2
UI_FAILURE_HINT = "UI hierarchy unavailable for {} iterations in a row; rely on the screenshot"


class Outcome(str, Enum):
    COMPLETED = "completed"
    EXHAUSTED = "exhausted"
    STOPPED = "stopped"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    step_id: str
    iteration: int
    success: bool
    description: str = ""
    command: str = ""
    command_result: Optional[CommandResult] = None
    verify_result: Optional[VerifyResult] = None
    error: Optional[str] = None

    def history_entry(self) -> Dict[str, Any]:
        entry = {
            "step_id": self.step_id,
            "description": self.description,
            "command": self.command,
            "success": self.success,
            "error": self.error,
        }
        if self.verify_result is not None and not self.verify_result.success:
            entry["verify_message"] = self.verify_result.message
        return entry

    def to_dict(self) -> Dict[str, Any]:
        payload = self.history_entry()
        payload["iteration"] = self.iteration
        payload["command_result"] = self.command_result.to_dict() if self.command_result else None
        payload["verify_result"] = self.verify_result.to_dict() if self.verify_result else None
        return payload


class RepetitionTracker:
    """Counts consecutive repeats per step signature. Counts only grow."""

    def __init__(self, threshold: int = REPEAT_HINT_THRESHOLD):
        self.threshold = threshold
        self._counts: Dict[str, int] = {}
        self._last: Optional[str] = None

    def record(self, signature: str) -> int:
        if signature == self._last:
            self._counts[signature] = self._counts.get(signature, 1) + 1
        else:
            self._counts.setdefault(signature, 1)
        self._last = signature
        return self._counts[signature]

    def count(self, signature: str) -> int:
        return self._counts.get(signature, 0)

    def hints(self) -> List[str]:
        return [
            "{} (repeated {} times)".format(signature, count)
            for signature, count in self._counts.items()
            if count >= self.threshold
        ]


@dataclass
class TaskResult:
    task_id: str
    success: bool
    outcome: Outcome
    steps: List[StepResult] = field(default_factory=list)
    iterations: int = 0
    message: Optional[str] = None
    error: Optional[str] = None

    @property
    def summary(self) -> Dict[str, int]:
        succeeded = sum(1 for step in self.steps if step.success)
        return {
            "total": len(self.steps),
            "succeeded": succeeded,
            "failed": len(self.steps) - succeeded,
            "iterations": self.iterations,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "success": self.success,
            "outcome": self.outcome.value,
            "summary": self.summary,
            "message": self.message,
            "error": self.error,
            "steps": [step.to_dict() for step in self.steps],
        }


def finish(task_id: str, outcome: Outcome, ledger: List[StepResult], iterations: int, **kwargs) -> TaskResult:
    if outcome is Outcome.COMPLETED:
        success = True
    elif outcome is Outcome.EXHAUSTED:
        success = not any(not step.success for step in ledger)
    else:
        success = False
    return TaskResult(
        task_id=task_id,
        success=success,
        outcome=outcome,
        steps=list(ledger),
        iterations=iterations,
        **kwargs,
    )


class ControlLoop:
    """Observe, plan, act and verify until the planner returns no steps."""

    def __init__(
        self,
        driver: DeviceDriver,
        planner: Planner,
        config: Optional[LoopConfig] = None,
        sink: Optional[EventSink] = None,
        executor: Optional[StepExecutor] = None,
        verifier: Optional[Verifier] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.driver = driver
        self.planner = planner
        self.config = config or LoopConfig()
        self.sink = sink
        self._sleep = sleep
        self.executor = executor or StepExecutor(
            driver,
            sleep=sleep or time.sleep,
            launch_settle_ms=self.config.launch_settle_ms,
        )
        self.verifier = verifier or Verifier(driver)

    def _emit(self, event_type: str, task_id: str, **payload) -> None:
        if self.sink is not None:
            self.sink.emit(TaskEvent(event_type, task_id, payload))

    def _log(self, task_id: str, message: str, level: int = logging.INFO) -> None:
        logger.log(level, "[%s] %s", task_id, message)
        self._emit(events.LOG, task_id, level=logging.getLevelName(level).lower(), message=message)

    def _pause(self, state: RequestState, seconds: float) -> bool:
        if seconds <= 0:
            return not state.stopped
        if self._sleep is not None:
            self._sleep(seconds)
            return not state.stopped
        return state.wait(seconds)

    def _coerce_plan(self, plan: Any) -> Plan:
        if plan is None:
            return Plan()
        if isinstance(plan, Plan):
            return plan
        try:
            return parse_plan(
                plan,
                default_wait_after_ms=self.config.default_wait_after_ms,
                default_backoff_ms=self.config.default_backoff_ms,
            )
        except SchemaError as exc:
            raise PlanError("invalid plan: {}".format(exc)) from exc

    def run(
        self,
        task_id: str,
        goal: str,
        device_id: str,
        device_info: Dict[str, Any],
        state: RequestState,
    ) -> TaskResult:
        ledger: List[StepResult] = []
        history: List[Dict[str, Any]] = []
        tracker = RepetitionTracker()
        ui_failures = 0
        iterations = 0
        size = device_info.get("screen_size") or {}
        width, height = size.get("width") or 0, size.get("height") or 0

        try:
            with ThreadPoolExecutor(max_workers=3, thread_name_prefix="mpilot-observe") as pool:
                for iteration in range(1, self.config.max_iterations + 1):
                    if not state.checkpoint():
                        self._log(task_id, "stopped before iteration {}".format(iteration))
                        return finish(task_id, Outcome.STOPPED, ledger, iterations, message="stopped")
                    iterations = iteration
                    self._log(task_id, "iteration {}/{}".format(iteration, self.config.max_iterations))

                    snapshot = gather_state(
                        self.driver, device_id, include_screenshot=self.config.send_screenshot, pool=pool
                    )
                    if snapshot.screenshot:
                        self._emit(
                            events.SCREENSHOT, task_id, iteration=iteration, image=snapshot.screenshot
                        )
                    if snapshot.ui_available:
                        ui_failures = 0
                    else:
                        ui_failures += 1
                        self._log(
                            task_id,
                            "UI fetch failed ({} in a row)".format(ui_failures),
                            level=logging.WARNING,
                        )

                    hints = tracker.hints()
                    if ui_failures >= UI_FAILURE_HINT_THRESHOLD:
                        hints.append(UI_FAILURE_HINT.format(ui_failures))
                    window = snapshot.window.to_dict() if snapshot.window else None
                    ui_summary = summarize_elements(snapshot.elements, width, height)

                    try:
                        if iteration == 1:
                            raw_plan = self.planner.request_initial_plan(
                                goal, device_info, ui_summary, window, snapshot.screenshot
                            )
                        else:
                            raw_plan = self.planner.request_next_step(
                                goal, device_info, list(history), hints, window,
                                snapshot.screenshot, ui_summary,
                            )
                        plan = self._coerce_plan(raw_plan)
                    except PlanError as exc:
                        self._log(task_id, "planner error: {}".format(exc), level=logging.ERROR)
                        return finish(task_id, Outcome.FAILED, ledger, iterations, error=str(exc))

                    if plan.message:
                        self._log(task_id, "planner: {}".format(truncate(plan.message, 300)))
                    if not plan.steps:
                        self._log(task_id, "planner reports the goal is complete")
                        return finish(
                            task_id, Outcome.COMPLETED, ledger, iterations, message=plan.message
                        )

                    for step in plan.steps:
                        if isinstance(step.command, str):
                            step = step.with_command(substitute_serial(step.command, device_id))
                        result = self.run_step(task_id, step, device_id, iteration)
                        ledger.append(result)
                        history.append(result.history_entry())
                        tracker.record(step.signature)
                        self._emit(events.STEP, task_id, **result.to_dict())
                        if result.success:
                            continue
                        if step.on_fail is OnFail.ABORT:
                            self._log(
                                task_id, "step {} failed, aborting task".format(step.id), level=logging.ERROR
                            )
                            return finish(
                                task_id, Outcome.ABORTED, ledger, iterations, error=result.error
                            )
                        if step.on_fail is OnFail.REPLAN_REQUEST:
                            self._log(
                                task_id, "step {} failed, replanning".format(step.id), level=logging.WARNING
                            )
                            break

                    if iteration < self.config.max_iterations:
                        self._pause(state, self.config.inter_iteration_delay_ms / 1000)
        except Exception as exc:
            logger.exception("[%s] loop crashed in iteration %d", task_id, iterations)
            self._log(task_id, "unexpected error: {}".format(exc), level=logging.ERROR)
            return finish(
                task_id, Outcome.FAILED, ledger, iterations, error=str(exc) or exc.__class__.__name__
            )

        self._log(task_id, "iteration cap reached", level=logging.WARNING)
        return finish(task_id, Outcome.EXHAUSTED, ledger, iterations, message="iteration cap reached")

    def run_step(self, task_id: str, step: ActionStep, device_id: str, iteration: int) -> StepResult:
        rounds = step.retry.max_attempts if step.on_fail is OnFail.RETRY and step.verify else 1
        base = {
            "step_id": step.id,
            "iteration": iteration,
            "description": step.description,
            "command": step.command_text,
        }
        verify_result = None
        command_result = None
        for attempt in range(1, rounds + 1):
            self._log(task_id, "step {}: {}".format(step.id, step.description or step.command_text))
            try:
                command_result = self.executor.execute_with_retry(step, device_id)
            except (AdbError, TranslationError) as exc:
                self._log(task_id, "step {} failed: {}".format(step.id, exc), level=logging.ERROR)
                return StepResult(success=False, error=str(exc), **base)
            except Exception as exc:
                logger.exception("[%s] step %s raised", task_id, step.id)
                error = str(exc) or exc.__class__.__name__
                self._log(task_id, "step {} failed: {}".format(step.id, error), level=logging.ERROR)
                return StepResult(success=False, error=error, **base)
            if step.wait_after_ms:
                self._sleep_step(step.wait_after_ms)
            verify_result = self.verifier.verify_step(step, device_id, command_result)
            if verify_result.success:
                return StepResult(
                    success=True, command_result=command_result, verify_result=verify_result, **base
                )
            self._log(
                task_id,
                "step {} verification failed ({}/{}): {}".format(
                    step.id, attempt, rounds, verify_result.message
                ),
                level=logging.WARNING,
            )
            if attempt < rounds:
                self._sleep_step(step.retry.backoff_ms)
        return StepResult(
            success=False,
            command_result=command_result,
            verify_result=verify_result,
            error=verify_result.message if verify_result else None,
            **base,
        )

    def _sleep_step(self, ms: int) -> None:
        (self._sleep or time.sleep)(ms / 1000)
