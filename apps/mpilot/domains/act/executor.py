import logging
import re
import shlex
import threading
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple

from shared.errors import AdbError, TranslationError
from shared.text import is_ascii, truncate

from mpilot.contracts import Action, ActionStep, RetryPolicy
from mpilot.domains.act.launcher import DEFAULT_SETTLE_MS, launch_app
from mpilot.domains.act.translator import LaunchOp, ShellOp, SleepOp, translate
from mpilot.domains.act.types import CommandResult
from mpilot.domains.ports import DeviceDriver


logger = logging.getLogger("mpilot.act.executor")

SERIAL_PLACEHOLDER = "{serial}"
OUTPUT_LIMIT = 200

_FULL_ADB_RE = re.compile(
    r"^adb\s+(?:-s\s+(?P<serial>\S+)\s+)?(?P<sub>shell|pull|push|install|uninstall)\b\s*(?P<rest>.*)$",
    re.DOTALL,
)
_INPUT_TEXT_RE = re.compile(r"^input\s+text\s+(?P<quote>[\"']?)(?P<text>.*)(?P=quote)\s*$", re.DOTALL)


def substitute_serial(command: str, device_id: str) -> str:
    return command.replace(SERIAL_PLACEHOLDER, device_id or "")


def split_full_adb(command: str) -> Optional[Tuple[Optional[str], List[str]]]:
    """Return (serial, adb args) for a full `adb ...` command line, else None."""
    match = _FULL_ADB_RE.match(command.strip())
    if not match:
        return None
    sub = match.group("sub")
    rest = match.group("rest").strip()
    if sub == "shell":
        args = ["shell", rest] if rest else ["shell"]
    else:
        args = [sub] + shlex.split(rest)
    return match.group("serial"), args


def non_ascii_input_text(shell_command: str) -> Optional[str]:
    match = _INPUT_TEXT_RE.match(shell_command.strip())
    if not match:
        return None
    text = match.group("text")
    if is_ascii(text):
        return None
    return text


class StepExecutor:
    def __init__(
        self,
        driver: DeviceDriver,
        sleep: Callable[[float], None] = time.sleep,
        log: Optional[Callable[[str], None]] = None,
        ime_id: Optional[str] = None,
        launch_settle_ms: int = DEFAULT_SETTLE_MS,
    ):
        self.driver = driver
        self._sleep = sleep
        self._log = log
        self.ime_id = ime_id
        self.launch_settle_ms = launch_settle_ms
        self._sizes: Dict[str, Tuple[int, int]] = {}
        self._sizes_lock = threading.Lock()

    def screen_size(self, device_id: str) -> Tuple[int, int]:
        with self._sizes_lock:
            cached = self._sizes.get(device_id)
        if cached:
            return cached
        size = self.driver.get_screen_size(device_id)
        if not size or not size[0] or not size[1]:
            raise AdbError("cannot read screen size of {}".format(device_id))
        with self._sizes_lock:
            self._sizes[device_id] = size
        return size

    def execute(self, step: ActionStep, device_id: str) -> CommandResult:
        if isinstance(step.command, Action):
            return self._execute_action(step.command, device_id)
        return self._execute_raw(substitute_serial(step.command, device_id), device_id)

    def execute_with_retry(
        self, step: ActionStep, device_id: str, retry_policy: Optional[RetryPolicy] = None
    ) -> CommandResult:
        policy = retry_policy or step.retry
        attempts = max(1, policy.max_attempts)
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                result = self.execute(step, device_id)
            except TranslationError:
                raise
            except AdbError as exc:
                last_error = exc
                self._note(
                    "step {} attempt {}/{} failed: {} -> {}".format(
                        step.id, attempt, attempts, step.command_text, truncate(str(exc), OUTPUT_LIMIT)
                    ),
                    level=logging.WARNING,
                )
                if attempt < attempts:
                    self._sleep(policy.backoff_ms / 1000)
                continue
            self._note(
                "step {} attempt {}/{} ok: {} -> {}".format(
                    step.id,
                    attempt,
                    attempts,
                    step.description or step.command_text,
                    truncate(result.stdout.strip(), OUTPUT_LIMIT),
                )
            )
            if attempt > 1:
                self._note("step {} recovered after {} attempts".format(step.id, attempt))
            return replace(result, attempts=attempt)
        raise last_error

    def _execute_raw(self, command: str, device_id: str) -> CommandResult:
        full = split_full_adb(command)
        if full is not None:
            serial, args = full
            serial = serial or device_id
            if args[0] == "shell" and len(args) > 1:
                text = non_ascii_input_text(args[1])
                if text is not None:
                    return self._checked(self.driver.input_text(serial, text), command)
            return self._checked(self.driver.run_adb(serial, args), command)
        text = non_ascii_input_text(command)
        if text is not None:
            return self._checked(self.driver.input_text(device_id, text), command)
        return self._checked(self.driver.run_shell(device_id, command), command)

    def _execute_action(self, action: Action, device_id: str) -> CommandResult:
        width, height = self.screen_size(device_id)
        kwargs = {"settle_ms": self.launch_settle_ms}
        if self.ime_id:
            kwargs["ime_id"] = self.ime_id
        ops = translate(action, width, height, **kwargs)
        outputs = []
        for op in ops:
            if isinstance(op, SleepOp):
                self._sleep(op.ms / 1000)
            elif isinstance(op, LaunchOp):
                strategy = launch_app(
                    self.driver,
                    device_id,
                    op.app,
                    package=op.package,
                    command=op.dedicated_command,
                    settle_ms=op.settle_ms,
                    sleep=self._sleep,
                )
                outputs.append("launched {} via {}".format(op.package, strategy))
            elif isinstance(op, ShellOp):
                result = self._checked(
                    self.driver.run_shell(device_id, op.command, timeout=op.timeout), op.command
                )
                if result.stdout.strip():
                    outputs.append(result.stdout.strip())
        return CommandResult(success=True, stdout="\n".join(outputs))

    def _checked(self, result, command: str) -> CommandResult:
        if not result.success:
            detail = (result.stderr or result.stdout or "").strip()
            raise AdbError(
                "command failed ({}): {} {}".format(
                    result.exit_code, command, truncate(detail, OUTPUT_LIMIT)
                ).strip()
            )
        return CommandResult(
            success=True,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
            exit_code=result.exit_code,
        )

    def _note(self, message: str, level: int = logging.INFO) -> None:
        logger.log(level, message)
        if self._log:
            self._log(message)
