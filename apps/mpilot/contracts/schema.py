import json
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from jsonschema import Draft202012Validator


class SchemaError(ValueError):
    pass


class ActionKind(str, Enum):
    TAP = "tap"
    DOUBLE_TAP = "double_tap"
    LONG_PRESS = "long_press"
    SWIPE = "swipe"
    TYPE = "type"
    BACK = "back"
    HOME = "home"
    LAUNCH = "launch"
    WAIT = "wait"

    @classmethod
    def parse(cls, value: Any) -> "ActionKind":
        if isinstance(value, ActionKind):
            return value
        key = re.sub(r"[\s\-]+", "_", str(value or "").strip().lower())
        kind = _KIND_ALIASES.get(key) or _KIND_ALIASES.get(key.replace("_", ""))
        if kind is None:
            raise SchemaError("unknown action kind: {}".format(value))
        return kind


_KIND_ALIASES = {
    "tap": ActionKind.TAP,
    "click": ActionKind.TAP,
    "double_tap": ActionKind.DOUBLE_TAP,
    "doubletap": ActionKind.DOUBLE_TAP,
    "long_press": ActionKind.LONG_PRESS,
    "longpress": ActionKind.LONG_PRESS,
    "swipe": ActionKind.SWIPE,
    "type": ActionKind.TYPE,
    "type_name": ActionKind.TYPE,
    "typename": ActionKind.TYPE,
    "input": ActionKind.TYPE,
    "back": ActionKind.BACK,
    "home": ActionKind.HOME,
    "launch": ActionKind.LAUNCH,
    "wait": ActionKind.WAIT,
}


class OnFail(str, Enum):
    RETRY = "retry"
    ABORT = "abort"
    REPLAN_REQUEST = "replan_request"

    @classmethod
    def parse(cls, value: Any) -> "OnFail":
        if value is None or value == "":
            return cls.RETRY
        if isinstance(value, OnFail):
            return value
        key = re.sub(r"(?<=[a-z])(?=[A-Z])", "_", str(value).strip()).lower()
        for member in cls:
            if member.value == key:
                return member
        raise SchemaError("unknown on_fail policy: {}".format(value))


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 1
    backoff_ms: int = 500

    @classmethod
    def from_dict(cls, data: Any, default_backoff_ms: int = 500) -> "RetryPolicy":
        if data is None:
            return cls(backoff_ms=default_backoff_ms)
        if not isinstance(data, dict):
            raise SchemaError("retry must be an object")
        times = data.get("times", data.get("max_attempts", 1))
        backoff = data.get("backoff_ms", default_backoff_ms)
        try:
            times = int(times)
            backoff = int(backoff)
        except (TypeError, ValueError, OverflowError) as exc:
            raise SchemaError("retry values must be integers") from exc
        return cls(max_attempts=max(1, times), backoff_ms=max(0, backoff))

    def to_dict(self) -> Dict[str, Any]:
        return {"times": self.max_attempts, "backoff_ms": self.backoff_ms}


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Action":
        if not isinstance(data, dict):
            raise SchemaError("action must be an object")
        raw_kind = data.get("action", data.get("type"))
        if not raw_kind:
            raise SchemaError("action missing kind")
        params = {
            key: value for key, value in data.items() if key not in ("action", "type")
        }
        return cls(kind=ActionKind.parse(raw_kind), params=params)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"action": self.kind.value}
        payload.update(self.params)
        return payload

    def describe(self) -> str:
        label = self.kind.value.replace("_", " ").title()
        if not self.params:
            return label
        args = ", ".join("{}={}".format(key, value) for key, value in self.params.items())
        return "{} {}".format(label, args)


Command = Union[Action, str]


@dataclass(frozen=True)
class ActionStep:
    id: str
    description: str
    command: Command
    wait_after_ms: int = 500
    verify: Tuple[str, ...] = ()
    on_fail: OnFail = OnFail.RETRY
    retry: RetryPolicy = RetryPolicy()

    @property
    def signature(self) -> str:
        return self.description or self.id

    @property
    def command_text(self) -> str:
        if isinstance(self.command, Action):
            return self.command.describe()
        return self.command

    def with_command(self, command: Command) -> "ActionStep":
        return replace(self, command=command)

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        index: int = 1,
        default_wait_after_ms: int = 500,
        default_backoff_ms: int = 500,
    ) -> "ActionStep":
        if not isinstance(data, dict):
            raise SchemaError("step must be an object")
        raw_command = data.get("cmd", data.get("command"))
        if isinstance(raw_command, dict):
            command: Command = Action.from_dict(raw_command)
        elif isinstance(raw_command, str) and raw_command.strip():
            command = raw_command.strip()
        elif "action" in data:
            command = Action.from_dict(
                {key: value for key, value in data.items() if key not in _STEP_KEYS}
            )
        else:
            raise SchemaError("step {} missing command".format(index))
        description = data.get("desc", data.get("description"))
        if not description:
            description = command.describe() if isinstance(command, Action) else command
        wait_after = data.get("wait_after", data.get("wait_after_ms"))
        if wait_after is None:
            wait_after = default_wait_after_ms
        try:
            wait_after = max(0, int(wait_after))
        except (TypeError, ValueError, OverflowError) as exc:
            raise SchemaError("step {} has invalid wait_after".format(index)) from exc
        verify = data.get("verify") or ()
        if isinstance(verify, str):
            verify = (verify,)
        return cls(
            id=str(data.get("id") or "step_{}".format(index)),
            description=str(description),
            command=command,
            wait_after_ms=wait_after,
            verify=tuple(str(item) for item in verify),
            on_fail=OnFail.parse(data.get("on_fail", data.get("onFail"))),
            retry=RetryPolicy.from_dict(data.get("retry"), default_backoff_ms),
        )

    def to_dict(self) -> Dict[str, Any]:
        command = self.command.to_dict() if isinstance(self.command, Action) else self.command
        return {
            "id": self.id,
            "desc": self.description,
            "cmd": command,
            "wait_after": self.wait_after_ms,
            "verify": list(self.verify),
            "on_fail": self.on_fail.value,
            "retry": self.retry.to_dict(),
        }


_STEP_KEYS = {
    "id",
    "desc",
    "description",
    "wait_after",
    "wait_after_ms",
    "verify",
    "on_fail",
    "onFail",
    "retry",
}


@dataclass(frozen=True)
class Plan:
    steps: Tuple[ActionStep, ...] = ()
    message: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return not self.steps

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"steps": [step.to_dict() for step in self.steps]}
        if self.message is not None:
            payload["message"] = self.message
        return payload


def parse_plan(data: Any, default_wait_after_ms: int = 500, default_backoff_ms: int = 500) -> Plan:
    if not isinstance(data, dict):
        raise SchemaError("plan must be an object")
    _validate(data)
    raw_steps = data.get("steps") or []
    steps: List[ActionStep] = []
    seen = set()
    for index, item in enumerate(raw_steps, start=1):
        step = ActionStep.from_dict(item, index, default_wait_after_ms, default_backoff_ms)
        if step.id in seen:
            raise SchemaError("duplicate step id: {}".format(step.id))
        seen.add(step.id)
        steps.append(step)
    message = data.get("message") or data.get("reason")
    return Plan(steps=tuple(steps), message=message)


def parse_plan_text(text: str, **defaults) -> Plan:
    json_text = extract_json(text)
    try:
        data = json.loads(json_text)
    except json.JSONDecodeError as exc:
        raise SchemaError("invalid plan JSON: {}".format(exc)) from exc
    return parse_plan(data, **defaults)


def extract_json(text: str) -> str:
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?", "", cleaned).strip()
        cleaned = re.sub(r"```$", "", cleaned).strip()
    match = re.search(r"\{.*\}", cleaned, re.DOTALL)
    if not match:
        raise SchemaError("response did not include JSON")
    return match.group(0)


_PLAN_VALIDATOR = None


def _get_plan_validator() -> Draft202012Validator:
    global _PLAN_VALIDATOR
    if _PLAN_VALIDATOR is None:
        schema_path = Path(__file__).with_name("plan.schema.json")
        schema = json.loads(schema_path.read_text(encoding="utf-8"))
        _PLAN_VALIDATOR = Draft202012Validator(schema)
    return _PLAN_VALIDATOR


def _format_schema_path(path) -> str:
    if not path:
        return "$"
    parts = ["$"]
    for item in path:
        if isinstance(item, int):
            parts.append("[{}]".format(item))
        else:
            parts.append(".{}".format(item))
    return "".join(parts)


def _validate(data: Dict[str, Any]) -> None:
    validator = _get_plan_validator()
    errors = sorted(validator.iter_errors(data), key=lambda error: list(error.path))
    if errors:
        error = errors[0]
        raise SchemaError(
            "plan schema validation failed at {}: {}".format(
                _format_schema_path(error.path), error.message
            )
        )
