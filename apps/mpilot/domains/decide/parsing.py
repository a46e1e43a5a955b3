import itertools
import re
from typing import Any, Dict, Iterator, Optional

from shared.errors import PlanError

from mpilot.contracts import (
    Action,
    ActionKind,
    ActionStep,
    Plan,
    SchemaError,
    parse_plan_text,
)
from mpilot.domains.act.translator import REQUIRED_PARAMS

_ANSWER_RE = re.compile(r"<answer>(.*?)(?:</answer>|$)", re.DOTALL)
_THINK_RE = re.compile(r"<think>(.*?)</think>", re.DOTALL)
_FINISH_RE = re.compile(r"finish\s*\(\s*message\s*=\s*([\"'])(.*)\1\s*\)", re.DOTALL)
_ARG_RE = re.compile(
    r"(\w+)\s*=\s*(?:\"([^\"]*)\"|'([^']*)'|\[([-\d.,\s]+)\]|(-?\d+(?:\.\d+)?))"
)


def _number(text: str):
    value = float(text)
    return int(value) if value.is_integer() else value


def parse_call_args(content: str) -> Dict[str, Any]:
    """Parse `key="v"`, `key=[1,2]` and `key=3` arguments of a do(...) call."""
    result: Dict[str, Any] = {}
    for match in _ARG_RE.finditer(content):
        key, double, single, array, number = match.groups()
        if array is not None:
            items = [item.strip() for item in array.split(",") if item.strip()]
            result[key] = [_number(item) for item in items]
        elif number is not None:
            result[key] = _number(number)
        else:
            result[key] = double if double is not None else single
    return result


def extract_answer(text: str) -> str:
    match = _ANSWER_RE.search(text or "")
    if match:
        return match.group(1).strip()
    return (text or "").strip()


def extract_thinking(text: str) -> Optional[str]:
    match = _THINK_RE.search(text or "")
    return match.group(1).strip() if match else None


def parse_action_call(answer: str) -> Optional[Any]:
    """Return a finished message (str), an Action, or None when not a call."""
    answer = answer.strip().strip("`").strip()
    finish = _FINISH_RE.search(answer)
    if answer.startswith("finish"):
        return finish.group(2) if finish else "Task completed"
    if not answer.startswith("do"):
        return None
    params = parse_call_args(answer[answer.find("(") + 1 : answer.rfind(")")])
    if "action" not in params:
        raise PlanError("action call has no action: {}".format(answer))
    try:
        kind = ActionKind.parse(params.pop("action"))
    except SchemaError as exc:
        raise PlanError(str(exc)) from exc
    for name in REQUIRED_PARAMS.get(kind, ()):
        if params.get(name) in (None, "", []) and not (kind is ActionKind.TYPE and name in params):
            raise PlanError("action {} missing required parameter: {}".format(kind.value, name))
    return Action(kind=kind, params=params)


class ReplyParser:
    def __init__(self, default_wait_after_ms: int = 500, default_backoff_ms: int = 500):
        self.default_wait_after_ms = default_wait_after_ms
        self.default_backoff_ms = default_backoff_ms
        self._ids: Iterator[int] = itertools.count(1)

    def parse(self, text: str) -> Plan:
        if not text or not text.strip():
            raise PlanError("planner returned an empty reply")
        thinking = extract_thinking(text)
        answer = extract_answer(text)
        call = parse_action_call(answer)
        if isinstance(call, str):
            return Plan(steps=(), message=call)
        if isinstance(call, Action):
            step = ActionStep(
                id="step_{}".format(next(self._ids)),
                description=call.describe(),
                command=call,
                wait_after_ms=self.default_wait_after_ms,
            )
            return Plan(steps=(step,), message=thinking)
        try:
            return parse_plan_text(
                answer,
                default_wait_after_ms=self.default_wait_after_ms,
                default_backoff_ms=self.default_backoff_ms,
            )
        except SchemaError as exc:
            raise PlanError("unparseable planner reply: {}".format(exc)) from exc
