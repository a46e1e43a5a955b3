import base64
import math
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from infra.adb import ADB_KEYBOARD_IME, adb_text_escape
from shared.errors import TranslationError
from shared.text import is_plain_input
from shared.utils import normalized_to_pixel

from mpilot.contracts import Action, ActionKind
from mpilot.domains.act.launcher import DEFAULT_SETTLE_MS, dedicated_command, resolve_package

TAP_PRESS_MS = 100
LONG_PRESS_MS = 1000
DOUBLE_TAP_GAP_MS = 50
DEFAULT_SWIPE_MS = 500
CLEAR_SETTLE_MS = 300
IME_SETTLE_MS = 500
KEYCODE_HOME = 3
KEYCODE_BACK = 4

REQUIRED_PARAMS = {
    ActionKind.TAP: ("element",),
    ActionKind.DOUBLE_TAP: ("element",),
    ActionKind.LONG_PRESS: ("element",),
    ActionKind.SWIPE: ("start", "end"),
    ActionKind.TYPE: ("text",),
    ActionKind.LAUNCH: ("app",),
    ActionKind.WAIT: ("duration",),
}

_DURATION_RE = re.compile(
    r"^\s*(\d+(?:\.\d+)?)\s*(ms|milliseconds?|s|secs?|seconds?|秒)?\s*$", re.IGNORECASE
)
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")


@dataclass(frozen=True)
class ShellOp:
    command: str
    timeout: Optional[float] = None


@dataclass(frozen=True)
class SleepOp:
    ms: int


@dataclass(frozen=True)
class LaunchOp:
    app: str
    package: str
    dedicated_command: Optional[str] = None
    settle_ms: int = DEFAULT_SETTLE_MS


Op = Union[ShellOp, SleepOp, LaunchOp]
ConcreteCommand = Tuple[Op, ...]


def _require(kind: ActionKind, params: Dict[str, Any]) -> None:
    for name in REQUIRED_PARAMS.get(kind, ()):
        value = params.get(name)
        if value is None or (isinstance(value, (list, tuple)) and not value):
            raise TranslationError(kind.value, name)
        if isinstance(value, str) and not value.strip() and kind is not ActionKind.TYPE:
            raise TranslationError(kind.value, name)


def _point(kind: ActionKind, name: str, value: Any, width: int, height: int) -> Tuple[int, int]:
    if isinstance(value, str):
        value = _NUMBER_RE.findall(value)
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise TranslationError(kind.value, name, "expected [x, y]")
    try:
        return normalized_to_pixel(value[0], width), normalized_to_pixel(value[1], height)
    except ValueError as exc:
        raise TranslationError(kind.value, name, str(exc)) from exc


def parse_duration_ms(value: Any) -> int:
    """Seconds for bare numbers; strings may carry ms / s / seconds / 秒."""
    if isinstance(value, bool):
        raise ValueError("invalid duration: {}".format(value))
    if isinstance(value, (int, float)):
        seconds = float(value)
        if seconds < 0 or not math.isfinite(seconds):
            raise ValueError("invalid duration: {}".format(value))
        return int(round(seconds * 1000))
    match = _DURATION_RE.match(str(value or ""))
    if not match:
        raise ValueError("invalid duration: {}".format(value))
    amount = float(match.group(1))
    unit = (match.group(2) or "s").lower()
    if unit.startswith("m"):
        return int(round(amount))
    return int(round(amount * 1000))


def type_text_ops(text: str, ime_id: str = ADB_KEYBOARD_IME) -> ConcreteCommand:
    ops = [ShellOp("am broadcast -a ADB_CLEAR_TEXT"), SleepOp(CLEAR_SETTLE_MS)]
    if not text:
        return tuple(ops)
    if is_plain_input(text):
        ops.append(ShellOp("input text {}".format(adb_text_escape(text))))
        return tuple(ops)
    encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
    ops.extend(
        [
            ShellOp("ime set {}".format(ime_id)),
            SleepOp(IME_SETTLE_MS),
            ShellOp("am broadcast -a ADB_INPUT_B64 --es msg {}".format(encoded)),
        ]
    )
    return tuple(ops)


def translate(
    action: Action,
    width: int,
    height: int,
    ime_id: str = ADB_KEYBOARD_IME,
    settle_ms: int = DEFAULT_SETTLE_MS,
) -> ConcreteCommand:
    kind = action.kind
    params = action.params or {}
    _require(kind, params)

    if kind is ActionKind.TAP:
        x, y = _point(kind, "element", params["element"], width, height)
        return (ShellOp("input swipe {} {} {} {} {}".format(x, y, x, y, TAP_PRESS_MS)),)
    if kind is ActionKind.DOUBLE_TAP:
        x, y = _point(kind, "element", params["element"], width, height)
        tap = ShellOp("input tap {} {}".format(x, y))
        return (tap, SleepOp(DOUBLE_TAP_GAP_MS), tap)
    if kind is ActionKind.LONG_PRESS:
        x, y = _point(kind, "element", params["element"], width, height)
        return (ShellOp("input swipe {} {} {} {} {}".format(x, y, x, y, LONG_PRESS_MS)),)
    if kind is ActionKind.SWIPE:
        x1, y1 = _point(kind, "start", params["start"], width, height)
        x2, y2 = _point(kind, "end", params["end"], width, height)
        duration = params.get("duration_ms", DEFAULT_SWIPE_MS)
        try:
            duration = int(duration)
        except (TypeError, ValueError, OverflowError) as exc:
            raise TranslationError(kind.value, "duration_ms", str(exc)) from exc
        return (ShellOp("input swipe {} {} {} {} {}".format(x1, y1, x2, y2, duration)),)
    if kind is ActionKind.TYPE:
        return type_text_ops(str(params["text"]), ime_id)
    if kind is ActionKind.BACK:
        return (ShellOp("input keyevent {}".format(KEYCODE_BACK)),)
    if kind is ActionKind.HOME:
        return (ShellOp("input keyevent {}".format(KEYCODE_HOME)),)
    if kind is ActionKind.LAUNCH:
        app = str(params["app"]).strip()
        package = resolve_package(app)
        return (LaunchOp(app, package, dedicated_command(package), settle_ms),)
    if kind is ActionKind.WAIT:
        try:
            return (SleepOp(parse_duration_ms(params["duration"])),)
        except ValueError as exc:
            raise TranslationError(kind.value, "duration", str(exc)) from exc
    raise TranslationError(kind.value, "action", "unsupported kind")
