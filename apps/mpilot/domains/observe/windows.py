import re
from typing import List, Optional

from mpilot.domains.observe.types import WindowState


NON_CONTENT_WINDOWS = (
    "InputMethod",
    "StatusBar",
    "NavigationBar",
    "NotificationShade",
    "ScreenDecorOverlay",
    "PopupWindow",
)

_WINDOW_HEADER_RE = re.compile(r"Window\s+#\d+\s+Window\{(\S+)\s+\S+\s+(.+?)\}:?\s*$")
_RESUMED_RE = re.compile(
    r"(?:mResumedActivity|topResumedActivity|ResumedActivity)[:=]\s*ActivityRecord\{[^}]*?\s([\w.]+/[\w.$]+)"
)
_FOCUS_RE = re.compile(r"(?:mCurrentFocus|mFocusedWindow)=Window\{\S+\s+\S+\s+(.+?)\}")
_FRAME_RE = re.compile(r"(?:mFrame|frame|mBounds)=\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]")
_RECT_RE = re.compile(r"Rect\((-?\d+),\s*(-?\d+)\s*-\s*(-?\d+),\s*(-?\d+)\)")
_VISIBLE_MARKERS = ("isVisible=true", "isOnScreen=true")


def _is_non_content(title: str) -> bool:
    return any(marker in title for marker in NON_CONTENT_WINDOWS)


def _focused_app(raw: str) -> Optional[str]:
    match = _RESUMED_RE.search(raw)
    if match:
        return match.group(1)
    for match in _FOCUS_RE.finditer(raw):
        title = match.group(1).strip()
        if title and not _is_non_content(title):
            return title
    return None


def _frame(line: str) -> Optional[str]:
    match = _FRAME_RE.search(line) or _RECT_RE.search(line)
    if not match:
        return None
    return "[{},{}][{},{}]".format(*match.groups())


class _WindowRecord:
    def __init__(self, token: str, title: str):
        self.token = token
        self.title = title
        self.bounds: Optional[str] = None
        self.visible = False

    def describe(self) -> str:
        return "{} {}".format(self.title, self.bounds or "unknown")


def _scan_windows(raw: str) -> List[_WindowRecord]:
    emitted: List[_WindowRecord] = []
    seen = set()
    current: Optional[_WindowRecord] = None

    def flush(record):
        if record is not None and record.visible and record.token not in seen:
            seen.add(record.token)
            emitted.append(record)

    for line in raw.splitlines():
        header = _WINDOW_HEADER_RE.search(line)
        if header:
            flush(current)
            current = _WindowRecord(header.group(1), header.group(2).strip())
            continue
        if current is None:
            continue
        if current.bounds is None:
            current.bounds = _frame(line)
        if any(marker in line for marker in _VISIBLE_MARKERS):
            current.visible = True
    flush(current)
    return emitted


def extract_window_state(raw: Optional[str]) -> Optional[WindowState]:
    if not raw or not raw.strip():
        return None
    windows = _scan_windows(raw)
    return WindowState(
        focused_app=_focused_app(raw),
        has_keyboard=any("InputMethod" in window.title for window in windows),
        visible_windows=tuple(window.describe() for window in windows),
    )
