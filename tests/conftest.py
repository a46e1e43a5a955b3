"""Pytest configuration ensuring local packages are importable."""

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
for path in (_ROOT, _ROOT / "apps"):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from infra.adb import DeviceInfo, ReadyState, ShellResult  # noqa: E402

DEVICE = "emulator-5554"

UI_XML = (
    "<?xml version='1.0' encoding='UTF-8' standalone='yes' ?>"
    '<hierarchy rotation="0">'
    '<node index="0" text="" resource-id="" class="android.widget.FrameLayout" '
    'package="com.android.settings" content-desc="" clickable="false" bounds="[0,0][1080,2400]">'
    '<node index="0" text="Wi-Fi" resource-id="android:id/title" class="android.widget.TextView" '
    'package="com.android.settings" content-desc="" clickable="true" bounds="[40,300][1040,420]" />'
    '<node index="1" text="" resource-id="" class="android.widget.ImageView" '
    'package="com.android.settings" content-desc="Search" clickable="true" bounds="[900,100][1000,220]" />'
    '<node index="2" text="Hidden" resource-id="" class="android.widget.TextView" '
    'package="com.android.settings" content-desc="" clickable="false" bounds="[0,0][0,0]" />'
    "</node>"
    "</hierarchy>"
)


class FakeDriver:
    """In-memory stand-in for AdbDriver. Unscripted shell commands succeed."""

    def __init__(self):
        self.serials = [DEVICE]
        self.size = (1080, 2400)
        self.ready = ReadyState(screen_on=True, unlocked=True, foreground="com.android.launcher3/.Launcher")
        self.ui_xml = UI_XML
        self.view_dump = None
        self.windows_dump = None
        self.screenshot = "iVBORw0KGgo="
        self.foreground = "com.android.settings/.Settings"
        self.brightness = 50.0
        self.files = set()
        self.responses = {}
        self.commands = []
        self.adb_calls = []
        self.typed = []

    def _respond(self, key):
        for prefix, outcome in self.responses.items():
            if key.startswith(prefix):
                if isinstance(outcome, list):
                    return outcome.pop(0) if len(outcome) > 1 else outcome[0]
                return outcome
        return ShellResult(True, "", "", 0)

    def run_shell(self, device_id, command, timeout=None):
        self.commands.append(command)
        return self._respond(command)

    def run_adb(self, device_id, args, timeout=None):
        args = list(args)
        self.adb_calls.append((device_id, args))
        return self._respond(" ".join(args))

    def input_text(self, device_id, text):
        self.typed.append((device_id, text))
        return ShellResult(True, "Broadcast completed", "", 0)

    def list_serials(self):
        return list(self.serials)

    def list_devices(self):
        return [self.get_device_info(serial) for serial in self.serials]

    def get_device_info(self, device_id):
        return DeviceInfo(device_id, "Pixel 7", "14", self.size[0], self.size[1])

    def get_screen_size(self, device_id):
        return self.size

    def check_ready(self, device_id):
        return self.ready

    def capture_screenshot(self, device_id):
        return self.screenshot

    def dump_ui(self, device_id):
        return self.ui_xml

    def dump_view_hierarchy(self, device_id):
        return self.view_dump

    def dump_windows(self, device_id):
        return self.windows_dump

    def get_foreground_app(self, device_id):
        return self.foreground

    def get_brightness(self, device_id):
        return self.brightness

    def file_exists(self, device_id, path):
        return path in self.files


class FakePlanner:
    """Replays scripted plans; an exhausted script means the goal is done."""

    def __init__(self, plans=None):
        self.plans = list(plans or [])
        self.initial_calls = []
        self.next_calls = []

    def _next(self):
        if not self.plans:
            return {"steps": []}
        item = self.plans.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def request_initial_plan(self, goal, device_info, ui_summary, window_state, screenshot):
        self.initial_calls.append(
            {"goal": goal, "ui_summary": ui_summary, "window": window_state, "screenshot": screenshot}
        )
        return self._next()

    def request_next_step(
        self, goal, device_info, history, repetition_hints, window_state, screenshot, ui_elements
    ):
        self.next_calls.append(
            {"history": list(history), "hints": list(repetition_hints), "ui_elements": ui_elements}
        )
        return self._next()


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def sleeps():
    return SleepRecorder()
