import base64
import logging
import re
import shlex
import subprocess
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from infra.uiautomator import extract_hierarchy
from shared.errors import AdbError
from shared.text import is_plain_input


logger = logging.getLogger("infra.adb")

UI_DUMP_PATH = "/sdcard/view.xml"
ADB_KEYBOARD_IME = "com.android.adbkeyboard/.AdbIME"
LOCK_SCREEN_MARKERS = ("Keyguard", "LockScreen", "KeyguardLockedView")

_SIZE_RE = re.compile(r"(\d+)x(\d+)")
_RESUMED_RE = re.compile(r"mResumedActivity[^\n]*?\s([\w.]+)/([\w.$]+)")
_FOCUS_RE = re.compile(r"mCurrentFocus[^\n]*?\s([\w.]+)/([\w.$]+)")


@dataclass
class ShellResult:
    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    def output(self) -> str:
        return (self.stdout or self.stderr or "").strip()


@dataclass
class DeviceInfo:
    serial: str
    model: str = "Unknown"
    android_version: str = "Unknown"
    width: int = 0
    height: int = 0
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "serial": self.serial,
            "model": self.model,
            "android_version": self.android_version,
            "screen_size": {"width": self.width, "height": self.height},
        }


@dataclass
class ReadyState:
    screen_on: bool
    unlocked: bool
    foreground: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.screen_on and self.unlocked

    def issues(self) -> List[str]:
        problems = []
        if not self.screen_on:
            problems.append("screen off")
        if not self.unlocked:
            problems.append("screen locked")
        return problems


def adb_text_escape(text: str) -> str:
    escaped = []
    for ch in text:
        if ch == " ":
            escaped.append("%s")
        elif ch in "\\'\"&|<>;()$`":
            escaped.append("\\" + ch)
        else:
            escaped.append(ch)
    return "".join(escaped)


class AdbDriver:
    """Device driver over the adb binary. Failures come back as ShellResult."""

    def __init__(
        self,
        adb_path="adb",
        timeout=8.0,
        dump_timeout=20.0,
        ime_id=ADB_KEYBOARD_IME,
        ime_settle_ms=500,
        sleep=time.sleep,
    ):
        self.adb_path = adb_path
        self.timeout = timeout
        self.dump_timeout = dump_timeout
        self.ime_id = ime_id
        self.ime_settle_ms = ime_settle_ms
        self._sleep = sleep

    def _base_cmd(self, device_id: Optional[str]) -> List[str]:
        cmd = [self.adb_path]
        if device_id:
            cmd += ["-s", device_id]
        return cmd

    def _invoke(self, cmd: List[str], timeout: Optional[float], text: bool = True):
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                timeout=timeout or self.timeout,
                text=text,
                encoding="utf-8" if text else None,
                errors="replace" if text else None,
            )
        except subprocess.TimeoutExpired:
            logger.warning("adb timed out after %ss: %s", timeout or self.timeout, " ".join(cmd))
            return None
        except OSError as exc:
            logger.error("adb not runnable (%s): %s", self.adb_path, exc)
            return None

    def run_adb(
        self,
        device_id: Optional[str],
        args: Union[str, Sequence[str]],
        timeout: Optional[float] = None,
    ) -> ShellResult:
        if isinstance(args, str):
            args = shlex.split(args)
        args = list(args)
        if args and args[0] == "-s":
            cmd = [self.adb_path] + args
        else:
            cmd = self._base_cmd(device_id) + args
        result = self._invoke(cmd, timeout)
        if result is None:
            return ShellResult(False, "", "adb command failed: {}".format(" ".join(cmd)), -1)
        return ShellResult(
            result.returncode == 0,
            result.stdout or "",
            result.stderr or "",
            result.returncode,
        )

    def run_shell(
        self, device_id: Optional[str], command: str, timeout: Optional[float] = None
    ) -> ShellResult:
        return self.run_adb(device_id, ["shell", command], timeout=timeout)

    def exec_out(self, device_id: Optional[str], command: str, timeout: Optional[float] = None) -> bytes:
        cmd = self._base_cmd(device_id) + ["exec-out", command]
        result = self._invoke(cmd, timeout, text=False)
        if result is None or result.returncode != 0:
            raise AdbError("adb exec-out failed: {}".format(command))
        return result.stdout or b""

    def list_devices(self) -> List[DeviceInfo]:
        result = self.run_adb(None, ["devices", "-l"], timeout=5)
        if not result.success:
            logger.error("failed to list devices: %s", result.stderr.strip())
            return []
        devices = []
        for serial in parse_device_serials(result.stdout):
            devices.append(self.get_device_info(serial))
        return devices

    def list_serials(self) -> List[str]:
        result = self.run_adb(None, ["devices"], timeout=5)
        if not result.success:
            return []
        return parse_device_serials(result.stdout)

    def get_device_info(self, device_id: str) -> DeviceInfo:
        model = self.run_shell(device_id, "getprop ro.product.model").stdout.strip()
        release = self.run_shell(device_id, "getprop ro.build.version.release").stdout.strip()
        width, height = self.get_screen_size(device_id)
        return DeviceInfo(
            serial=device_id,
            model=model or "Unknown",
            android_version=release or "Unknown",
            width=width,
            height=height,
        )

    def get_screen_size(self, device_id: str) -> Tuple[int, int]:
        result = self.run_shell(device_id, "wm size")
        return parse_screen_size(result.stdout)

    def is_screen_on(self, device_id: str) -> bool:
        result = self.run_shell(device_id, "dumpsys power")
        return parse_screen_on(result.stdout)

    def is_unlocked(self, device_id: str) -> bool:
        result = self.run_shell(device_id, "dumpsys window")
        return parse_unlocked(result.stdout)

    def get_foreground_app(self, device_id: str) -> Optional[str]:
        result = self.run_shell(device_id, "dumpsys activity activities")
        return parse_foreground(result.stdout)

    def check_ready(self, device_id: str) -> ReadyState:
        return ReadyState(
            screen_on=self.is_screen_on(device_id),
            unlocked=self.is_unlocked(device_id),
            foreground=self.get_foreground_app(device_id),
        )

    def capture_screenshot(self, device_id: str) -> Optional[str]:
        try:
            data = self.exec_out(device_id, "screencap -p", timeout=self.dump_timeout)
        except AdbError as exc:
            logger.warning("screenshot failed on %s: %s", device_id, exc)
            return None
        if not data:
            return None
        return base64.b64encode(data).decode("ascii")

    def pull_file(self, device_id: str, remote_path: str, local_path: str) -> bool:
        result = self.run_adb(device_id, ["pull", remote_path, local_path], timeout=30)
        if not result.success:
            logger.error("failed to pull %s: %s", remote_path, result.output())
        return result.success

    def dump_ui(self, device_id: str) -> Optional[str]:
        dump = self.run_shell(
            device_id, "uiautomator dump {}".format(UI_DUMP_PATH), timeout=self.dump_timeout
        )
        if not dump.success:
            logger.warning("uiautomator dump failed on %s: %s", device_id, dump.output())
            return None
        result = self.run_shell(device_id, "cat {}".format(UI_DUMP_PATH), timeout=self.dump_timeout)
        if not result.success:
            return None
        return extract_hierarchy(result.stdout)

    def dump_view_hierarchy(self, device_id: str) -> Optional[str]:
        result = self.run_shell(device_id, "dumpsys activity top", timeout=self.dump_timeout)
        if not result.success or not result.stdout.strip():
            return None
        return result.stdout

    def dump_windows(self, device_id: str) -> Optional[str]:
        result = self.run_shell(device_id, "dumpsys window windows")
        if not result.success or not result.stdout.strip():
            return None
        return result.stdout

    def get_brightness(self, device_id: str) -> Optional[float]:
        result = self.run_shell(device_id, "settings get system screen_brightness")
        try:
            value = int(result.stdout.strip())
        except ValueError:
            return None
        return value / 255 * 100

    def file_exists(self, device_id: str, path: str) -> bool:
        command = 'test -f {} && echo "exists" || echo "not_exists"'.format(shlex.quote(path))
        result = self.run_shell(device_id, command)
        return result.stdout.strip() == "exists"

    def is_app_installed(self, device_id: str, package: str) -> bool:
        result = self.run_shell(device_id, "pm list packages {}".format(package))
        wanted = "package:{}".format(package)
        return any(line.strip() == wanted for line in result.stdout.splitlines())

    def input_text(self, device_id: str, text: str) -> ShellResult:
        if text is None:
            text = ""
        text = str(text)
        if is_plain_input(text):
            return self.run_shell(device_id, "input text {}".format(adb_text_escape(text)))
        return self.input_text_via_ime(device_id, text)

    def input_text_via_ime(self, device_id: str, text: str) -> ShellResult:
        switched = self.run_shell(device_id, "ime set {}".format(self.ime_id))
        if not switched.success:
            logger.warning("could not switch to %s: %s", self.ime_id, switched.output())
        self._sleep(self.ime_settle_ms / 1000)
        encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
        return self.run_shell(
            device_id, "am broadcast -a ADB_INPUT_B64 --es msg {}".format(encoded)
        )


def parse_device_serials(output: str) -> List[str]:
    serials = []
    for line in (output or "").splitlines():
        line = line.strip()
        if not line or line.startswith("List") or line.startswith("*"):
            continue
        parts = line.split()
        if len(parts) >= 2 and parts[1] == "device":
            serials.append(parts[0])
    return serials


def parse_screen_size(output: str) -> Tuple[int, int]:
    # "Override size" wins over "Physical size" when both are printed.
    width = height = 0
    for line in (output or "").splitlines():
        match = _SIZE_RE.search(line)
        if not match:
            continue
        width, height = int(match.group(1)), int(match.group(2))
        if "Override" in line:
            break
    return width, height


def parse_screen_on(output: str) -> bool:
    output = output or ""
    for line in output.splitlines():
        if "mScreenOn" in line:
            return "mScreenOn=true" in line
    return "Display Power: state=ON" in output or "mWakefulness=Awake" in output


def parse_unlocked(output: str) -> bool:
    match = re.search(r"mCurrentFocus[^\n]*", output or "")
    focus = match.group(0) if match else ""
    return not any(marker in focus for marker in LOCK_SCREEN_MARKERS)


def parse_foreground(output: str) -> Optional[str]:
    for pattern in (_RESUMED_RE, _FOCUS_RE):
        match = pattern.search(output or "")
        if match:
            return "{}/{}".format(match.group(1), match.group(2))
    return None
