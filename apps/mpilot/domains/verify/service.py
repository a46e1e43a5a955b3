import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from infra.uiautomator import DEFAULT_PARSER
from shared.utils import bounds_center

from mpilot.contracts import ActionStep
from mpilot.domains.act.types import CommandResult
from mpilot.domains.ports import DeviceDriver


logger = logging.getLogger("mpilot.verify")

BRIGHTNESS_TOLERANCE = 5
SELECT_ACTIONS = ("tap", "long_tap")


class VerifyMethod(str, Enum):
    CHECK_FOREGROUND = "check_foreground"
    CHECK_FILE = "check_file"
    CHECK_BRIGHTNESS = "check_brightness"
    CHECK_NODE = "check_node"
    UIA_SELECT = "uia_select"

    @classmethod
    def lookup(cls, name: str) -> Optional["VerifyMethod"]:
        for member in cls:
            if member.value == name:
                return member
        return None


@dataclass
class CheckResult:
    success: bool
    message: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"success": self.success, "message": self.message}
        payload.update(self.data)
        return payload


@dataclass
class VerifyResult:
    success: bool
    message: str
    details: List[CheckResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "details": [item.to_dict() for item in self.details],
        }


def split_select_action(rest: str):
    """Peel an optional trailing tap or long_tap; resource ids keep their colons."""
    value, sep, action = rest.rpartition(":")
    if sep and action in SELECT_ACTIONS:
        return value, action
    return rest, "tap"


class Verifier:
    def __init__(self, driver: DeviceDriver):
        self.driver = driver

    def verify_step(
        self,
        step: ActionStep,
        device_id: str,
        command_result: Optional[CommandResult] = None,
    ) -> VerifyResult:
        if not step.verify:
            return VerifyResult(True, "no verification required")
        details = []
        for descriptor in step.verify:
            result = self.run_check(descriptor, device_id)
            if not result.success:
                logger.warning("step %s check %s failed: %s", step.id, descriptor, result.message)
            details.append(result)
        failed = [item.message for item in details if not item.success]
        if failed:
            return VerifyResult(False, "verification failed: {}".format(", ".join(failed)), details)
        return VerifyResult(True, "all checks passed", details)

    def run_check(self, descriptor: str, device_id: str) -> CheckResult:
        name, _, argument = descriptor.partition(":")
        method = VerifyMethod.lookup(name.strip())
        if method is None:
            return CheckResult(False, "unknown method: {}".format(name))
        try:
            if method is VerifyMethod.CHECK_FOREGROUND:
                return self.check_foreground(device_id, argument)
            if method is VerifyMethod.CHECK_FILE:
                return self.check_file(device_id, argument)
            if method is VerifyMethod.CHECK_BRIGHTNESS:
                return self.check_brightness(device_id, int(argument))
            if method is VerifyMethod.CHECK_NODE:
                return self.check_node(device_id, argument)
            by, _, rest = argument.partition(":")
            value, action = split_select_action(rest)
            return self.uia_select(device_id, by, value, action)
        except Exception as exc:
            logger.warning("check %s raised: %s", descriptor, exc)
            return CheckResult(False, str(exc) or exc.__class__.__name__)

    def check_foreground(self, device_id: str, package: str) -> CheckResult:
        activity = self.driver.get_foreground_app(device_id)
        if not activity:
            return CheckResult(False, "cannot read foreground activity")
        matched = activity.split("/")[0] == package or package in activity
        if matched:
            return CheckResult(True, "foreground matches: {}".format(activity))
        return CheckResult(
            False, "foreground mismatch: expected {}, got {}".format(package, activity)
        )

    def check_file(self, device_id: str, path: str) -> CheckResult:
        if self.driver.file_exists(device_id, path):
            return CheckResult(True, "file exists: {}".format(path))
        return CheckResult(False, "file missing: {}".format(path))

    def check_brightness(self, device_id: str, expected: int) -> CheckResult:
        current = self.driver.get_brightness(device_id)
        if current is None:
            return CheckResult(False, "cannot read brightness")
        if abs(current - expected) <= BRIGHTNESS_TOLERANCE:
            return CheckResult(True, "brightness {:.0f}% matches {}%".format(current, expected))
        return CheckResult(
            False, "brightness {:.0f}% differs from {}%".format(current, expected)
        )

    def _fresh_dump(self, device_id: str) -> Optional[str]:
        return self.driver.dump_ui(device_id)

    def check_node(self, device_id: str, selector: str) -> CheckResult:
        xml_text = self._fresh_dump(device_id)
        if not xml_text:
            return CheckResult(False, "cannot obtain UI hierarchy")
        if DEFAULT_PARSER.find_nodes(xml_text, selector, exact=False):
            return CheckResult(True, "node found: {}".format(selector))
        return CheckResult(False, "node not found: {}".format(selector))

    def uia_select(self, device_id: str, by: str, value: str, action: str = "tap") -> CheckResult:
        xml_text = self._fresh_dump(device_id)
        if not xml_text:
            return CheckResult(False, "cannot obtain UI hierarchy")
        node = DEFAULT_PARSER.select_node(xml_text, by, value)
        if node is None:
            return CheckResult(False, "element not found: {}={}".format(by, value))
        bounds = DEFAULT_PARSER.parse_bounds(node["bounds"])
        if bounds is None:
            return CheckResult(False, "element has no bounds: {}={}".format(by, value))
        x, y = bounds_center(bounds)
        if action == "tap":
            command = "input tap {} {}".format(x, y)
        elif action == "long_tap":
            command = "input swipe {} {} {} {} 1000".format(x, y, x, y)
        else:
            return CheckResult(False, "unsupported uia_select action: {}".format(action))
        result = self.driver.run_shell(device_id, command)
        if not result.success:
            return CheckResult(False, "{} failed at ({}, {})".format(action, x, y))
        return CheckResult(
            True,
            "{} {}={} at ({}, {})".format(action, by, value, x, y),
            {"coordinates": {"x": x, "y": y}},
        )
