from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

Bounds = Tuple[int, int, int, int]


@dataclass(frozen=True)
class UIElement:
    text: str
    description: str
    identifier: str
    class_name: str
    bounds: Bounds
    center: Tuple[int, int]
    clickable: bool = False

    @property
    def label(self) -> str:
        return self.text or self.description or self.identifier

    def to_dict(self) -> Dict[str, Any]:
        left, top, right, bottom = self.bounds
        return {
            "text": self.text,
            "desc": self.description,
            "id": self.identifier,
            "class": self.class_name,
            "bounds": "[{},{}][{},{}]".format(left, top, right, bottom),
            "center": {"x": self.center[0], "y": self.center[1]},
            "clickable": self.clickable,
        }


@dataclass(frozen=True)
class WindowState:
    focused_app: Optional[str] = None
    has_keyboard: bool = False
    visible_windows: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "focused_app": self.focused_app,
            "has_keyboard": self.has_keyboard,
            "visible_windows": list(self.visible_windows),
        }


@dataclass
class DeviceState:
    """One iteration's view of the device. Every part may be missing."""

    elements: Optional[List[UIElement]] = None
    window: Optional[WindowState] = None
    screenshot: Optional[str] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ui_available(self) -> bool:
        return self.elements is not None
