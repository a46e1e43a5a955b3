from mpilot.domains.observe.elements import (
    collect_ui_elements,
    extract_elements,
    extract_view_elements,
    is_valid_snapshot,
    summarize_elements,
)
from mpilot.domains.observe.service import gather_state
from mpilot.domains.observe.types import DeviceState, UIElement, WindowState
from mpilot.domains.observe.windows import extract_window_state

__all__ = [
    "DeviceState",
    "UIElement",
    "WindowState",
    "collect_ui_elements",
    "extract_elements",
    "extract_view_elements",
    "extract_window_state",
    "gather_state",
    "is_valid_snapshot",
    "summarize_elements",
]
