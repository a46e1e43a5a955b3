from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union


class DeviceDriver(Protocol):
    def run_shell(self, device_id: Optional[str], command: str, timeout: Optional[float] = None) -> Any:
        ...

    def run_adb(
        self, device_id: Optional[str], args: Union[str, Sequence[str]], timeout: Optional[float] = None
    ) -> Any:
        ...

    def input_text(self, device_id: str, text: str) -> Any:
        ...

    def list_devices(self) -> List[Any]:
        ...

    def list_serials(self) -> List[str]:
        ...

    def get_device_info(self, device_id: str) -> Any:
        ...

    def get_screen_size(self, device_id: str) -> Tuple[int, int]:
        ...

    def check_ready(self, device_id: str) -> Any:
        ...

    def capture_screenshot(self, device_id: str) -> Optional[str]:
        ...

    def dump_ui(self, device_id: str) -> Optional[str]:
        ...

    def dump_view_hierarchy(self, device_id: str) -> Optional[str]:
        ...

    def dump_windows(self, device_id: str) -> Optional[str]:
        ...

    def get_foreground_app(self, device_id: str) -> Optional[str]:
        ...

    def get_brightness(self, device_id: str) -> Optional[float]:
        ...

    def file_exists(self, device_id: str, path: str) -> bool:
        ...


class Planner(Protocol):
    def request_initial_plan(
        self,
        goal: str,
        device_info: Dict[str, Any],
        ui_summary: str,
        window_state: Optional[Dict[str, Any]],
        screenshot: Optional[str],
    ) -> Any:
        ...

    def request_next_step(
        self,
        goal: str,
        device_info: Dict[str, Any],
        history: List[Dict[str, Any]],
        repetition_hints: List[str],
        window_state: Optional[Dict[str, Any]],
        screenshot: Optional[str],
        ui_elements: str,
    ) -> Any:
        ...


class EventSink(Protocol):
    def emit(self, event: Any) -> None:
        ...
