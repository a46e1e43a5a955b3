import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from mpilot.domains.observe.elements import collect_ui_elements
from mpilot.domains.observe.types import DeviceState
from mpilot.domains.observe.windows import extract_window_state
from mpilot.domains.ports import DeviceDriver


logger = logging.getLogger("mpilot.observe")


def gather_state(
    driver: DeviceDriver,
    device_id: str,
    include_screenshot: bool = True,
    pool: Optional[ThreadPoolExecutor] = None,
) -> DeviceState:
    """Fetch UI elements, window dump and screenshot concurrently.

    A failing source leaves its field empty and records the error; the
    iteration goes on with whatever arrived.
    """
    owned = pool is None
    pool = pool or ThreadPoolExecutor(max_workers=3, thread_name_prefix="mpilot-observe")
    try:
        futures = {
            "ui": pool.submit(collect_ui_elements, driver, device_id),
            "window": pool.submit(driver.dump_windows, device_id),
        }
        if include_screenshot:
            futures["screenshot"] = pool.submit(driver.capture_screenshot, device_id)
        results = {}
        errors = {}
        for name, future in futures.items():
            try:
                results[name] = future.result()
            except Exception as exc:
                logger.warning("state source %s failed on %s: %s", name, device_id, exc)
                errors[name] = str(exc)
                results[name] = None
    finally:
        if owned:
            pool.shutdown(wait=False)
    return DeviceState(
        elements=results.get("ui"),
        window=extract_window_state(results.get("window")),
        screenshot=results.get("screenshot"),
        errors=errors,
    )
