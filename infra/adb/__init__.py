from infra.adb.client import (
    ADB_KEYBOARD_IME,
    AdbDriver,
    DeviceInfo,
    ReadyState,
    ShellResult,
    adb_text_escape,
    parse_device_serials,
    parse_foreground,
    parse_screen_on,
    parse_screen_size,
    parse_unlocked,
)

__all__ = [
    "ADB_KEYBOARD_IME",
    "AdbDriver",
    "DeviceInfo",
    "ReadyState",
    "ShellResult",
    "adb_text_escape",
    "parse_device_serials",
    "parse_foreground",
    "parse_screen_on",
    "parse_screen_size",
    "parse_unlocked",
]
