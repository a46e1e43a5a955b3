import logging
import re
import time
from typing import Callable, Optional

from shared.errors import AdbError


logger = logging.getLogger("mpilot.act.launcher")

DEFAULT_SETTLE_MS = 3000
LAUNCHER_CATEGORY = "android.intent.category.LAUNCHER"

APP_PACKAGES = {
    "微信": "com.tencent.mm",
    "WeChat": "com.tencent.mm",
    "QQ": "com.tencent.mobileqq",
    "支付宝": "com.eg.android.AlipayGphone",
    "Alipay": "com.eg.android.AlipayGphone",
    "淘宝": "com.taobao.taobao",
    "Taobao": "com.taobao.taobao",
    "京东": "com.jingdong.app.mall",
    "拼多多": "com.xunmeng.pinduoduo",
    "抖音": "com.ss.android.ugc.aweme",
    "快手": "com.smile.gifmaker",
    "小红书": "com.xingin.xhs",
    "哔哩哔哩": "tv.danmaku.bili",
    "bilibili": "tv.danmaku.bili",
    "美团": "com.sankuai.meituan",
    "饿了么": "me.ele",
    "高德地图": "com.autonavi.minimap",
    "百度地图": "com.baidu.BaiduMap",
    "网易云音乐": "com.netease.cloudmusic",
    "QQ音乐": "com.tencent.qqmusic",
    "微博": "com.sina.weibo",
    "知乎": "com.zhihu.android",
    "钉钉": "com.alibaba.android.rimet",
    "设置": "com.android.settings",
    "Settings": "com.android.settings",
    "相机": "com.android.camera",
    "Camera": "com.android.camera",
    "Chrome": "com.android.chrome",
}

DEDICATED_COMMANDS = {
    "com.tencent.mm": "am start -n com.tencent.mm/com.tencent.mm.ui.LauncherUI",
}

_EVENTS_RE = re.compile(r"Events injected:\s*(\d+)")
_COMPONENT_RE = re.compile(r"^\s*([\w.]+/[\w.$]+)\s*$", re.MULTILINE)


def resolve_package(app: str) -> str:
    """Map a display name to a package: exact, then case-insensitive, else as given."""
    app = (app or "").strip()
    if app in APP_PACKAGES:
        return APP_PACKAGES[app]
    lowered = app.lower()
    for name, package in APP_PACKAGES.items():
        if name.lower() == lowered:
            return package
    return app


def dedicated_command(package: str) -> Optional[str]:
    return DEDICATED_COMMANDS.get(package)


def _output(result) -> str:
    return "{}\n{}".format(result.stdout or "", result.stderr or "")


def monkey_launched(result) -> bool:
    output = _output(result)
    if "No activities found" in output:
        return False
    match = _EVENTS_RE.search(output)
    if match:
        return int(match.group(1)) > 0
    return bool(result.success)


def _start_dedicated(driver, device_id, command) -> bool:
    result = driver.run_shell(device_id, command)
    if result.success and "Error" not in _output(result):
        return True
    logger.warning("dedicated launch failed: %s", _output(result).strip())
    return False


def _start_monkey(driver, device_id, package) -> bool:
    result = driver.run_shell(
        device_id, "monkey -p {} -c {} 1".format(package, LAUNCHER_CATEGORY)
    )
    return monkey_launched(result)


def _start_resolved(driver, device_id, package) -> bool:
    result = driver.run_shell(
        device_id,
        "cmd package resolve-activity --brief -c {} {}".format(LAUNCHER_CATEGORY, package),
    )
    if not result.success:
        return False
    components = _COMPONENT_RE.findall(result.stdout or "")
    if not components:
        return False
    started = driver.run_shell(device_id, "am start -n {}".format(components[-1]))
    return started.success and "Error" not in _output(started)


def _start_main_intent(driver, device_id, package) -> bool:
    result = driver.run_shell(
        device_id,
        "am start -a android.intent.action.MAIN -c {} -p {}".format(LAUNCHER_CATEGORY, package),
    )
    return result.success and "Error" not in _output(result)


def launch_app(
    driver,
    device_id: str,
    app: str,
    package: Optional[str] = None,
    command: Optional[str] = None,
    settle_ms: int = DEFAULT_SETTLE_MS,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """Start an app, trying each strategy in turn. Returns the strategy used."""
    package = package or resolve_package(app)
    command = command if command is not None else dedicated_command(package)
    # Packages with a dedicated command never go through monkey.
    if command:
        strategies = [("dedicated", lambda: _start_dedicated(driver, device_id, command))]
    else:
        strategies = [("monkey", lambda: _start_monkey(driver, device_id, package))]
    strategies += [
        ("resolve-activity", lambda: _start_resolved(driver, device_id, package)),
        ("main-intent", lambda: _start_main_intent(driver, device_id, package)),
    ]
    for name, attempt in strategies:
        if attempt():
            logger.info("launched %s (%s) via %s", app, package, name)
            if settle_ms:
                sleep(settle_ms / 1000)
            return name
        logger.info("launch strategy %s failed for %s", name, package)
    raise AdbError("failed to launch {} ({})".format(app, package))
