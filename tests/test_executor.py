import pytest

from conftest import DEVICE, FakeDriver
from infra.adb import ShellResult
from shared.errors import AdbError, TranslationError

from mpilot.contracts import Action, ActionKind, ActionStep, RetryPolicy
from mpilot.domains.act import StepExecutor
from mpilot.domains.act.executor import split_full_adb


def _step(command, **kwargs):
    return ActionStep(id="s1", description="", command=command, **kwargs)


def test_raw_shell_command(driver, sleeps):
    executor = StepExecutor(driver, sleep=sleeps)

    result = executor.execute_with_retry(_step("input keyevent 3"), DEVICE)

    assert result.success is True
    assert result.attempts == 1
    assert driver.commands == ["input keyevent 3"]


def test_full_adb_command_keeps_its_subcommand(driver, sleeps):
    executor = StepExecutor(driver, sleep=sleeps)

    executor.execute(_step("adb -s {serial} shell input tap 10 20"), DEVICE)
    executor.execute(_step("adb pull /sdcard/a.png out.png"), DEVICE)

    assert driver.adb_calls == [
        (DEVICE, ["shell", "input tap 10 20"]),
        (DEVICE, ["pull", "/sdcard/a.png", "out.png"]),
    ]


def test_split_full_adb():
    assert split_full_adb("adb -s abc shell ls /sdcard") == ("abc", ["shell", "ls /sdcard"])
    assert split_full_adb("input tap 1 2") is None


def test_non_ascii_input_text_uses_ime(driver, sleeps):
    executor = StepExecutor(driver, sleep=sleeps)

    executor.execute(_step("input text 你好"), DEVICE)
    executor.execute(_step('adb shell input text "早上好"'), DEVICE)

    assert driver.typed == [(DEVICE, "你好"), (DEVICE, "早上好")]
    assert driver.commands == []


def test_action_is_translated_with_screen_size(driver, sleeps):
    executor = StepExecutor(driver, sleep=sleeps)

    executor.execute(_step(Action(ActionKind.TAP, {"element": [500, 500]})), DEVICE)

    assert driver.commands == ["input swipe 540 1200 540 1200 100"]


def test_launch_action_reports_strategy(driver, sleeps):
    executor = StepExecutor(driver, sleep=sleeps, launch_settle_ms=0)

    result = executor.execute(_step(Action(ActionKind.LAUNCH, {"app": "微信"})), DEVICE)

    assert result.stdout == "launched com.tencent.mm via dedicated"


def test_retries_with_backoff_until_success(driver, sleeps):
    failed = ShellResult(False, "", "device offline", 1)
    driver.responses["input keyevent 4"] = [failed, failed, ShellResult(True, "", "", 0)]
    logged = []
    executor = StepExecutor(driver, sleep=sleeps, log=logged.append)

    result = executor.execute_with_retry(
        _step("input keyevent 4", retry=RetryPolicy(max_attempts=3, backoff_ms=200)), DEVICE
    )

    assert result.attempts == 3
    assert sleeps.calls == [0.2, 0.2]
    assert len(driver.commands) == 3
    assert logged[-1] == "step s1 recovered after 3 attempts"


def test_retries_exhausted_raise_last_error(driver, sleeps):
    driver.responses["input keyevent 4"] = ShellResult(False, "", "device offline", 1)
    executor = StepExecutor(driver, sleep=sleeps)

    with pytest.raises(AdbError, match="device offline"):
        executor.execute_with_retry(
            _step("input keyevent 4", retry=RetryPolicy(max_attempts=2, backoff_ms=100)), DEVICE
        )
    assert sleeps.calls == [0.1]


def test_translation_errors_are_not_retried(driver, sleeps):
    executor = StepExecutor(driver, sleep=sleeps)

    with pytest.raises(TranslationError):
        executor.execute_with_retry(
            _step(Action(ActionKind.TAP, {}), retry=RetryPolicy(max_attempts=3)), DEVICE
        )
    assert driver.commands == []
    assert sleeps.calls == []


def test_unknown_screen_size_is_an_adb_error(sleeps):
    driver = FakeDriver()
    driver.size = (0, 0)
    executor = StepExecutor(driver, sleep=sleeps)

    with pytest.raises(AdbError):
        executor.execute(_step(Action(ActionKind.BACK)), DEVICE)
