from conftest import DEVICE, FakeDriver

from mpilot.contracts import ActionStep
from mpilot.domains.verify import Verifier


def _step(*checks):
    return ActionStep(id="s1", description="", command="input keyevent 3", verify=tuple(checks))


def test_no_checks_passes(driver):
    result = Verifier(driver).verify_step(_step(), DEVICE)

    assert result.success is True
    assert result.message == "no verification required"


def test_unknown_method_fails(driver):
    result = Verifier(driver).verify_step(_step("check_magic:x"), DEVICE)

    assert result.success is False
    assert result.message == "verification failed: unknown method: check_magic"


def test_foreground_check(driver):
    verifier = Verifier(driver)

    assert verifier.verify_step(_step("check_foreground:com.android.settings"), DEVICE).success
    result = verifier.verify_step(_step("check_foreground:com.tencent.mm"), DEVICE)
    assert result.success is False
    assert "foreground mismatch" in result.message


def test_all_checks_must_pass(driver):
    driver.files.add("/sdcard/a.png")
    verifier = Verifier(driver)

    passed = verifier.verify_step(
        _step("check_file:/sdcard/a.png", "check_node:Wi-Fi"), DEVICE
    )
    failed = verifier.verify_step(
        _step("check_file:/sdcard/a.png", "check_node:Bluetooth"), DEVICE
    )

    assert passed.success is True
    assert passed.message == "all checks passed"
    assert failed.success is False
    assert [detail.success for detail in failed.details] == [True, False]
    assert failed.message == "verification failed: node not found: Bluetooth"


def test_node_check_without_hierarchy():
    driver = FakeDriver()
    driver.ui_xml = None

    result = Verifier(driver).run_check("check_node:Wi-Fi", DEVICE)

    assert result.success is False
    assert result.message == "cannot obtain UI hierarchy"


def test_brightness_tolerance(driver):
    verifier = Verifier(driver)
    driver.brightness = 52.9

    assert verifier.run_check("check_brightness:50", DEVICE).success is True
    assert verifier.run_check("check_brightness:80", DEVICE).success is False
    assert verifier.run_check("check_brightness:bright", DEVICE).success is False


def test_uia_select_taps_element_center(driver):
    result = Verifier(driver).run_check("uia_select:text:Wi-Fi:tap", DEVICE)

    assert result.success is True
    assert driver.commands == ["input tap 540 360"]
    assert result.data == {"coordinates": {"x": 540, "y": 360}}


def test_uia_select_long_tap_and_missing_element(driver):
    verifier = Verifier(driver)

    assert verifier.run_check("uia_select:desc:Search:long_tap", DEVICE).success is True
    assert driver.commands == ["input swipe 950 160 950 160 1000"]
    missing = verifier.run_check("uia_select:text:Bluetooth", DEVICE)
    assert missing.success is False
    assert missing.message == "element not found: text=Bluetooth"


def test_uia_select_unknown_selector_is_a_failed_check(driver):
    result = Verifier(driver).run_check("uia_select:xpath://node", DEVICE)

    assert result.success is False
    assert "unsupported selector" in result.message


def test_uia_select_resource_id_keeps_its_colon(driver):
    verifier = Verifier(driver)

    tapped = verifier.run_check("uia_select:resource-id:android:id/title:tap", DEVICE)
    assert tapped.success is True
    assert tapped.message == "tap resource-id=android:id/title at (540, 360)"

    pressed = verifier.run_check("uia_select:id:android:id/title:long_tap", DEVICE)
    assert pressed.success is True
    assert driver.commands == ["input tap 540 360", "input swipe 540 360 540 360 1000"]


def test_uia_select_resource_id_without_action_defaults_to_tap(driver):
    result = Verifier(driver).run_check("uia_select:resource-id:android:id/title", DEVICE)

    assert result.success is True
    assert driver.commands == ["input tap 540 360"]
