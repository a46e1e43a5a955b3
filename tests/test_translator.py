import pytest

from shared.errors import TranslationError

from mpilot.contracts import Action, ActionKind
from mpilot.domains.act import LaunchOp, ShellOp, SleepOp, parse_duration_ms, translate


W, H = 1080, 2400


def _translate(kind, **params):
    return translate(Action(kind, params), W, H)


def test_tap_is_a_short_swipe():
    assert _translate(ActionKind.TAP, element=[500, 500]) == (
        ShellOp("input swipe 540 1200 540 1200 100"),
    )


def test_point_may_be_a_string():
    assert _translate(ActionKind.TAP, element="[250, 750]") == (
        ShellOp("input swipe 270 1800 270 1800 100"),
    )


def test_double_tap_and_long_press():
    tap = ShellOp("input tap 540 1200")
    assert _translate(ActionKind.DOUBLE_TAP, element=[500, 500]) == (tap, SleepOp(50), tap)
    assert _translate(ActionKind.LONG_PRESS, element=[500, 500]) == (
        ShellOp("input swipe 540 1200 540 1200 1000"),
    )


def test_swipe_defaults_duration():
    ops = _translate(ActionKind.SWIPE, start=[500, 800], end=[500, 200])
    assert ops == (ShellOp("input swipe 540 1920 540 480 500"),)

    ops = _translate(ActionKind.SWIPE, start=[500, 800], end=[500, 200], duration_ms=300)
    assert ops[0].command.endswith(" 300")


def test_type_plain_text_clears_field_first():
    assert _translate(ActionKind.TYPE, text="hello") == (
        ShellOp("am broadcast -a ADB_CLEAR_TEXT"),
        SleepOp(300),
        ShellOp("input text hello"),
    )


def test_type_non_ascii_goes_through_ime():
    ops = _translate(ActionKind.TYPE, text="你好")

    assert ops[2] == ShellOp("ime set com.android.adbkeyboard/.AdbIME")
    assert ops[3] == SleepOp(500)
    assert ops[4] == ShellOp("am broadcast -a ADB_INPUT_B64 --es msg 5L2g5aW9")


def test_type_empty_text_only_clears():
    assert len(_translate(ActionKind.TYPE, text="")) == 2


def test_keys():
    assert _translate(ActionKind.BACK) == (ShellOp("input keyevent 4"),)
    assert _translate(ActionKind.HOME) == (ShellOp("input keyevent 3"),)


def test_launch_resolves_display_name():
    (op,) = _translate(ActionKind.LAUNCH, app="微信")

    assert isinstance(op, LaunchOp)
    assert op.package == "com.tencent.mm"
    assert op.dedicated_command == "am start -n com.tencent.mm/com.tencent.mm.ui.LauncherUI"


def test_wait_durations():
    assert _translate(ActionKind.WAIT, duration="2 seconds") == (SleepOp(2000),)
    assert parse_duration_ms(1.5) == 1500
    assert parse_duration_ms("500ms") == 500
    assert parse_duration_ms("3秒") == 3000
    with pytest.raises(ValueError):
        parse_duration_ms("soon")
    with pytest.raises(TranslationError):
        _translate(ActionKind.WAIT, duration="soon")


def test_missing_parameter_is_rejected():
    with pytest.raises(TranslationError) as excinfo:
        _translate(ActionKind.TAP)
    assert excinfo.value.parameter == "element"

    with pytest.raises(TranslationError):
        _translate(ActionKind.SWIPE, start=[1, 2])


def test_malformed_point_is_rejected():
    with pytest.raises(TranslationError) as excinfo:
        _translate(ActionKind.TAP, element=[1])
    assert excinfo.value.detail == "expected [x, y]"


@pytest.mark.parametrize("value", [[float("inf"), 5], [5, float("nan")], ["1e999", 5]])
def test_non_finite_point_is_rejected(value):
    with pytest.raises(TranslationError) as excinfo:
        _translate(ActionKind.TAP, element=value)
    assert excinfo.value.parameter == "element"


def test_non_finite_durations_are_rejected():
    with pytest.raises(TranslationError) as excinfo:
        _translate(ActionKind.SWIPE, start=[0, 0], end=[10, 10], duration_ms=float("inf"))
    assert excinfo.value.parameter == "duration_ms"
    with pytest.raises(ValueError):
        parse_duration_ms(float("inf"))
    with pytest.raises(TranslationError):
        _translate(ActionKind.WAIT, duration=float("nan"))
