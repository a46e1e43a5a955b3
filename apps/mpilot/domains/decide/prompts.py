import json
from datetime import date
from typing import Any, Dict, List, Optional


def build_system_prompt(today: Optional[date] = None) -> str:
    today = today or date.today()
    return (
        "Today is {today}.\n"
        "You operate an Android phone to complete the user's goal, one action at a time.\n"
        "Reply in exactly this form:\n"
        "<think>what you see, whether the last action worked, what to do next</think>\n"
        "<answer>one action</answer>\n"
        "Actions (coordinates are relative, 0-1000 on both axes, origin top-left):\n"
        '- do(action="Launch", app="name")  only when the target app is not already open\n'
        '- do(action="Tap", element=[x,y])\n'
        '- do(action="Double Tap", element=[x,y])\n'
        '- do(action="Long Press", element=[x,y])\n'
        '- do(action="Type", text="...")  clears the focused field first; tap the field before typing\n'
        '- do(action="Swipe", start=[x1,y1], end=[x2,y2])\n'
        '- do(action="Back")\n'
        '- do(action="Home")\n'
        '- do(action="Wait", duration="2 seconds")\n'
        '- finish(message="...")  when the goal is reached\n'
        "Rules:\n"
        "- Check the screenshot before repeating an action; if it already took effect, move on.\n"
        "- Never Launch an app that is already in the foreground.\n"
        "- If an action is reported as repeated, change approach.\n"
    ).format(today=today.isoformat())


def _window_lines(window_state: Optional[Dict[str, Any]]) -> List[str]:
    if not window_state:
        return []
    lines = ["", "** Window **", "- App: {}".format(window_state.get("focused_app") or "Unknown")]
    if window_state.get("has_keyboard"):
        lines.append("- Keyboard: visible")
    return lines


def build_initial_prompt(
    goal: str,
    device_info: Dict[str, Any],
    ui_summary: str,
    window_state: Optional[Dict[str, Any]],
) -> str:
    lines = [
        "Goal: {}".format(goal),
        "Device: {} (Android {})".format(
            device_info.get("model", "Unknown"), device_info.get("android_version", "Unknown")
        ),
    ]
    lines.extend(_window_lines(window_state))
    if ui_summary:
        lines.extend(["", "** UI Elements (reference) **", ui_summary])
    lines.extend(["", "Decide the first action."])
    return "\n".join(lines)


def build_next_step_prompt(
    goal: str,
    device_info: Dict[str, Any],
    history: List[Dict[str, Any]],
    repetition_hints: List[str],
    window_state: Optional[Dict[str, Any]],
    ui_elements: str,
) -> str:
    lines = ["Goal: {}".format(goal)]
    lines.extend(_window_lines(window_state))
    if history:
        last = {key: value for key, value in history[-1].items() if key in _HISTORY_KEYS}
        lines.extend(
            [
                "",
                "** Last Action **",
                json.dumps(last, ensure_ascii=False, indent=2),
                "Steps so far: {}".format(len(history)),
            ]
        )
    if repetition_hints:
        lines.extend(["", "** Repeated Actions (avoid looping) **"])
        lines.extend("- {}".format(hint) for hint in repetition_hints)
    if ui_elements:
        lines.extend(["", "** UI Elements (reference) **", ui_elements])
    lines.extend(["", "Decide the next action, or finish if the goal is reached."])
    return "\n".join(lines)


_HISTORY_KEYS = ("step_id", "description", "command", "success", "error", "verify_message")
