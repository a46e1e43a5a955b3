import logging
import re
from typing import List, Optional, Sequence, Tuple
from xml.etree import ElementTree as ET

from infra.uiautomator import DEFAULT_PARSER
from shared.utils import bounds_area, bounds_center, pixel_to_normalized

from mpilot.domains.observe.types import UIElement


logger = logging.getLogger("mpilot.observe.elements")

MIN_SNAPSHOT_LENGTH = 100
HIERARCHY_MARKER = "<hierarchy"

# ClassName{hash VFEDHVCLX FSHAPp.. l,t-r,b #hexid pkg:id/name}
_VIEW_LINE_RE = re.compile(
    r"^(?P<indent>\s*)(?P<cls>[\w.$]+)\{(?P<hash>[0-9a-fA-F]+)\s+"
    r"(?P<flags>\S{9})\s+(?P<state>\S+)\s+"
    r"(?P<l>-?\d+),(?P<t>-?\d+)-(?P<r>-?\d+),(?P<b>-?\d+)"
    r"(?:\s+#[0-9a-fA-F]+)?(?:\s+(?P<rid>[\w.$]+:[\w.$/]+))?"
)


def _element(text, description, identifier, class_name, bounds, clickable) -> Optional[UIElement]:
    if bounds is None or bounds_area(bounds) <= 0:
        return None
    if not (text or description or identifier or clickable):
        return None
    return UIElement(
        text=text,
        description=description,
        identifier=identifier,
        class_name=class_name,
        bounds=bounds,
        center=bounds_center(bounds),
        clickable=clickable,
    )


def extract_elements(xml_text: Optional[str]) -> Optional[List[UIElement]]:
    if not xml_text or not xml_text.strip():
        return None
    try:
        nodes = list(DEFAULT_PARSER.iter_nodes(xml_text))
    except ET.ParseError as exc:
        logger.warning("ui hierarchy not parseable: %s", exc)
        return None
    elements = []
    for node in nodes:
        element = _element(
            node["text"],
            node["content_desc"],
            node["resource_id"],
            node["class"],
            DEFAULT_PARSER.parse_bounds(node["bounds"]),
            node["clickable"] == "true",
        )
        if element is not None:
            elements.append(element)
    return elements or None


def is_valid_snapshot(xml_text: Optional[str]) -> bool:
    if not xml_text or len(xml_text.strip()) < MIN_SNAPSHOT_LENGTH:
        return False
    if HIERARCHY_MARKER not in xml_text:
        return False
    try:
        for node in DEFAULT_PARSER.iter_nodes(xml_text):
            bounds = DEFAULT_PARSER.parse_bounds(node["bounds"])
            if bounds is not None and bounds_area(bounds) > 0:
                return True
    except ET.ParseError:
        return False
    return False


def extract_view_elements(dump_text: Optional[str]) -> Optional[List[UIElement]]:
    """Parse the coarser `dumpsys activity top` view records.

    View bounds there are relative to the parent view, so absolute positions
    are rebuilt from an indentation stack. A view is kept when it is visible
    and has an identifier or is clickable.
    """
    if not dump_text:
        return None
    elements = []
    stack: List[Tuple[int, int, int]] = []
    for line in dump_text.splitlines():
        match = _VIEW_LINE_RE.match(line)
        if not match:
            continue
        indent = len(match.group("indent"))
        while stack and stack[-1][0] >= indent:
            stack.pop()
        origin_x, origin_y = (stack[-1][1], stack[-1][2]) if stack else (0, 0)
        left = origin_x + int(match.group("l"))
        top = origin_y + int(match.group("t"))
        right = origin_x + int(match.group("r"))
        bottom = origin_y + int(match.group("b"))
        stack.append((indent, left, top))

        flags = match.group("flags")
        if flags[0] != "V":
            continue
        clickable = flags[6] == "C"
        identifier = match.group("rid") or ""
        if not (identifier or clickable):
            continue
        element = _element("", "", identifier, match.group("cls"), (left, top, right, bottom), clickable)
        if element is not None:
            elements.append(element)
    return elements or None


def collect_ui_elements(driver, device_id: str) -> Optional[List[UIElement]]:
    xml_text = driver.dump_ui(device_id)
    if is_valid_snapshot(xml_text):
        elements = extract_elements(xml_text)
        if elements:
            return elements
    logger.info("ui dump unusable on %s, falling back to view hierarchy", device_id)
    return extract_view_elements(driver.dump_view_hierarchy(device_id))


def summarize_elements(
    elements: Optional[Sequence[UIElement]], width: int, height: int, limit: int = 50
) -> str:
    if not elements:
        return ""
    width = width or 1080
    height = height or 2400
    lines = []
    for element in list(elements)[:limit]:
        label = element.label or "({})".format(element.class_name.rsplit(".", 1)[-1])
        lines.append(
            "- {} @ [{},{}]".format(
                label,
                pixel_to_normalized(element.center[0], width),
                pixel_to_normalized(element.center[1], height),
            )
        )
    return "\n".join(lines)
