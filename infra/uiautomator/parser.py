import re
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
from xml.etree import ElementTree as ET

_BOUNDS_RE = re.compile(r"\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]")
_HIERARCHY_RE = re.compile(r"<hierarchy[^>]*>.*</hierarchy>", re.DOTALL)

SELECTOR_KEYS = {
    "text": "text",
    "resource-id": "resource_id",
    "resource_id": "resource_id",
    "id": "resource_id",
    "content-desc": "content_desc",
    "content_desc": "content_desc",
    "desc": "content_desc",
}


def extract_hierarchy(xml_text: Optional[str]) -> Optional[str]:
    """Cut the <hierarchy> document out of raw dump output (status lines, NULs)."""
    if not xml_text:
        return None
    xml_text = xml_text.replace("\x00", "")
    match = _HIERARCHY_RE.search(xml_text)
    if not match:
        return None
    return match.group(0).strip()


class UiAutomatorParser:
    def parse_bounds(self, bounds: Optional[str]) -> Optional[Tuple[int, int, int, int]]:
        match = _BOUNDS_RE.search(bounds or "")
        if not match:
            return None
        left, top, right, bottom = (int(group) for group in match.groups())
        return left, top, right, bottom

    def parse_tree(self, xml_text: str) -> ET.Element:
        document = extract_hierarchy(xml_text) or xml_text
        return ET.fromstring(document)

    def iter_nodes(self, xml_text: str) -> Iterator[Dict[str, str]]:
        """Yield node attributes depth-first, parents before their children."""
        root = self.parse_tree(xml_text)
        stack: List[ET.Element] = [root]
        while stack:
            element = stack.pop()
            if element.tag == "node":
                yield _node_attributes(element)
            stack.extend(reversed(list(element)))

    def find_nodes(self, xml_text: str, text: str, exact: bool = True) -> List[Dict[str, str]]:
        matches: List[Dict[str, str]] = []
        for node in self.iter_nodes(xml_text):
            candidates = [node["text"], node["content_desc"], node["resource_id"]]
            for candidate in candidates:
                if not candidate:
                    continue
                if exact and candidate == text:
                    matches.append(node)
                    break
                if not exact and text in candidate:
                    matches.append(node)
                    break
        return matches

    def select_node(self, xml_text: str, by: str, value: str) -> Optional[Dict[str, str]]:
        key = SELECTOR_KEYS.get((by or "").strip().lower())
        if key is None:
            raise ValueError("unsupported selector: {}".format(by))
        partial = None
        for node in self.iter_nodes(xml_text):
            candidate = node.get(key) or ""
            if not candidate:
                continue
            if candidate == value:
                return node
            if partial is None and value in candidate:
                partial = node
        return partial


def _node_attributes(element: ET.Element) -> Dict[str, str]:
    attrib = element.attrib
    return {
        "text": attrib.get("text", ""),
        "resource_id": attrib.get("resource-id", ""),
        "class": attrib.get("class", ""),
        "package": attrib.get("package", ""),
        "content_desc": attrib.get("content-desc", ""),
        "clickable": attrib.get("clickable", "false"),
        "bounds": attrib.get("bounds", ""),
    }


DEFAULT_PARSER = UiAutomatorParser()


def parse_bounds(bounds: Optional[str]) -> Optional[Tuple[int, int, int, int]]:
    return DEFAULT_PARSER.parse_bounds(bounds)


def iter_nodes(xml_text: str) -> Iterable[Dict[str, str]]:
    return DEFAULT_PARSER.iter_nodes(xml_text)


def find_nodes(xml_text: str, text: str, exact: bool = True) -> List[Dict[str, str]]:
    return DEFAULT_PARSER.find_nodes(xml_text, text, exact=exact)


def select_node(xml_text: str, by: str, value: str) -> Optional[Dict[str, str]]:
    return DEFAULT_PARSER.select_node(xml_text, by, value)
