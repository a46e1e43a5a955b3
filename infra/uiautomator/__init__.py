from infra.uiautomator.parser import (
    DEFAULT_PARSER,
    SELECTOR_KEYS,
    UiAutomatorParser,
    extract_hierarchy,
    find_nodes,
    iter_nodes,
    parse_bounds,
    select_node,
)

__all__ = [
    "DEFAULT_PARSER",
    "SELECTOR_KEYS",
    "UiAutomatorParser",
    "extract_hierarchy",
    "find_nodes",
    "iter_nodes",
    "parse_bounds",
    "select_node",
]
