from mpilot.contracts.schema import (
    Action,
    ActionKind,
    ActionStep,
    Command,
    OnFail,
    Plan,
    RetryPolicy,
    SchemaError,
    extract_json,
    parse_plan,
    parse_plan_text,
)

__all__ = [
    "Action",
    "ActionKind",
    "ActionStep",
    "Command",
    "OnFail",
    "Plan",
    "RetryPolicy",
    "SchemaError",
    "extract_json",
    "parse_plan",
    "parse_plan_text",
]
