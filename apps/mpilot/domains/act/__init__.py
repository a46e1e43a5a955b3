from mpilot.domains.act.executor import StepExecutor, substitute_serial
from mpilot.domains.act.launcher import launch_app, resolve_package
from mpilot.domains.act.translator import (
    ConcreteCommand,
    LaunchOp,
    ShellOp,
    SleepOp,
    parse_duration_ms,
    translate,
)
from mpilot.domains.act.types import CommandResult

__all__ = [
    "CommandResult",
    "ConcreteCommand",
    "LaunchOp",
    "ShellOp",
    "SleepOp",
    "StepExecutor",
    "launch_app",
    "parse_duration_ms",
    "resolve_package",
    "substitute_serial",
    "translate",
]
