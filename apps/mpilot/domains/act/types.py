from dataclasses import dataclass
from typing import Any, Dict


@dataclass(frozen=True)
class CommandResult:
    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    attempts: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "attempts": self.attempts,
        }
