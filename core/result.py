from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Result:
    """Outcome of a lifecycle step that is allowed to fail without aborting."""
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "Result":
        return cls(ok=True)

    @classmethod
    def fail(cls, reason: str) -> "Result":
        return cls(ok=False, reason=reason)

    def __bool__(self) -> bool:
        return self.ok


class FatalError(Exception):
    """Aborts the whole invocation. The dispatcher prints the message as an X line."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code
