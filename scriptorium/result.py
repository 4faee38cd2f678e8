# scriptorium/result.py
"""
Typed operation results for the registry.

Every registry operation returns a Result: either a success carrying a
value, or a failure tagged with exactly one ErrorKind.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Failure kinds, with their numeric wire codes."""
    ALREADY_EXISTS = 1
    NOT_OWNER = 2
    INVALID_KEY = 3
    NOT_FOUND = 4
    PERMISSION_DENIED = 5
    TOO_MANY_TAGS = 6
    SHARE_LIMIT_EXCEEDED = 7
    INVALID_SHARE = 8

    @property
    def code(self) -> int:
        return self.value

    @property
    def label(self) -> str:
        """CamelCase label, e.g. 'AlreadyExists'."""
        return "".join(part.capitalize() for part in self.name.split("_"))


class RegistryError(Exception):
    """Raised by Result.unwrap() on a failed result."""

    def __init__(self, kind: ErrorKind, message: str = ""):
        self.kind = kind
        self.message = message or kind.label
        super().__init__(f"{kind.label}: {self.message}")


@dataclass(frozen=True)
class Result:
    """
    Outcome of a registry operation.

    Attributes:
        success: Whether the operation applied
        value: Payload on success (True for mutations, data for queries)
        error: Failure kind (None on success)
        message: Human-readable detail for failures
    """
    success: bool
    value: Any = None
    error: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def ok(cls, value: Any = True) -> "Result":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str = "") -> "Result":
        return cls(success=False, error=kind, message=message or kind.label)

    def __bool__(self) -> bool:
        return self.success

    def unwrap(self) -> Any:
        """Return the value, or raise RegistryError for a failure."""
        if not self.success:
            raise RegistryError(self.error, self.message)
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            value = self.value
            if hasattr(value, "to_dict"):
                value = value.to_dict()
            elif isinstance(value, list):
                value = [v.to_dict() if hasattr(v, "to_dict") else v for v in value]
            return {"ok": True, "value": value}
        return {
            "ok": False,
            "error": self.error.label,
            "code": self.error.code,
            "message": self.message,
        }
