from dataclasses import dataclass
from typing import Generic, Mapping, Optional, TypeVar

T = TypeVar("T")

# Error codes shared by services returning Result
NOT_CONFIGURED = "not_configured"
DISABLED = "disabled"
LIMIT_REACHED = "limit_reached"
RATE_LIMITED = "rate_limited"
AI_ERROR = "ai_error"
EMPTY_REPLY = "empty_reply"
NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of an operation that can fail for an expected reason.

    ``error`` is for logs and administrators; what a customer sees is
    chosen by the caller from ``error_code``.
    """

    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    def recover(self, by_code: Mapping[str, Optional[T]], default: Optional[T] = None) -> Optional[T]:
        """The value on success; otherwise the entry for ``error_code``, else ``default``.

        A code mapped to None stays None, which lets a caller fall through.
        """
        if self.ok:
            return self.value
        return by_code.get(self.error_code, default)
