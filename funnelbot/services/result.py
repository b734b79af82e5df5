from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

MEDIA_UNREACHABLE = "media_unreachable"
MEDIA_FETCH_FAILED = "media_fetch_failed"
TRANSPORT_ERROR = "transport_error"
STORE_ERROR = "store_error"
STATE_CONFLICT = "state_conflict"


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: str = "unknown") -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default

    def __bool__(self) -> bool:
        return self.ok
