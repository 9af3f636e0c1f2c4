from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    RATE_LIMITED = "rate_limited"
    LLM_TIMEOUT = "llm_timeout"
    LLM_ERROR = "llm_error"


@dataclass
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None

    @staticmethod
    def success(value: T) -> "Result[T]":
        return Result(ok=True, value=value)

    @staticmethod
    def failure(error: str, code: ErrorCode = ErrorCode.LLM_ERROR) -> "Result[T]":
        return Result(ok=False, error=error, error_code=code)
