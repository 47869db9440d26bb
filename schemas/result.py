"""
Uniform outcome type for domain operations.
Business-rule rejections are returned as failures, never raised.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    INVALID_STATE_TRANSITION = "invalid_state_transition"
    ALREADY_VOTED = "already_voted"
    CLOSED = "closed"
    CONCURRENCY_CONFLICT = "concurrency_conflict"

    @property
    def retryable(self) -> bool:
        return self is ErrorKind.CONCURRENCY_CONFLICT


@dataclass(frozen=True)
class Result:
    ok: bool
    value: Any = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, error: str) -> "Result":
        return cls(ok=False, error=error, kind=kind)

    @classmethod
    def not_found(cls, error: str) -> "Result":
        return cls.failure(ErrorKind.NOT_FOUND, error)

    @classmethod
    def invalid(cls, error: str) -> "Result":
        return cls.failure(ErrorKind.VALIDATION_ERROR, error)

    @classmethod
    def invalid_state(cls, error: str) -> "Result":
        return cls.failure(ErrorKind.INVALID_STATE_TRANSITION, error)

    @property
    def failed(self) -> bool:
        return not self.ok

    def __bool__(self) -> bool:
        return self.ok
