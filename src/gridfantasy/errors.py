from __future__ import annotations

from typing import Literal


ErrorCode = Literal[
    "unauthenticated",
    "invalid-argument",
    "not-found",
    "permission-denied",
    "failed-precondition",
]


class CallableError(Exception):
    """Typed failure raised by callable entry points before any data changes."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def require_caller(caller: str | None) -> str:
    if not caller:
        raise CallableError("unauthenticated", "Must be authenticated")
    return caller
