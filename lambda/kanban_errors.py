from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from kanban_log import emit, now_iso

GENERIC_INTERNAL_MESSAGE = "Ocorreu um erro interno. Tente novamente mais tarde."

F = TypeVar("F", bound=Callable[..., Any])


class KanbanError(Exception):
    status_code = 500
    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidError(KanbanError):
    status_code = 400
    error_code = "INVALID"


class UnauthorizedError(KanbanError):
    status_code = 401
    error_code = "UNAUTHORIZED"


class ForbiddenError(KanbanError):
    status_code = 403
    error_code = "FORBIDDEN"


class NotFoundError(KanbanError):
    status_code = 404
    error_code = "NOT_FOUND"


class ConflictError(KanbanError):
    status_code = 409
    error_code = "CONFLICT"


class InternalError(KanbanError):
    status_code = 500
    error_code = "INTERNAL_ERROR"


class GenerationExhausted(KanbanError):
    status_code = 503
    error_code = "SHORT_LINK_GENERATION_FAILED"


def service_boundary(operation: str) -> Callable[[F], F]:
    """Let domain errors through; log anything else and re-raise it as InternalError."""

    def decorate(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return fn(*args, **kwargs)
            except KanbanError:
                raise
            except Exception as exc:
                emit(
                    {
                        "event": "kanban_unexpected_error",
                        "operation": operation,
                        "ts": now_iso(),
                        "error": {"type": type(exc).__name__, "message": str(exc)},
                    }
                )
                raise InternalError(GENERIC_INTERNAL_MESSAGE) from exc

        return wrapper  # type: ignore[return-value]

    return decorate


@dataclass(frozen=True)
class Success:
    message: str
    data: Any = None
    status_code: int = 200

    def envelope(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": False, "message": self.message}
        if self.data is not None:
            body["data"] = self.data
        return body


@dataclass(frozen=True)
class Failure:
    status_code: int
    error_code: str
    message: str

    @classmethod
    def from_error(cls, exc: KanbanError) -> "Failure":
        message = exc.message
        if isinstance(exc, InternalError):
            message = GENERIC_INTERNAL_MESSAGE
        return cls(status_code=exc.status_code, error_code=exc.error_code, message=message)

    def envelope(self) -> dict[str, Any]:
        return {"error": True, "message": self.message}


Result = Success | Failure
