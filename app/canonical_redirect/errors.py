from __future__ import annotations

from dataclasses import dataclass

DEFAULT_MAX_ERROR_CHARS = 300


@dataclass
class CanonicalUrlError(ValueError):
    code: str
    message: str

    def __str__(self) -> str:
        return self.message


class InvalidArgumentError(CanonicalUrlError):
    """A required argument was missing or unusable (caller bug, never retried)."""


class MalformedInputError(CanonicalUrlError):
    """Request or configured data that cannot be turned into a URL."""


@dataclass(frozen=True)
class ErrorInfo:
    code: str
    message: str
    status_code: int
    log_traceback: bool = False


def _truncate(value: str, *, max_chars: int) -> str:
    s = str(value or "")
    if max_chars <= 0 or len(s) <= max_chars:
        return s
    return s[: max(0, max_chars - 3)] + "..."


def classify_exception(
    exc: Exception, *, max_error_chars: int = DEFAULT_MAX_ERROR_CHARS
) -> ErrorInfo:
    if isinstance(exc, MalformedInputError):
        return ErrorInfo(
            code=str(exc.code or "malformed_input"),
            message=_truncate(str(exc), max_chars=max_error_chars),
            status_code=400,
            log_traceback=False,
        )

    if isinstance(exc, InvalidArgumentError):
        return ErrorInfo(
            code=str(exc.code or "invalid_argument"),
            message=_truncate(str(exc), max_chars=max_error_chars),
            status_code=500,
            log_traceback=True,
        )

    return ErrorInfo(
        code="internal_error",
        message=_truncate(exc.__class__.__name__, max_chars=max_error_chars),
        status_code=500,
        log_traceback=True,
    )
