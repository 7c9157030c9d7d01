# churn_guard/errors.py
from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration_error"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    CLIENT_ERROR = "client_error"
    INVALID_ARGUMENT = "invalid_argument"


RETRYABLE_KINDS = frozenset({
    ErrorKind.RATE_LIMITED,
    ErrorKind.SERVER_ERROR,
    ErrorKind.NETWORK_ERROR,
})


def kind_for_status(status: int) -> ErrorKind:
    """
    Map an HTTP status to an error kind:
      429        -> RATE_LIMITED
      >= 500     -> SERVER_ERROR
      other 4xx  -> CLIENT_ERROR
      0          -> NETWORK_ERROR (no response received)
    """
    if status == 0:
        return ErrorKind.NETWORK_ERROR
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.CLIENT_ERROR


class InvalidArgument(ValueError):
    """Raised by the projection and parsing layers on out-of-range input."""

    kind = ErrorKind.INVALID_ARGUMENT


class CRMError(RuntimeError):
    """
    Failure of a single CRM call, classified once at the transport boundary.

    status is the HTTP status (0 when no response was received).
    code is the CRM error category when the payload carries one.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        status: int = 0,
        data: Any = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.data = data
        self.code = code

    @classmethod
    def from_status(
        cls,
        message: str,
        status: int,
        data: Any = None,
        code: Optional[str] = None,
    ) -> "CRMError":
        return cls(message, kind_for_status(status), status=status, data=data, code=code)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __repr__(self) -> str:
        return f"CRMError(kind={self.kind.value}, status={self.status}, message={str(self)!r})"


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, CRMError) and error.retryable
