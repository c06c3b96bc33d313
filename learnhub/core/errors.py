"""
Service results and the error taxonomy.

Every service operation returns either ``Ok(data)`` or ``Err(error)``; expected
failures never cross a component boundary as exceptions. The HTTP layer turns
an ``Err`` into a ``{status, message}`` response through ``unwrap``.
"""
import enum
from dataclasses import dataclass
from typing import Generic, Literal, TypeVar, Union


class ErrorKind(str, enum.Enum):
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    PREREQUISITE_UNMET = "PREREQUISITE_UNMET"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    DUPLICATE_ATTEMPT = "DUPLICATE_ATTEMPT"
    ALREADY_GRADED = "ALREADY_GRADED"
    COURSE_INCOMPLETE = "COURSE_INCOMPLETE"

    @property
    def status(self) -> int:
        return _STATUS[self]


_STATUS = {
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATE: 400,
    ErrorKind.PREREQUISITE_UNMET: 400,
    ErrorKind.ALREADY_EXISTS: 400,
    ErrorKind.DUPLICATE_ATTEMPT: 400,
    ErrorKind.ALREADY_GRADED: 400,
    ErrorKind.COURSE_INCOMPLETE: 400,
}


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    message: str

    @property
    def status(self) -> int:
        return self.kind.status

    def to_dict(self) -> dict:
        return {"status": self.status, "message": self.message}


T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    data: T
    success: Literal[True] = True


@dataclass(frozen=True)
class Err:
    error: ServiceError
    success: Literal[False] = False


Result = Union[Ok[T], Err]


def fail(kind: ErrorKind, message: str) -> Err:
    return Err(ServiceError(kind, message))


class ServiceException(Exception):
    """Raised only at the HTTP boundary to short-circuit a route with an error response."""

    def __init__(self, error: ServiceError):
        super().__init__(error.message)
        self.error = error


def unwrap(result: Result):
    if isinstance(result, Err):
        raise ServiceException(result.error)
    return result.data
