"""Error model shared by program interfaces and the repository."""

from __future__ import annotations

from enum import Enum
from typing import Protocol, TypeVar, runtime_checkable

ErrorT = TypeVar("ErrorT", bound="ProgramInterfaceError")


@runtime_checkable
class ProgramInterfaceError(Protocol):
    """What an interface's error type must support.

    The repository only ever builds interface errors through these two
    constructors, so every failure a caller sees has the interface's type.
    """

    @classmethod
    def from_request_error(cls: type[ErrorT], error: BaseException) -> ErrorT: ...

    @classmethod
    def from_runtime_error(cls: type[ErrorT], error: BaseException) -> ErrorT: ...


class ErrorKind(str, Enum):
    BAD_REQUEST = "bad_request"
    RUNTIME = "runtime"


class DefaultProgramInterfaceError(Exception):
    """Interface error with two cases: a transport request error or anything else."""

    def __init__(self, kind: ErrorKind, cause: BaseException) -> None:
        super().__init__(f"{kind.value}: {cause!r}")
        self.kind = kind
        self.cause = cause
        self.__cause__ = cause

    @classmethod
    def from_request_error(cls, error: BaseException) -> DefaultProgramInterfaceError:
        return cls(ErrorKind.BAD_REQUEST, error)

    @classmethod
    def from_runtime_error(cls, error: BaseException) -> DefaultProgramInterfaceError:
        return cls(ErrorKind.RUNTIME, error)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DefaultProgramInterfaceError):
            return NotImplemented
        return self.kind is other.kind and self.cause is other.cause

    def __hash__(self) -> int:
        return hash((self.kind, id(self.cause)))


class RepositoryRuntimeError(Exception):
    """Base class for failures the repository itself detects."""


class MissingInputError(RepositoryRuntimeError):
    """A task was started without ever receiving input."""

    def __init__(self, message: str = "Task started without input") -> None:
        super().__init__(message)


class InvalidInputError(RepositoryRuntimeError):
    """An endpoint rejected its input while building a request."""


class InvalidOutputError(RepositoryRuntimeError):
    """An endpoint could not interpret a transport response."""
