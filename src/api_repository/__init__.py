"""Bind declarative API interfaces to pluggable request sessions.

- `Repository` dispatches an interface's endpoints through a session
- `Task` is the cancellable, observable unit each dispatch returns
- `api_repository.http` provides a requests-based session and JSON endpoints
"""

__version__ = "0.1.0"

from api_repository.cancellables import AnyCancellable, Cancellable, Cancellables
from api_repository.errors import (
    DefaultProgramInterfaceError,
    ErrorKind,
    InvalidInputError,
    InvalidOutputError,
    MissingInputError,
    ProgramInterfaceError,
    RepositoryRuntimeError,
)
from api_repository.interface import Endpoint, FunctionEndpoint, ProgramInterface
from api_repository.repository import Repository
from api_repository.session import RequestSession
from api_repository.task import (
    Failure,
    InvalidInputState,
    Success,
    Task,
    TaskCancelled,
    TaskState,
    TaskStateError,
    coroutine_task,
)

__all__ = [
    "__version__",
    "AnyCancellable",
    "Cancellable",
    "Cancellables",
    "DefaultProgramInterfaceError",
    "Endpoint",
    "ErrorKind",
    "Failure",
    "FunctionEndpoint",
    "InvalidInputError",
    "InvalidInputState",
    "InvalidOutputError",
    "MissingInputError",
    "ProgramInterface",
    "ProgramInterfaceError",
    "Repository",
    "RepositoryRuntimeError",
    "RequestSession",
    "Success",
    "Task",
    "TaskCancelled",
    "TaskState",
    "TaskStateError",
    "coroutine_task",
]
