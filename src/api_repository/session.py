"""The transport collaborator a repository dispatches requests through."""

from __future__ import annotations

from typing import Any, Protocol

from api_repository.cancellables import Cancellables
from api_repository.task import Task


class RequestSession(Protocol):
    """Executes transport requests and tracks the work it has in flight.

    `task` returns a task that has not been started yet; its success value is
    the transport response and its failure is the transport error.
    `cancellables` is bulk-cancelled when a repository moves to a new
    configuration.
    """

    cancellables: Cancellables

    def task(self, request: Any) -> Task[None, Any, BaseException]: ...
