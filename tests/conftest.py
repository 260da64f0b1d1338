"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from api_repository.cancellables import AnyCancellable, Cancellable, Cancellables
from api_repository.errors import DefaultProgramInterfaceError
from api_repository.interface import FunctionEndpoint
from api_repository.repository import Repository
from api_repository.task import Failure, Success, Task


class NegativeInputError(ValueError):
    pass


def _build_number(_interface: Any, value: int) -> str:
    if value < 0:
        raise NegativeInputError(f"negative input: {value}")
    return str(value)


class NumbersAPI:
    """Interface whose single endpoint round-trips an int through a string request."""

    Error = DefaultProgramInterfaceError

    echo = FunctionEndpoint(build=_build_number, decode=int, name="echo")

    class Endpoints:
        echo = FunctionEndpoint(build=_build_number, decode=int, name="static-echo")


class FakeSession:
    """Deterministic request session.

    - Records every request it is asked to execute
    - Answers with `responder(request)` right away, or holds the transport
      task open until `complete()` / `fail()` when `auto_complete` is False
    """

    def __init__(
        self,
        responder: Callable[[Any], Any] = lambda request: request,
        *,
        auto_complete: bool = True,
    ) -> None:
        self.responder = responder
        self.auto_complete = auto_complete
        self.cancellables = Cancellables()
        self.requests: list[Any] = []
        self.pending: list[Task[None, Any, BaseException]] = []
        self.cancelled_requests: list[Any] = []

    def task(self, request: Any) -> Task[None, Any, BaseException]:
        self.requests.append(request)

        def body(task: Task[None, Any, BaseException]) -> Cancellable:
            if self.auto_complete:
                try:
                    task.send(Success(self.responder(request)))
                except Exception as exc:
                    task.send(Failure(exc))
            else:
                self.pending.append(task)
            return AnyCancellable(lambda: self.cancelled_requests.append(request))

        return Task(body, name=f"fake {request!r}")

    def complete(self, value: Any, index: int = 0) -> bool:
        return self.pending[index].send(Success(value))

    def fail(self, error: BaseException, index: int = 0) -> bool:
        return self.pending[index].send(Failure(error))


@pytest.fixture
def session() -> FakeSession:
    """Provide a session that echoes requests back immediately."""
    return FakeSession()


@pytest.fixture
def pending_session() -> FakeSession:
    """Provide a session whose transport tasks never finish on their own."""
    return FakeSession(auto_complete=False)


@pytest.fixture
def session_factory() -> Callable[..., FakeSession]:
    return FakeSession


@pytest.fixture
def repository(session: FakeSession) -> Repository[NumbersAPI, FakeSession]:
    return Repository(NumbersAPI(), session)


@pytest.fixture
def pending_repository(pending_session: FakeSession) -> Repository[NumbersAPI, FakeSession]:
    return Repository(NumbersAPI(), pending_session)


@pytest.fixture
def numbers_api_class() -> type[NumbersAPI]:
    return NumbersAPI


@pytest.fixture
def negative_input_error() -> type[NegativeInputError]:
    return NegativeInputError
