"""Unit tests for endpoint dispatch through a repository.

Sessions here are deterministic fakes (see conftest), so every transport
result arrives exactly when a test says so.
"""

from __future__ import annotations

import gc
import threading
import weakref
from typing import Any

import pytest

from api_repository.cancellables import AnyCancellable
from api_repository.errors import DefaultProgramInterfaceError, ErrorKind, MissingInputError
from api_repository.interface import FunctionEndpoint
from api_repository.repository import Repository
from api_repository.task import InvalidInputState, TaskCancelled, TaskState


def test_run_decodes_echoed_response(repository: Repository[Any, Any], session: Any) -> None:
    task = repository.run("echo", 5)

    assert task.state == TaskState.SUCCEEDED
    assert task.result() == 5
    assert session.requests == ["5"]


def test_build_failure_never_reaches_session(
    repository: Repository[Any, Any], session: Any, negative_input_error: type[Exception]
) -> None:
    task = repository.run("echo", -1)

    error = task.exception()
    assert isinstance(error, DefaultProgramInterfaceError)
    assert error.kind is ErrorKind.RUNTIME
    assert isinstance(error.cause, negative_input_error)
    assert session.requests == []


def test_missing_input_short_circuits(repository: Repository[Any, Any], session: Any) -> None:
    task = repository.task("echo")
    task.start()

    error = task.exception()
    assert isinstance(error, DefaultProgramInterfaceError)
    assert isinstance(error.cause, MissingInputError)
    assert session.requests == []


def test_transport_failure_is_wrapped(session_factory: Any, numbers_api_class: Any) -> None:
    outage = ConnectionError("offline")

    def responder(_request: Any) -> Any:
        raise outage

    repo = Repository(numbers_api_class(), session_factory(responder))
    error = repo.run("echo", 1).exception()

    assert isinstance(error, DefaultProgramInterfaceError)
    assert error.cause is outage


def test_decode_failure_is_wrapped(session_factory: Any, numbers_api_class: Any) -> None:
    repo = Repository(numbers_api_class(), session_factory(lambda _request: "not a number"))
    error = repo.run("echo", 1).exception()

    assert isinstance(error, DefaultProgramInterfaceError)
    assert isinstance(error.cause, ValueError)


def test_failure_kinds_are_distinct(session_factory: Any, numbers_api_class: Any) -> None:
    transport_error = ConnectionError("offline")

    def responder(request: Any) -> Any:
        if request == "2":
            raise transport_error
        return "x"

    repo = Repository(numbers_api_class(), session_factory(responder))
    build = repo.run("echo", -1).exception()
    transport = repo.run("echo", 2).exception()
    decode = repo.run("echo", 3).exception()

    causes = [build.cause, transport.cause, decode.cause]
    assert causes[1] is transport_error
    assert len({id(cause) for cause in causes}) == 3


def test_second_input_delivery_fails(repository: Repository[Any, Any]) -> None:
    task = repository.task("echo")
    task.receive(1)
    with pytest.raises(InvalidInputState):
        task.receive(2)


def test_endpoint_selectors_are_equivalent(
    repository: Repository[Any, Any], numbers_api_class: Any
) -> None:
    by_value = repository.run(numbers_api_class.echo, 4)
    by_path = repository.run("echo", 4)
    by_namespace = repository.run("Endpoints.echo", 4)
    by_function = repository.run(lambda api: api.echo, 4)

    assert [t.result() for t in (by_value, by_path, by_namespace, by_function)] == [4, 4, 4, 4]
    assert by_namespace.name == "static-echo"


def test_unknown_endpoint_path(repository: Repository[Any, Any]) -> None:
    with pytest.raises(TypeError):
        repository.run("does_not_exist", 1)


def test_pending_task_is_tracked_until_done(
    pending_repository: Repository[Any, Any], pending_session: Any
) -> None:
    task = pending_repository.run("echo", 5)
    assert task.state == TaskState.STARTED
    assert task in pending_session.cancellables

    pending_session.complete("5")
    assert task.result() == 5
    assert task not in pending_session.cancellables


def test_cancel_before_transport_completes(
    pending_repository: Repository[Any, Any], pending_session: Any
) -> None:
    task = pending_repository.run("echo", 5)
    seen: list[TaskState] = []
    task.add_done_callback(lambda t: seen.append(t.state))

    task.cancel()
    assert task not in pending_session.cancellables
    assert pending_session.cancelled_requests == ["5"]

    assert pending_session.complete("5") is False
    assert seen == [TaskState.CANCELLED]
    with pytest.raises(TaskCancelled):
        task.result()


def test_transport_cancelled_cancels_outer_task(
    pending_repository: Repository[Any, Any], pending_session: Any
) -> None:
    task = pending_repository.run("echo", 5)
    pending_session.pending[0].cancel()
    assert task.cancelled()


def test_replacing_session_cancels_old_work(
    pending_repository: Repository[Any, Any], pending_session: Any, session_factory: Any
) -> None:
    task = pending_repository.run("echo", 5)
    new_session = session_factory()

    pending_repository.session = new_session

    assert task.cancelled()
    assert len(pending_session.cancellables) == 0
    assert pending_session.complete("5") is False
    assert pending_repository.run("echo", 6).result() == 6
    assert new_session.requests == ["6"]


def test_replacing_interface_cancels_tracked_work(
    pending_repository: Repository[Any, Any], pending_session: Any, numbers_api_class: Any
) -> None:
    task = pending_repository.run("echo", 5)

    pending_repository.interface = numbers_api_class()

    assert task.cancelled()
    assert pending_session.cancelled_requests == ["5"]


def test_task_binds_configuration_at_start(
    repository: Repository[Any, Any], session: Any, session_factory: Any
) -> None:
    task = repository.task("echo")
    task.receive(8)
    new_session = session_factory()
    repository.session = new_session

    task.start()
    assert task.result() == 8
    assert session.requests == []
    assert new_session.requests == ["8"]


def test_transport_does_not_keep_dropped_task_alive(
    pending_repository: Repository[Any, Any], pending_session: Any
) -> None:
    task = pending_repository.task("echo")
    task.receive(5)
    task.start()
    ref = weakref.ref(task)
    del task
    gc.collect()

    assert ref() is None
    assert pending_session.complete("5") is True


def test_observers_see_swaps(repository: Repository[Any, Any], session_factory: Any) -> None:
    seen: list[str] = []
    handle = repository.add_observer(lambda name, old, new: seen.append(name))

    repository.session = session_factory()
    handle.cancel()
    repository.session = session_factory()

    assert seen == ["session"]


def test_replace_returns_previous(repository: Repository[Any, Any], session: Any) -> None:
    assert repository.replace_session(session) is session


def test_default_construction(numbers_api_class: Any, session_factory: Any) -> None:
    class NumbersRepository(Repository[Any, Any]):
        interface_class = numbers_api_class
        session_class = session_factory

    repo = NumbersRepository()
    assert isinstance(repo.interface, numbers_api_class)
    assert repo.run("echo", 2).result() == 2

    with pytest.raises(TypeError):
        Repository(interface=numbers_api_class())


def test_close_cancels_everything(
    pending_repository: Repository[Any, Any], pending_session: Any
) -> None:
    own: list[str] = []
    pending_repository.cancellables.insert(AnyCancellable(lambda: own.append("own")))

    with pending_repository as repo:
        task = repo.run("echo", 1)

    assert task.cancelled()
    assert own == ["own"]


def test_interface_without_error_type_uses_default(session: Any) -> None:
    class BareAPI:
        double = FunctionEndpoint(build=lambda _api, n: n * 2, decode=lambda r: r)

    repo = Repository(BareAPI(), session)
    assert repo.run("double", 3).result() == 6

    task = repo.task("double")
    task.start()
    assert isinstance(task.exception(), DefaultProgramInterfaceError)


def test_custom_error_type(session: Any) -> None:
    class APIError(Exception):
        def __init__(self, origin: str, cause: BaseException) -> None:
            super().__init__(origin)
            self.origin = origin
            self.cause = cause

        @classmethod
        def from_request_error(cls, error: BaseException) -> APIError:
            return cls("request", error)

        @classmethod
        def from_runtime_error(cls, error: BaseException) -> APIError:
            return cls("runtime", error)

    class StrictAPI:
        Error = APIError
        positive = FunctionEndpoint(build=lambda _api, n: n, decode=lambda r: r)

    repo = Repository(StrictAPI(), session)
    task = repo.task("positive")
    task.start()

    error = task.exception()
    assert isinstance(error, APIError)
    assert error.origin == "runtime"


def test_swap_completes_when_tracked_work_fails_to_cancel(
    pending_repository: Repository[Any, Any], pending_session: Any, session_factory: Any
) -> None:
    def boom() -> None:
        raise RuntimeError("handle failed")

    task = pending_repository.run("echo", 5)
    pending_session.cancellables.insert(AnyCancellable(boom))
    seen: list[str] = []
    pending_repository.add_observer(lambda name, old, new: seen.append(name))

    pending_repository.session = session_factory()

    assert task.cancelled()
    assert seen == ["session"]
    assert len(pending_session.cancellables) == 0


def test_session_swap_is_a_barrier_for_concurrent_runs(
    pending_repository: Repository[Any, Any], pending_session: Any, session_factory: Any
) -> None:
    new_session = session_factory(auto_complete=False)
    tasks: list[Any] = []
    tasks_lock = threading.Lock()
    go = threading.Barrier(5)

    def worker(offset: int) -> None:
        go.wait()
        for i in range(50):
            task = pending_repository.run("echo", offset * 100 + i)
            with tasks_lock:
                tasks.append(task)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    go.wait()
    pending_repository.replace_session(new_session)
    for thread in threads:
        thread.join()

    assert len(tasks) == 200
    assert len(pending_session.cancellables) == 0
    assert all(transport.cancelled() for transport in pending_session.pending)
    for task in tasks:
        assert task.cancelled() or task in new_session.cancellables
    assert len(new_session.cancellables) + len(pending_session.pending) == 200
