"""The repository: one program interface bound to one compatible request session.

`Repository.task()` builds a task that, once started, asks the endpoint for a
request, sends it through the session and decodes the response.
`Repository.run()` does all of that in one call and keeps the task alive in
the session's registry until it finishes.

Swapping `interface` or `session` cancels everything the outgoing session is
tracking. Swaps and `run()` share a lock, so a swap never races a
half-registered task.
"""

from __future__ import annotations

import logging
import threading
import weakref
from collections.abc import Callable
from typing import Any, ClassVar, Generic, TypeVar

from api_repository.cancellables import AnyCancellable, Cancellable, Cancellables
from api_repository.errors import MissingInputError
from api_repository.interface import (
    Endpoint,
    EndpointSelector,
    interface_error_type,
    resolve_endpoint,
)
from api_repository.session import RequestSession
from api_repository.task import Failure, Success, Task

logger = logging.getLogger(__name__)

InterfaceT = TypeVar("InterfaceT")
SessionT = TypeVar("SessionT", bound=RequestSession)

Observer = Callable[[str, Any, Any], object]


class Repository(Generic[InterfaceT, SessionT]):
    """Composition root binding a program interface to a request session.

    Subclasses may set `interface_class` and/or `session_class` so the
    matching constructor argument can be left out.
    """

    interface_class: ClassVar[Callable[[], Any] | None] = None
    session_class: ClassVar[Callable[[], Any] | None] = None

    def __init__(
        self,
        interface: InterfaceT | None = None,
        session: SessionT | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._observers: list[Observer] = []
        self.cancellables = Cancellables()
        self._interface: InterfaceT = (
            interface if interface is not None else self._default("interface_class")
        )
        self._session: SessionT = (
            session if session is not None else self._default("session_class")
        )

    @classmethod
    def _default(cls, attribute: str) -> Any:
        factory = getattr(cls, attribute)
        if factory is None:
            name = attribute.removesuffix("_class")
            raise TypeError(f"{cls.__name__} needs a {name} (no {attribute} configured)")
        return factory()

    @property
    def interface(self) -> InterfaceT:
        return self._interface

    @interface.setter
    def interface(self, value: InterfaceT) -> None:
        self.replace_interface(value)

    @property
    def session(self) -> SessionT:
        return self._session

    @session.setter
    def session(self, value: SessionT) -> None:
        self.replace_session(value)

    def replace_interface(self, interface: InterfaceT) -> InterfaceT:
        """Swap the interface and cancel all work tracked by the session."""

        with self._lock:
            old = self._interface
            self._interface = interface
            cancelled = self._session.cancellables.cancel()
        logger.info(
            "Repository interface replaced",
            extra={"interface": type(interface).__name__, "cancelled": cancelled},
        )
        self._notify("interface", old, interface)
        return old

    def replace_session(self, session: SessionT) -> SessionT:
        """Swap the session and cancel all work tracked by the old one."""

        with self._lock:
            old = self._session
            self._session = session
            cancelled = old.cancellables.cancel()
        logger.info(
            "Repository session replaced",
            extra={"session": type(session).__name__, "cancelled": cancelled},
        )
        self._notify("session", old, session)
        return old

    def add_observer(self, observer: Observer) -> AnyCancellable:
        """Call `observer(name, old, new)` after every interface or session swap.

        Cancelling the returned handle unsubscribes.
        """

        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return AnyCancellable(_unsubscribe)

    def task(self, endpoint: EndpointSelector) -> Task[Any, Any, Any]:
        """Return a fresh, not-yet-started task dispatching `endpoint`.

        The interface and session are read when the task starts.
        """

        resolved = resolve_endpoint(self._interface, endpoint)
        return Task(self._dispatch_body(resolved), name=_endpoint_name(resolved))

    def run(self, endpoint: EndpointSelector, input: Any) -> Task[Any, Any, Any]:
        """Dispatch `endpoint` with `input` and return the running task."""

        with self._lock:
            task = self.task(endpoint)
            try:
                task.receive(input)
            except Exception as exc:
                error_type = interface_error_type(self._interface)
                return Task.failed(error_type.from_runtime_error(exc))
            task.start()
            self._session.cancellables.insert(task)
        return task

    def close(self) -> None:
        """Cancel everything tracked by the session and by the repository."""

        with self._lock:
            self._session.cancellables.cancel()
            self.cancellables.cancel()

    def __enter__(self) -> Repository[InterfaceT, SessionT]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _dispatch_body(
        self, endpoint: Endpoint[Any, Any, Any]
    ) -> Callable[[Task[Any, Any, Any]], Cancellable]:
        def body(task: Task[Any, Any, Any]) -> Cancellable:
            with self._lock:
                interface = self._interface
                session = self._session
            error_type = interface_error_type(interface)

            if not task.has_input:
                task.send(Failure(error_type.from_runtime_error(MissingInputError())))
                return AnyCancellable.empty()

            try:
                request = endpoint.build_request(interface, task.input)
                transport = session.task(request)
            except Exception as exc:
                logger.debug("Request not dispatched", extra={"task": task.name}, exc_info=True)
                task.send(Failure(error_type.from_runtime_error(exc)))
                return AnyCancellable.empty()

            task_ref = weakref.ref(task)

            def on_transport_done(transport: Task[Any, Any, Any]) -> None:
                outer = task_ref()
                if outer is None or outer.done():
                    return
                outcome = transport.outcome
                if outcome is None:
                    outer.cancel()
                elif isinstance(outcome, Success):
                    try:
                        value = endpoint.decode_output(outcome.value)
                    except Exception as exc:
                        outer.send(Failure(error_type.from_runtime_error(exc)))
                    else:
                        outer.send(Success(value))
                else:
                    outer.send(Failure(error_type.from_runtime_error(outcome.error)))

            transport.add_done_callback(on_transport_done)
            transport.start()
            return transport

        return body

    def _notify(self, name: str, old: Any, new: Any) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(name, old, new)
            except Exception:
                logger.exception("Repository observer raised", extra={"property": name})


def _endpoint_name(endpoint: object) -> str | None:
    name = getattr(endpoint, "name", None)
    return name if isinstance(name, str) and name else None
