"""A cancellable, observable unit of asynchronous work.

A `Task` moves through an explicit state machine:

    uninitialized -> ready -> started -> succeeded | failed | cancelled

Input may be delivered once, the body runs once, and exactly one terminal
state is ever reached. The body is a callable that receives the task, kicks
off the work and returns a `Cancellable` for it; the work reports back through
`Task.send`.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections.abc import Awaitable, Callable, Generator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeAlias, TypeVar

from api_repository.cancellables import AnyCancellable, Cancellable

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")
FailureT = TypeVar("FailureT", bound=BaseException)
ResultT = TypeVar("ResultT")


class TaskState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


ALLOWED_TRANSITIONS: dict[TaskState, set[TaskState]] = {
    TaskState.UNINITIALIZED: {TaskState.READY, TaskState.STARTED, TaskState.CANCELLED},
    TaskState.READY: {TaskState.STARTED, TaskState.CANCELLED},
    TaskState.STARTED: {TaskState.SUCCEEDED, TaskState.FAILED, TaskState.CANCELLED},
    TaskState.SUCCEEDED: set(),
    TaskState.FAILED: set(),
    TaskState.CANCELLED: set(),
}

TERMINAL_STATES: frozenset[TaskState] = frozenset(
    {TaskState.SUCCEEDED, TaskState.FAILED, TaskState.CANCELLED}
)


class TaskStateError(ValueError):
    """Raised when a task is used in a way its current state does not allow."""


class InvalidInputState(TaskStateError):
    """Raised when input is delivered twice or after the task started."""


class TaskCancelled(Exception):
    """Raised when reading the result of a cancelled task."""


@dataclass(frozen=True, slots=True)
class Success(Generic[OutputT]):
    value: OutputT


@dataclass(frozen=True, slots=True)
class Failure(Generic[FailureT]):
    error: FailureT


Outcome: TypeAlias = Success[Any] | Failure[Any]

_NO_INPUT: Any = object()
_task_ids = itertools.count(1)


class Task(Generic[InputT, OutputT, FailureT]):
    """Generic task with typed input, output and failure channels."""

    def __init__(
        self,
        body: Callable[[Task[InputT, OutputT, FailureT]], Cancellable],
        *,
        name: str | None = None,
    ) -> None:
        self._body: Callable[[Task[InputT, OutputT, FailureT]], Cancellable] | None = body
        self._name = name or f"task-{next(_task_ids)}"
        self._lock = threading.Lock()
        self._state = TaskState.UNINITIALIZED
        self._input: InputT = _NO_INPUT
        self._outcome: Outcome | None = None
        self._cancellable: Cancellable | None = None
        self._callbacks: list[Callable[[Task[InputT, OutputT, FailureT]], object]] = []

    @classmethod
    def succeeded(cls, value: OutputT, *, name: str | None = None) -> Task[Any, OutputT, Any]:
        """Return a task that has already succeeded with `value`."""

        def body(task: Task[Any, OutputT, Any]) -> Cancellable:
            task.send(Success(value))
            return AnyCancellable.empty()

        task: Task[Any, OutputT, Any] = cls(body, name=name)
        task.start()
        return task

    @classmethod
    def failed(cls, error: FailureT, *, name: str | None = None) -> Task[Any, Any, FailureT]:
        """Return a task that has already failed with `error`."""

        def body(task: Task[Any, Any, FailureT]) -> Cancellable:
            task.send(Failure(error))
            return AnyCancellable.empty()

        task: Task[Any, Any, FailureT] = cls(body, name=name)
        task.start()
        return task

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> TaskState:
        return self._state

    @property
    def has_input(self) -> bool:
        return self._input is not _NO_INPUT

    @property
    def input(self) -> InputT:
        if self._input is _NO_INPUT:
            raise InvalidInputState(f"Task {self._name} has not received input")
        return self._input

    @property
    def outcome(self) -> Outcome | None:
        """The published outcome, or None while pending or after cancellation."""

        return self._outcome

    def done(self) -> bool:
        return self._state in TERMINAL_STATES

    def cancelled(self) -> bool:
        return self._state is TaskState.CANCELLED

    def receive(self, value: InputT) -> None:
        """Deliver the task's single input value."""

        with self._lock:
            if self._state is not TaskState.UNINITIALIZED:
                raise InvalidInputState(
                    f"Task {self._name} cannot receive input in state {self._state.value}"
                )
            self._state = TaskState.READY
            self._input = value

    def start(self) -> bool:
        """Run the body. Returns False if the task was already started or finished."""

        with self._lock:
            if TaskState.STARTED not in ALLOWED_TRANSITIONS[self._state]:
                logger.debug(
                    "Ignoring start", extra={"task": self._name, "state": self._state.value}
                )
                return False
            self._state = TaskState.STARTED
            body, self._body = self._body, None

        logger.debug("Task started", extra={"task": self._name})
        assert body is not None
        try:
            cancellable = body(self)
        except Exception as exc:
            logger.exception("Task body raised", extra={"task": self._name})
            self.send(Failure(exc))
            return True

        with self._lock:
            if self._state is TaskState.STARTED:
                self._cancellable = cancellable
                return True
            cancelled = self._state is TaskState.CANCELLED

        # The body finished or was cancelled before handing back its handle.
        if cancelled:
            self._release(cancellable)
        return True

    def send(self, outcome: Outcome) -> bool:
        """Publish the terminal outcome. Later outcomes are dropped."""

        to = TaskState.SUCCEEDED if isinstance(outcome, Success) else TaskState.FAILED
        with self._lock:
            if to not in ALLOWED_TRANSITIONS[self._state]:
                logger.debug(
                    "Dropping late outcome",
                    extra={"task": self._name, "state": self._state.value},
                )
                return False
            self._state = to
            self._outcome = outcome
            self._cancellable = None
            callbacks, self._callbacks = self._callbacks, []

        logger.debug("Task finished", extra={"task": self._name, "state": to.value})
        self._run_callbacks(callbacks)
        return True

    def cancel(self) -> bool:
        """Cancel the task unless it already reached a terminal state."""

        with self._lock:
            if TaskState.CANCELLED not in ALLOWED_TRANSITIONS[self._state]:
                return False
            self._state = TaskState.CANCELLED
            self._body = None
            cancellable, self._cancellable = self._cancellable, None
            callbacks, self._callbacks = self._callbacks, []

        logger.debug("Task cancelled", extra={"task": self._name})
        if cancellable is not None:
            self._release(cancellable)
        self._run_callbacks(callbacks)
        return True

    def add_done_callback(self, fn: Callable[[Task[InputT, OutputT, FailureT]], object]) -> None:
        """Call `fn(task)` once the task is terminal (immediately if it already is)."""

        with self._lock:
            if self._state not in TERMINAL_STATES:
                self._callbacks.append(fn)
                return
        self._run_callbacks([fn])

    def result(self) -> OutputT:
        """Return the value, raise the failure, or raise `TaskCancelled`."""

        outcome = self._outcome
        if isinstance(outcome, Success):
            return outcome.value
        if isinstance(outcome, Failure):
            raise outcome.error
        if self._state is TaskState.CANCELLED:
            raise TaskCancelled(f"Task {self._name} was cancelled")
        raise TaskStateError(f"Task {self._name} has not finished ({self._state.value})")

    def exception(self) -> FailureT | None:
        outcome = self._outcome
        return outcome.error if isinstance(outcome, Failure) else None

    async def wait(self) -> OutputT:
        """Wait for the terminal state from inside an event loop, then `result()`."""

        if not self.done():
            loop = asyncio.get_running_loop()
            waiter: asyncio.Future[None] = loop.create_future()

            def _wake(_task: Task[InputT, OutputT, FailureT]) -> None:
                loop.call_soon_threadsafe(_resolve, waiter)

            self.add_done_callback(_wake)
            await waiter
        return self.result()

    def __await__(self) -> Generator[Any, None, OutputT]:
        return self.wait().__await__()

    def __repr__(self) -> str:
        return f"<Task {self._name} state={self._state.value}>"

    def _release(self, cancellable: Cancellable) -> None:
        try:
            cancellable.cancel()
        except Exception:
            logger.exception("Cancelling task work raised", extra={"task": self._name})

    def _run_callbacks(
        self, callbacks: list[Callable[[Task[InputT, OutputT, FailureT]], object]]
    ) -> None:
        for fn in callbacks:
            try:
                fn(self)
            except Exception:
                logger.exception("Task done-callback raised", extra={"task": self._name})


def _resolve(waiter: asyncio.Future[None]) -> None:
    if not waiter.done():
        waiter.set_result(None)


def coroutine_task(
    factory: Callable[[], Awaitable[ResultT]],
    *,
    loop: asyncio.AbstractEventLoop | None = None,
    name: str | None = None,
) -> Task[None, ResultT, BaseException]:
    """Wrap an async callable as a not-yet-started task.

    On start the coroutine is scheduled on `loop`, or on the running loop when
    no loop is given. Cancelling the task cancels the scheduled coroutine.
    """

    def body(task: Task[None, ResultT, BaseException]) -> Cancellable:
        try:
            running: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        future: asyncio.Future[ResultT] | Any
        if loop is None or loop is running:
            if running is None:
                raise RuntimeError("coroutine_task needs a running event loop or an explicit loop")
            future = running.create_task(_as_coroutine(factory))
            target = running
        else:
            future = asyncio.run_coroutine_threadsafe(_as_coroutine(factory), loop)
            target = loop

        def _finish(fut: Any) -> None:
            if fut.cancelled():
                task.cancel()
                return
            exc = fut.exception()
            if exc is not None:
                task.send(Failure(exc))
            else:
                task.send(Success(fut.result()))

        future.add_done_callback(_finish)

        def _cancel() -> None:
            # asyncio futures may only be touched from their loop's thread.
            if not target.is_closed():
                target.call_soon_threadsafe(future.cancel)

        return AnyCancellable(_cancel)

    return Task(body, name=name)


async def _as_coroutine(factory: Callable[[], Awaitable[ResultT]]) -> ResultT:
    return await factory()
