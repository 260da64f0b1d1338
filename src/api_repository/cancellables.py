"""Cancellable handles and the registry sessions use to track in-flight work."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class Cancellable(Protocol):
    """Anything that can be told to stop and release its resources."""

    def cancel(self) -> object: ...


class AnyCancellable:
    """A cancellable backed by a plain callable.

    The callable runs at most once, however many times `cancel()` is called.
    """

    __slots__ = ("_on_cancel", "_lock")

    def __init__(self, on_cancel: Callable[[], object] | None = None) -> None:
        self._on_cancel = on_cancel
        self._lock = threading.Lock()

    @classmethod
    def empty(cls) -> AnyCancellable:
        """Return a handle for work that is already finished."""

        return cls(None)

    @property
    def cancelled(self) -> bool:
        return self._on_cancel is None

    def cancel(self) -> bool:
        with self._lock:
            on_cancel, self._on_cancel = self._on_cancel, None
        if on_cancel is None:
            return False
        on_cancel()
        return True


class Cancellables:
    """Thread-safe bag of cancellable handles.

    Handles exposing `add_done_callback` (tasks) drop out of the registry on
    their own once they reach a terminal state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[int, Cancellable] = {}

    def insert(self, item: Cancellable) -> None:
        with self._lock:
            self._items[id(item)] = item
        add_done_callback = getattr(item, "add_done_callback", None)
        if callable(add_done_callback):
            add_done_callback(self.remove)

    def remove(self, item: Cancellable) -> bool:
        with self._lock:
            if self._items.get(id(item)) is not item:
                return False
            del self._items[id(item)]
            return True

    def cancel(self) -> int:
        """Cancel and forget every tracked handle; return how many there were."""

        with self._lock:
            items = list(self._items.values())
            self._items.clear()
        if items:
            logger.debug("Cancelling tracked work", extra={"count": len(items)})
        for item in items:
            try:
                item.cancel()
            except Exception:
                logger.exception("Cancelling tracked work raised")
        return len(items)

    def __contains__(self, item: object) -> bool:
        with self._lock:
            return self._items.get(id(item)) is item

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[Cancellable]:
        with self._lock:
            return iter(list(self._items.values()))
