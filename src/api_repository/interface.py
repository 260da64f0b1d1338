"""Endpoints and the program interfaces that group them."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from operator import attrgetter
from typing import Any, ClassVar, Generic, Protocol, TypeVar, runtime_checkable

from api_repository.errors import DefaultProgramInterfaceError, ProgramInterfaceError

RootT = TypeVar("RootT")
RootT_contra = TypeVar("RootT_contra", contravariant=True)
InputT_contra = TypeVar("InputT_contra", contravariant=True)
OutputT_co = TypeVar("OutputT_co", covariant=True)
InputT = TypeVar("InputT")
OutputT = TypeVar("OutputT")
RequestT = TypeVar("RequestT")
ResponseT = TypeVar("ResponseT")


@runtime_checkable
class Endpoint(Protocol[RootT_contra, InputT_contra, OutputT_co]):
    """Stateless description of one API operation.

    Both methods are synchronous and may raise; they must not block on I/O.
    """

    def build_request(self, interface: RootT_contra, input: InputT_contra) -> Any: ...

    def decode_output(self, response: Any) -> OutputT_co: ...


class ProgramInterface(Protocol):
    """The contract surface of a remote API.

    `Error` is the interface's error type. An optional `Endpoints` class
    attribute can hold endpoints that do not depend on interface state.
    """

    Error: ClassVar[type[ProgramInterfaceError]]


@dataclass(frozen=True, slots=True)
class FunctionEndpoint(Generic[RootT, InputT, OutputT, RequestT, ResponseT]):
    """An endpoint assembled from two plain functions."""

    build: Callable[[RootT, InputT], RequestT]
    decode: Callable[[ResponseT], OutputT]
    name: str = ""

    def build_request(self, interface: RootT, input: InputT) -> RequestT:
        return self.build(interface, input)

    def decode_output(self, response: ResponseT) -> OutputT:
        return self.decode(response)


EndpointSelector = Endpoint[Any, Any, Any] | str | Callable[[Any], Endpoint[Any, Any, Any]]


def resolve_endpoint(interface: object, selector: EndpointSelector) -> Endpoint[Any, Any, Any]:
    """Turn an endpoint, a dotted attribute path, or a selector function into an endpoint.

    Paths are looked up on the interface instance, so `"Endpoints.name"`
    reaches the class-level endpoint namespace.
    """

    if isinstance(selector, str):
        try:
            endpoint = attrgetter(selector)(interface)
        except AttributeError as exc:
            raise TypeError(
                f"{type(interface).__name__} has no endpoint at {selector!r}"
            ) from exc
    elif isinstance(selector, Endpoint):
        return selector
    elif callable(selector):
        endpoint = selector(interface)
    else:
        raise TypeError(f"Cannot resolve an endpoint from {selector!r}")

    if not isinstance(endpoint, Endpoint):
        raise TypeError(f"{selector!r} does not select an endpoint (got {endpoint!r})")
    return endpoint


def interface_error_type(interface: object) -> type[ProgramInterfaceError]:
    """Return the interface's declared error type, or the default one."""

    error_type = getattr(interface, "Error", None)
    if error_type is None:
        return DefaultProgramInterfaceError
    return error_type
