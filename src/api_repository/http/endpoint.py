"""JSON-over-HTTP endpoints validated with pydantic."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from string import Formatter
from typing import Any, ClassVar
from urllib.parse import quote

from pydantic import BaseModel, TypeAdapter, ValidationError

from api_repository.config import RepositorySettings
from api_repository.errors import (
    DefaultProgramInterfaceError,
    InvalidInputError,
    InvalidOutputError,
)
from api_repository.http.models import HTTPRequest, HTTPResponse

logger = logging.getLogger(__name__)

_QUERY_METHODS = frozenset({"GET", "DELETE", "HEAD", "OPTIONS"})


class HTTPInterface:
    """Base for interfaces served over HTTP.

    Subclasses declare their endpoints as class attributes. A non-empty
    `base_url` makes every request URL absolute; otherwise the session's base
    URL applies.
    """

    Error: ClassVar[type[DefaultProgramInterfaceError]] = DefaultProgramInterfaceError

    def __init__(self, base_url: str = "", headers: Mapping[str, str] | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})

    @classmethod
    def from_settings(cls, settings: RepositorySettings) -> HTTPInterface:
        return cls(base_url=settings.base_url)


@lru_cache(maxsize=256)
def _adapter(tp: Any) -> TypeAdapter[Any]:
    return TypeAdapter(tp)


@dataclass(frozen=True, slots=True)
class JSONEndpoint:
    """An endpoint that sends JSON and decodes a JSON response.

    `path` is a format string filled from the input's fields. Mapping and
    pydantic-model inputs contribute their fields; any other input is
    available as `{input}`. Fields the path does not consume go into the
    query string for GET-like methods and into the JSON body otherwise; a
    bare input the path does not use becomes the JSON body as is.
    """

    method: str
    path: str
    input_type: Any = None
    output_type: Any = None
    name: str = ""

    def build_request(self, interface: Any, input: Any) -> HTTPRequest:
        if self.input_type is not None:
            try:
                input = _adapter(self.input_type).validate_python(input)
            except ValidationError as exc:
                raise InvalidInputError(f"Invalid input for {self._label()}: {exc}") from exc

        fields = _fields(input)
        placeholders = {
            name for _, name, _, _ in Formatter().parse(self.path) if name is not None and name
        }
        missing = placeholders - fields.keys()
        if missing:
            raise InvalidInputError(
                f"Missing path parameters for {self._label()}: {', '.join(sorted(missing))}"
            )
        path = self.path.format(**{key: quote(str(fields[key]), safe="") for key in placeholders})
        rest = {key: value for key, value in fields.items() if key not in placeholders}

        base_url = getattr(interface, "base_url", "") or ""
        if base_url:
            path = f"{base_url}/{path.lstrip('/')}"

        method = self.method.upper()
        if method in _QUERY_METHODS:
            return HTTPRequest(
                method=method,
                path=path,
                params=rest,
                headers=getattr(interface, "headers", None) or {},
            )
        body: Any = rest or None
        if _is_bare(input) and "input" not in placeholders:
            body = _adapter(type(input)).dump_python(input, mode="json")
        return HTTPRequest(
            method=method,
            path=path,
            headers=getattr(interface, "headers", None) or {},
            json=body,
        )

    def decode_output(self, response: HTTPResponse) -> Any:
        try:
            payload = response.json()
            if self.output_type is None:
                return payload
            return _adapter(self.output_type).validate_python(payload)
        except ValueError as exc:
            logger.debug("Response did not validate", extra={"endpoint": self._label()})
            raise InvalidOutputError(f"Invalid output for {self._label()}: {exc}") from exc

    def _label(self) -> str:
        return self.name or f"{self.method.upper()} {self.path}"


def _is_bare(input: Any) -> bool:
    return input is not None and not isinstance(input, (BaseModel, Mapping))


def _fields(input: Any) -> dict[str, Any]:
    if input is None:
        return {}
    if isinstance(input, BaseModel):
        return input.model_dump(mode="json", exclude_none=True)
    if isinstance(input, Mapping):
        return dict(input)
    return {"input": input}
