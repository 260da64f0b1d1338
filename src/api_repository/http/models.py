"""Transport-level request and response values for the HTTP session."""

from __future__ import annotations

import json as jsonlib
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class HTTPRequest:
    """A request relative to the session's base URL (or an absolute URL)."""

    method: str
    path: str
    params: Mapping[str, Any] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)
    json: Any = None
    data: bytes | str | None = None

    def url(self, base_url: str) -> str:
        if self.path.startswith(("http://", "https://")) or not base_url:
            return self.path
        return f"{base_url.rstrip('/')}/{self.path.lstrip('/')}"


@dataclass(frozen=True, slots=True)
class HTTPResponse:
    status_code: int
    headers: Mapping[str, str]
    content: bytes
    url: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return jsonlib.loads(self.content) if self.content else None


class HTTPRequestError(Exception):
    """The session could not get a successful response for a request.

    `response` is set when the server answered with a non-2xx status.
    """

    def __init__(
        self,
        message: str,
        *,
        request: HTTPRequest,
        response: HTTPResponse | None = None,
    ) -> None:
        super().__init__(message)
        self.request = request
        self.response = response

    @property
    def status_code(self) -> int | None:
        return self.response.status_code if self.response is not None else None
