"""HTTP transport built on requests, with pydantic-validated JSON endpoints."""

from api_repository.http.endpoint import HTTPInterface, JSONEndpoint
from api_repository.http.models import HTTPRequest, HTTPRequestError, HTTPResponse
from api_repository.http.session import HTTPRequestSession

__all__ = [
    "HTTPInterface",
    "HTTPRequest",
    "HTTPRequestError",
    "HTTPRequestSession",
    "HTTPResponse",
    "JSONEndpoint",
]
