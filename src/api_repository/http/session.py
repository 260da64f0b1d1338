"""A request session that sends `HTTPRequest`s with `requests`.

`requests` is blocking, so each call runs in a thread pool and is bridged
back into the event loop that started the task.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor

import requests

from api_repository.cancellables import Cancellables
from api_repository.config import RepositorySettings
from api_repository.http.models import HTTPRequest, HTTPRequestError, HTTPResponse
from api_repository.task import Task, coroutine_task

logger = logging.getLogger(__name__)


class HTTPRequestSession:
    """Executes HTTP requests and tracks the tasks a repository runs through it."""

    def __init__(
        self,
        base_url: str = "",
        *,
        timeout: float = 30.0,
        headers: Mapping[str, str] | None = None,
        max_workers: int = 4,
        http: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.cancellables = Cancellables()
        self._http = http or requests.Session()
        if headers:
            self._http.headers.update(headers)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="api-repository-http"
        )

    @classmethod
    def from_settings(
        cls, settings: RepositorySettings, *, http: requests.Session | None = None
    ) -> HTTPRequestSession:
        return cls(
            settings.base_url,
            timeout=settings.timeout_seconds,
            headers={"User-Agent": settings.user_agent},
            max_workers=settings.max_workers,
            http=http,
        )

    def task(self, request: HTTPRequest) -> Task[None, HTTPResponse, BaseException]:
        async def _execute() -> HTTPResponse:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, self.send, request)

        return coroutine_task(_execute, name=f"{request.method.upper()} {request.path}")

    def send(self, request: HTTPRequest) -> HTTPResponse:
        """Send `request` synchronously, raising `HTTPRequestError` on any failure."""

        url = request.url(self.base_url)
        method = request.method.upper()
        logger.debug("Sending HTTP request", extra={"method": method, "url": url})
        try:
            resp = self._http.request(
                method,
                url,
                params=dict(request.params) or None,
                headers=dict(request.headers) or None,
                json=request.json,
                data=request.data,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning("HTTP request failed", extra={"method": method, "url": url})
            raise HTTPRequestError(f"{method} {url} failed: {e}", request=request) from e

        response = HTTPResponse(
            status_code=resp.status_code,
            headers=dict(resp.headers),
            content=resp.content,
            url=resp.url or url,
        )
        if not response.ok:
            logger.warning(
                "HTTP request returned an error status",
                extra={"method": method, "url": url, "status": response.status_code},
            )
            raise HTTPRequestError(
                f"{method} {url} returned {response.status_code}",
                request=request,
                response=response,
            )
        return response

    def close(self) -> None:
        self.cancellables.cancel()
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._http.close()
        logger.info("HTTP session closed")
