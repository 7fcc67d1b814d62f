"""HTTP plumbing shared by the portal and OneBot clients.

Provides the browser-like session factory and the `retryable_request`
decorator: connection errors, timeouts and 5xx responses are retried with
back-off, while 4xx responses are handed back to the caller as-is.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

import requests
from requests import Response
from tenacity import (after_log, retry, retry_if_exception_type,
                      stop_after_attempt, wait_exponential)


logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


def get_http_session() -> requests.Session:
    """Return a new HTTP session with a browser-like User-Agent.

    Caller is responsible for closing the session or letting it be
    garbage collected.
    """
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": USER_AGENT,
            "Accept": "application/json, text/javascript, */*; q=0.01",
        }
    )
    return session


class HTTPError(Exception):
    """Raised when an HTTP request fails after retries."""


class ServerError(HTTPError):
    """Raised for 5xx responses so they can be retried."""


def retryable_request(method: Callable[..., Response]) -> Callable[..., Response]:
    """Decorator factory to apply retry logic to HTTP calls.

    The decorated function must accept a `requests.Session` as its first
    argument, followed by URL and optional kwargs, and return a
    `requests.Response`.  Network errors and 5xx responses are retried,
    3 attempts with exponential back-off between 1 and 5 seconds.  Other
    responses are returned untouched so callers can interpret 4xx bodies.
    """

    @retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=(
            retry_if_exception_type(requests.ConnectionError)
            | retry_if_exception_type(requests.Timeout)
            | retry_if_exception_type(ServerError)
        ),
        after=after_log(logger, logging.WARNING),
    )
    def wrapper(session: requests.Session, url: str, **kwargs: Any) -> Response:
        response = method(session, url, **kwargs)
        if response.status_code >= 500:
            raise ServerError(f"Server returned status {response.status_code}")
        return response

    return wrapper


__all__ = ["USER_AGENT", "get_http_session", "retryable_request", "HTTPError", "ServerError"]
