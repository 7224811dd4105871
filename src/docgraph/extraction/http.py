from __future__ import annotations

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential


def default_timeout(read: float = 60.0) -> httpx.Timeout:
    return httpx.Timeout(connect=10.0, read=read, write=20.0, pool=10.0)


def default_limits() -> httpx.Limits:
    return httpx.Limits(max_connections=20, max_keepalive_connections=5)


class HttpClientFactory:
    """Creates shared httpx clients with sane defaults.

    Keep one client per service object; do not create per-request.
    """

    @staticmethod
    def client(headers: dict | None = None, read_timeout: float = 60.0) -> httpx.Client:
        return httpx.Client(
            headers=headers,
            timeout=default_timeout(read_timeout),
            limits=default_limits(),
            follow_redirects=True,
        )


TransientHttpError = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)
RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, TransientHttpError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS
    return False


def transient_retry(attempts: int = 3, initial: float = 1.0, maximum: float = 8.0):
    """Retry decorator.

    `attempts` counts every call, the first one included. Waits between them
    grow as initial, 2*initial, ... capped at maximum.
    """
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=initial, max=maximum),
        retry=retry_if_exception(is_transient),
    )
