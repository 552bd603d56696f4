"""HTTP client with rate limiting, fixed-table backoff, and error classification."""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Callable

import requests
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt

from placematch.common.constants import USER_AGENT
from placematch.common.errors import StageError

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429
DEFAULT_BACKOFF_SECONDS = (1.0, 2.0, 5.0, 10.0)
TRANSPORT_ERRORS = (requests.ConnectionError, requests.Timeout)


@dataclass(frozen=True)
class TimeoutConfig:
    connect: float = 10.0
    read: float = 30.0


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 4
    backoff_seconds: tuple[float, ...] = DEFAULT_BACKOFF_SECONDS


class HttpRequestError(StageError):
    error_code = "HTTP_ERROR"


class ApiError(HttpRequestError):
    """Non-2xx response other than 429. Never retried."""

    error_code = "API_ERROR"

    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"API error {status}: {body[:500]}")
        self.status = status
        self.body = body


class RateLimitExceeded(HttpRequestError):
    error_code = "RATE_LIMIT_EXCEEDED"


class NetworkError(HttpRequestError):
    error_code = "NETWORK_ERROR"


class QuotaResponse(Exception):
    """Internal retry signal for a 429 response."""

    def __init__(self, url: str) -> None:
        super().__init__(f"HTTP 429 from {url}")
        self.url = url


class RateLimiter:
    """Minimum-interval gate shared by every request a client makes."""

    def __init__(
        self,
        requests_per_second: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self.clock = clock
        self.sleep = sleep
        self.last_permitted: float | None = None
        self.lock = threading.Lock()

    def throttle(self) -> float:
        """Block until the next request may go out; return its permitted time."""
        with self.lock:
            now = self.clock()
            if self.last_permitted is not None:
                earliest = self.last_permitted + self.interval
                if now < earliest:
                    self.sleep(earliest - now)
                    now = max(self.clock(), earliest)
            self.last_permitted = now
            return now


class HttpClient:
    def __init__(
        self,
        *,
        requests_per_second: float = 5.0,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        limiter: RateLimiter | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.timeout = timeout or TimeoutConfig()
        self.retry = retry or RetryConfig()
        self.sleep = sleep
        self.session = requests.Session()
        self.limiter = limiter or RateLimiter(requests_per_second, sleep=sleep)
        self.request_count = 0
        self.request_counts: Counter[str] = Counter()
        self.count_lock = threading.Lock()

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def _headers(self, headers: dict[str, str] | None) -> dict[str, str]:
        out = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if headers:
            out.update(headers)
        return out

    def _count(self, kind: str) -> None:
        with self.count_lock:
            self.request_count += 1
            self.request_counts[kind] += 1

    def _backoff_wait(self, retry_state: RetryCallState) -> float:
        table = self.retry.backoff_seconds
        index = min(retry_state.attempt_number - 1, len(table) - 1)
        return table[index]

    def _log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "retrying request after %s (attempt %d/%d)",
            exc,
            retry_state.attempt_number,
            self.retry.max_retries,
            extra={"event": "HTTP_RETRY", "attempt": retry_state.attempt_number, "status": "retry"},
        )

    def _check_status(self, response: requests.Response, url: str) -> None:
        status = response.status_code
        if status == RATE_LIMIT_STATUS:
            raise QuotaResponse(url)
        if status < 200 or status >= 300:
            raise ApiError(status, response.text)

    def _request_json(
        self,
        method: str,
        url: str,
        *,
        kind: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> dict[str, Any]:
        req_timeout = timeout or self.timeout
        self.limiter.throttle()
        self._count(kind)

        response = self.session.request(
            method=method,
            url=url,
            params=params,
            json=json_body,
            headers=self._headers(headers),
            timeout=(req_timeout.connect, req_timeout.read),
        )
        self._check_status(response, url)

        try:
            return response.json()
        except ValueError as exc:
            raise ApiError(response.status_code, f"invalid JSON payload from {url}") from exc

    def request_json(
        self,
        method: str,
        url: str,
        *,
        kind: str = "other",
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> dict[str, Any]:
        @retry(
            stop=stop_after_attempt(self.retry.max_retries),
            wait=self._backoff_wait,
            retry=retry_if_exception_type((QuotaResponse, *TRANSPORT_ERRORS)),
            before_sleep=self._log_retry,
            sleep=self.sleep,
            reraise=True,
        )
        def _wrapped() -> dict[str, Any]:
            return self._request_json(
                method,
                url,
                kind=kind,
                params=params,
                json_body=json_body,
                headers=headers,
                timeout=timeout,
            )

        try:
            return _wrapped()
        except QuotaResponse as exc:
            raise RateLimitExceeded(
                f"Rate limit exceeded after {self.retry.max_retries} attempts: {url}"
            ) from exc
        except TRANSPORT_ERRORS as exc:
            raise NetworkError(f"Network error after {self.retry.max_retries} attempts: {exc}") from exc

    def get_json(
        self,
        url: str,
        *,
        kind: str = "other",
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> dict[str, Any]:
        return self.request_json("GET", url, kind=kind, params=params, headers=headers, timeout=timeout)

    def post_json(
        self,
        url: str,
        *,
        kind: str = "other",
        json_body: dict[str, Any],
        headers: dict[str, str] | None = None,
        timeout: TimeoutConfig | None = None,
    ) -> dict[str, Any]:
        merged = {"Content-Type": "application/json"}
        if headers:
            merged.update(headers)
        return self.request_json("POST", url, kind=kind, json_body=json_body, headers=merged, timeout=timeout)
