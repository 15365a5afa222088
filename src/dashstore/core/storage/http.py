"""
HTTP remote configuration store with retry logic and exponential backoff.

Talks to a key/value configuration endpoint:

    GET    <url>?key=<key>        read one key (404 means absent)
    GET    <url>?prefix=<prefix>  list values whose key has the prefix
    POST   <url>  {key, value}    write one key
    DELETE <url>?key=<key>        delete one key

Transient failures (5xx, timeouts, connection errors) are retried with
exponential backoff and jitter. Failures that remain after the last
retry are raised as SyncError; a 4xx answer to a write is reported as an
unsuccessful WriteResult carrying the service's message.

Example:
    >>> store = HttpRemoteConfigStore("https://config.example.com/api/config")
    >>> headers = {"X-Tenant-Id": "acme"}
    >>> await store.read("appSettings", headers)

Configuration:
    - Default timeout: 30.0 seconds
    - Default retries: 3 attempts
    - Default base delay: 0.5 seconds
    - Default multiplier: 2.0x per retry
    - Jitter: Random variance of ±20% added to delay
"""

from __future__ import annotations

import asyncio
import functools
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx

from dashstore.core.errors import SyncError
from dashstore.core.storage.remote import ScopeHeaders, WriteResult

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds before first retry (default: 0.5)
        multiplier: Exponential backoff multiplier (default: 2.0)
        jitter: Whether to add jitter to delays (default: True)
        jitter_ratio: Random variance ratio for jitter (default: 0.2 = ±20%)
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 0.5,
        multiplier: float = 2.0,
        jitter: bool = True,
        jitter_ratio: float = 0.2,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if not 0.0 <= jitter_ratio <= 1.0:
            raise ValueError("jitter_ratio must be between 0.0 and 1.0")

        self.max_retries = max_retries
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.jitter = jitter
        self.jitter_ratio = jitter_ratio

    def calculate_delay(self, attempt: int) -> float:
        """
        Delay before retry ``attempt`` (0-indexed).

        delay = base_delay * (multiplier ^ attempt), plus optional jitter.
        """
        delay = self.base_delay * (self.multiplier**attempt)
        if self.jitter:
            variance = delay * self.jitter_ratio
            delay = delay + random.uniform(-variance, variance)
        return max(0.0, delay)


def is_retryable_error(exception: Exception) -> bool:
    """
    Determine if an exception represents a transient, retryable error.

    5xx answers, timeouts and connection/network errors are retryable.
    4xx answers and anything that is not an httpx error are not.
    """
    # HTTPStatusError is also an HTTPError, so check it first
    if isinstance(exception, httpx.HTTPStatusError):
        return 500 <= exception.response.status_code < 600
    if isinstance(exception, httpx.TimeoutException):
        return True
    if isinstance(exception, httpx.HTTPError):
        return True
    return False


def with_retry(
    config: RetryConfig | None = None,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator adding retry with exponential backoff to a coroutine function.

    Args:
        config: Retry behavior; defaults to RetryConfig()

    Example:
        >>> @with_retry(RetryConfig(max_retries=2))
        ... async def fetch(client: httpx.AsyncClient) -> httpx.Response:
        ...     response = await client.get("https://config.example.com")
        ...     response.raise_for_status()
        ...     return response
    """
    retry = config or RetryConfig()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            func_name = getattr(func, "__name__", repr(func))
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not is_retryable_error(e):
                        logger.debug(
                            "%s: Non-retryable error on attempt %d: %s", func_name, attempt + 1, e
                        )
                        raise
                    if attempt >= retry.max_retries:
                        logger.warning(
                            "%s: Max retries (%d) exceeded: %s", func_name, retry.max_retries, e
                        )
                        raise
                    delay = retry.calculate_delay(attempt)
                    logger.info(
                        "%s: Retry attempt %d/%d after %.2fs due to: %s",
                        func_name,
                        attempt + 1,
                        retry.max_retries,
                        delay,
                        e,
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator


def _unwrap(payload: Any) -> Any:
    # Some backends return the whole stored document instead of the value
    if isinstance(payload, dict) and "value" in payload:
        return payload["value"]
    return payload


class HttpRemoteConfigStore:
    """
    RemoteConfigStore backed by an HTTP key/value endpoint.

    Args:
        url: Endpoint URL
        timeout: Per-request timeout in seconds
        retry: Retry behavior for transient failures
        client: Pre-built client (tests pass one with a mock transport);
            when omitted a client is created and owned by the store
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        retry: RetryConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._send = with_retry(retry)(self._send_once)

    async def _send_once(
        self,
        method: str,
        headers: ScopeHeaders,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        allow_status: tuple[int, ...] = (),
    ) -> httpx.Response:
        response = await self._client.request(
            method, self.url, params=params, json=json, headers=headers
        )
        if response.status_code in allow_status:
            return response
        response.raise_for_status()
        return response

    async def _request(
        self,
        method: str,
        headers: ScopeHeaders,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        allow_status: tuple[int, ...] = (),
    ) -> httpx.Response:
        try:
            return await self._send(
                method, headers, params=params, json=json, allow_status=allow_status
            )
        except httpx.HTTPStatusError as e:
            raise SyncError(
                f"API returned status {e.response.status_code}: {e.response.text}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise SyncError(f"Request to configuration service failed: {e}") from e

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise SyncError(f"Configuration service returned invalid JSON: {e}") from e

    async def read(self, key: str, headers: ScopeHeaders) -> Any | None:
        response = await self._request("GET", headers, params={"key": key}, allow_status=(404,))
        if response.status_code == 404:
            return None
        return _unwrap(self._json(response))

    async def list(self, prefix: str, headers: ScopeHeaders) -> list[Any]:
        response = await self._request(
            "GET", headers, params={"prefix": prefix}, allow_status=(404,)
        )
        if response.status_code == 404:
            return []
        payload = self._json(response)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise SyncError(f"Prefix listing for '{prefix}' did not return a list")
        return [_unwrap(item) for item in payload]

    async def write(self, key: str, value: Any, headers: ScopeHeaders) -> WriteResult:
        try:
            await self._request("POST", headers, json={"key": key, "value": value})
        except SyncError as e:
            status = e.context.get("status_code")
            if isinstance(status, int) and 400 <= status < 500:
                return WriteResult(success=False, message=e.message)
            raise
        logger.debug("Wrote %s to %s", key, self.url)
        return WriteResult(success=True)

    async def delete(self, key: str, headers: ScopeHeaders) -> None:
        await self._request("DELETE", headers, params={"key": key}, allow_status=(404,))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = [
    "HttpRemoteConfigStore",
    "RetryConfig",
    "is_retryable_error",
    "with_retry",
]
