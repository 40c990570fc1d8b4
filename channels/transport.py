"""
Resilient Transport — every outbound HTTP call goes through here.

Each attempt runs under its own deadline; a timed-out attempt is cancelled
and counted as a failure. Failed attempts are retried with exponential
backoff (base, 2·base, 4·base, …) up to ``max_retries`` attempts in total,
after which the call fails with TransportError.
"""
from __future__ import annotations

import asyncio
import time
import structlog
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import TransportConfig
from channels.errors import RetryableStatus, TransportError

logger = structlog.get_logger()

RETRYABLE_ERRORS = (httpx.HTTPError, asyncio.TimeoutError, RetryableStatus)


class ResilientTransport:
    """
    Deadline + retry wrapper around a shared httpx.AsyncClient.

    Response bodies are not interpreted; any status outside
    ``retry_statuses`` is handed back to the caller as-is.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout_ms: int = 30000,
        max_retries: int = 3,
        backoff_base_ms: int = 1000,
        retry_statuses: Iterable[int] = (429, 500, 502, 503, 504),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.timeout_ms = timeout_ms
        self.max_retries = max_retries
        self.backoff_base_ms = backoff_base_ms
        self.retry_statuses = frozenset(retry_statuses)
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: TransportConfig, client: Optional[httpx.AsyncClient] = None, **kwargs) -> ResilientTransport:
        return cls(
            client=client,
            timeout_ms=config.timeout_ms,
            max_retries=config.max_retries,
            backoff_base_ms=config.backoff_base_ms,
            retry_statuses=config.retry_statuses,
            **kwargs,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout_ms / 1000, connect=10.0),
            )
            self._owns_client = True
        return self._client

    async def call(
        self,
        url: str,
        *,
        method: str = "POST",
        headers: Optional[dict[str, str]] = None,
        content: Optional[bytes | str] = None,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
    ) -> httpx.Response:
        """Perform the request, retrying failed attempts. Raises TransportError."""
        timeout_ms = timeout_ms if timeout_ms is not None else self.timeout_ms
        attempts = max(1, max_retries if max_retries is not None else self.max_retries)
        client = self._get_client()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=self.backoff_base_ms / 1000),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before_sleep=self._log_backoff(url),
            sleep=self._sleep,
            reraise=True,
        )

        attempt_number = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    response = await self._attempt(
                        client, method, url, attempt_number, timeout_ms,
                        headers=headers, content=content, json=json, params=params,
                    )
        except RETRYABLE_ERRORS as e:
            logger.error("transport_exhausted", url=url, method=method,
                         attempts=attempt_number, error=repr(e))
            raise TransportError(url, attempt_number, e) from e
        return response

    async def _attempt(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        attempt_number: int,
        timeout_ms: int,
        **kwargs,
    ) -> httpx.Response:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                client.request(method, url, timeout=timeout_ms / 1000, **kwargs),
                timeout=timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.warning("transport_attempt_failed", url=url, method=method,
                           attempt=attempt_number, error="timeout",
                           duration_ms=_elapsed_ms(start))
            raise
        except httpx.HTTPError as e:
            logger.warning("transport_attempt_failed", url=url, method=method,
                           attempt=attempt_number, error=repr(e),
                           duration_ms=_elapsed_ms(start))
            raise

        if response.status_code in self.retry_statuses:
            logger.warning("transport_attempt_failed", url=url, method=method,
                           attempt=attempt_number, status=response.status_code,
                           duration_ms=_elapsed_ms(start))
            await response.aclose()
            raise RetryableStatus(response.status_code)

        logger.info("transport_attempt_ok", url=url, method=method,
                    attempt=attempt_number, status=response.status_code,
                    duration_ms=_elapsed_ms(start))
        return response

    @staticmethod
    def _log_backoff(url: str) -> Callable[[RetryCallState], None]:
        def before_sleep(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.info("transport_retry_scheduled", url=url,
                        attempt=retry_state.attempt_number,
                        delay_ms=round(delay * 1000))
        return before_sleep

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()


def _elapsed_ms(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 1)
