"""Bounded retry for JSON POSTs to rate-limited SaaS APIs."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from cartpilot.core.exceptions import RateLimitedError, UpstreamError

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
INITIAL_RETRY_DELAY_SECONDS = 1.0
MAX_RETRY_DELAY_SECONDS = 30.0


def parse_retry_after(response: httpx.Response) -> float | None:
    """Numeric ``Retry-After`` seconds, capped at ``MAX_RETRY_DELAY_SECONDS``."""
    retry_after = response.headers.get("retry-after")
    if not retry_after:
        return None
    try:
        seconds = float(retry_after)
    except ValueError:
        logger.debug("Ignoring non-numeric Retry-After header: %s", retry_after)
        return None
    return min(max(seconds, 0.0), MAX_RETRY_DELAY_SECONDS)


class wait_retry_after(wait_base):  # noqa: N801 - tenacity naming
    """Wait for the server's ``Retry-After`` hint, else defer to ``fallback``."""

    def __init__(self, fallback: wait_base) -> None:
        self.fallback = fallback

    def __call__(self, retry_state: RetryCallState) -> float:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(error, RateLimitedError) and error.retry_after is not None:
            return error.retry_after
        return float(self.fallback(retry_state))


def _retrying(service: str, max_retries: int) -> AsyncRetrying:
    def log_retry(retry_state: RetryCallState) -> None:
        logger.warning(
            "%s rate limited (attempt %d/%d), retrying in %.1fs",
            service,
            retry_state.attempt_number,
            max_retries,
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
        )

    return AsyncRetrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_retry_after(
            wait_exponential(multiplier=INITIAL_RETRY_DELAY_SECONDS, max=MAX_RETRY_DELAY_SECONDS)
        ),
        retry=retry_if_exception_type(RateLimitedError),
        before_sleep=log_retry,
        sleep=asyncio.sleep,
        reraise=True,
    )


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error)
        return str(body.get("detail") or error or body)
    return str(body)[:500]


def _raise_for_status(response: httpx.Response, service: str) -> None:
    if response.status_code == 429:
        raise RateLimitedError(
            service, 429, "rate limited", retry_after=parse_retry_after(response)
        )
    if not response.is_success:
        raise UpstreamError(service, response.status_code, _error_detail(response))


async def _post_once(
    client: httpx.AsyncClient,
    url: str,
    service: str,
    json: dict[str, Any],
    headers: dict[str, str] | None,
) -> httpx.Response:
    response = await client.post(url, json=json, headers=headers)
    _raise_for_status(response, service)
    return response


async def _open_stream(
    client: httpx.AsyncClient,
    url: str,
    service: str,
    json: dict[str, Any],
    headers: dict[str, str] | None,
) -> httpx.Response:
    request = client.build_request("POST", url, json=json, headers=headers)
    response = await client.send(request, stream=True)
    try:
        if not response.is_success and response.status_code != 429:
            await response.aread()
        _raise_for_status(response, service)
    except UpstreamError:
        await response.aclose()
        raise
    return response


async def post_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    service: str,
    json: dict[str, Any],
    headers: dict[str, str] | None = None,
    max_retries: int = MAX_RETRIES,
) -> httpx.Response:
    """POST ``json`` to ``url`` and return the successful response.

    Only HTTP 429 is retried (up to ``max_retries`` attempts in total) and the
    last attempt's :class:`RateLimitedError` is raised when they run out. Any
    other non-2xx status raises :class:`UpstreamError` immediately.
    """
    retrying = _retrying(service, max_retries)
    return await retrying(_post_once, client, url, service, json, headers)


@asynccontextmanager
async def stream_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    service: str,
    json: dict[str, Any],
    headers: dict[str, str] | None = None,
    max_retries: int = MAX_RETRIES,
) -> AsyncIterator[httpx.Response]:
    """Streaming counterpart of :func:`post_with_retry`.

    Yields an open response whose body has not been read yet.
    """
    retrying = _retrying(service, max_retries)
    response = await retrying(_open_stream, client, url, service, json, headers)
    try:
        yield response
    finally:
        await response.aclose()
