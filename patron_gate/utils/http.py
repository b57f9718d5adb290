"""HTTP utilities providing retry/backoff semantics."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)


class RetryConfig:
    def __init__(self, *, attempts: int = 3, backoff_seconds: float = 0.5) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds


NO_RETRY = RetryConfig(attempts=1)


async def send_with_retry(
    send: Callable[[], Awaitable[httpx.Response]],
    *,
    retry_config: RetryConfig | None = None,
) -> httpx.Response:
    """
    Await ``send`` until it returns a response, retrying transport failures.

    Only connection-level failures (including timeouts) are retried. Any HTTP
    response, whatever its status, is returned to the caller untouched.
    """
    config = retry_config or RetryConfig()
    attempt = 0

    while True:
        try:
            return await send()
        except httpx.TransportError as exc:
            attempt += 1
            if attempt >= config.attempts:
                raise
            logger.warning(
                "Transport error (%s), retrying attempt %d of %d",
                type(exc).__name__,
                attempt + 1,
                config.attempts,
            )
            await asyncio.sleep(config.backoff_seconds * attempt)


__all__ = ["NO_RETRY", "RetryConfig", "send_with_retry"]
