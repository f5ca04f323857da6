"""Bounded retry with exponential backoff and key failover.

Rate-limit and quota failures back off on the same key
(``base_delay_ms * 2 ** (attempt - 1)``), since the limiting window may
pass. Any other failure, and a limit failure on the final attempt, is
reported to the key rotation manager through the request's lease; if a
different key is obtained the next attempt runs immediately.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from smokefree_qa.errors import classify_error, is_limit_error
from smokefree_qa.llm.credentials import CredentialLease

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryOrchestrator:
    """Runs async provider operations under the retry policy.

    Args:
        max_retries: Default attempt limit.
        base_delay_ms: Default backoff base in milliseconds.
        sleep: Awaitable sleep taking seconds.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._max_retries = max_retries
        self._base_delay_ms = base_delay_ms
        self._sleep = sleep

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
        base_delay_ms: int | None = None,
        lease: CredentialLease | None = None,
    ) -> T:
        """Call ``operation`` until it succeeds or attempts run out.

        Args:
            operation: Zero-argument coroutine function. It should read the
                key from ``lease`` on each call.
            max_retries: Maximum number of attempts.
            base_delay_ms: Backoff base for limit errors.
            lease: Key lease to fail over on non-limit errors.

        Returns:
            The operation's result.

        Raises:
            Exception: The last error once all attempts have failed.
        """
        attempts = self._max_retries if max_retries is None else max_retries
        base_delay = self._base_delay_ms if base_delay_ms is None else base_delay_ms
        if attempts < 1:
            raise ValueError("max_retries must be at least 1")

        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                is_last = attempt == attempts
                logger.warning(
                    "Provider call failed (attempt %d/%d, %s): %s",
                    attempt,
                    attempts,
                    classify_error(exc).value,
                    exc,
                )

                if is_limit_error(exc) and not is_last:
                    delay_ms = base_delay * 2 ** (attempt - 1)
                    logger.info("Backing off %d ms before retrying", delay_ms)
                    await self._sleep(delay_ms / 1000)
                    continue

                switched = lease is not None and lease.failover(exc)
                if is_last:
                    logger.error("All %d attempts failed", attempts)
                    raise
                if switched:
                    logger.info("Retrying immediately with %s", lease.credential.id)
