"""API key rotation with failure tracking and quota awareness."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence

from smokefree_qa.errors import ErrorKind, classify_error
from smokefree_qa.llm.quota import QuotaTracker
from smokefree_qa.models.quota import Credential

logger = logging.getLogger(__name__)

# Kinds that take a key out of rotation for the rest of the day.
DEACTIVATING_ERRORS = frozenset(
    {ErrorKind.RATE_LIMITED, ErrorKind.QUOTA_EXCEEDED, ErrorKind.AUTHENTICATION}
)


def build_credentials(keys: Sequence[str]) -> list[Credential]:
    """Wrap raw key strings as credentials with ids ``key1``, ``key2``, ..."""
    return [Credential(id=f"key{number}", value=key) for number, key in enumerate(keys, start=1)]


class RotationCursor:
    """Shared round-robin position.

    One instance is injected into every manager that must advance the same
    sequence; :meth:`advance` is the only mutation and is atomic.
    """

    def __init__(self, start: int = 0) -> None:
        self._position = start
        self._lock = threading.Lock()

    def advance(self, size: int) -> int:
        """Return the current slot in ``range(size)`` and move past it."""
        if size <= 0:
            raise ValueError("size must be positive")
        with self._lock:
            slot = self._position % size
            self._position = (slot + 1) % size
            return slot


class KeyRotationManager:
    """Hands out API keys in round-robin order.

    A key is eligible while it is active and under quota in the
    :class:`QuotaTracker` and has fewer than ``max_failures`` consecutive
    failures. Keys that do not look like provider keys are struck and
    skipped.

    Args:
        credentials: Configured keys in rotation order.
        quota: Daily quota tracker for the same keys.
        cursor: Shared rotation position.
        max_failures: Consecutive failures that take a key out of rotation.
        key_prefix: Expected key prefix.
        min_key_length: Minimum plausible key length.
    """

    def __init__(
        self,
        credentials: Sequence[Credential],
        quota: QuotaTracker,
        cursor: RotationCursor | None = None,
        max_failures: int = 3,
        key_prefix: str = "AIza",
        min_key_length: int = 20,
    ) -> None:
        self._credentials = list(credentials)
        self._quota = quota
        self._cursor = cursor or RotationCursor()
        self._max_failures = max_failures
        self._key_prefix = key_prefix
        self._min_key_length = min_key_length
        self._failures: dict[str, int] = {}
        self._lock = threading.Lock()

        if self._credentials:
            logger.info("Key rotation enabled with %d API keys", len(self._credentials))
        else:
            logger.warning("No API keys configured; remote calls are disabled")

    @property
    def credentials(self) -> list[Credential]:
        return list(self._credentials)

    @property
    def quota(self) -> QuotaTracker:
        return self._quota

    def failure_count(self, credential: Credential) -> int:
        with self._lock:
            return self._failures.get(credential.id, 0)

    def is_valid(self, credential: Credential) -> bool:
        """Shape check: expected prefix and minimum length."""
        value = credential.value
        return len(value) >= self._min_key_length and value.startswith(self._key_prefix)

    def next_credential(self) -> Credential | None:
        """Return the next eligible key, or None if none are configured.

        When every key is exhausted the failure counters are cleared and
        the first configured key is returned, on the assumption that the
        failures were transient.
        """
        if not self._credentials:
            return None

        with self._lock:
            while True:
                eligible = [
                    credential
                    for credential in self._credentials
                    if self._failures.get(credential.id, 0) < self._max_failures
                    and self._quota.is_available(credential.id)
                ]
                if not eligible:
                    logger.warning("All API keys exhausted; retrying with the first key")
                    self._failures.clear()
                    return self._credentials[0]

                slot = self._cursor.advance(len(eligible))
                selected = eligible[slot]
                if self.is_valid(selected):
                    logger.debug(
                        "Selected API key %s (%s), slot %d of %d",
                        selected.id,
                        selected.masked,
                        slot,
                        len(eligible),
                    )
                    return selected

                logger.warning("API key %s (%s) is malformed", selected.id, selected.masked)
                self._failures[selected.id] = self._failures.get(selected.id, 0) + 1

    def record_failure(self, credential: Credential, error: BaseException) -> ErrorKind:
        """Count a failed call and deactivate the key for limit or auth errors.

        Returns:
            The classified error kind.
        """
        kind = classify_error(error)
        with self._lock:
            count = self._failures.get(credential.id, 0) + 1
            self._failures[credential.id] = count
        logger.warning(
            "API key %s (%s) failed (%d/%d): %s: %s",
            credential.id,
            credential.masked,
            count,
            self._max_failures,
            kind.value,
            error,
        )
        if kind in DEACTIVATING_ERRORS:
            self._quota.deactivate(credential.id)
        return kind

    def record_success(self, credential: Credential) -> None:
        with self._lock:
            self._failures.pop(credential.id, None)

    def lease(self) -> CredentialLease | None:
        """Issue the next key wrapped in a lease, or None if no keys exist."""
        credential = self.next_credential()
        if credential is None:
            return None
        return CredentialLease(self, credential)


class CredentialLease:
    """The key currently serving one logical request.

    The retry orchestrator swaps the key on failover; operations read
    :attr:`credential` on every attempt.
    """

    def __init__(self, manager: KeyRotationManager, credential: Credential) -> None:
        self._manager = manager
        self._credential = credential

    @property
    def credential(self) -> Credential:
        return self._credential

    def failover(self, error: BaseException) -> bool:
        """Record the failure and move to another key.

        Returns:
            True if a different key is now leased.
        """
        self._manager.record_failure(self._credential, error)
        replacement = self._manager.next_credential()
        if replacement is None or replacement.id == self._credential.id:
            return False
        logger.info("Failing over from %s to %s", self._credential.id, replacement.id)
        self._credential = replacement
        return True

    def record_usage(self) -> bool:
        """Count one dispatched call against the current key."""
        recorded = self._manager.quota.record_usage(self._credential.id)
        if not recorded:
            logger.warning("Usage for %s was not recorded", self._credential.id)
        self._manager.record_success(self._credential)
        return recorded
