"""Per-account guard against overlapping client resolutions."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from shearwork.clients.exceptions import ConcurrentResolutionError

logger = logging.getLogger(__name__)


class ResolutionGuard:
    """Tracks which accounts have a resolution in flight.

    Two resolutions for the same account would interleave updates to the
    same client rows, so a second one fails loudly instead of racing.
    Different accounts never block each other.

    Example:
        >>> guard = ResolutionGuard()
        >>> with guard.hold("acct-1"):
        ...     guard.is_held("acct-1")
        True
        >>> guard.is_held("acct-1")
        False
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._in_flight: set[str] = set()

    def acquire(self, account_id: str) -> None:
        """Mark an account as in flight.

        Raises:
            ConcurrentResolutionError: If the account is already in flight.
        """
        with self._lock:
            if account_id in self._in_flight:
                raise ConcurrentResolutionError(account_id)
            self._in_flight.add(account_id)
        logger.debug(f"Acquired resolution guard for account {account_id}")

    def release(self, account_id: str) -> None:
        """Clear the in-flight mark of an account."""
        with self._lock:
            self._in_flight.discard(account_id)
        logger.debug(f"Released resolution guard for account {account_id}")

    @contextmanager
    def hold(self, account_id: str) -> Iterator[None]:
        """Hold the guard for an account for the duration of a block."""
        self.acquire(account_id)
        try:
            yield
        finally:
            self.release(account_id)

    def is_held(self, account_id: str) -> bool:
        with self._lock:
            return account_id in self._in_flight


# Process-wide guard instance
_guard = ResolutionGuard()


def get_guard() -> ResolutionGuard:
    """Get the process-wide resolution guard."""
    return _guard
