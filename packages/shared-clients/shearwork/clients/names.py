"""Name quality arbitration.

Booking forms collect lazy entries such as "Juan ." or "C Rodriguez". A name
token is valid when it has at least two characters after trimming, and a
name pair is high quality when both tokens are valid. A high-quality stored
name is never replaced by a low-quality candidate; in every other case the
newer candidate wins.

Examples:
    >>> stored = NamePair("Alice", "Wonder")
    >>> arbitrate(stored, NamePair("Alice", "."))
    NamePair(first='Alice', last='Wonder')
    >>> arbitrate(NamePair("Bob", "."), NamePair("Bobby", "X"))
    NamePair(first='Bobby', last='X')
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import NamedTuple

from shearwork.clients.keys import clean_string

MIN_TOKEN_LENGTH = 2


def is_valid_token(token: str | None) -> bool:
    """Return True if a name token has at least two non-blank characters."""
    cleaned = clean_string(token)
    return cleaned is not None and len(cleaned) >= MIN_TOKEN_LENGTH


class NamePair(NamedTuple):
    """First and last name as stored on a client."""

    first: str | None = None
    last: str | None = None

    @property
    def is_high_quality(self) -> bool:
        return is_valid_token(self.first) and is_valid_token(self.last)

    @property
    def is_empty(self) -> bool:
        return clean_string(self.first) is None and clean_string(self.last) is None


def should_replace(stored: NamePair | None, candidate: NamePair) -> bool:
    """Decide whether a candidate name replaces the stored one.

    Args:
        stored: Currently stored pair, or None if nothing is stored yet.
        candidate: Incoming pair from a newer appointment.

    Returns:
        False only when the stored pair is high quality and the candidate is not.
    """
    if stored is not None and stored.is_high_quality and not candidate.is_high_quality:
        return False
    return True


def arbitrate(stored: NamePair | None, candidate: NamePair) -> NamePair | None:
    """Return the pair that survives one arbitration step."""
    return candidate if should_replace(stored, candidate) else stored


def fold_names(
    seed: NamePair | None,
    candidates: Iterable[NamePair],
) -> NamePair | None:
    """Left-fold arbitration over chronologically ordered candidates.

    Candidates with neither a first nor a last name carry no name
    information and are skipped.

    Args:
        seed: Persisted name of a pre-existing client, or None for a new one.
        candidates: Name pairs in ascending appointment order.

    Returns:
        The surviving pair, or None if no name was ever seen.
    """
    current = seed
    for candidate in candidates:
        if candidate.is_empty:
            continue
        current = arbitrate(current, candidate)
    return current
