"""Derived client fields computed over sorted contributions.

Each rule is a pure function so it can be verified on its own:

- ``compute_timeline``: first / second / last appointment dates
- ``latest_non_null``: most recent non-null value (email, phone)
- ``first_non_null``: earliest non-null value, set once (referral source)

Name arbitration lives in ``shearwork.clients.names``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import UTC, date, datetime
from typing import NamedTuple, TypeVar

from shearwork.clients.models import Contribution

T = TypeVar("T")


def _instant(timestamp: datetime | None) -> float:
    """Comparable instant for a timestamp; naive values are read as UTC."""
    if timestamp is None:
        return float("-inf")
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return timestamp.timestamp()


def chronological_key(
    appt_date: date,
    timestamp: datetime | None,
    external_id: str,
) -> tuple[date, float, str]:
    """Total ordering used for appointments and contributions.

    Date first, then time of day, then external id so that same-instant
    appointments still sort the same way on every run.
    """
    return (appt_date, _instant(timestamp), external_id)


def sort_contributions(contributions: Iterable[Contribution]) -> list[Contribution]:
    """Return contributions in ascending chronological order."""
    return sorted(
        contributions,
        key=lambda c: chronological_key(c.date, c.timestamp, c.external_id),
    )


class Timeline(NamedTuple):
    """First, second and last appointment dates of a client."""

    first: date | None = None
    second: date | None = None
    last: date | None = None


def compute_timeline(
    dates: Sequence[date],
    persisted: Timeline | None = None,
) -> Timeline:
    """Compute first/second/last appointment dates.

    For a new client this is a direct read of the sorted dates: ``second`` is
    the date at index 1 and is None with fewer than two appointments.

    A pre-existing client's persisted first and second dates stand for
    appointments already counted in an earlier run. One batch date equal to
    each of them is assumed to be that same appointment and is not counted
    again, which keeps re-running an overlapping window idempotent.

    Args:
        dates: Appointment dates contributed in this run.
        persisted: Dates stored for a pre-existing client.

    Returns:
        The merged timeline.

    Examples:
        >>> d = date.fromisoformat
        >>> compute_timeline([d("2025-01-10")])
        Timeline(first=datetime.date(2025, 1, 10), second=None, last=datetime.date(2025, 1, 10))
        >>> compute_timeline([d("2025-01-10"), d("2025-02-01")]).second
        datetime.date(2025, 2, 1)
    """
    ordered = sorted(dates)

    if persisted is not None and persisted.first is not None:
        anchors = [persisted.first]
        if persisted.second is not None:
            anchors.append(persisted.second)
        remaining = list(ordered)
        for anchor in anchors:
            if anchor in remaining:
                remaining.remove(anchor)
        ordered = sorted(anchors + remaining)
        if persisted.last is not None and persisted.last > ordered[-1]:
            ordered.append(persisted.last)

    if not ordered:
        return Timeline()

    return Timeline(
        first=ordered[0],
        second=ordered[1] if len(ordered) > 1 else None,
        last=ordered[-1],
    )


def latest_non_null(values: Iterable[T | None], seed: T | None = None) -> T | None:
    """Return the last non-null value, falling back to the seed.

    Examples:
        >>> latest_non_null(["a@x.com", None, "b@x.com", None])
        'b@x.com'
        >>> latest_non_null([None, None], seed="kept@x.com")
        'kept@x.com'
    """
    current = seed
    for value in values:
        if value is not None:
            current = value
    return current


def first_non_null(values: Iterable[T | None], seed: T | None = None) -> T | None:
    """Return the seed if set, else the first non-null value.

    Examples:
        >>> first_non_null(["Instagram", "Google"])
        'Instagram'
        >>> first_non_null([None, "Google"])
        'Google'
        >>> first_non_null(["Google"], seed="Walk-in")
        'Walk-in'
    """
    if seed is not None:
        return seed
    for value in values:
        if value is not None:
            return value
    return None
