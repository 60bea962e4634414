"""Pytest fixtures for shared-clients tests."""

from __future__ import annotations

import itertools
from collections.abc import Callable, Generator
from datetime import date
from typing import Any

import pytest
from shearwork.clients.guard import ResolutionGuard
from shearwork.clients.models import ClientRecord, NormalizedAppointment
from shearwork.clients.payload import ClientUpsertRow

ACCOUNT_ID = "acct_test"


@pytest.fixture
def account_id() -> str:
    """Account used throughout the tests."""
    return ACCOUNT_ID


@pytest.fixture
def make_appointment() -> Callable[..., NormalizedAppointment]:
    """Factory for appointments with only the fields a test cares about."""

    def _make(external_id: str, day: str, **fields: Any) -> NormalizedAppointment:
        return NormalizedAppointment(
            external_id=external_id,
            date=date.fromisoformat(day),
            **fields,
        )

    return _make


@pytest.fixture
def make_client() -> Callable[..., ClientRecord]:
    """Factory for persisted clients."""

    def _make(client_id: str, **fields: Any) -> ClientRecord:
        for name in ("first_appt", "second_appt", "last_appt"):
            if isinstance(fields.get(name), str):
                fields[name] = date.fromisoformat(fields[name])
        fields.setdefault("account_id", ACCOUNT_ID)
        return ClientRecord(client_id=client_id, **fields)

    return _make


@pytest.fixture
def id_factory() -> Callable[[], str]:
    """Deterministic client id allocator: new-1, new-2, ..."""
    counter = itertools.count(1)
    return lambda: f"new-{next(counter)}"


@pytest.fixture
def make_id_factory() -> Callable[[], Callable[[], str]]:
    """Create independent deterministic allocators."""

    def _make() -> Callable[[], str]:
        counter = itertools.count(1)
        return lambda: f"new-{next(counter)}"

    return _make


@pytest.fixture
def guard() -> Generator[ResolutionGuard, None, None]:
    """A private guard so tests never share in-flight state."""
    yield ResolutionGuard()


@pytest.fixture
def upsert_row() -> ClientUpsertRow:
    """A single upsert row."""
    return ClientUpsertRow(
        account_id=ACCOUNT_ID,
        client_id="client-001",
        email="john@example.com",
        phone_normalized="+14165551234",
        phone="+14165551234",
        first_name="john",
        last_name="smith",
        first_appt="2025-01-03",
        second_appt="2025-01-17",
        last_appt="2025-02-01",
        first_source="Instagram",
        total_appointments=3,
        updated_at="2025-02-01T12:00:00+00:00",
    )
