"""Upsert payload: persistence-ready client rows.

Building the payload performs no I/O. The writer upserts the rows keyed by
(account_id, client_id) and overwrites whole rows, since field-level
conflicts were already settled during resolution.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from datetime import UTC, date, datetime
from typing import Any

from shearwork.clients.keys import clean_email, clean_string
from shearwork.clients.models import ClientRecord


def _lower(value: str | None) -> str | None:
    cleaned = clean_string(value)
    return cleaned.lower() if cleaned else None


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class ClientUpsertRow:
    """One row of the clients table, ready to be written."""

    account_id: str
    client_id: str
    email: str | None
    phone_normalized: str | None
    phone: str | None
    first_name: str | None
    last_name: str | None
    first_appt: str | None
    second_appt: str | None
    last_appt: str | None
    first_source: str | None
    total_appointments: int
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for BigQuery insertion."""
        return asdict(self)


def build_upsert_row(
    account_id: str,
    client: ClientRecord,
    updated_at: str,
    total_appointments: int = 0,
) -> ClientUpsertRow:
    """Project a single client into an upsert row.

    Emails and names are lowercased and trimmed; blank phones become None
    rather than empty strings.
    """
    phone_normalized = clean_string(client.phone_normalized)
    return ClientUpsertRow(
        account_id=account_id,
        client_id=client.client_id,
        email=clean_email(client.email),
        phone_normalized=phone_normalized,
        phone=clean_string(client.phone) or phone_normalized,
        first_name=_lower(client.first_name),
        last_name=_lower(client.last_name),
        first_appt=_iso(client.first_appt),
        second_appt=_iso(client.second_appt),
        last_appt=_iso(client.last_appt),
        first_source=clean_string(client.first_source),
        total_appointments=total_appointments,
        updated_at=updated_at,
    )


def build_upsert_payload(
    account_id: str,
    clients: Iterable[ClientRecord],
    now: datetime | None = None,
    appointment_counts: Mapping[str, int] | None = None,
) -> list[ClientUpsertRow]:
    """Project resolved clients into upsert rows.

    Args:
        account_id: Account that owns the clients.
        clients: Resolved clients.
        now: Timestamp stamped on every row. Defaults to the current UTC time.
        appointment_counts: Optional client id -> total appointment count.

    Returns:
        Rows ordered by client id.
    """
    updated_at = (now or datetime.now(UTC)).isoformat()
    counts = appointment_counts or {}
    rows = [
        build_upsert_row(
            account_id,
            client,
            updated_at=updated_at,
            total_appointments=counts.get(client.client_id, 0),
        )
        for client in clients
    ]
    rows.sort(key=lambda row: row.client_id)
    return rows
