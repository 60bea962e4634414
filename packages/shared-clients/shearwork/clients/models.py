"""Data models for client identity resolution.

Booking-provider adapters produce ``NormalizedAppointment`` values; the
resolver turns them into ``ClientRecord`` values and reports the outcome as a
``Resolution``.

Examples:
    Building an appointment from an adapter payload:
        >>> appt = NormalizedAppointment.from_dict({
        ...     "externalId": "1390866002",
        ...     "datetime": "2025-01-03T19:00:00-05:00",
        ...     "date": "2025-01-03",
        ...     "email": "John@Example.com",
        ...     "phoneNormalized": "+14165551234",
        ...     "firstName": "John",
        ...     "lastName": "Smith",
        ... })
        >>> appt.external_id
        '1390866002'
        >>> appt.date
        datetime.date(2025, 1, 3)
"""

from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

import pandas as pd

from shearwork.clients.keys import clean_email, clean_string


def _first_present(data: dict[str, Any], *names: str) -> Any:
    """Return the first non-None value among alternative key spellings."""
    for name in names:
        value = data.get(name)
        if value is not None:
            return value
    return None


def _parse_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError as e:
            raise ValueError(f"Invalid date format: {value}") from e
    raise ValueError(f"Invalid date value: {value!r}")


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid timestamp format: {value}") from e
    raise ValueError(f"Invalid timestamp value: {value!r}")


def _parse_amount(value: Any, name: str) -> float:
    if value is None or value == "":
        return 0.0
    try:
        amount = float(value)
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid {name}: {value}") from e
    return 0.0 if math.isnan(amount) else amount


@dataclass(frozen=True)
class NormalizedAppointment:
    """Canonical appointment shape produced by booking adapters.

    The resolver only reads these values; it never mutates them.

    Attributes:
        external_id: Provider appointment ID (e.g., Acuity's "1390866002")
        date: Calendar date of the appointment
        timestamp: Full appointment datetime, if the provider sent one
        email: Email as entered by the client
        phone: Raw phone as entered, e.g. "(416) 555-1234"
        phone_normalized: E.164 phone, e.g. "+14165551234"
        first_name: Given name as entered
        last_name: Family name as entered
        service_type: Booked service, e.g. "Haircut & Beard"
        price: Price paid
        tip: Tip paid
        notes: Free-text notes
        referral_source: How the client heard about the business
    """

    external_id: str
    date: date
    timestamp: datetime | None = None
    email: str | None = None
    phone: str | None = None
    phone_normalized: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    service_type: str | None = None
    price: float = 0.0
    tip: float = 0.0
    notes: str | None = None
    referral_source: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NormalizedAppointment:
        """Create an appointment from an adapter payload.

        Accepts snake_case keys as well as the camelCase keys the booking
        adapters emit (``externalId``, ``phoneNormalized``, ...).

        Args:
            data: Appointment payload.

        Returns:
            NormalizedAppointment instance.

        Raises:
            ValueError: If the external id is missing, no date can be derived,
                or a date/amount field cannot be parsed.
        """
        external_id = _first_present(data, "external_id", "externalId", "id")
        if external_id is None or str(external_id).strip() == "":
            raise ValueError("Missing required field: external_id")

        timestamp = _parse_timestamp(_first_present(data, "timestamp", "datetime"))
        appt_date = _parse_date(_first_present(data, "date", "appointment_date"))
        if appt_date is None:
            if timestamp is None:
                raise ValueError(f"Appointment {external_id} has no date")
            appt_date = timestamp.date()

        return cls(
            external_id=str(external_id),
            date=appt_date,
            timestamp=timestamp,
            email=_first_present(data, "email"),
            phone=_first_present(data, "phone"),
            phone_normalized=_first_present(data, "phone_normalized", "phoneNormalized"),
            first_name=_first_present(data, "first_name", "firstName"),
            last_name=_first_present(data, "last_name", "lastName"),
            service_type=_first_present(data, "service_type", "serviceType"),
            price=_parse_amount(data.get("price"), "price"),
            tip=_parse_amount(data.get("tip"), "tip"),
            notes=_first_present(data, "notes"),
            referral_source=_first_present(data, "referral_source", "referralSource"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "external_id": self.external_id,
            "date": self.date.isoformat(),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "email": self.email,
            "phone": self.phone,
            "phone_normalized": self.phone_normalized,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "service_type": self.service_type,
            "price": self.price,
            "tip": self.tip,
            "notes": self.notes,
            "referral_source": self.referral_source,
        }


@dataclass(frozen=True)
class Contribution:
    """What a single appointment contributes to the client it resolved to."""

    external_id: str
    date: date
    timestamp: datetime | None = None
    email: str | None = None
    phone: str | None = None
    phone_normalized: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    referral_source: str | None = None

    @classmethod
    def from_appointment(cls, appt: NormalizedAppointment) -> Contribution:
        """Capture the cleaned identity fields of an appointment."""
        return cls(
            external_id=appt.external_id,
            date=appt.date,
            timestamp=appt.timestamp,
            email=clean_email(appt.email),
            phone=clean_string(appt.phone),
            phone_normalized=clean_string(appt.phone_normalized),
            first_name=clean_string(appt.first_name),
            last_name=clean_string(appt.last_name),
            referral_source=clean_string(appt.referral_source),
        )


@dataclass
class ClientRecord:
    """A resolved client identity within one business account.

    Records are either loaded from persisted rows (pre-existing clients) or
    allocated by the resolver when an appointment matches nobody.

    Attributes:
        client_id: Opaque identifier, stable across runs once assigned
        account_id: Business account that owns the client
        email: Most recent known email (lowercase)
        phone: Most recent raw phone
        phone_normalized: Most recent E.164 phone
        first_name: Given name picked by name arbitration
        last_name: Family name picked by name arbitration
        first_appt: Date of the earliest appointment
        second_appt: Date of the chronologically second appointment
        last_appt: Date of the most recent appointment
        first_source: Referral source of the earliest appointment that had one
        updated_at: When the persisted row was last written
    """

    client_id: str
    account_id: str | None = None
    email: str | None = None
    phone: str | None = None
    phone_normalized: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    first_appt: date | None = None
    second_appt: date | None = None
    last_appt: date | None = None
    first_source: str | None = None
    updated_at: datetime | None = None

    @property
    def has_appointments(self) -> bool:
        """Return True if any appointment date is known for this client."""
        return self.first_appt is not None

    @classmethod
    def from_row(cls, row: Any) -> ClientRecord:
        """Create a record from a persisted row.

        Args:
            row: Mapping (dict or BigQuery Row) with persisted client columns.

        Returns:
            ClientRecord instance.

        Raises:
            ValueError: If the row has no client_id.
        """
        client_id = row.get("client_id")
        if not client_id:
            raise ValueError("Missing required field: client_id")

        return cls(
            client_id=str(client_id),
            account_id=row.get("account_id"),
            email=row.get("email"),
            phone=row.get("phone"),
            phone_normalized=row.get("phone_normalized"),
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            first_appt=_parse_date(row.get("first_appt")),
            second_appt=_parse_date(row.get("second_appt")),
            last_appt=_parse_date(row.get("last_appt")),
            first_source=row.get("first_source"),
            updated_at=_parse_timestamp(row.get("updated_at")),
        )


@dataclass
class Resolution:
    """Outcome of one resolve() call.

    Attributes:
        clients: Every client touched in the run, new and pre-existing
        appointment_to_client: Appointment external id -> client id, one entry
            per appointment that carried a usable identity signal
        new_client_ids: Client ids allocated during the run
    """

    clients: dict[str, ClientRecord] = field(default_factory=dict)
    appointment_to_client: dict[str, str] = field(default_factory=dict)
    new_client_ids: set[str] = field(default_factory=set)

    @property
    def existing_client_ids(self) -> set[str]:
        """Ids of touched clients that were already persisted."""
        return set(self.clients) - self.new_client_ids

    @property
    def client_count(self) -> int:
        """Number of clients touched in the run."""
        return len(self.clients)


def appointments_from_records(
    data: pd.DataFrame | list[dict[str, Any]],
) -> Iterator[NormalizedAppointment]:
    """Yield appointments from a DataFrame or a list of dicts.

    Missing cells (NaN/NaT) are treated as absent values.

    Args:
        data: Appointment rows with adapter column names.

    Yields:
        NormalizedAppointment for each row.
    """
    df = data if isinstance(data, pd.DataFrame) else pd.DataFrame(data)
    if df.empty:
        return
    df = df.astype(object).where(pd.notna(df), None)
    for record in df.to_dict(orient="records"):
        yield NormalizedAppointment.from_dict(record)
