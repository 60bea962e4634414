"""Tests for shearwork.clients.models module."""

from __future__ import annotations

from datetime import date, datetime

import pandas as pd
import pytest
from shearwork.clients.models import (
    ClientRecord,
    Contribution,
    NormalizedAppointment,
    Resolution,
    appointments_from_records,
)


class TestNormalizedAppointmentFromDict:
    """Tests for NormalizedAppointment.from_dict."""

    def test_camel_case_payload(self, sample_appointment_data) -> None:
        """Test adapter payloads with camelCase keys are parsed."""
        appt = NormalizedAppointment.from_dict(sample_appointment_data[0])

        assert appt.external_id == "1390866002"
        assert appt.date == date(2025, 1, 3)
        assert appt.timestamp is not None
        assert appt.timestamp.hour == 19
        assert appt.phone_normalized == "+14165551234"
        assert appt.first_name == "John"
        assert appt.referral_source == "Instagram"
        assert appt.price == 55.0
        assert appt.tip == 10.0

    def test_snake_case_payload(self) -> None:
        """Test snake_case keys are accepted too."""
        appt = NormalizedAppointment.from_dict(
            {
                "external_id": 42,
                "date": "2025-02-01",
                "phone_normalized": "+14165550000",
                "referral_source": "Google",
            }
        )

        assert appt.external_id == "42"
        assert appt.phone_normalized == "+14165550000"
        assert appt.referral_source == "Google"

    def test_string_and_missing_amounts(self, sample_appointment_data) -> None:
        """Test numeric strings are parsed and missing amounts default to 0."""
        appt = NormalizedAppointment.from_dict(sample_appointment_data[1])

        assert appt.price == 40.0
        assert appt.tip == 0.0

    def test_date_derived_from_timestamp(self) -> None:
        """Test the date falls back to the timestamp's date."""
        appt = NormalizedAppointment.from_dict(
            {"externalId": "1", "datetime": "2025-03-04T10:00:00Z"}
        )

        assert appt.date == date(2025, 3, 4)

    def test_missing_external_id_raises(self) -> None:
        """Test a payload without an id is rejected."""
        with pytest.raises(ValueError, match="external_id"):
            NormalizedAppointment.from_dict({"date": "2025-01-01"})

    def test_missing_date_raises(self) -> None:
        """Test a payload without any date is rejected."""
        with pytest.raises(ValueError, match="has no date"):
            NormalizedAppointment.from_dict({"externalId": "1"})

    def test_invalid_price_raises(self) -> None:
        """Test non-numeric prices are rejected."""
        with pytest.raises(ValueError, match="Invalid price"):
            NormalizedAppointment.from_dict(
                {"externalId": "1", "date": "2025-01-01", "price": "free"}
            )

    def test_to_dict(self) -> None:
        """Test serialization uses ISO dates."""
        appt = NormalizedAppointment(external_id="1", date=date(2025, 1, 1), email="a@b.com")

        data = appt.to_dict()

        assert data["date"] == "2025-01-01"
        assert data["timestamp"] is None
        assert data["email"] == "a@b.com"

    def test_frozen(self) -> None:
        """Test appointments cannot be mutated."""
        appt = NormalizedAppointment(external_id="1", date=date(2025, 1, 1))

        with pytest.raises(AttributeError):
            appt.email = "x@y.com"  # type: ignore[misc]


class TestContribution:
    """Tests for Contribution.from_appointment."""

    def test_cleans_identity_fields(self) -> None:
        """Test fields are trimmed and email is lowercased."""
        appt = NormalizedAppointment(
            external_id="1",
            date=date(2025, 1, 1),
            email=" Juan@Example.com ",
            phone_normalized=" ",
            first_name=" Juan ",
            last_name="",
            referral_source=" Instagram ",
        )

        contribution = Contribution.from_appointment(appt)

        assert contribution.email == "juan@example.com"
        assert contribution.phone_normalized is None
        assert contribution.first_name == "Juan"
        assert contribution.last_name is None
        assert contribution.referral_source == "Instagram"


class TestClientRecord:
    """Tests for ClientRecord."""

    def test_from_row(self, sample_client_row) -> None:
        """Test persisted rows are parsed into records."""
        client = ClientRecord.from_row(sample_client_row)

        assert client.client_id == "client-001"
        assert client.account_id == "acct_test"
        assert client.first_appt == date(2024, 6, 15)
        assert client.second_appt == date(2024, 7, 20)
        assert client.last_appt == date(2024, 12, 1)
        assert isinstance(client.updated_at, datetime)
        assert client.has_appointments

    def test_from_row_with_date_objects(self) -> None:
        """Test rows returning native date values (as BigQuery does)."""
        client = ClientRecord.from_row(
            {"client_id": "c1", "first_appt": date(2024, 1, 1), "second_appt": None}
        )

        assert client.first_appt == date(2024, 1, 1)
        assert client.second_appt is None

    def test_from_row_requires_client_id(self) -> None:
        """Test rows without a client id are rejected."""
        with pytest.raises(ValueError, match="client_id"):
            ClientRecord.from_row({"email": "a@b.com"})

    def test_has_appointments_false_without_dates(self) -> None:
        """Test a bare record has no appointments."""
        assert not ClientRecord(client_id="c1").has_appointments


class TestResolution:
    """Tests for Resolution helpers."""

    def test_existing_client_ids(self) -> None:
        """Test existing ids are the touched ids that are not new."""
        resolution = Resolution(
            clients={"a": ClientRecord("a"), "b": ClientRecord("b")},
            new_client_ids={"b"},
        )

        assert resolution.existing_client_ids == {"a"}
        assert resolution.client_count == 2


class TestAppointmentsFromRecords:
    """Tests for appointments_from_records."""

    def test_from_list_of_dicts(self, sample_appointment_data) -> None:
        """Test a list of adapter payloads is converted."""
        appointments = list(appointments_from_records(sample_appointment_data))

        assert [a.external_id for a in appointments] == ["1390866002", "1390866003"]

    def test_from_dataframe_with_missing_cells(self) -> None:
        """Test NaN cells become None."""
        df = pd.DataFrame(
            [
                {"externalId": "1", "date": "2025-01-01", "email": "a@b.com", "price": 30.0},
                {"externalId": "2", "date": "2025-01-02", "email": None, "price": None},
            ]
        )

        appointments = list(appointments_from_records(df))

        assert appointments[1].email is None
        assert appointments[1].price == 0.0
        assert appointments[0].price == 30.0

    def test_from_dataframe_with_timestamps(self) -> None:
        """Test pandas timestamps are accepted for dates."""
        df = pd.DataFrame(
            {"externalId": ["1"], "date": [pd.Timestamp("2025-05-06 14:00")]}
        )

        (appointment,) = appointments_from_records(df)

        assert appointment.date == date(2025, 5, 6)

    def test_empty_input(self) -> None:
        """Test no appointments for empty input."""
        assert list(appointments_from_records([])) == []
