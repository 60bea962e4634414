"""Shared pytest fixtures for Shearwork packages."""

import pytest
from unittest.mock import MagicMock, patch


@pytest.fixture
def mock_bigquery_client():
    """Mock google.cloud.bigquery.Client for testing."""
    with patch("google.cloud.bigquery.Client") as mock:
        client = MagicMock()
        mock.return_value = client
        yield client


@pytest.fixture
def sample_appointment_data():
    """Sample adapter payloads (camelCase, as the booking adapters emit them)."""
    return [
        {
            "externalId": "1390866002",
            "datetime": "2025-01-03T19:00:00-05:00",
            "date": "2025-01-03",
            "email": "John@Example.com ",
            "phone": "(416) 555-1234",
            "phoneNormalized": "+14165551234",
            "firstName": "John",
            "lastName": "Smith",
            "serviceType": "Haircut & Beard",
            "price": 55.00,
            "tip": 10.00,
            "notes": "Prefers scissors over clippers",
            "referralSource": "Instagram",
        },
        {
            "externalId": "1390866003",
            "datetime": "2025-01-17T11:30:00-05:00",
            "date": "2025-01-17",
            "email": None,
            "phone": "416-555-1234",
            "phoneNormalized": "+14165551234",
            "firstName": "Johnny",
            "lastName": "Smith",
            "serviceType": "Haircut",
            "price": "40",
            "tip": None,
            "notes": None,
            "referralSource": None,
        },
    ]


@pytest.fixture
def sample_client_row():
    """Sample persisted client row."""
    return {
        "client_id": "client-001",
        "account_id": "acct_test",
        "email": "john@example.com",
        "phone": "+14165551234",
        "phone_normalized": "+14165551234",
        "first_name": "john",
        "last_name": "smith",
        "first_appt": "2024-06-15",
        "second_appt": "2024-07-20",
        "last_appt": "2024-12-01",
        "first_source": "Instagram",
        "updated_at": "2024-12-01T12:00:00+00:00",
    }
