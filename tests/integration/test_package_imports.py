"""Integration tests for package imports."""

from datetime import UTC, datetime


class TestPackageImportable:
    """Test that the Shearwork clients package can be imported."""

    def test_clients_package_imports(self):
        """Public classes should be importable from the package root."""
        from shearwork.clients import ClientResolver
        from shearwork.clients import ClientStorage
        from shearwork.clients import ClientSyncOrchestrator
        from shearwork.clients import NormalizedAppointment
        from shearwork.clients import ResolutionGuard

        assert ClientResolver is not None
        assert ClientStorage is not None
        assert ClientSyncOrchestrator is not None
        assert NormalizedAppointment is not None
        assert ResolutionGuard is not None

    def test_exceptions_share_base(self):
        """Every package exception derives from ClientResolutionError."""
        from shearwork.clients import (
            AccountScopeError,
            ClientLoadError,
            ClientResolutionError,
            ClientWriteError,
            ConcurrentResolutionError,
            ResolverStateError,
        )

        for exc in (
            AccountScopeError,
            ClientLoadError,
            ClientWriteError,
            ConcurrentResolutionError,
            ResolverStateError,
        ):
            assert issubclass(exc, ClientResolutionError)


class TestEndToEndResolution:
    """Test the modules work together without storage."""

    def test_adapter_payloads_to_upsert_rows(self, sample_appointment_data, sample_client_row):
        """Adapter payloads resolve against a stored client into upsert rows."""
        from shearwork.clients import (
            ClientRecord,
            ClientResolver,
            ResolutionGuard,
            appointments_from_records,
        )

        persisted = [ClientRecord.from_row(sample_client_row)]
        resolver = ClientResolver("acct_test", persisted, guard=ResolutionGuard())

        resolution = resolver.resolve(appointments_from_records(sample_appointment_data))
        rows = resolver.get_upsert_payload(now=datetime(2025, 2, 1, tzinfo=UTC))

        assert resolution.new_client_ids == set()
        assert set(resolution.appointment_to_client.values()) == {"client-001"}
        (row,) = rows
        assert row.first_appt == "2024-06-15"
        assert row.second_appt == "2024-07-20"
        assert row.last_appt == "2025-01-17"
        assert row.first_name == "johnny"
        assert row.first_source == "Instagram"
