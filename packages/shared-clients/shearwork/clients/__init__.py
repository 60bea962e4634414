"""Shearwork client identity resolution.

Reconciles booking appointments of one business account into deduplicated
client identities, matching on phone, then email, then name, and merging
with the clients already stored for the account.

Example:
    from shearwork.clients import ClientResolver, ClientStorage

    storage = ClientStorage()
    resolver = ClientResolver("acct-1", persisted_clients=storage.load_clients("acct-1"))
    resolution = resolver.resolve(appointments)

    for external_id, client_id in resolution.appointment_to_client.items():
        print(f"{external_id} -> {client_id}")

    storage.upsert_clients(resolver.get_upsert_payload())
"""

from shearwork.clients.config import ClientSyncConfig
from shearwork.clients.exceptions import (
    AccountScopeError,
    ClientLoadError,
    ClientResolutionError,
    ClientStorageError,
    ClientWriteError,
    ConcurrentResolutionError,
    ResolverStateError,
)
from shearwork.clients.guard import ResolutionGuard, get_guard
from shearwork.clients.index import EquivalenceIndex
from shearwork.clients.keys import IdentityKeys, keys_for_appointment
from shearwork.clients.models import (
    ClientRecord,
    Contribution,
    NormalizedAppointment,
    Resolution,
    appointments_from_records,
)
from shearwork.clients.names import NamePair, arbitrate, fold_names
from shearwork.clients.payload import ClientUpsertRow, build_upsert_payload
from shearwork.clients.resolver import ClientResolutionStats, ClientResolver
from shearwork.clients.storage import ClientStorage
from shearwork.clients.sync import ClientSyncOrchestrator, ClientSyncResult

__all__ = [
    # Models
    "ClientRecord",
    "Contribution",
    "NormalizedAppointment",
    "Resolution",
    "appointments_from_records",
    # Keys and arbitration
    "IdentityKeys",
    "NamePair",
    "arbitrate",
    "fold_names",
    "keys_for_appointment",
    # Resolution
    "ClientResolutionStats",
    "ClientResolver",
    "EquivalenceIndex",
    "ResolutionGuard",
    "get_guard",
    # Payload and persistence
    "ClientStorage",
    "ClientSyncConfig",
    "ClientSyncOrchestrator",
    "ClientSyncResult",
    "ClientUpsertRow",
    "build_upsert_payload",
    # Exceptions
    "AccountScopeError",
    "ClientLoadError",
    "ClientResolutionError",
    "ClientStorageError",
    "ClientWriteError",
    "ConcurrentResolutionError",
    "ResolverStateError",
]
