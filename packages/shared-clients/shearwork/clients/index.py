"""Equivalence index: identity key -> client id lookup tables.

An index is built for a single resolve() call, seeded from the account's
persisted clients, extended while appointments are classified, and then
discarded. It is never shared between calls or accounts.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date

from shearwork.clients.keys import IdentityKeys, keys_for_client
from shearwork.clients.models import ClientRecord

logger = logging.getLogger(__name__)


class EquivalenceIndex:
    """Three lookup tables mapping phone, email and name keys to client ids.

    Lookups follow signal strength: phone, then email, then name.

    Note:
        This class is NOT thread-safe. Each resolve() call owns its index.

    Example:
        >>> index = EquivalenceIndex()
        >>> index.register(IdentityKeys(email="jane@example.com"), "c-1")
        >>> index.register(IdentityKeys(phone="14165551234", email="jane@example.com"), "c-1")
        >>> index.lookup(IdentityKeys(phone="14165551234"))
        'c-1'
    """

    def __init__(self) -> None:
        self.by_phone: dict[str, str] = {}
        self.by_email: dict[str, str] = {}
        self.by_name: dict[str, str] = {}
        self._client_ids: set[str] = set()

    @classmethod
    def from_clients(cls, clients: Iterable[ClientRecord]) -> EquivalenceIndex:
        """Build an index seeded from persisted clients."""
        index = cls()
        index.seed(clients)
        return index

    def seed(self, clients: Iterable[ClientRecord]) -> None:
        """Register the keys of persisted clients.

        When two persisted clients share a key, the one with the earliest
        first appointment (then lowest client id) keeps it.

        Args:
            clients: Persisted clients of one account.
        """
        ordered = sorted(
            clients,
            key=lambda c: (c.first_appt is None, c.first_appt or date.min, c.client_id),
        )
        shared = 0
        for client in ordered:
            self._client_ids.add(client.client_id)
            keys = keys_for_client(client)
            if not keys.is_resolvable:
                logger.warning(
                    f"Persisted client {client.client_id} has no identity keys"
                )
                continue
            for table, key in self._tables(keys):
                if not key:
                    continue
                if key in table:
                    shared += 1
                    continue
                table[key] = client.client_id

        if shared:
            logger.debug(f"{shared} identity keys shared by several persisted clients")

    def lookup(self, keys: IdentityKeys) -> str | None:
        """Find the client for a set of keys, by phone, then email, then name.

        Args:
            keys: Identity keys of an appointment.

        Returns:
            The matching client id, or None if no key is known.
        """
        if keys.phone and keys.phone in self.by_phone:
            return self.by_phone[keys.phone]
        if keys.email and keys.email in self.by_email:
            return self.by_email[keys.email]
        if keys.name and keys.name in self.by_name:
            return self.by_name[keys.name]
        return None

    def register(self, keys: IdentityKeys, client_id: str) -> None:
        """Point every non-empty key at a client, replacing earlier entries.

        This is what lets a phone introduced on a later appointment find a
        client that was first seen only by email.
        """
        self._client_ids.add(client_id)
        for table, key in self._tables(keys):
            if key:
                table[key] = client_id

    def _tables(self, keys: IdentityKeys) -> list[tuple[dict[str, str], str]]:
        return [
            (self.by_phone, keys.phone),
            (self.by_email, keys.email),
            (self.by_name, keys.name),
        ]

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._client_ids

    def __len__(self) -> int:
        """Total number of registered keys across the three tables."""
        return len(self.by_phone) + len(self.by_email) + len(self.by_name)

    @property
    def client_ids(self) -> frozenset[str]:
        """Ids of every client known to the index."""
        return frozenset(self._client_ids)
