"""Client identity resolution for one business account.

The resolver reconciles a batch of appointments with the account's persisted
clients and with each other:

1. An equivalence index is seeded from the persisted clients.
2. Each appointment is matched by phone, then email, then name. Every key
   the appointment carries is then registered against that client so other
   appointments can find it through any of them. Appointments that match
   nobody wait until the whole batch has been offered, since a key registered
   by a later appointment may still link them; only those still unmatched get
   fresh client ids, earliest first.
3. Each client's contributions are sorted chronologically and folded into
   its derived fields (appointment dates, contact details, name, first
   referral source). For a pre-existing client, contact details and name only
   move forward from appointments on or after its stored last appointment.

Appointments are classified in chronological order regardless of the order
they arrive in, so the same batch always produces the same identities.

Example:
    >>> resolver = ClientResolver("acct-1", persisted_clients=storage.load_clients("acct-1"))
    >>> resolution = resolver.resolve(appointments)
    >>> rows = resolver.get_upsert_payload()
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict, deque
from collections.abc import Callable, Iterable, Mapping
from contextlib import nullcontext
from dataclasses import dataclass
from datetime import datetime

from shearwork.clients.exceptions import AccountScopeError, ResolverStateError
from shearwork.clients.fields import (
    Timeline,
    chronological_key,
    compute_timeline,
    first_non_null,
    latest_non_null,
    sort_contributions,
)
from shearwork.clients.guard import ResolutionGuard, get_guard
from shearwork.clients.index import EquivalenceIndex
from shearwork.clients.keys import (
    IdentityKeys,
    clean_email,
    clean_string,
    keys_for_appointment,
)
from shearwork.clients.models import (
    ClientRecord,
    Contribution,
    NormalizedAppointment,
    Resolution,
)
from shearwork.clients.names import NamePair, fold_names
from shearwork.clients.payload import ClientUpsertRow, build_upsert_payload

logger = logging.getLogger(__name__)

# Attempts at drawing an unused id before giving up on the id factory
MAX_ID_ATTEMPTS = 10


def new_client_id() -> str:
    """Allocate a fresh opaque client id."""
    return str(uuid.uuid4())


@dataclass
class ClientResolutionStats:
    """Counters describing one resolve() call."""

    appointments_received: int = 0
    appointments_resolved: int = 0
    appointments_skipped: int = 0
    duplicate_appointments: int = 0
    matched_appointments: int = 0
    total_clients: int = 0
    new_clients: int = 0
    existing_clients: int = 0


def _key_slots(keys: IdentityKeys) -> list[tuple[str, str]]:
    """Non-empty keys tagged with the table they belong to."""
    slots = [("phone", keys.phone), ("email", keys.email), ("name", keys.name)]
    return [(table, key) for table, key in slots if key]


def _phone_pair(
    phone: str | None,
    phone_normalized: str | None,
) -> tuple[str | None, str | None] | None:
    if phone is None and phone_normalized is None:
        return None
    return (phone, phone_normalized)


class _BatchClassifier:
    """Assigns the appointments of one batch to client ids.

    An appointment that matches nobody is parked under each of its keys. When
    one of those keys is later registered to a client, the parked appointment
    is looked up again. Appointments still parked once the batch is exhausted
    get fresh ids in the order they were offered.
    """

    def __init__(
        self,
        index: EquivalenceIndex,
        allocate: Callable[[EquivalenceIndex, set[str]], str],
        stats: ClientResolutionStats,
    ):
        self.index = index
        self.stats = stats
        self.contributions: dict[str, list[Contribution]] = defaultdict(list)
        self.appointment_to_client: dict[str, str] = {}
        self.new_client_ids: set[str] = set()
        self._allocate = allocate
        self._pending: dict[str, tuple[NormalizedAppointment, IdentityKeys]] = {}
        self._waiting: dict[tuple[str, str], list[str]] = defaultdict(list)
        self._woken: deque[str] = deque()

    def offer(self, appt: NormalizedAppointment, keys: IdentityKeys) -> None:
        """Match an appointment now, or park it until one of its keys is known."""
        client_id = self.index.lookup(keys)
        if client_id is None:
            self._pending[appt.external_id] = (appt, keys)
            for slot in _key_slots(keys):
                self._waiting[slot].append(appt.external_id)
            return

        self.stats.matched_appointments += 1
        self._attach(appt, keys, client_id)
        self._drain()

    def finish(self) -> None:
        """Allocate clients for the appointments nothing could link."""
        while self._pending:
            external_id = next(iter(self._pending))
            appt, keys = self._pending.pop(external_id)
            client_id = self._allocate(self.index, self.new_client_ids)
            self.new_client_ids.add(client_id)
            logger.debug(f"Appointment {external_id} -> new client {client_id}")
            self._attach(appt, keys, client_id)
            self._drain()

    def _attach(
        self,
        appt: NormalizedAppointment,
        keys: IdentityKeys,
        client_id: str,
    ) -> None:
        self.index.register(keys, client_id)
        self.contributions[client_id].append(Contribution.from_appointment(appt))
        self.appointment_to_client[appt.external_id] = client_id
        for slot in _key_slots(keys):
            self._woken.extend(self._waiting.pop(slot, ()))

    def _drain(self) -> None:
        while self._woken:
            item = self._pending.pop(self._woken.popleft(), None)
            if item is None:
                continue
            appt, keys = item
            # One of its keys was just registered, so the lookup succeeds
            client_id = self.index.lookup(keys)
            self.stats.matched_appointments += 1
            self._attach(appt, keys, client_id)


class ClientResolver:
    """Resolve appointments of one account into client identities.

    A resolver is single-use: construct it with the account's persisted
    clients, call resolve() once, then read the upsert payload.

    Note:
        Resolutions for the same account must not overlap. resolve() holds
        the account in a ResolutionGuard and fails with
        ConcurrentResolutionError if another resolution is already running.
        A caller that already holds the account for a whole load-resolve-write
        cycle passes ``acquire_guard=False``.
    """

    def __init__(
        self,
        account_id: str,
        persisted_clients: Iterable[ClientRecord] = (),
        id_factory: Callable[[], str] | None = None,
        guard: ResolutionGuard | None = None,
        acquire_guard: bool = True,
    ):
        """Initialize the resolver.

        Args:
            account_id: Business account the appointments belong to.
            persisted_clients: Clients already stored for the account.
            id_factory: Callable allocating fresh client ids. Defaults to UUID4.
            guard: Guard used to serialize resolutions per account. Defaults
                to the process-wide guard.
            acquire_guard: If False, resolve() requires the account to be
                held in the guard already instead of acquiring it.

        Raises:
            AccountScopeError: If account_id is blank or a persisted client
                belongs to another account.
        """
        if not isinstance(account_id, str) or not account_id.strip():
            raise AccountScopeError("account_id is required to resolve clients")

        persisted: dict[str, ClientRecord] = {}
        for client in persisted_clients:
            if client.account_id is not None and client.account_id != account_id:
                raise AccountScopeError(
                    f"Client {client.client_id} belongs to account {client.account_id!r}, "
                    f"not {account_id!r}"
                )
            persisted[client.client_id] = client

        self.account_id = account_id
        self._persisted = persisted
        self._id_factory = id_factory or new_client_id
        self._guard = guard or get_guard()
        self._acquire_guard = acquire_guard
        self._resolution: Resolution | None = None
        self._stats: ClientResolutionStats | None = None

    @property
    def resolution(self) -> Resolution:
        """The result of resolve().

        Raises:
            ResolverStateError: If resolve() has not run yet.
        """
        if self._resolution is None:
            raise ResolverStateError("resolve() must be called first")
        return self._resolution

    @property
    def stats(self) -> ClientResolutionStats:
        """Counters of the completed resolve() call."""
        if self._stats is None:
            raise ResolverStateError("resolve() must be called first")
        return self._stats

    def resolve(self, appointments: Iterable[NormalizedAppointment]) -> Resolution:
        """Resolve a batch of appointments to client ids.

        Does NOT write anything; use get_upsert_payload() for the rows.

        Args:
            appointments: Normalized appointments of this account, any order.

        Returns:
            Resolution with touched clients, appointment mapping and new ids.

        Raises:
            ResolverStateError: If this resolver already ran, or the guard was
                expected to be held by the caller and is not.
            ConcurrentResolutionError: If the account is already being resolved.
        """
        if self._resolution is not None:
            raise ResolverStateError(
                "resolve() already ran on this resolver; create one per batch"
            )

        if self._acquire_guard:
            hold = self._guard.hold(self.account_id)
        elif self._guard.is_held(self.account_id):
            hold = nullcontext()
        else:
            raise ResolverStateError(
                f"acquire_guard=False requires account {self.account_id} to be held"
            )

        with hold:
            resolution, stats = self._resolve(list(appointments))

        self._resolution = resolution
        self._stats = stats
        logger.info(
            f"Resolved {stats.appointments_resolved} appointments for account "
            f"{self.account_id} into {stats.total_clients} clients "
            f"({stats.new_clients} new, {stats.existing_clients} existing, "
            f"{stats.appointments_skipped} skipped)"
        )
        return resolution

    def get_upsert_payload(
        self,
        now: datetime | None = None,
        appointment_counts: Mapping[str, int] | None = None,
    ) -> list[ClientUpsertRow]:
        """Return upsert rows for the resolved clients without writing them.

        Args:
            now: Timestamp stamped on every row. Defaults to the current UTC time.
            appointment_counts: Optional client id -> total appointment count.

        Raises:
            ResolverStateError: If resolve() has not run yet.
        """
        return build_upsert_payload(
            self.account_id,
            self.resolution.clients.values(),
            now=now,
            appointment_counts=appointment_counts,
        )

    def _resolve(
        self,
        appointments: list[NormalizedAppointment],
    ) -> tuple[Resolution, ClientResolutionStats]:
        index = EquivalenceIndex.from_clients(self._persisted.values())
        seeded_ids = index.client_ids
        stats = ClientResolutionStats(appointments_received=len(appointments))

        classifier = _BatchClassifier(index, self._allocate, stats)
        seen: set[str] = set()

        ordered = sorted(
            appointments,
            key=lambda a: chronological_key(a.date, a.timestamp, a.external_id),
        )
        for appt in ordered:
            if appt.external_id in seen:
                stats.duplicate_appointments += 1
                logger.debug(f"Ignoring duplicate appointment {appt.external_id}")
                continue

            keys = keys_for_appointment(appt)
            if not keys.is_resolvable:
                stats.appointments_skipped += 1
                logger.debug(f"Appointment {appt.external_id} has no identity signal")
                continue

            seen.add(appt.external_id)
            classifier.offer(appt, keys)
        classifier.finish()

        appointment_to_client = classifier.appointment_to_client
        new_client_ids = classifier.new_client_ids
        clients = {
            client_id: self._finalize(client_id, items)
            for client_id, items in classifier.contributions.items()
        }

        stats.appointments_resolved = len(appointment_to_client)
        stats.total_clients = len(clients)
        stats.new_clients = len(new_client_ids)
        stats.existing_clients = len([c for c in clients if c in seeded_ids])

        resolution = Resolution(
            clients=clients,
            appointment_to_client=appointment_to_client,
            new_client_ids=new_client_ids,
        )
        return resolution, stats

    def _allocate(self, index: EquivalenceIndex, allocated: set[str]) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            client_id = str(self._id_factory())
            if client_id not in index and client_id not in allocated:
                return client_id
        raise ResolverStateError(
            f"id_factory returned only ids already in use after {MAX_ID_ATTEMPTS} attempts"
        )

    def _finalize(self, client_id: str, contributions: list[Contribution]) -> ClientRecord:
        """Fold sorted contributions into the client's derived fields."""
        ordered = sort_contributions(contributions)
        persisted = self._persisted.get(client_id)

        if persisted is not None:
            persisted_timeline = Timeline(
                persisted.first_appt, persisted.second_appt, persisted.last_appt
            )
            seed_name = NamePair(
                clean_string(persisted.first_name), clean_string(persisted.last_name)
            )
            if seed_name.is_empty:
                seed_name = None
            seed_email = clean_email(persisted.email)
            seed_phone = _phone_pair(
                clean_string(persisted.phone), clean_string(persisted.phone_normalized)
            )
            seed_source = clean_string(persisted.first_source)
            # Appointments older than the stored last one never overwrite contact details
            current = [
                c
                for c in ordered
                if persisted.last_appt is None or c.date >= persisted.last_appt
            ]
        else:
            persisted_timeline = None
            seed_name = seed_email = seed_phone = seed_source = None
            current = ordered

        timeline = compute_timeline([c.date for c in ordered], persisted_timeline)
        name = fold_names(seed_name, (NamePair(c.first_name, c.last_name) for c in current))
        phone, phone_normalized = latest_non_null(
            (_phone_pair(c.phone, c.phone_normalized) for c in current),
            seed=seed_phone,
        ) or (None, None)

        return ClientRecord(
            client_id=client_id,
            account_id=self.account_id,
            email=latest_non_null((c.email for c in current), seed=seed_email),
            phone=phone,
            phone_normalized=phone_normalized,
            first_name=name.first if name else None,
            last_name=name.last if name else None,
            first_appt=timeline.first,
            second_appt=timeline.second,
            last_appt=timeline.last,
            first_source=first_non_null(
                (c.referral_source for c in ordered),
                seed=seed_source,
            ),
            updated_at=persisted.updated_at if persisted else None,
        )
