"""Client sync orchestration.

Runs the full client step of a booking sync for one account and one time
window: load persisted clients, resolve the window's appointments, count
appointments per client, build the upsert payload and write it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from shearwork.clients.config import ClientSyncConfig
from shearwork.clients.exceptions import AccountScopeError
from shearwork.clients.guard import ResolutionGuard, get_guard
from shearwork.clients.models import NormalizedAppointment, Resolution
from shearwork.clients.payload import ClientUpsertRow
from shearwork.clients.resolver import ClientResolutionStats, ClientResolver
from shearwork.clients.storage import ClientStorage

logger = logging.getLogger(__name__)


@dataclass
class ClientSyncResult:
    """Result of a client sync run."""

    account_id: str
    resolution: Resolution
    stats: ClientResolutionStats
    rows: list[ClientUpsertRow] = field(default_factory=list)
    rows_written: int = 0
    dry_run: bool = False
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration_seconds(self) -> float | None:
        """Return sync duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


class ClientSyncOrchestrator:
    """Orchestrates client resolution and persistence for one account.

    Load and write failures propagate to the caller; nothing is resolved
    when the persisted clients cannot be loaded.

    Example:
        >>> orchestrator = ClientSyncOrchestrator()
        >>> result = orchestrator.sync("acct-1", appointments)
        >>> print(f"{result.stats.new_clients} new clients")
    """

    def __init__(
        self,
        storage: ClientStorage | None = None,
        config: ClientSyncConfig | None = None,
        guard: ResolutionGuard | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            storage: Client storage. Created from config if not provided.
            config: Sync configuration. Defaults to the storage's config, or
                the environment.
            guard: Guard serializing syncs per account. Defaults to the
                process-wide guard.
            id_factory: Allocator for new client ids, passed to the resolver.
        """
        self._storage = storage
        if config is None:
            config = storage.config if storage is not None else ClientSyncConfig.from_env()
        self.config = config
        self.guard = guard or get_guard()
        self._id_factory = id_factory

    @property
    def storage(self) -> ClientStorage:
        """Lazy-initialize client storage."""
        if self._storage is None:
            self._storage = ClientStorage(self.config)
        return self._storage

    def sync(
        self,
        account_id: str,
        appointments: Iterable[NormalizedAppointment],
        dry_run: bool | None = None,
    ) -> ClientSyncResult:
        """Resolve and persist the clients of an appointment batch.

        Args:
            account_id: Account the appointments belong to.
            appointments: Normalized appointments of one sync window.
            dry_run: Skip the write. Defaults to ``config.dry_run``.

        Returns:
            ClientSyncResult with the resolution, rows and statistics.

        Raises:
            AccountScopeError: If account_id is blank.
            ClientLoadError: If persisted clients or counts cannot be loaded.
            ClientWriteError: If the upsert fails.
            ConcurrentResolutionError: If another sync or resolution for the
                account is in flight.
        """
        if not isinstance(account_id, str) or not account_id.strip():
            raise AccountScopeError("account_id is required to sync clients")

        dry_run = self.config.dry_run if dry_run is None else dry_run
        started_at = datetime.now(UTC)

        # Held from load through write
        with self.guard.hold(account_id):
            persisted = self.storage.load_clients(account_id)
            resolver = ClientResolver(
                account_id,
                persisted_clients=persisted,
                id_factory=self._id_factory,
                guard=self.guard,
                acquire_guard=False,
            )
            resolution = resolver.resolve(appointments)

            counts = self.storage.count_appointments(account_id, sorted(resolution.clients))
            rows = resolver.get_upsert_payload(appointment_counts=counts)

            rows_written = 0
            if dry_run:
                logger.info(
                    f"Dry run: skipping upsert of {len(rows)} clients for account {account_id}"
                )
            else:
                rows_written = self.storage.upsert_clients(rows)

        result = ClientSyncResult(
            account_id=account_id,
            resolution=resolution,
            stats=resolver.stats,
            rows=rows,
            rows_written=rows_written,
            dry_run=dry_run,
            started_at=started_at,
            completed_at=datetime.now(UTC),
        )
        logger.info(
            f"Client sync completed for account {account_id}: "
            f"{result.stats.total_clients} clients, {rows_written} rows written"
        )
        return result
