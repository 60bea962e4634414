"""Configuration for client sync runs."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

_TRUTHY = {"1", "true", "yes", "on"}


class ClientSyncConfig(BaseModel):
    """Configuration for client storage and sync runs.

    ``table_prefix`` points a run at test tables, e.g. "test_" reads and
    writes ``test_clients`` / ``test_appointments``.
    """

    project_id: str | None = None
    dataset: str = "shearwork"
    location: str = "US"
    table_prefix: str = ""
    count_batch_size: int = Field(default=100, gt=0)
    upsert_batch_size: int = Field(default=500, gt=0)
    dry_run: bool = False

    @classmethod
    def from_env(cls) -> ClientSyncConfig:
        """Load configuration from environment variables."""
        return cls(
            project_id=os.getenv("GCP_PROJECT_ID") or os.getenv("SHEARWORK_PROJECT_ID"),
            dataset=os.getenv("SHEARWORK_CLIENTS_DATASET", "shearwork"),
            location=os.getenv("SHEARWORK_BQ_LOCATION", "US"),
            table_prefix=os.getenv("SHEARWORK_TABLE_PREFIX", ""),
            dry_run=os.getenv("SHEARWORK_DRY_RUN", "").strip().lower() in _TRUTHY,
        )

    @property
    def clients_table_id(self) -> str:
        """Fully qualified clients table."""
        return self._table_id("clients")

    @property
    def appointments_table_id(self) -> str:
        """Fully qualified appointments table."""
        return self._table_id("appointments")

    def _table_id(self, name: str) -> str:
        table = f"{self.table_prefix}{name}"
        if self.project_id:
            return f"{self.project_id}.{self.dataset}.{table}"
        return f"{self.dataset}.{table}"
