"""Client storage in BigQuery.

Loads the persisted clients that seed a resolution and writes the upsert
payload back. Rows are keyed by (account_id, client_id).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from google.api_core.exceptions import GoogleAPIError

from shearwork.clients.config import ClientSyncConfig
from shearwork.clients.exceptions import ClientLoadError, ClientWriteError
from shearwork.clients.models import ClientRecord
from shearwork.clients.payload import ClientUpsertRow

if TYPE_CHECKING:
    from google.cloud import bigquery

logger = logging.getLogger(__name__)

# SQL for creating the clients table
CREATE_CLIENTS_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS `{table_id}` (
    account_id STRING NOT NULL,
    client_id STRING NOT NULL,
    email STRING,
    phone_normalized STRING,
    phone STRING,
    first_name STRING,
    last_name STRING,
    first_appt DATE,
    second_appt DATE,
    last_appt DATE,
    first_source STRING,
    total_appointments INT64 DEFAULT 0,
    updated_at TIMESTAMP
)
"""

CLIENT_COLUMNS = (
    "client_id, account_id, email, phone, phone_normalized, first_name, last_name, "
    "first_appt, second_appt, last_appt, first_source, updated_at"
)

# Column name -> BigQuery type for upsert rows
UPSERT_COLUMNS: dict[str, str] = {
    "account_id": "STRING",
    "client_id": "STRING",
    "email": "STRING",
    "phone_normalized": "STRING",
    "phone": "STRING",
    "first_name": "STRING",
    "last_name": "STRING",
    "first_appt": "DATE",
    "second_appt": "DATE",
    "last_appt": "DATE",
    "first_source": "STRING",
    "total_appointments": "INT64",
    "updated_at": "TIMESTAMP",
}


class ClientStorage:
    """Storage for resolved clients in BigQuery.

    Example:
        >>> storage = ClientStorage(ClientSyncConfig(project_id="my-project"))
        >>> persisted = storage.load_clients("acct-1")
        >>> storage.upsert_clients(rows)
    """

    def __init__(
        self,
        config: ClientSyncConfig | None = None,
        client: bigquery.Client | None = None,
    ):
        """Initialize client storage.

        Args:
            config: Sync configuration. Loaded from the environment if omitted.
            client: Optional BigQuery client. Will be created if not provided.
        """
        self.config = config or ClientSyncConfig.from_env()
        self._client = client

    @property
    def client(self) -> bigquery.Client:
        """Lazy-initialize BigQuery client."""
        if self._client is None:
            from google.cloud import bigquery

            self._client = bigquery.Client(
                project=self.config.project_id,
                location=self.config.location,
            )
        return self._client

    @property
    def table_id(self) -> str:
        """Full table ID for the clients table."""
        return self.config.clients_table_id

    def ensure_table_exists(self) -> None:
        """Create the clients table if it doesn't exist."""
        sql = CREATE_CLIENTS_TABLE_SQL.format(table_id=self.table_id)
        self.client.query(sql).result()
        logger.info(f"Ensured clients table exists: {self.table_id}")

    def load_clients(self, account_id: str) -> list[ClientRecord]:
        """Load every persisted client of an account.

        Args:
            account_id: The account to load clients for.

        Returns:
            Persisted clients.

        Raises:
            ClientLoadError: If the query fails or a row is malformed. A
                partial seed is never returned.
        """
        sql = f"""
        SELECT {CLIENT_COLUMNS}
        FROM `{self.table_id}`
        WHERE account_id = @account_id
        """

        from google.cloud import bigquery

        job_config = bigquery.QueryJobConfig(
            query_parameters=[
                bigquery.ScalarQueryParameter("account_id", "STRING", account_id),
            ]
        )

        try:
            result = self.client.query(sql, job_config=job_config).result()
            clients = [ClientRecord.from_row(row) for row in result]
        except (GoogleAPIError, ValueError) as e:
            raise ClientLoadError(
                f"Failed to load clients for account {account_id}: {e}"
            ) from e

        logger.info(f"Loaded {len(clients)} persisted clients for account {account_id}")
        return clients

    def count_appointments(
        self,
        account_id: str,
        client_ids: Sequence[str],
    ) -> dict[str, int]:
        """Count stored appointments per client.

        Client ids are queried in batches of ``config.count_batch_size``.

        Args:
            account_id: The account the clients belong to.
            client_ids: Clients to count appointments for.

        Returns:
            Mapping of client id to appointment count. Clients without any
            stored appointment are absent.

        Raises:
            ClientLoadError: If a count query fails.
        """
        sql = f"""
        SELECT client_id, COUNT(*) AS total
        FROM `{self.config.appointments_table_id}`
        WHERE account_id = @account_id AND client_id IN UNNEST(@client_ids)
        GROUP BY client_id
        """

        from google.cloud import bigquery

        counts: dict[str, int] = {}
        batch_size = self.config.count_batch_size
        ids = list(client_ids)
        for start in range(0, len(ids), batch_size):
            batch = ids[start : start + batch_size]
            job_config = bigquery.QueryJobConfig(
                query_parameters=[
                    bigquery.ScalarQueryParameter("account_id", "STRING", account_id),
                    bigquery.ArrayQueryParameter("client_ids", "STRING", batch),
                ]
            )
            try:
                result = self.client.query(sql, job_config=job_config).result()
            except GoogleAPIError as e:
                raise ClientLoadError(
                    f"Failed to count appointments for account {account_id}: {e}"
                ) from e
            for row in result:
                counts[row["client_id"]] = int(row["total"])

        return counts

    def upsert_clients(self, rows: Sequence[ClientUpsertRow]) -> int:
        """Upsert client rows, overwriting existing rows with the same key.

        Args:
            rows: Rows produced by the upsert payload builder.

        Returns:
            Number of rows written.

        Raises:
            ClientWriteError: If a MERGE statement fails.
        """
        if not rows:
            return 0

        assignments = ",\n                ".join(
            f"{column} = source.{column}"
            for column in UPSERT_COLUMNS
            if column not in ("account_id", "client_id")
        )
        columns = ", ".join(UPSERT_COLUMNS)
        values = ", ".join(f"source.{column}" for column in UPSERT_COLUMNS)

        sql = f"""
        MERGE `{self.table_id}` AS target
        USING UNNEST(@rows) AS source
        ON target.account_id = source.account_id AND target.client_id = source.client_id
        WHEN MATCHED THEN
            UPDATE SET
                {assignments}
        WHEN NOT MATCHED THEN
            INSERT ({columns})
            VALUES ({values})
        """

        from google.cloud import bigquery

        written = 0
        batch_size = self.config.upsert_batch_size
        for start in range(0, len(rows), batch_size):
            batch = rows[start : start + batch_size]
            structs = [
                bigquery.StructQueryParameter(
                    None,
                    *(
                        bigquery.ScalarQueryParameter(column, type_, getattr(row, column))
                        for column, type_ in UPSERT_COLUMNS.items()
                    ),
                )
                for row in batch
            ]
            job_config = bigquery.QueryJobConfig(
                query_parameters=[bigquery.ArrayQueryParameter("rows", "STRUCT", structs)]
            )
            try:
                self.client.query(sql, job_config=job_config).result()
            except GoogleAPIError as e:
                raise ClientWriteError(
                    f"Failed to upsert {len(batch)} clients into {self.table_id}: {e}"
                ) from e
            written += len(batch)

        logger.info(f"Upserted {written} clients into {self.table_id}")
        return written
