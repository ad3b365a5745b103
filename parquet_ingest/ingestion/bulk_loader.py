"""
Bulk loader that copies order records into Postgres in one transaction.
"""

import csv
import io
import logging
from typing import Optional, Sequence

import psycopg2
from psycopg2 import sql

from parquet_ingest.config import DatabaseSettings
from parquet_ingest.database.connection import DatabaseManager
from parquet_ingest.errors import LoadError
from parquet_ingest.ingestion.parquet_decoder import OrderRecord

logger = logging.getLogger(__name__)

TARGET_TABLE = 'test_orders'
TARGET_COLUMNS = ('orderid', 'firstname', 'lastname', 'email', 'quantity', 'ordertotal')


class CopyInStream:
    """A COPY ... FROM STDIN statement fed one row at a time.

    Rows are serialised as CSV into an in-memory buffer by ``write_row``;
    ``flush`` sends the whole buffer to the server in one COPY and ``close``
    releases it.
    """

    def __init__(self, cursor, table: str, columns: Sequence[str]):
        self.cursor = cursor
        self.column_count = len(columns)
        self.statement = sql.SQL("COPY {} ({}) FROM STDIN WITH (FORMAT csv)").format(
            sql.Identifier(table),
            sql.SQL(', ').join(sql.Identifier(column) for column in columns),
        )
        self.buffer = io.StringIO()
        # Strings are always quoted so an empty string is not read as NULL
        self.writer = csv.writer(self.buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator='\n')
        self.rows_written = 0
        self.closed = False

    def write_row(self, row: Sequence) -> None:
        if self.closed:
            raise LoadError("Cannot write to a closed copy stream")
        if len(row) != self.column_count:
            raise LoadError(
                f"Row {self.rows_written} has {len(row)} values, expected {self.column_count}"
            )
        try:
            self.writer.writerow(row)
        except csv.Error as e:
            raise LoadError(f"Row {self.rows_written} could not be serialised: {e}") from e
        self.rows_written += 1

    def flush(self) -> int:
        """Run the COPY. Returns the server-reported row count, or -1."""
        if self.closed:
            raise LoadError("Cannot flush a closed copy stream")
        self.buffer.seek(0)
        self.cursor.copy_expert(self.statement, self.buffer)
        return self.cursor.rowcount

    def close(self) -> None:
        self.buffer.close()
        self.closed = True


class BulkLoader:
    """Loads a batch of order records all-or-nothing."""

    def __init__(
        self,
        settings: DatabaseSettings,
        db: Optional[DatabaseManager] = None,
        table: str = TARGET_TABLE,
        columns: Sequence[str] = TARGET_COLUMNS
    ):
        self.db = db or DatabaseManager(settings)
        self.table = table
        self.columns = tuple(columns)

    def load(self, records: Sequence[OrderRecord]) -> int:
        """Copy every record into the target table and commit.

        Raises LoadError on any failure; nothing is committed in that case.
        """
        if not records:
            logger.info("No order records to load")
            return 0

        try:
            with self.db.transaction() as connection:
                with connection.cursor() as cursor:
                    stream = CopyInStream(cursor, self.table, self.columns)
                    try:
                        for record in records:
                            stream.write_row(record.as_row())
                        copied = stream.flush()
                    finally:
                        stream.close()

                    if copied not in (-1, None) and copied != len(records):
                        raise LoadError(
                            f"COPY reported {copied} rows for a batch of {len(records)}"
                        )

        except LoadError as e:
            logger.error(f"Bulk load into {self.table} aborted: {e}")
            raise
        except psycopg2.Error as e:
            logger.error(f"Bulk load into {self.table} failed: {e}")
            raise LoadError(f"Database error while loading {self.table}: {e}") from e

        logger.info(f"Committed {len(records)} rows into {self.table}")
        return len(records)

    def count_rows(self) -> int:
        """Number of rows currently in the target table."""
        query = sql.SQL("SELECT COUNT(*) AS row_count FROM {}").format(sql.Identifier(self.table))
        try:
            result = self.db.execute_query(query)
        except psycopg2.Error as e:
            raise LoadError(f"Failed to count rows in {self.table}: {e}") from e
        return result[0]['row_count']
