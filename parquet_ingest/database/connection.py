"""
Database connection management with scoped transactions.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

import psycopg2
from psycopg2.extensions import connection as PgConnection

from parquet_ingest.config import DatabaseSettings

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Opens one connection per unit of work against the target database."""

    def __init__(
        self,
        settings: DatabaseSettings,
        connection_factory: Callable[..., PgConnection] = psycopg2.connect
    ):
        self.settings = settings
        self.connection_factory = connection_factory

    def connect(self) -> PgConnection:
        """Open a new connection. Autocommit stays off."""
        try:
            connection = self.connection_factory(**self.settings.connection_kwargs())
            logger.info(
                f"Connected to database {self.settings.dbname} at "
                f"{self.settings.host}:{self.settings.port}"
            )
            return connection
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

    @contextmanager
    def transaction(self) -> Iterator[PgConnection]:
        """Yield a connection whose work is committed on clean exit.

        Any exception, including a failed commit, rolls the transaction
        back. The connection is always closed.
        """
        connection = self.connect()
        try:
            yield connection
            connection.commit()
            logger.debug("Transaction committed")
        except Exception:
            self._rollback(connection)
            raise
        finally:
            connection.close()

    def _rollback(self, connection: PgConnection) -> None:
        try:
            connection.rollback()
            logger.warning("Transaction rolled back")
        except psycopg2.Error as e:
            # Closing the connection discards the transaction server-side
            logger.error(f"Rollback failed: {e}")

    def execute_query(self, query, params: Optional[tuple] = None, fetch: bool = True):
        """Execute a single statement in its own transaction."""
        with self.transaction() as connection:
            with connection.cursor() as cursor:
                cursor.execute(query, params)

                if fetch:
                    if cursor.description:
                        columns = [desc[0] for desc in cursor.description]
                        return [dict(zip(columns, row)) for row in cursor.fetchall()]
                    return []
                return cursor.rowcount

    def health_check(self) -> bool:
        """Check if database is healthy and accessible."""
        try:
            result = self.execute_query("SELECT 1 as health_check")
            return len(result) > 0 and result[0]['health_check'] == 1
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False
