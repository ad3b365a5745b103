"""Pytest configuration and shared fakes."""

import csv
import io
import shutil
import sys
from pathlib import Path

import psycopg2
import pytest
import structlog
from structlog.contextvars import merge_contextvars
from structlog.testing import LogCapture

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from parquet_ingest.config import DatabaseSettings, StorageSettings  # noqa: E402
from parquet_ingest.database.connection import DatabaseManager  # noqa: E402
from parquet_ingest.tools.parquet_generator import write_orders  # noqa: E402

SAMPLE_ORDERS = [
    (1, "A", "B", "a@x.com", 2, 9.99),
    (2, "C", "D", "c@x.com", 1, 4.50),
    (3, "E", "F", "e@x.com", 5, 20.00),
]


class FakeCursor:
    """Cursor that records COPY payloads into its connection's pending rows."""

    def __init__(self, connection):
        self.connection = connection
        self.rowcount = -1
        self.description = None
        self._results = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def copy_expert(self, statement, buffer):
        database = self.connection.database
        self.connection.statements.append(statement)
        if database.fail_on == 'copy':
            raise psycopg2.DataError('invalid input syntax for type integer')
        rows = list(csv.reader(io.StringIO(buffer.read())))
        self.connection.pending.extend(rows)
        self.rowcount = len(rows) if database.report_rowcount is None else database.report_rowcount

    def execute(self, query, params=None):
        database = self.connection.database
        self.connection.statements.append(query)
        if database.fail_on == 'execute':
            raise psycopg2.ProgrammingError('relation does not exist')
        text = str(query)
        if 'COUNT' in text:
            self.description = [('row_count',)]
            self._results = [(len(database.rows),)]
        elif 'SELECT 1' in text:
            self.description = [('health_check',)]
            self._results = [(1,)]
        else:
            self.description = None
            self._results = []
        self.rowcount = len(self._results)

    def fetchall(self):
        return list(self._results)


class FakeConnection:
    def __init__(self, database):
        self.database = database
        self.pending = []
        self.statements = []
        self.committed = False
        self.rolled_back = False
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        if self.database.fail_on == 'commit':
            raise psycopg2.OperationalError('server closed the connection unexpectedly')
        self.database.rows.extend(self.pending)
        self.pending = []
        self.committed = True

    def rollback(self):
        self.pending = []
        self.rolled_back = True

    def close(self):
        self.closed = True


class FakeDatabase:
    """In-memory stand-in for a Postgres server.

    Rows only become visible in ``rows`` once a connection commits.
    """

    def __init__(self):
        self.rows = []
        self.connections = []
        self.connect_kwargs = []
        self.fail_on = None
        self.report_rowcount = None

    def connect(self, **kwargs):
        self.connect_kwargs.append(kwargs)
        if self.fail_on == 'connect':
            raise psycopg2.OperationalError('could not connect to server')
        connection = FakeConnection(self)
        self.connections.append(connection)
        return connection


class FakeFetcher:
    """Fetcher that copies a local file instead of downloading."""

    def __init__(self, source_path=None, error=None):
        self.source_path = source_path
        self.error = error
        self.calls = []

    def fetch(self, bucket, key, destination):
        self.calls.append((bucket, key, Path(destination)))
        if self.error:
            raise self.error
        shutil.copyfile(self.source_path, destination)
        return Path(destination).stat().st_size


@pytest.fixture
def db_settings():
    return DatabaseSettings(host='localhost', port=5432, user='loader', password='secret', dbname='orders')


@pytest.fixture
def storage_settings(tmp_path):
    return StorageSettings(region='us-east-1', scratch_dir=str(tmp_path / 'scratch'))


@pytest.fixture
def fake_database():
    return FakeDatabase()


@pytest.fixture
def db_manager(db_settings, fake_database):
    return DatabaseManager(db_settings, connection_factory=fake_database.connect)


@pytest.fixture
def sample_file(tmp_path):
    return write_orders(tmp_path / 'orders.parquet', SAMPLE_ORDERS)


@pytest.fixture
def sample_orders():
    return list(SAMPLE_ORDERS)


@pytest.fixture
def make_fetcher():
    return FakeFetcher


@pytest.fixture
def log_output():
    output = LogCapture()
    structlog.configure(processors=[merge_contextvars, output])
    yield output
    structlog.reset_defaults()
