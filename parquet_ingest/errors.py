"""
Exception hierarchy for the ingestion pipeline.

Each stage raises its own error type so the caller can tell a bad file
from a storage outage or a database failure.
"""


class IngestionError(Exception):
    """Base exception for all pipeline failures."""


class ConfigError(IngestionError):
    """Raised for missing or invalid configuration."""


class EventError(IngestionError):
    """Raised when a trigger notification cannot be interpreted."""


class FetchError(IngestionError):
    """Raised when the source object cannot be downloaded."""


class DecodeError(IngestionError):
    """Base for failures while turning a file into order records."""


class FormatMismatch(DecodeError):
    """Raised when a file is not a Parquet file."""


class SchemaError(DecodeError):
    """Raised when a required column is missing or cannot be addressed."""


class CoercionError(DecodeError):
    """Raised when a value does not have the expected native type."""


class RowCountMismatch(DecodeError):
    """Raised when column lengths disagree with the declared row count."""


class LoadError(IngestionError):
    """Raised for any failure while loading rows into the database."""


class PipelineError(IngestionError):
    """Raised when the pipeline driver is used out of order."""
