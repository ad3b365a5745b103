"""
Entry points: the Lambda handler for S3 notifications and a local CLI.
"""

import argparse
import json
import sys
import uuid
from typing import Any, Dict, List, Mapping, Optional

from parquet_ingest.config import DatabaseSettings, StorageSettings
from parquet_ingest.database.connection import DatabaseManager
from parquet_ingest.errors import EventError, IngestionError
from parquet_ingest.ingestion.bulk_loader import BulkLoader
from parquet_ingest.ingestion.events import S3EventNotification
from parquet_ingest.ingestion.parquet_decoder import ParquetDecoder
from parquet_ingest.ingestion.pipeline import IngestionPipeline, PipelineResult
from parquet_ingest.ingestion.s3_fetcher import S3Fetcher
from parquet_ingest.monitoring.health import HealthChecker
from parquet_ingest.monitoring.logger_config import IngestionLogger, get_logger, invocation_context

_logging_configured = False


def _ensure_logging() -> None:
    global _logging_configured
    if not _logging_configured:
        IngestionLogger.setup_logging()
        _logging_configured = True


def build_pipeline(
    correlation_id: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None
) -> IngestionPipeline:
    """Resolve configuration and wire up a pipeline for one invocation.

    Raises ConfigError before any network or disk I/O.
    """
    db_settings = DatabaseSettings.from_env(environ)
    storage_settings = StorageSettings.from_env(environ)

    return IngestionPipeline(
        fetcher=S3Fetcher(storage_settings),
        decoder=ParquetDecoder(),
        loader=BulkLoader(db_settings),
        scratch_dir=storage_settings.scratch_dir,
        correlation_id=correlation_id,
    )


def lambda_handler(event: Mapping[str, Any], context: Any = None) -> Dict[str, Any]:
    """Process the first record of an S3 object-created notification.

    Returns an acknowledgment describing the loaded object. Errors are
    re-raised so the invocation is reported as failed; pipeline failures
    are logged by the pipeline itself.
    """
    _ensure_logging()
    correlation_id = getattr(context, 'aws_request_id', None) or str(uuid.uuid4())
    log = get_logger()

    with invocation_context(correlation_id):
        try:
            record = S3EventNotification.parse(event).first_record()
            pipeline = build_pipeline(correlation_id)
        except IngestionError as e:
            log.error("Invocation rejected", error_type=type(e).__name__, error_message=str(e))
            raise

        bucket = record.s3.bucket.name
        key = record.s3.object.decoded_key
        log.info("Received object notification", bucket=bucket, key=key, event_name=record.event_name)

        result = pipeline.run(bucket, key)

    return {
        'bucket': bucket,
        'key': key,
        'size': record.s3.object.size,
        'etag': record.s3.object.eTag,
        'bytes_downloaded': result.bytes_downloaded,
        'rows_loaded': result.rows_loaded,
    }


def _run_cli(args: argparse.Namespace) -> PipelineResult:
    if args.local_file:
        return build_pipeline().run_local(args.local_file)

    if args.event:
        try:
            with open(args.event, 'r', encoding='utf-8') as f:
                event = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise EventError(f"Cannot read event file {args.event}: {e}") from e
        record = S3EventNotification.parse(event).first_record()
        return build_pipeline().run(record.s3.bucket.name, record.s3.object.decoded_key)

    return build_pipeline().run(args.bucket, args.key)


def _health_check(bucket: Optional[str]) -> bool:
    db_settings = DatabaseSettings.from_env()
    storage_settings = StorageSettings.from_env()
    checker = HealthChecker(DatabaseManager(db_settings), S3Fetcher(storage_settings))
    status = checker.get_health_status(bucket)
    print(json.dumps(status, indent=2))
    return status['status'] == 'healthy'


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for local runs."""
    parser = argparse.ArgumentParser(description='Load a Parquet order file into Postgres')
    parser.add_argument('--bucket', help='Source bucket name')
    parser.add_argument('--key', help='Source object key')
    parser.add_argument('--event', help='Path to an S3 notification JSON file')
    parser.add_argument('--local-file', help='Decode and load a local file, skipping the download')
    parser.add_argument('--health-check', action='store_true', help='Check database and bucket access')

    args = parser.parse_args(argv)

    if not args.health_check and not (args.local_file or args.event or (args.bucket and args.key)):
        parser.error('one of --local-file, --event, --bucket/--key or --health-check is required')

    _ensure_logging()

    try:
        if args.health_check:
            return 0 if _health_check(args.bucket) else 1

        result = _run_cli(args)
    except IngestionError as e:
        print(f"Ingestion failed ({type(e).__name__}): {e}", file=sys.stderr)
        return 1

    print(f"Loaded {result.rows_loaded} rows from {result.source}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
