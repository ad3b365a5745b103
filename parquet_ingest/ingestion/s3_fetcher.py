"""
S3 client for downloading source objects into scratch space.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Union

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from parquet_ingest.config import StorageSettings
from parquet_ingest.errors import FetchError

logger = logging.getLogger(__name__)


def create_s3_client(settings: StorageSettings) -> Any:
    """Create a boto3 S3 client using the default credential chain."""
    session_kwargs = {'region_name': settings.region}
    if settings.profile:
        session_kwargs['profile_name'] = settings.profile
    session = boto3.session.Session(**session_kwargs)
    return session.client('s3')


class S3Fetcher:
    """Copies a single object from S3 to a local path."""

    def __init__(self, settings: StorageSettings, s3_client: Optional[Any] = None):
        self.settings = settings
        self._client = s3_client

    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                self._client = create_s3_client(self.settings)
            except BotoCoreError as e:
                raise FetchError(f"Failed to create S3 session: {e}") from e
        return self._client

    def fetch(self, bucket: str, key: str, destination: Union[str, Path]) -> int:
        """Download s3://bucket/key to destination.

        Returns the number of bytes written. Raises FetchError if the object
        is missing, the transfer fails, or the local file cannot be written.
        """
        destination = Path(destination)
        logger.info(f"Downloading s3://{bucket}/{key} to {destination}")

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            self.client.download_file(bucket, key, str(destination))
            size = destination.stat().st_size
        except ClientError as e:
            code = e.response.get('Error', {}).get('Code', 'Unknown')
            logger.error(f"S3 returned {code} for s3://{bucket}/{key}")
            raise FetchError(f"Failed to download s3://{bucket}/{key}: {code}") from e
        except (BotoCoreError, OSError) as e:
            logger.error(f"Error downloading s3://{bucket}/{key}: {e}")
            raise FetchError(f"Failed to download s3://{bucket}/{key}: {e}") from e

        logger.info(f"File downloaded, {size} bytes")
        return size

    def check_bucket(self, bucket: str) -> None:
        """Raise FetchError if the bucket cannot be reached."""
        try:
            self.client.head_bucket(Bucket=bucket)
        except (ClientError, BotoCoreError) as e:
            raise FetchError(f"Bucket {bucket} is not accessible: {e}") from e
