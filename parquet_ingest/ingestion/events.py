"""
Models for S3 object-created notifications.
"""

import logging
from typing import Any, List, Mapping, Optional
from urllib.parse import unquote_plus

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from parquet_ingest.errors import EventError

logger = logging.getLogger(__name__)


class S3Bucket(BaseModel):
    model_config = ConfigDict(extra='ignore')

    name: str = Field(min_length=1)


class S3Object(BaseModel):
    model_config = ConfigDict(extra='ignore')

    key: str = Field(min_length=1)
    size: Optional[int] = None
    eTag: Optional[str] = None
    versionId: Optional[str] = None
    sequencer: Optional[str] = None

    @property
    def decoded_key(self) -> str:
        """Object keys arrive URL-encoded in notifications."""
        return unquote_plus(self.key)


class S3Entity(BaseModel):
    model_config = ConfigDict(extra='ignore')

    bucket: S3Bucket
    object: S3Object


class S3EventRecord(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    event_name: Optional[str] = Field(default=None, alias='eventName')
    s3: S3Entity


class S3EventNotification(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    records: List[S3EventRecord] = Field(alias='Records')

    @classmethod
    def parse(cls, event: Mapping[str, Any]) -> "S3EventNotification":
        try:
            return cls.model_validate(event)
        except ValidationError as e:
            raise EventError(f"Malformed S3 notification: {e}") from e

    def first_record(self) -> S3EventRecord:
        """The record this invocation processes.

        Only the first record is handled; any others are logged and ignored.
        """
        if not self.records:
            raise EventError("S3 notification contains no records")

        if len(self.records) > 1:
            ignored = [record.s3.object.decoded_key for record in self.records[1:]]
            logger.warning(f"Ignoring {len(ignored)} additional records: {ignored}")

        return self.records[0]
