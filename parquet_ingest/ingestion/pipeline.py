"""
Pipeline driver that sequences fetch, decode and load for one object.
"""

import tempfile
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Union

from parquet_ingest.errors import FetchError, PipelineError
from parquet_ingest.ingestion.bulk_loader import BulkLoader
from parquet_ingest.ingestion.parquet_decoder import OrderRecord, ParquetDecoder
from parquet_ingest.ingestion.s3_fetcher import S3Fetcher
from parquet_ingest.monitoring.logger_config import OperationLogger, get_logger, invocation_context


class PipelineState(str, Enum):
    IDLE = 'idle'
    FETCHING = 'fetching'
    DECODING = 'decoding'
    LOADING = 'loading'
    DONE = 'done'
    FAILED = 'failed'


ALLOWED_TRANSITIONS = {
    PipelineState.IDLE: {PipelineState.FETCHING, PipelineState.DECODING},
    PipelineState.FETCHING: {PipelineState.DECODING, PipelineState.FAILED},
    PipelineState.DECODING: {PipelineState.LOADING, PipelineState.FAILED},
    PipelineState.LOADING: {PipelineState.DONE, PipelineState.FAILED},
    PipelineState.DONE: set(),
    PipelineState.FAILED: set(),
}


@dataclass
class PipelineResult:
    """Outcome of a successful run."""

    source: str
    rows_loaded: int
    bytes_downloaded: Optional[int] = None
    correlation_id: Optional[str] = None
    states: List[PipelineState] = field(default_factory=list)


def object_filename(key: str) -> str:
    """Last path segment of an object key; empty for directory markers."""
    return key.rsplit('/', 1)[-1]


class IngestionPipeline:
    """Runs one object through fetch, decode and load, exactly once.

    Any stage failure moves the pipeline to FAILED and re-raises the
    error; nothing is retried here.
    """

    def __init__(
        self,
        fetcher: Optional[S3Fetcher],
        decoder: ParquetDecoder,
        loader: BulkLoader,
        scratch_dir: Optional[str] = None,
        correlation_id: Optional[str] = None
    ):
        self.fetcher = fetcher
        self.decoder = decoder
        self.loader = loader
        self.scratch_dir = scratch_dir
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self.logger = get_logger()

        self.state = PipelineState.IDLE
        self.history: List[PipelineState] = [PipelineState.IDLE]

    def _transition(self, state: PipelineState) -> None:
        if state not in ALLOWED_TRANSITIONS[self.state]:
            raise PipelineError(f"Invalid pipeline transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _fail(self, error: Exception) -> None:
        """Move to FAILED and log the error; the only place a failure is logged."""
        failed_stage = self.state
        self._transition(PipelineState.FAILED)
        self.logger.error(
            "Pipeline failed",
            stage=failed_stage.value,
            error_type=type(error).__name__,
            error_message=str(error),
            states=[state.value for state in self.history],
        )

    def _check_idle(self) -> None:
        if self.state is not PipelineState.IDLE:
            raise PipelineError(f"Pipeline already ran (state: {self.state.value})")

    def run(self, bucket: str, key: str) -> PipelineResult:
        """Download s3://bucket/key, decode it and load its rows."""
        self._check_idle()

        with invocation_context(self.correlation_id, bucket=bucket, key=key):
            self._transition(PipelineState.FETCHING)
            try:
                with tempfile.TemporaryDirectory(prefix='parquet-ingest-', dir=self._scratch()) as scratch:
                    local_path, bytes_downloaded = self._fetch(bucket, key, Path(scratch))
                    records = self._decode(local_path)

                rows_loaded = self._load(records)

            except Exception as e:
                self._fail(e)
                raise

            self._transition(PipelineState.DONE)
            self.logger.info("Pipeline completed", rows_loaded=rows_loaded, bytes_downloaded=bytes_downloaded)

        return PipelineResult(
            source=f"s3://{bucket}/{key}",
            rows_loaded=rows_loaded,
            bytes_downloaded=bytes_downloaded,
            correlation_id=self.correlation_id,
            states=list(self.history),
        )

    def run_local(self, path: Union[str, Path]) -> PipelineResult:
        """Decode and load a file already on local disk (no fetch stage)."""
        self._check_idle()

        with invocation_context(self.correlation_id, path=str(path)):
            try:
                records = self._decode(Path(path))
                rows_loaded = self._load(records)
            except Exception as e:
                self._fail(e)
                raise

            self._transition(PipelineState.DONE)
            self.logger.info("Pipeline completed", rows_loaded=rows_loaded)

        return PipelineResult(
            source=str(path),
            rows_loaded=rows_loaded,
            correlation_id=self.correlation_id,
            states=list(self.history),
        )

    def _scratch(self) -> Optional[str]:
        if self.scratch_dir:
            Path(self.scratch_dir).mkdir(parents=True, exist_ok=True)
        return self.scratch_dir

    def _fetch(self, bucket: str, key: str, scratch: Path):
        if self.fetcher is None:
            raise PipelineError("No fetcher configured for S3 runs")

        filename = object_filename(key)
        if not filename:
            raise FetchError(f"Object key does not name a file: {key}")

        local_path = scratch / filename
        with OperationLogger('fetch', self.logger) as op:
            bytes_downloaded = self.fetcher.fetch(bucket, key, local_path)
            op.record(bytes_downloaded=bytes_downloaded)

        return local_path, bytes_downloaded

    def _decode(self, path: Path) -> List[OrderRecord]:
        self._transition(PipelineState.DECODING)

        with OperationLogger('decode', self.logger, file=path.name) as op:
            records = self.decoder.decode_file(path)
            op.record(rows_decoded=len(records))

        return records

    def _load(self, records: Sequence[OrderRecord]) -> int:
        self._transition(PipelineState.LOADING)

        with OperationLogger('load', self.logger, table=self.loader.table) as op:
            rows_loaded = self.loader.load(records)
            op.record(rows_loaded=rows_loaded)

        return rows_loaded
