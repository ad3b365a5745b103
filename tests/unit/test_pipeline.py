"""Unit tests for the pipeline driver."""

from pathlib import Path

import pyarrow as pa
import pytest

from parquet_ingest.errors import CoercionError, FetchError, FormatMismatch, LoadError, PipelineError
from parquet_ingest.ingestion.bulk_loader import BulkLoader
from parquet_ingest.ingestion.parquet_decoder import ParquetDecoder
from parquet_ingest.ingestion.pipeline import IngestionPipeline, PipelineState, object_filename
from parquet_ingest.tools.parquet_generator import ORDER_SCHEMA, write_orders


@pytest.fixture
def build(db_settings, db_manager, storage_settings):
    def _build(fetcher):
        return IngestionPipeline(
            fetcher=fetcher,
            decoder=ParquetDecoder(),
            loader=BulkLoader(db_settings, db=db_manager),
            scratch_dir=storage_settings.scratch_dir,
            correlation_id='test-run',
        )
    return _build


def test_run_loads_sample_file_end_to_end(build, make_fetcher, sample_file, fake_database):
    fetcher = make_fetcher(sample_file)
    pipeline = build(fetcher)

    result = pipeline.run('orders-bucket', 'incoming/orders.parquet')

    assert result.rows_loaded == 3
    assert result.bytes_downloaded == sample_file.stat().st_size
    assert result.source == 's3://orders-bucket/incoming/orders.parquet'
    assert result.correlation_id == 'test-run'
    assert [row[0] for row in fake_database.rows] == ['1', '2', '3']
    assert pipeline.state is PipelineState.DONE
    assert pipeline.history == [
        PipelineState.IDLE,
        PipelineState.FETCHING,
        PipelineState.DECODING,
        PipelineState.LOADING,
        PipelineState.DONE,
    ]


def test_run_downloads_into_scratch_and_cleans_up(build, make_fetcher, sample_file, storage_settings):
    fetcher = make_fetcher(sample_file)

    build(fetcher).run('orders-bucket', 'nested/path/orders.parquet')

    [(bucket, key, destination)] = fetcher.calls
    assert (bucket, key) == ('orders-bucket', 'nested/path/orders.parquet')
    assert destination.name == 'orders.parquet'
    assert Path(storage_settings.scratch_dir) in destination.parents
    assert not destination.exists()


def test_run_fails_on_text_quantity_with_zero_rows(build, make_fetcher, tmp_path, sample_orders, fake_database):
    schema = ORDER_SCHEMA.set(4, pa.field('qty', pa.string()))
    orders = [(*order[:4], str(order[4]), order[5]) for order in sample_orders]
    source = write_orders(tmp_path / 'bad.parquet', orders, schema=schema)
    pipeline = build(make_fetcher(source))

    with pytest.raises(CoercionError):
        pipeline.run('orders-bucket', 'bad.parquet')

    assert fake_database.rows == []
    assert fake_database.connections == []
    assert pipeline.state is PipelineState.FAILED
    assert pipeline.history[-2:] == [PipelineState.DECODING, PipelineState.FAILED]


def test_run_rejects_wrong_extension_without_loading(build, make_fetcher, sample_file, fake_database):
    pipeline = build(make_fetcher(sample_file))

    with pytest.raises(FormatMismatch):
        pipeline.run('orders-bucket', 'orders.csv')

    assert fake_database.connections == []
    assert pipeline.state is PipelineState.FAILED


def test_run_stops_after_fetch_failure(build, make_fetcher, fake_database):
    pipeline = build(make_fetcher(error=FetchError('NoSuchKey')))

    with pytest.raises(FetchError):
        pipeline.run('orders-bucket', 'orders.parquet')

    assert pipeline.history == [PipelineState.IDLE, PipelineState.FETCHING, PipelineState.FAILED]
    assert fake_database.connections == []


def test_run_surfaces_load_failure(build, make_fetcher, sample_file, fake_database):
    fake_database.fail_on = 'commit'
    pipeline = build(make_fetcher(sample_file))

    with pytest.raises(LoadError):
        pipeline.run('orders-bucket', 'orders.parquet')

    assert fake_database.rows == []
    assert pipeline.history[-2:] == [PipelineState.LOADING, PipelineState.FAILED]


def test_run_rejects_directory_marker_key(build, make_fetcher):
    fetcher = make_fetcher()
    pipeline = build(fetcher)

    with pytest.raises(FetchError, match="does not name a file"):
        pipeline.run('orders-bucket', 'incoming/')

    assert fetcher.calls == []
    assert pipeline.history == [PipelineState.IDLE, PipelineState.FETCHING, PipelineState.FAILED]


@pytest.mark.parametrize('key,expected', [
    ('orders.parquet', 'orders.parquet'),
    ('incoming/2024/orders.parquet', 'orders.parquet'),
    ('incoming/', ''),
])
def test_object_filename(key, expected):
    assert object_filename(key) == expected


def test_pipeline_cannot_run_twice(build, make_fetcher, sample_file):
    pipeline = build(make_fetcher(sample_file))
    pipeline.run('orders-bucket', 'orders.parquet')

    with pytest.raises(PipelineError):
        pipeline.run('orders-bucket', 'orders.parquet')

    assert pipeline.state is PipelineState.DONE


def test_run_local_skips_fetch(build, sample_file, fake_database):
    pipeline = build(None)

    result = pipeline.run_local(sample_file)

    assert result.rows_loaded == 3
    assert result.bytes_downloaded is None
    assert len(fake_database.rows) == 3
    assert pipeline.history == [
        PipelineState.IDLE,
        PipelineState.DECODING,
        PipelineState.LOADING,
        PipelineState.DONE,
    ]


def test_run_without_fetcher_fails(build):
    pipeline = build(None)

    with pytest.raises(PipelineError):
        pipeline.run('orders-bucket', 'orders.parquet')

    assert pipeline.history == [PipelineState.IDLE, PipelineState.FETCHING, PipelineState.FAILED]


def test_failure_is_logged_once_with_stage_and_context(build, make_fetcher, log_output):
    pipeline = build(make_fetcher(error=FetchError('NoSuchKey')))

    with pytest.raises(FetchError):
        pipeline.run('orders-bucket', 'orders.parquet')

    [error] = [entry for entry in log_output.entries if entry['log_level'] == 'error']
    assert error['event'] == 'Pipeline failed'
    assert error['stage'] == 'fetching'
    assert error['error_type'] == 'FetchError'
    assert error['correlation_id'] == 'test-run'
    assert error['key'] == 'orders.parquet'


def test_stage_events_report_bytes_and_rows(build, make_fetcher, sample_file, log_output):
    build(make_fetcher(sample_file)).run('orders-bucket', 'orders.parquet')

    completed = {
        entry['stage']: entry for entry in log_output.entries if entry['event'] == 'Stage completed'
    }
    assert completed['fetch']['bytes_downloaded'] == sample_file.stat().st_size
    assert completed['decode']['rows_decoded'] == 3
    assert completed['load']['rows_loaded'] == 3
    assert completed['load']['bucket'] == 'orders-bucket'
