"""
Health checks for the pipeline's external dependencies.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from parquet_ingest.database.connection import DatabaseManager
from parquet_ingest.ingestion.s3_fetcher import S3Fetcher

logger = logging.getLogger(__name__)


class HealthChecker:
    """Provides health checks for the database and object store."""

    def __init__(self, db: DatabaseManager, fetcher: Optional[S3Fetcher] = None):
        self.db = db
        self.fetcher = fetcher

    def check_database_health(self) -> Dict[str, Any]:
        """Check database connectivity with a trivial query."""
        start_time = datetime.now()
        is_healthy = self.db.health_check()

        result = {
            'status': 'healthy' if is_healthy else 'unhealthy',
            'response_time_ms': int((datetime.now() - start_time).total_seconds() * 1000),
            'timestamp': datetime.now().isoformat()
        }
        if not is_healthy:
            result['error'] = 'Database connection failed'
        return result

    def check_storage_health(self, bucket: str) -> Dict[str, Any]:
        """Check that the source bucket is reachable."""
        start_time = datetime.now()

        if self.fetcher is None:
            return {'status': 'unknown', 'error': 'No storage client configured'}

        try:
            self.fetcher.check_bucket(bucket)
            return {
                'status': 'healthy',
                'bucket': bucket,
                'response_time_ms': int((datetime.now() - start_time).total_seconds() * 1000),
                'timestamp': datetime.now().isoformat()
            }
        except Exception as e:
            logger.error(f"Storage health check failed: {e}")
            return {
                'status': 'unhealthy',
                'bucket': bucket,
                'error': str(e),
                'response_time_ms': int((datetime.now() - start_time).total_seconds() * 1000),
                'timestamp': datetime.now().isoformat()
            }

    def get_health_status(self, bucket: Optional[str] = None) -> Dict[str, Any]:
        """Overall status across all checked components."""
        components = {'database': self.check_database_health()}
        if bucket:
            components['storage'] = self.check_storage_health(bucket)

        healthy = all(component['status'] == 'healthy' for component in components.values())
        return {
            'status': 'healthy' if healthy else 'unhealthy',
            'components': components,
            'timestamp': datetime.now().isoformat()
        }
