"""
Structured logging for the ingestion pipeline.

Per-invocation context (correlation id, bucket, key) is held in structlog
context variables, so every event emitted while one object is processed
carries it without passing a logger through each component.
"""

import os
import time
import logging
import logging.handlers
from typing import Any, Dict, List, Optional

import structlog
from structlog.contextvars import bound_contextvars, merge_contextvars

SERVICE_NAME = 'parquet-ingest'
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5


class IngestionLogger:
    """Configures structlog on top of the stdlib root logger."""

    @staticmethod
    def setup_logging(
        log_level: Optional[str] = None,
        log_format: Optional[str] = None,
        log_file: Optional[str] = None
    ) -> None:
        """Route structlog events to stderr and, optionally, a rotating file.

        Arguments fall back to LOG_LEVEL, LOG_FORMAT (json or console) and
        LOG_FILE.
        """
        level_name = (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper()
        log_format = (log_format or os.getenv('LOG_FORMAT', 'json')).lower()
        log_file = log_file or os.getenv('LOG_FILE')
        level = getattr(logging, level_name, logging.INFO)

        structlog.configure(
            processors=[
                merge_contextvars,
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso", utc=True),
                structlog.processors.format_exc_info,
                add_service_name,
                json_or_console_renderer(log_format),
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        # Lambda pre-installs a handler on the root logger; replace it
        root_logger = logging.getLogger()
        root_logger.handlers.clear()
        root_logger.setLevel(level)
        for handler in _build_handlers(log_file):
            handler.setLevel(level)
            handler.setFormatter(logging.Formatter('%(message)s'))
            root_logger.addHandler(handler)

        get_logger().debug(
            "Logging initialized",
            log_level=level_name,
            log_format=log_format,
            log_file=log_file or "stderr",
        )


def _build_handlers(log_file: Optional[str]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]

    if log_file:
        os.makedirs(os.path.dirname(log_file) or '.', exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
        ))

    return handlers


def add_service_name(logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault('service', SERVICE_NAME)
    return event_dict


def json_or_console_renderer(log_format: str):
    if log_format == 'json':
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def invocation_context(correlation_id: str, **context):
    """Bind the correlation id (plus bucket/key etc.) for one invocation.

    Use as a context manager; previous values are restored on exit, so a
    warm Lambda container does not leak context between invocations.
    """
    return bound_contextvars(correlation_id=correlation_id, **context)


def get_logger(**context):
    return structlog.get_logger(SERVICE_NAME, **context)


class OperationLogger:
    """Times one pipeline stage and logs its completion.

    Whatever the stage produced (rows decoded, bytes downloaded, rows
    copied) is passed to ``record`` and lands on the completion event.
    A failing stage is not logged here; the caller reports it once with
    the pipeline state attached.
    """

    def __init__(self, stage: str, logger=None, **context):
        self.stage = stage
        self.logger = logger or get_logger()
        self.context = context
        self.fields: Dict[str, Any] = {}
        self.duration_ms: Optional[float] = None
        self._started: Optional[float] = None

    def record(self, **fields) -> None:
        self.fields.update(fields)

    def __enter__(self) -> "OperationLogger":
        self._started = time.perf_counter()
        self.logger.debug("Stage started", stage=self.stage, **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.duration_ms = round((time.perf_counter() - self._started) * 1000, 3)

        if exc_type is None:
            self.logger.info(
                "Stage completed",
                stage=self.stage,
                duration_ms=self.duration_ms,
                **{**self.context, **self.fields}
            )

        return False
