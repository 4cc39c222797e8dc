import logging
import sys

import structlog

from .settings import Settings, get_settings


def _shared_processors() -> list:
    return [
        # Worker and job context bound via structlog.contextvars
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
    ]


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structured logging with structlog.

    Store, cache and service modules log through stdlib ``logging`` with
    ``extra=`` fields; those records are rendered by the same processor chain
    as structlog loggers, so ``job_id``/``kind`` extras and the worker context
    bound by ``SummaryWorker`` end up on every line.
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)

    # JSON formatting for production, pretty printing for development
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.debug
        else structlog.processors.JSONRenderer()
    )

    # Configure standard library logging
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[*_shared_processors(), structlog.stdlib.ExtraAdder()],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )
    logging.basicConfig(handlers=[handler], level=level, force=True)

    # Configure structlog
    structlog.configure(
        processors=[
            *_shared_processors(),
            # Add caller information in development
            (
                structlog.processors.CallsiteParameterAdder(
                    parameters=[structlog.processors.CallsiteParameter.FUNC_NAME]
                )
                if settings.debug
                else structlog.processors.CallsiteParameterAdder(parameters=[])
            ),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
