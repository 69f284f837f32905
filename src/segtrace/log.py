"""
Logging setup for segtrace's own diagnostics.

Everything in segtrace logs through stdlib loggers under the "segtrace"
namespace. configure_logging() sets their level and, when log export is on,
attaches an OpenTelemetry LoggingHandler so the same records are shipped with
the configured log exporter alongside the traces.
"""

import logging

from opentelemetry._logs import set_logger_provider
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor, LogRecordExporter
from opentelemetry.sdk.resources import Resource

from .config import TracingSettings
from .errors import ConfigurationError

LOGGER_NAME = "segtrace"

_installed_handler: logging.Handler | None = None


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        raise ConfigurationError(f"Unknown log level {name!r}")
    return level


def configure_logging(
    settings: TracingSettings,
    log_exporter: LogRecordExporter | None = None,
) -> LoggerProvider | None:
    """
    Apply ``settings.log_level`` to the segtrace loggers and optionally export their records.

    Returns the LoggerProvider when records are exported (callers shut it down
    on exit), otherwise None. Calling again replaces the previously installed handler.
    """
    global _installed_handler

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(_level(settings.log_level))

    if _installed_handler is not None:
        logger.removeHandler(_installed_handler)
        _installed_handler = None

    if not settings.export_logs or log_exporter is None:
        return None

    resource = Resource.create({"service.name": settings.service_name})
    provider = LoggerProvider(resource=resource)
    provider.add_log_record_processor(BatchLogRecordProcessor(log_exporter))
    set_logger_provider(provider)

    handler = LoggingHandler(level=logging.NOTSET, logger_provider=provider)
    logger.addHandler(handler)
    _installed_handler = handler
    return provider
