"""
Build a ready-to-use Tracer from settings.

    tracer = create_tracer()                     # config.yaml + SEGTRACE_* env
    tracer = create_tracer(load_settings(path))  # explicit config file
"""

import logging

from opentelemetry.sdk.trace.export import SpanExporter

from .backend.emitter import Emitter, SpanExporterEmitter
from .backend.recorder import EnvironmentHostResolver, Recorder
from .config import TracingSettings, load_settings
from .exporters import (
    FileLogExporter,
    FileSpanExporter,
    create_console_exporters,
    create_otlp_log_exporter,
    create_otlp_trace_exporter,
)
from .log import configure_logging
from .tracer import Tracer

logger = logging.getLogger(__name__)


def _log_path(output_file: str) -> str:
    if output_file.endswith(".jsonl"):
        return output_file[: -len(".jsonl")] + ".logs.jsonl"
    return output_file + ".logs"


def create_exporters(settings: TracingSettings):
    """
    Create the span and log exporters for ``settings.exporter``.

    Returns:
        Tuple of (span_exporter, log_exporter); both None for exporter "none".
    """
    if settings.exporter == "console":
        return create_console_exporters()
    if settings.exporter == "file":
        output_file = settings.output_file or ""
        return FileSpanExporter(output_file), FileLogExporter(_log_path(output_file))
    if settings.exporter == "otlp":
        return (
            create_otlp_trace_exporter(settings.endpoint, settings.protocol, settings.headers or None),
            create_otlp_log_exporter(settings.endpoint, settings.protocol, settings.headers or None),
        )
    return None, None


def create_emitter(settings: TracingSettings, span_exporter: SpanExporter | None) -> Emitter | None:
    if span_exporter is None:
        return None
    return SpanExporterEmitter(span_exporter, service_name=settings.service_name)


def create_recorder(settings: TracingSettings, emitter: Emitter | None) -> Recorder:
    resolvers = [
        EnvironmentHostResolver(h.marker_env, h.trace_header_env, name=h.name)
        for h in settings.host_detection
    ]
    return Recorder(emitter=emitter, host_resolvers=resolvers, sampled=settings.sampled)


def create_tracer(settings: TracingSettings | None = None) -> Tracer:
    """Load settings if not given, wire exporters, recorder and logging, and return a Tracer."""
    if settings is None:
        settings = load_settings()
    span_exporter, log_exporter = create_exporters(settings)
    configure_logging(settings, log_exporter)
    recorder = create_recorder(settings, create_emitter(settings, span_exporter))
    logger.debug(
        "Tracer created: service=%s exporter=%s sampled=%s host_resolvers=%d",
        settings.service_name,
        settings.exporter,
        settings.sampled,
        len(recorder.host_resolvers),
    )
    return Tracer(recorder=recorder, trace_header_key=settings.trace_header_key)
