"""
Console exporters for debugging and development.

Prints finished trace entities (and optionally segtrace's own logs) to stdout.
"""

from opentelemetry.sdk._logs.export import ConsoleLogRecordExporter
from opentelemetry.sdk.trace.export import ConsoleSpanExporter


def create_console_exporters():
    """
    Create console exporters for the signals segtrace emits.

    Returns:
        Tuple of (span_exporter, log_exporter)
    """
    return (
        ConsoleSpanExporter(),
        ConsoleLogRecordExporter(),
    )
